"""Tests for the SQLite inventory store."""

import sqlite3
import tempfile
from pathlib import Path

import pytest

from reachability_monitor.exceptions import QueryError, WriteError
from reachability_monitor.inventory_db import SQLiteInventoryStore

GROUP = 1001
ALIVE_PARAM = 42


@pytest.fixture
def store():
    """Create a temporary inventory for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    inventory = SQLiteInventoryStore(db_path)
    yield inventory

    # Cleanup
    inventory.close()
    db_path.unlink(missing_ok=True)
    db_path.with_suffix(".db-wal").unlink(missing_ok=True)
    db_path.with_suffix(".db-shm").unlink(missing_ok=True)


class TestRoster:
    """Tests for roster fetches."""

    def test_empty_group(self, store: SQLiteInventoryStore):
        """Unknown group gives an empty roster."""
        assert store.fetch_roster(GROUP, ALIVE_PARAM) == []

    def test_device_without_state_record(self, store: SQLiteInventoryStore):
        """Missing state record reads as dead with no handle."""
        device_id = store.add_device("10.0.0.1", GROUP)

        roster = store.fetch_roster(GROUP, ALIVE_PARAM)

        assert len(roster) == 1
        assert roster[0].id == device_id
        assert roster[0].ip_address == "10.0.0.1"
        assert roster[0].last_known_alive is False
        assert roster[0].state_record_id is None

    def test_device_with_state_record(self, store: SQLiteInventoryStore):
        """Existing record supplies last known state and handle."""
        device_id = store.add_device("10.0.0.1", GROUP)
        record_id = store.create_state_record(device_id, ALIVE_PARAM, True)

        roster = store.fetch_roster(GROUP, ALIVE_PARAM)

        assert roster[0].last_known_alive is True
        assert roster[0].state_record_id == record_id

    def test_filters_by_group(self, store: SQLiteInventoryStore):
        """Only devices of the monitored group are returned."""
        store.add_device("10.0.0.1", GROUP)
        store.add_device("10.0.0.2", 2002)

        roster = store.fetch_roster(GROUP, ALIVE_PARAM)

        assert [d.ip_address for d in roster] == ["10.0.0.1"]

    def test_other_parameters_ignored(self, store: SQLiteInventoryStore):
        """Records for other parameters do not count as the alive flag."""
        device_id = store.add_device("10.0.0.1", GROUP)
        store.create_state_record(device_id, 7, True)

        roster = store.fetch_roster(GROUP, ALIVE_PARAM)

        assert roster[0].last_known_alive is False
        assert roster[0].state_record_id is None

    def test_ordered_by_device_id(self, store: SQLiteInventoryStore):
        """Roster order is stable (device id ascending)."""
        store.add_device("10.0.0.30", GROUP, device_id=30)
        store.add_device("10.0.0.10", GROUP, device_id=10)
        store.add_device("10.0.0.20", GROUP, device_id=20)

        roster = store.fetch_roster(GROUP, ALIVE_PARAM)

        assert [d.id for d in roster] == [10, 20, 30]

    def test_skips_devices_without_address(self, store: SQLiteInventoryStore):
        """Unusable rows are dropped, the rest of the roster survives."""
        store.add_device(None, GROUP)
        store.add_device("  ", GROUP)
        store.add_device("10.0.0.3", GROUP)

        roster = store.fetch_roster(GROUP, ALIVE_PARAM)

        assert [d.ip_address for d in roster] == ["10.0.0.3"]

    def test_query_failure_raises_query_error(self, store: SQLiteInventoryStore):
        """SQL errors surface as QueryError."""
        store.connect()
        conn = sqlite3.connect(str(store.db_path))
        conn.execute("DROP TABLE device_values")
        conn.commit()
        conn.close()

        with pytest.raises(QueryError):
            store.fetch_roster(GROUP, ALIVE_PARAM)


class TestStateRecords:
    """Tests for state record writes."""

    def test_create_state_record(self, store: SQLiteInventoryStore):
        """Creates a new record and returns its id."""
        device_id = store.add_device("10.0.0.1", GROUP)

        record_id = store.create_state_record(device_id, ALIVE_PARAM, True)

        assert record_id is not None
        assert store.get_state(device_id, ALIVE_PARAM) is True

    def test_create_existing_record_overwrites(self, store: SQLiteInventoryStore):
        """A record created meanwhile is overwritten, keeping its id."""
        device_id = store.add_device("10.0.0.1", GROUP)
        first = store.create_state_record(device_id, ALIVE_PARAM, True)

        second = store.create_state_record(device_id, ALIVE_PARAM, False)

        assert second == first
        assert store.get_state(device_id, ALIVE_PARAM) is False

    def test_create_for_unknown_device_fails(self, store: SQLiteInventoryStore):
        """Foreign key violation is a WriteError."""
        with pytest.raises(WriteError):
            store.create_state_record(999, ALIVE_PARAM, True)

    def test_update_state_record(self, store: SQLiteInventoryStore):
        """Overwrites the alive flag of an existing record."""
        device_id = store.add_device("10.0.0.1", GROUP)
        record_id = store.create_state_record(device_id, ALIVE_PARAM, True)

        store.update_state_record(record_id, False)

        assert store.get_state(device_id, ALIVE_PARAM) is False

    def test_update_missing_record_fails(self, store: SQLiteInventoryStore):
        """Updating a record that does not exist is a WriteError."""
        with pytest.raises(WriteError):
            store.update_state_record(12345, True)

    def test_get_state_without_record(self, store: SQLiteInventoryStore):
        device_id = store.add_device("10.0.0.1", GROUP)

        assert store.get_state(device_id, ALIVE_PARAM) is None


class TestConnectionLifecycle:
    """Tests for the per-cycle connection."""

    def test_connect_and_close(self, store: SQLiteInventoryStore):
        store.connect()
        assert store.connected is True

        store.close()
        assert store.connected is False

    def test_close_when_not_connected(self, store: SQLiteInventoryStore):
        """Closing twice is harmless."""
        store.close()
        store.close()

        assert store.connected is False

    def test_writes_visible_after_close(self, store: SQLiteInventoryStore):
        """Each write is committed on its own."""
        device_id = store.add_device("10.0.0.1", GROUP)
        store.connect()
        store.create_state_record(device_id, ALIVE_PARAM, True)
        store.close()

        assert store.get_state(device_id, ALIVE_PARAM) is True


class TestUnusableDatabase:
    """A broken database file is reported through the store errors."""

    @pytest.fixture
    def broken_store(self, tmp_path):
        db_path = tmp_path / "inventory.db"
        db_path.write_bytes(b"this is not an sqlite database" * 100)
        inventory = SQLiteInventoryStore(db_path)
        yield inventory
        inventory.close()

    def test_construction_does_not_touch_database(self, broken_store):
        """Schema setup waits for the first connect."""
        assert broken_store.connected is False

    def test_connect_raises_query_error(self, broken_store):
        with pytest.raises(QueryError):
            broken_store.connect()

        assert broken_store.connected is False

    def test_uncreatable_directory_raises_query_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        inventory = SQLiteInventoryStore(blocker / "sub" / "inventory.db")

        with pytest.raises(QueryError):
            inventory.connect()

    def test_write_without_connection_raises_write_error(self, broken_store):
        """Reconnecting on the write path reports a WriteError."""
        with pytest.raises(WriteError):
            broken_store.update_state_record(1, True)

        with pytest.raises(WriteError):
            broken_store.create_state_record(1, ALIVE_PARAM, True)

    def test_recovers_once_database_is_repaired(self, broken_store):
        with pytest.raises(QueryError):
            broken_store.connect()

        broken_store.db_path.unlink()
        broken_store.connect()

        assert broken_store.fetch_roster(GROUP, ALIVE_PARAM) == []
