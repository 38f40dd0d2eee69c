"""
Inventory store for the reachability monitor.

The inventory owns the device roster and one state record per device and
parameter (the alive flag). The monitor reads the roster of one device
group each cycle and writes back only alive/dead transitions.

SQLite schema:
- devices: monitored endpoints and the group they belong to
- device_values: per-device parameter values ('Y'/'N' for the alive flag)

Uses WAL mode so operators can read the inventory while the monitor runs.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ._types import Device, alive_to_flag, flag_to_alive, now_utc
from .exceptions import QueryError, WriteError

logger = logging.getLogger(__name__)


# Database schema
SCHEMA = """
-- Monitored endpoints
CREATE TABLE IF NOT EXISTS devices (
    id INTEGER PRIMARY KEY,
    group_id INTEGER NOT NULL,
    name TEXT,
    ip_address TEXT
);

-- Parameter values per device (one row per device and parameter)
CREATE TABLE IF NOT EXISTS device_values (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    device_id INTEGER NOT NULL,
    param_id INTEGER NOT NULL,
    flag_value TEXT NOT NULL CHECK (flag_value IN ('Y', 'N')),
    updated_at TEXT NOT NULL,
    FOREIGN KEY (device_id) REFERENCES devices(id) ON DELETE CASCADE,
    UNIQUE(device_id, param_id)
);

CREATE INDEX IF NOT EXISTS idx_devices_group ON devices(group_id);
CREATE INDEX IF NOT EXISTS idx_device_values_device ON device_values(device_id);
"""

ROSTER_QUERY = """
    SELECT d.id AS device_id,
           d.ip_address AS ip_address,
           v.flag_value AS alive,
           v.id AS value_id
    FROM devices d
    LEFT JOIN device_values v
        ON v.device_id = d.id AND v.param_id = ?
    WHERE d.group_id = ?
    ORDER BY d.id
"""


class InventoryStore(ABC):
    """
    Inventory store used by the poll loop and the reconciler.

    Reads raise QueryError, writes raise WriteError. Implementations are not
    required to be safe for concurrent writes; callers serialize them.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the connection used for one poll cycle."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the cycle connection. Safe to call when not connected."""
        pass

    @abstractmethod
    def fetch_roster(self, group_id: int, alive_param_id: int) -> list[Device]:
        """Current devices of a group with their last known alive state."""
        pass

    @abstractmethod
    def create_state_record(self, device_id: int, param_id: int, alive: bool) -> int:
        """Create the state record for a device. Returns the record id."""
        pass

    @abstractmethod
    def update_state_record(self, record_id: int, alive: bool) -> None:
        """Overwrite an existing state record."""
        pass


class SQLiteInventoryStore(InventoryStore):
    """
    SQLite inventory.

    One connection is held per cycle and shared by the roster read and the
    transition writes; the reconciler serializes the writes.
    """

    def __init__(self, db_path: Path | str = "/var/lib/reachability-monitor/inventory.db"):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._conn_lock = threading.Lock()
        # Schema is applied by the first successful open, inside a cycle
        self._schema_ready = False

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _open(self) -> sqlite3.Connection:
        self._ensure_directory()
        conn = sqlite3.connect(str(self.db_path), timeout=30.0, check_same_thread=False)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            if not self._schema_ready:
                self._init_db(conn)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _init_db(self, conn: sqlite3.Connection) -> None:
        """Initialize database with schema."""
        conn.executescript(SCHEMA)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.commit()
        self._schema_ready = True

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Short-lived connection for administrative operations."""
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Cycle connection
    # -------------------------------------------------------------------------

    def connect(self) -> None:
        with self._conn_lock:
            if self._conn is not None:
                return
            try:
                self._conn = self._open()
            except (sqlite3.Error, OSError) as e:
                raise QueryError(f"Inventory connection error: {e}", operation="connect") from e

    def close(self) -> None:
        with self._conn_lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
        try:
            conn.close()
        except sqlite3.Error as e:
            logger.error(f"Can't close inventory connection: {e}")

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def _write_connection(self, operation: str) -> sqlite3.Connection:
        """Cycle connection for a write; connect failures are WriteErrors."""
        try:
            return self._connection()
        except QueryError as e:
            raise WriteError(str(e), operation=operation) from e

    def _rollback(self, conn: sqlite3.Connection) -> None:
        try:
            conn.rollback()
        except sqlite3.Error as e:
            logger.error(f"Rollback failed: {e}")

    # -------------------------------------------------------------------------
    # Roster
    # -------------------------------------------------------------------------

    def fetch_roster(self, group_id: int, alive_param_id: int) -> list[Device]:
        try:
            rows = self._connection().execute(
                ROSTER_QUERY, (alive_param_id, group_id)
            ).fetchall()
        except sqlite3.Error as e:
            raise QueryError(f"Error selecting device roster: {e}", operation="fetch_roster") from e

        roster = []
        for row in rows:
            device = self._row_to_device(row)
            if device is not None:
                roster.append(device)
        return roster

    def _row_to_device(self, row: sqlite3.Row) -> Optional[Device]:
        """Convert a roster row, or None if the row is unusable."""
        ip_address = (row["ip_address"] or "").strip()
        if not ip_address:
            logger.error(f"Can't parse device data: device {row['device_id']} has no address")
            return None

        return Device(
            id=row["device_id"],
            ip_address=ip_address,
            last_known_alive=flag_to_alive(row["alive"]),
            state_record_id=row["value_id"],
        )

    # -------------------------------------------------------------------------
    # State records
    # -------------------------------------------------------------------------

    def create_state_record(self, device_id: int, param_id: int, alive: bool) -> int:
        conn = self._write_connection("create_state_record")
        try:
            conn.execute("""
                INSERT INTO device_values (device_id, param_id, flag_value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(device_id, param_id) DO UPDATE SET
                    flag_value = excluded.flag_value,
                    updated_at = excluded.updated_at
            """, (device_id, param_id, alive_to_flag(alive), now_utc().isoformat()))
            row = conn.execute(
                "SELECT id FROM device_values WHERE device_id = ? AND param_id = ?",
                (device_id, param_id),
            ).fetchone()
            conn.commit()
        except sqlite3.Error as e:
            self._rollback(conn)
            raise WriteError(
                f"Can't create state record for device {device_id}: {e}",
                operation="create_state_record",
            ) from e

        return row["id"]

    def update_state_record(self, record_id: int, alive: bool) -> None:
        conn = self._write_connection("update_state_record")
        try:
            cursor = conn.execute(
                "UPDATE device_values SET flag_value = ?, updated_at = ? WHERE id = ?",
                (alive_to_flag(alive), now_utc().isoformat(), record_id),
            )
            conn.commit()
        except sqlite3.Error as e:
            self._rollback(conn)
            raise WriteError(
                f"Can't update state record {record_id}: {e}",
                operation="update_state_record",
            ) from e

        if cursor.rowcount == 0:
            raise WriteError(
                f"State record {record_id} does not exist",
                operation="update_state_record",
            )

    # -------------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------------

    def add_device(
        self,
        ip_address: Optional[str],
        group_id: int,
        name: Optional[str] = None,
        device_id: Optional[int] = None,
    ) -> int:
        """Register a device in a group. Returns its id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO devices (id, group_id, name, ip_address) VALUES (?, ?, ?, ?)",
                (device_id, group_id, name, ip_address),
            )
            conn.commit()
            return cursor.lastrowid

    def get_state(self, device_id: int, param_id: int) -> Optional[bool]:
        """Stored alive flag of a device, or None if no record exists."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT flag_value FROM device_values WHERE device_id = ? AND param_id = ?",
                (device_id, param_id),
            ).fetchone()
            return flag_to_alive(row["flag_value"]) if row else None

