"""
Writes alive/dead transitions back to the inventory.

The reconciler is the only component holding the inventory store. Each
transition is written under a single lock, taken per write rather than for
the whole pass, and committed on its own. A failed write is logged and that
transition dropped; the next cycle re-reads the roster and tries again.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from ._types import ProbeOutcome
from .exceptions import StoreError
from .inventory_db import InventoryStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileSummary:
    """Counts from one reconciliation pass."""
    transitions: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0


class Reconciler:
    """Single-writer path from probe outcomes to the inventory store."""

    def __init__(
        self,
        store: InventoryStore,
        alive_param_id: int,
        lock: Optional[threading.Lock] = None,
    ):
        """
        Initialize reconciler.

        Args:
            store: Inventory store (shared connection)
            alive_param_id: Parameter id of the alive flag record
            lock: Mutual exclusion for store writes; a private lock if None
        """
        self.store = store
        self.alive_param_id = alive_param_id
        self.lock = lock or threading.Lock()

    def reconcile(self, outcomes: Iterable[ProbeOutcome]) -> ReconcileSummary:
        """Persist every transition in outcomes; unchanged devices are skipped."""
        summary = ReconcileSummary()

        for outcome in outcomes:
            if not outcome.is_transition:
                continue
            summary.transitions += 1

            try:
                created = self.apply(outcome)
            except StoreError as e:
                summary.failed += 1
                logger.error(f"Can't update device status: {e}")
                continue

            if created:
                summary.created += 1
            else:
                summary.updated += 1

        return summary

    def apply(self, outcome: ProbeOutcome) -> bool:
        """
        Write one transition.

        Returns:
            True if a new state record was created, False if one was updated

        Raises:
            StoreError: the store rejected the write
        """
        device = outcome.device
        state = "alive" if outcome.observed_alive else "dead"

        with self.lock:
            logger.info(f"Updating device {device.ip_address} state: {state}")
            if device.state_record_id is None:
                self.store.create_state_record(
                    device.id,
                    self.alive_param_id,
                    outcome.observed_alive,
                )
                return True

            self.store.update_state_record(device.state_record_id, outcome.observed_alive)
            return False
