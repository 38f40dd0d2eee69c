"""
Type definitions for the reachability monitor.

These dataclasses define the per-cycle domain model: the device roster
snapshot, probe outcomes, and the cycle summary exposed by the status API.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


# Persisted representation of the alive flag
FLAG_ALIVE = "Y"
FLAG_DEAD = "N"


def now_utc() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def flag_to_alive(flag: Optional[str]) -> bool:
    """Decode a stored alive flag. Anything but 'Y' (including NULL) is dead."""
    return flag == FLAG_ALIVE


def alive_to_flag(alive: bool) -> str:
    """Encode an alive verdict for storage."""
    return FLAG_ALIVE if alive else FLAG_DEAD


class CyclePhase(str, Enum):
    """Poll loop states."""
    FETCH_ROSTER = "fetch_roster"
    PARTITION = "partition"
    PROBE = "probe"
    RECONCILE = "reconcile"
    IDLE = "idle"


@dataclass(frozen=True)
class Device:
    """
    One monitored endpoint, as read from the inventory at roster-fetch time.

    Instances are read-only snapshots. A worker owns the devices in its
    partition for the duration of one cycle and never mutates them.
    """
    id: int
    ip_address: str
    last_known_alive: bool = False

    # Existing state record to overwrite; None means one must be created
    state_record_id: Optional[int] = None

    @property
    def has_state_record(self) -> bool:
        return self.state_record_id is not None


@dataclass(frozen=True)
class Verdict:
    """Final alive/dead decision of the retry policy for one device."""
    alive: bool
    attempts: int
    bursts: int


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of probing one device within one cycle."""
    device: Device
    observed_alive: bool
    attempts: int = 0

    @property
    def is_transition(self) -> bool:
        """True when the observed state differs from the last known one."""
        return self.observed_alive != self.device.last_known_alive


@dataclass
class CycleResult:
    """Summary of one completed poll cycle."""
    cycle_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None

    roster_size: int = 0
    partition_sizes: list[int] = field(default_factory=list)

    probes: int = 0
    transitions: int = 0
    created: int = 0
    updated: int = 0
    write_failures: int = 0

    def to_dict(self) -> dict:
        return {
            "cycle_id": self.cycle_id,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "roster_size": self.roster_size,
            "partition_sizes": self.partition_sizes,
            "probes": self.probes,
            "transitions": self.transitions,
            "created": self.created,
            "updated": self.updated,
            "write_failures": self.write_failures,
        }
