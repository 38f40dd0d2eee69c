"""
Reachability Monitor - alive/dead tracking for a fleet of network devices.

Every cycle the monitor fetches the roster of one inventory group, probes
each device over ICMP with a tiered retry policy, and records only the
devices whose alive state changed.

Architecture:
    poll loop -> partitioner -> worker pool (N tasks) -> retry policy -> prober
    worker pool results -> reconciler (single writer) -> inventory store
"""

__version__ = "1.0.0"

from ._types import (
    CyclePhase,
    CycleResult,
    Device,
    ProbeOutcome,
    Verdict,
)
from .exceptions import (
    ConfigurationError,
    MonitorError,
    QueryError,
    StoreError,
    WriteError,
)

__all__ = [
    "__version__",
    "CyclePhase",
    "CycleResult",
    "Device",
    "ProbeOutcome",
    "Verdict",
    "ConfigurationError",
    "MonitorError",
    "QueryError",
    "StoreError",
    "WriteError",
]
