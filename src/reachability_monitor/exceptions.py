"""
Exception types for the reachability monitor.

Store errors are transient: the poll loop and the reconciler log them and
carry on. Configuration errors are fatal, but only at startup.
Probe failures are never raised; probers report them as "not alive".
"""

from typing import Optional


class MonitorError(Exception):
    """Base class for all reachability monitor errors."""


class StoreError(MonitorError):
    """Transient failure talking to the inventory store."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class QueryError(StoreError):
    """Roster fetch failed (connectivity, authorization or SQL problem)."""


class WriteError(StoreError):
    """A single state-record write failed."""


class ConfigurationError(MonitorError):
    """Missing or invalid startup parameters, or failed privilege check."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or []
