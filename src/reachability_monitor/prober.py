"""
Reachability probers.

A prober sends exactly one echo request per call and reports whether a
reply arrived before the timeout. Probers are total: every construction,
resolution or transport failure is reported as False, never raised.
Sockets and child processes are released before returning on every path.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from math import ceil
from typing import Optional

import ping3

logger = logging.getLogger(__name__)


class Prober(ABC):
    """Base class for reachability probers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this probe method."""
        pass

    @abstractmethod
    def probe(self, address: str, timeout: float = 2.0) -> bool:
        """
        Send one echo request to address.

        Blocking; the worker pool runs it in a thread.
        Returns True iff a reply was received within timeout.
        """
        pass


class IcmpProber(Prober):
    """
    ICMP echo via ping3.

    Requires a raw socket (root) on most systems. ping3 opens and closes
    its socket inside each call, so nothing is held between probes.
    """

    @property
    def name(self) -> str:
        return "icmp"

    def probe(self, address: str, timeout: float = 2.0) -> bool:
        try:
            delay = ping3.ping(address, timeout=timeout)
        except Exception as e:
            logger.debug(f"ICMP probe of {address} failed: {e}")
            return False

        # None = timeout, False = resolution/transport error, float = RTT (0.0 is valid)
        return delay is not None and delay is not False


class SystemPingProber(Prober):
    """
    ICMP echo via the operating system's ping binary.

    For hosts where the service cannot open raw sockets itself. The reply
    wait is passed with -W, which Linux iputils ping reads as seconds and
    BSD/macOS ping as milliseconds.
    """

    def __init__(self, ping_path: str = "ping", platform: Optional[str] = None):
        self.ping_path = ping_path
        self.platform = platform or sys.platform

    @property
    def name(self) -> str:
        return "system"

    def is_available(self) -> bool:
        return shutil.which(self.ping_path) is not None

    def probe(self, address: str, timeout: float = 2.0) -> bool:
        if self.platform.startswith("linux"):
            wait = str(max(1, ceil(timeout)))
        else:
            wait = str(max(1, ceil(timeout * 1000)))
        cmd = [self.ping_path, "-c", "1", "-W", wait, address]

        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=timeout + 1,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"System ping of {address} failed: {e}")
            return False

        return result.returncode == 0


def build_prober(method: str) -> Prober:
    """Create the prober for a configured probe method."""
    if method == "icmp":
        return IcmpProber()
    if method == "system":
        prober = SystemPingProber()
        if not prober.is_available():
            logger.warning("ping binary not found; every probe will report dead")
        return prober
    raise ValueError(f"Unknown probe method: {method}")
