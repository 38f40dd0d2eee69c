"""
Tiered retry policy.

Turns noisy single-probe results into an alive/dead verdict:

- one burst of up to `attempts_per_burst` probes, pausing
  `attempt_delay_seconds` after each failed attempt, stopping on the first
  reply;
- devices last known alive get `extra_bursts_if_alive` more bursts, each
  preceded by `burst_delay_seconds`, before they are declared dead;
- devices last known dead get the single burst only.

With the defaults a previously-alive device costs at most 9 probes before
it is declared dead, a previously-dead one at most 3. A device coming back
to life resolves on its first successful attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ._types import Verdict
from .config import RetrySettings

logger = logging.getLogger(__name__)

ProbeFunc = Callable[[str], Awaitable[bool]]
SleepFunc = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """
    Attempt/burst state machine over an async probe function.

    The probe and sleep callables are injected so the policy can be driven
    without a network or a clock.
    """

    def __init__(
        self,
        settings: RetrySettings | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.settings = settings or RetrySettings()
        self._sleep = sleep

    def max_bursts(self, last_known_alive: bool) -> int:
        if last_known_alive:
            return 1 + self.settings.extra_bursts_if_alive
        return 1

    def max_attempts(self, last_known_alive: bool) -> int:
        """Upper bound on probes issued for one device."""
        return self.max_bursts(last_known_alive) * self.settings.attempts_per_burst

    async def evaluate(
        self,
        address: str,
        last_known_alive: bool,
        probe: ProbeFunc,
    ) -> Verdict:
        """
        Decide whether address is alive.

        Args:
            address: Host to probe
            last_known_alive: State recorded in the inventory
            probe: Coroutine function issuing a single attempt

        Returns:
            Verdict; alive is True iff any attempt succeeded
        """
        bursts_allowed = self.max_bursts(last_known_alive)
        attempts = 0
        burst = 0

        while burst < bursts_allowed:
            if burst > 0:
                logger.debug(f"{address}: burst {burst} failed, retrying in {self.settings.burst_delay_seconds}s")
                await self._sleep(self.settings.burst_delay_seconds)
            burst += 1

            for _ in range(self.settings.attempts_per_burst):
                attempts += 1
                if await probe(address):
                    return Verdict(alive=True, attempts=attempts, bursts=burst)
                await self._sleep(self.settings.attempt_delay_seconds)

        return Verdict(alive=False, attempts=attempts, bursts=burst)
