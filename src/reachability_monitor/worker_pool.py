"""
Concurrent probing of roster partitions.

One asyncio task per partition walks its devices in order through the
retry policy. Blocking probe calls run in a thread pool sized to the
worker count. The pool returns only after every task has finished.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

from ._types import Device, ProbeOutcome
from .prober import Prober
from .retry import RetryPolicy

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Runs one probing task per partition.

    Tasks share nothing but the read-only prober and policy, and never
    touch the inventory store.
    """

    def __init__(
        self,
        prober: Prober,
        policy: RetryPolicy,
        workers: int = 32,
        probe_timeout: float = 2.0,
    ):
        """
        Initialize worker pool.

        Args:
            prober: Single-attempt prober (blocking)
            policy: Retry policy applied to every device
            workers: Number of concurrent probing tasks/threads
            probe_timeout: Timeout of one probe attempt in seconds
        """
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")

        self.prober = prober
        self.policy = policy
        self.workers = workers
        self.probe_timeout = probe_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="prober",
        )

    async def _probe(self, address: str) -> bool:
        """Run one blocking probe attempt in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            self.prober.probe,
            address,
            self.probe_timeout,
        )

    async def _run_partition(self, index: int, devices: Sequence[Device]) -> list[ProbeOutcome]:
        """Probe every device of one partition, in order."""
        outcomes = []
        for device in devices:
            verdict = await self.policy.evaluate(
                device.ip_address,
                device.last_known_alive,
                self._probe,
            )
            outcomes.append(ProbeOutcome(
                device=device,
                observed_alive=verdict.alive,
                attempts=verdict.attempts,
            ))
        logger.debug(f"Worker {index} finished {len(outcomes)} devices")
        return outcomes

    async def run(self, partitions: Sequence[Sequence[Device]]) -> list[ProbeOutcome]:
        """
        Probe all partitions concurrently and wait for every task.

        Returns:
            Outcomes of all partitions, concatenated in partition order
        """
        results = await asyncio.gather(
            *(self._run_partition(i, p) for i, p in enumerate(partitions)),
            return_exceptions=True,
        )

        outcomes: list[ProbeOutcome] = []
        for index, result in enumerate(results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                # Probers are total, so this is a bug; keep the other partitions
                logger.error(f"Worker {index} failed: {result!r}")
                continue
            outcomes.extend(result)

        return outcomes

    def close(self) -> None:
        """Release the probe threads."""
        self._executor.shutdown(wait=False, cancel_futures=True)
