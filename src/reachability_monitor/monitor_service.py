"""
Reachability Monitor Service - Main poll loop.

Each cycle fetches the device roster of the monitored group, splits it
across the worker slots, probes every device with the tiered retry policy,
and writes alive/dead transitions back to the inventory. Then it idles
and starts over, forever.

Roster failures (and empty rosters) back off and retry; they never stop
the service. Probe failures only ever surface as "dead".
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from aiohttp import web

from . import __version__
from ._types import CycleResult, CyclePhase, now_utc
from .config import DEFAULT_CONFIG_PATH, DEFAULT_PID_PATH, MonitorConfig, load_config
from .daemon import (
    configure_logging,
    daemonize,
    memory_usage,
    remove_pid_file,
    require_root,
    write_pid_file,
)
from .exceptions import ConfigurationError, QueryError
from .inventory_db import InventoryStore, SQLiteInventoryStore
from .partitioner import partition
from .prober import Prober, build_prober
from .reconciler import Reconciler
from .retry import RetryPolicy, SleepFunc
from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)


class MonitorService:
    """
    Main reachability monitor service.

    Owns the poll loop, the worker pool and the reconciler. The inventory
    store is reachable only through the poll loop (roster reads) and the
    reconciler (writes).
    """

    def __init__(
        self,
        config: MonitorConfig,
        store: Optional[InventoryStore] = None,
        prober: Optional[Prober] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize monitor service.

        Args:
            config: Monitor configuration
            store: Inventory store (SQLite at config.db_path if None)
            prober: Single-attempt prober (from config.probe_method if None)
            sleep: Delay function used by the retry policy
        """
        self.config = config
        self.store = store or SQLiteInventoryStore(config.db_path)
        self.prober = prober or build_prober(config.probe_method)

        self.policy = RetryPolicy(config.retry, sleep=sleep)
        self.pool = WorkerPool(
            self.prober,
            self.policy,
            workers=config.workers,
            probe_timeout=config.probe_timeout_seconds,
        )
        self.reconciler = Reconciler(self.store, config.alive_param_id)

        self.phase = CyclePhase.IDLE
        self.cycles_completed = 0
        self.last_cycle: Optional[CycleResult] = None

        self._running = False
        self._shutdown_event = asyncio.Event()

        # Local status API
        self._api_app: Optional[web.Application] = None
        self._api_runner: Optional[web.AppRunner] = None

    async def run_forever(self) -> None:
        """Blocking entry point for the process host."""
        await self.start()

    async def start(self) -> None:
        """Start the service and run until stopped."""
        logger.info(
            f"Starting Reachability Monitor (group={self.config.group_id}, "
            f"workers={self.config.workers}, probe={self.prober.name})"
        )
        self._running = True

        try:
            if self.config.api_enabled:
                await self._start_api_server()
            await self._main_loop()
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        """Ask the poll loop to stop after the current phase."""
        logger.info("Stopping Reachability Monitor")
        self._running = False
        self._shutdown_event.set()

    async def _cleanup(self) -> None:
        if self._api_runner:
            await self._api_runner.cleanup()
            self._api_runner = None
        self.pool.close()
        self.store.close()
        logger.info("Reachability Monitor stopped")

    async def _start_api_server(self) -> None:
        """Start local status API."""
        self._api_app = web.Application()
        self._api_app.router.add_get("/api/health", self._handle_health)
        self._api_app.router.add_get("/api/status", self._handle_status)

        self._api_runner = web.AppRunner(self._api_app)
        await self._api_runner.setup()
        site = web.TCPSite(self._api_runner, self.config.api_host, self.config.api_port)
        await site.start()
        logger.info(f"Status API started on {self.config.api_host}:{self.config.api_port}")

    async def _idle(self, seconds: float) -> None:
        """Sleep, waking early on shutdown."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _main_loop(self) -> None:
        """FetchRoster -> Partition -> Probe -> Reconcile -> Idle, forever."""
        logger.info("Poll loop started")

        while self._running:
            try:
                result = await self.run_cycle()
            except Exception as e:
                logger.error(f"Error in poll cycle: {e!r}")
                result = None

            if not self._running:
                break

            self.phase = CyclePhase.IDLE
            if result is None:
                logger.info(f"Waiting {self.config.fetch_backoff_seconds:g} sec to refetch roster")
                await self._idle(self.config.fetch_backoff_seconds)
            else:
                logger.info(
                    f"All workers finished. Waiting {self.config.idle_seconds:g} sec to reselect"
                )
                await self._idle(self.config.idle_seconds)

        logger.info("Poll loop stopped")

    async def run_cycle(self) -> Optional[CycleResult]:
        """
        Run one poll cycle.

        Returns:
            Cycle summary, or None when no usable roster could be fetched
            (the caller backs off before retrying)
        """
        logger.info(f"Memory usage: {memory_usage()} bytes")

        self.phase = CyclePhase.FETCH_ROSTER
        try:
            try:
                self.store.connect()
                roster = self.store.fetch_roster(
                    self.config.group_id,
                    self.config.alive_param_id,
                )
            except QueryError as e:
                logger.error(f"Roster fetch failed: {e}")
                return None

            if not roster:
                logger.warning(f"No devices to probe in group {self.config.group_id}")
                return None

            result = CycleResult(roster_size=len(roster))
            logger.info(f"Devices count for probing: {len(roster)}")

            self.phase = CyclePhase.PARTITION
            partitions = partition(roster, self.config.workers)
            result.partition_sizes = [len(p) for p in partitions]
            logger.info(f"Devices per worker: {result.partition_sizes[0]}")

            self.phase = CyclePhase.PROBE
            outcomes = await self.pool.run(partitions)
            result.probes = sum(o.attempts for o in outcomes)

            self.phase = CyclePhase.RECONCILE
            summary = await asyncio.to_thread(self.reconciler.reconcile, outcomes)
            result.transitions = summary.transitions
            result.created = summary.created
            result.updated = summary.updated
            result.write_failures = summary.failed
        finally:
            self.store.close()

        result.completed_at = now_utc()
        self.last_cycle = result
        self.cycles_completed += 1

        logger.info(
            f"Cycle completed: {result.roster_size} devices, {result.probes} probes, "
            f"{result.transitions} transitions ({result.created} created, "
            f"{result.updated} updated, {result.write_failures} failed)"
        )
        return result

    # -------------------------------------------------------------------------
    # API Handlers
    # -------------------------------------------------------------------------

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Handle GET /api/health."""
        return web.json_response({
            "status": "ok",
            "service": "reachability-monitor",
            "version": __version__,
            "phase": self.phase.value,
            "cycles": self.cycles_completed,
        })

    async def _handle_status(self, request: web.Request) -> web.Response:
        """Handle GET /api/status."""
        return web.json_response(self.last_cycle.to_dict() if self.last_cycle else None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fleet reachability monitor")
    parser.add_argument("-c", "--config", type=Path, default=DEFAULT_CONFIG_PATH,
                        help="config file location")
    parser.add_argument("--from-env", action="store_true",
                        help="read configuration from MONITOR_* environment variables")
    parser.add_argument("-w", "--workers", type=int, default=None, help="workers count")
    parser.add_argument("-d", "--daemonize", action="store_true", help="run program as daemon")
    parser.add_argument("-p", "--pid", type=Path, default=DEFAULT_PID_PATH,
                        help="pid file location")
    parser.add_argument("--log-level", type=str, default=None, help="log level")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the reachability-monitor daemon."""
    args = build_parser().parse_args(argv)

    configure_logging(args.log_level or "INFO", daemon=args.daemonize)

    try:
        config = load_config(
            None if args.from_env else args.config,
            workers=args.workers,
            log_level=args.log_level,
        )
        if config.needs_root:
            require_root()
    except ConfigurationError as e:
        logger.error(f"Config error: {e}")
        sys.exit(1)

    configure_logging(config.log_level, daemon=args.daemonize)

    # daemonize() moves to /; config.db_path is already absolute
    pid_path = args.pid.expanduser().absolute()

    if args.daemonize:
        try:
            daemonize()
        except ConfigurationError as e:
            logger.error(str(e))
            sys.exit(1)
        write_pid_file(pid_path)

    service = MonitorService(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.ensure_future(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(service.run_forever())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        loop.close()
        if args.daemonize:
            remove_pid_file(pid_path)


if __name__ == "__main__":
    main()
