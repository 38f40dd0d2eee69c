"""
Process plumbing for running the monitor as a system daemon.

Logging setup (console or syslog), the root check needed for raw ICMP,
double-fork daemonization, PID file handling and memory reporting.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

import psutil

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
SYSLOG_IDENT = "reachability-monitor"
SYSLOG_SOCKET = "/dev/log"


def configure_logging(level: str = "INFO", daemon: bool = False) -> None:
    """
    Configure root logging.

    In the foreground logs go to stderr. As a daemon they go to syslog
    (facility DAEMON), falling back to stderr if the syslog socket is missing.
    """
    handlers: list[logging.Handler] = []

    if daemon and Path(SYSLOG_SOCKET).exists():
        syslog = logging.handlers.SysLogHandler(
            address=SYSLOG_SOCKET,
            facility=logging.handlers.SysLogHandler.LOG_DAEMON,
        )
        syslog.ident = f"{SYSLOG_IDENT}[{os.getpid()}]: "
        syslog.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        handlers.append(syslog)
    else:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def require_root() -> None:
    """Raw ICMP sockets need root privileges."""
    if os.geteuid() != 0:
        raise ConfigurationError("root privileges required for ICMP probing")


def daemonize() -> None:
    """
    Detach from the controlling terminal (double fork).

    The calling process exits; the grandchild continues in a new session
    with umask 0 and stdio redirected to /dev/null.
    """
    try:
        if os.fork() > 0:
            os._exit(0)
    except OSError as e:
        raise ConfigurationError(f"Fork failed: {e}") from e

    try:
        os.setsid()
    except OSError as e:
        raise ConfigurationError(f"setsid() failed: {e}") from e

    try:
        if os.fork() > 0:
            os._exit(0)
    except OSError as e:
        raise ConfigurationError(f"Fork failed: {e}") from e

    os.umask(0)
    os.chdir("/")

    sys.stdout.flush()
    sys.stderr.flush()
    with open(os.devnull, "rb") as devnull_in, open(os.devnull, "ab") as devnull_out:
        os.dup2(devnull_in.fileno(), sys.stdin.fileno())
        os.dup2(devnull_out.fileno(), sys.stdout.fileno())
        os.dup2(devnull_out.fileno(), sys.stderr.fileno())

    # Syslog handler captured the pre-fork pid in its ident
    for handler in logging.getLogger().handlers:
        if isinstance(handler, logging.handlers.SysLogHandler):
            handler.ident = f"{SYSLOG_IDENT}[{os.getpid()}]: "

    logger.info(f"Started as daemon; pid: {os.getpid()}")


def write_pid_file(path: Path, pid: Optional[int] = None) -> None:
    """Write the daemon pid. Failure is logged, not fatal."""
    pid = pid if pid is not None else os.getpid()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{pid}\n")
    except OSError as e:
        logger.error(f"Can't write pid file {path}: {e}")


def remove_pid_file(path: Path) -> None:
    """Remove the pid file if it still holds our pid."""
    try:
        if path.read_text().strip() == str(os.getpid()):
            path.unlink()
    except FileNotFoundError:
        pass
    except (OSError, ValueError) as e:
        logger.warning(f"Can't remove pid file {path}: {e}")


def memory_usage() -> int:
    """Resident set size of this process in bytes."""
    return psutil.Process().memory_info().rss
