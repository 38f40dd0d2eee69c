"""
Reachability monitor configuration.

Settings come from a YAML file (the normal daemon setup) or from MONITOR_*
environment variables, and are validated by pydantic. Anything missing or
out of range is reported as a ConfigurationError before the poll loop starts.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/reachability-monitor.yaml")
DEFAULT_PID_PATH = Path("/var/run/reachability-monitor.pid")

PROBE_METHODS = ("icmp", "system")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class RetrySettings(BaseModel):
    """Tiered retry policy constants."""

    attempts_per_burst: int = Field(
        default=3,
        ge=1,
        description="Probe attempts in one burst"
    )
    attempt_delay_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Pause after each failed attempt"
    )
    burst_delay_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Pause before each extra burst"
    )
    extra_bursts_if_alive: int = Field(
        default=2,
        ge=0,
        description="Extra bursts granted to devices last known alive"
    )

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )


class MonitorConfig(BaseModel):
    """Reachability monitor configuration."""

    # ========================================================================
    # Inventory
    # ========================================================================

    db_path: Path = Field(
        default=Path("/var/lib/reachability-monitor/inventory.db"),
        description="SQLite inventory database"
    )
    group_id: int = Field(
        ...,
        ge=0,
        description="Monitored device group"
    )
    alive_param_id: int = Field(
        ...,
        ge=0,
        description="Parameter id of the alive flag state record"
    )

    # ========================================================================
    # Probing
    # ========================================================================

    workers: int = Field(
        default=32,
        ge=1,
        le=1024,
        description="Concurrent probing tasks per cycle"
    )
    probe_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        le=60,
        description="Timeout of a single echo attempt"
    )
    probe_method: str = Field(
        default="icmp",
        description="icmp (raw socket via ping3) or system (ping binary)"
    )
    retry: RetrySettings = Field(default_factory=RetrySettings)

    # ========================================================================
    # Timing
    # ========================================================================

    idle_seconds: float = Field(
        default=15.0,
        ge=0,
        description="Pause between cycles"
    )
    fetch_backoff_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Pause after a failed or empty roster fetch"
    )

    # ========================================================================
    # Status API
    # ========================================================================

    api_enabled: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8083, ge=1, le=65535)

    # ========================================================================
    # Process
    # ========================================================================

    log_level: str = Field(default="INFO")
    require_root: bool = Field(
        default=True,
        description="Refuse to start without root when raw ICMP is used"
    )

    @field_validator('db_path')
    @classmethod
    def validate_db_path(cls, v):
        # Anchored at load time; daemonizing changes the working directory
        return v.expanduser().absolute()

    @field_validator('probe_method')
    @classmethod
    def validate_probe_method(cls, v):
        if v not in PROBE_METHODS:
            raise ValueError(f'probe_method must be one of {", ".join(PROBE_METHODS)}')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError('log_level must be DEBUG, INFO, WARNING, or ERROR')
        return v

    @property
    def needs_root(self) -> bool:
        """Raw ICMP sockets need root."""
        return self.require_root and self.probe_method == "icmp"

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )

    @classmethod
    def build(cls, data: dict[str, Any]) -> "MonitorConfig":
        """Validate raw settings, converting pydantic errors."""
        try:
            return cls(**data)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ConfigurationError(
                f"Invalid configuration: {'; '.join(errors)}",
                errors=errors,
            ) from e

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> "MonitorConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Can't open config file: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Can't read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")

        settings: dict[str, Any] = {}

        if "database" in data:
            d = data["database"] or {}
            if "path" in d:
                settings["db_path"] = d["path"]

        if "inventory" in data:
            i = data["inventory"] or {}
            if "group_id" in i:
                settings["group_id"] = i["group_id"]
            if "alive_param_id" in i:
                settings["alive_param_id"] = i["alive_param_id"]

        if "workers" in data:
            settings["workers"] = data["workers"]

        if "probe" in data:
            p = data["probe"] or {}
            if "method" in p:
                settings["probe_method"] = p["method"]
            if "timeout_seconds" in p:
                settings["probe_timeout_seconds"] = p["timeout_seconds"]

        if "retry" in data:
            settings["retry"] = data["retry"] or {}

        if "schedule" in data:
            s = data["schedule"] or {}
            if "idle_seconds" in s:
                settings["idle_seconds"] = s["idle_seconds"]
            if "fetch_backoff_seconds" in s:
                settings["fetch_backoff_seconds"] = s["fetch_backoff_seconds"]

        if "api" in data:
            a = data["api"] or {}
            if "enabled" in a:
                settings["api_enabled"] = a["enabled"]
            if "host" in a:
                settings["api_host"] = a["host"]
            if "port" in a:
                settings["api_port"] = a["port"]

        if "log_level" in data:
            settings["log_level"] = data["log_level"]
        if "require_root" in data:
            settings["require_root"] = data["require_root"]

        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls.build(settings)

    @classmethod
    def from_env(cls, **overrides: Any) -> "MonitorConfig":
        """Load configuration from MONITOR_* environment variables."""
        env_map = {
            "MONITOR_DB_PATH": "db_path",
            "MONITOR_GROUP_ID": "group_id",
            "MONITOR_ALIVE_PARAM_ID": "alive_param_id",
            "MONITOR_WORKERS": "workers",
            "MONITOR_PROBE_TIMEOUT": "probe_timeout_seconds",
            "MONITOR_PROBE_METHOD": "probe_method",
            "MONITOR_IDLE_SECONDS": "idle_seconds",
            "MONITOR_FETCH_BACKOFF_SECONDS": "fetch_backoff_seconds",
            "MONITOR_API_ENABLED": "api_enabled",
            "MONITOR_API_HOST": "api_host",
            "MONITOR_API_PORT": "api_port",
            "MONITOR_LOG_LEVEL": "log_level",
            "MONITOR_REQUIRE_ROOT": "require_root",
        }
        retry_map = {
            "MONITOR_RETRY_ATTEMPTS": "attempts_per_burst",
            "MONITOR_RETRY_ATTEMPT_DELAY": "attempt_delay_seconds",
            "MONITOR_RETRY_BURST_DELAY": "burst_delay_seconds",
            "MONITOR_RETRY_EXTRA_BURSTS": "extra_bursts_if_alive",
        }

        settings: dict[str, Any] = {
            field: os.environ[var] for var, field in env_map.items() if var in os.environ
        }
        retry = {
            field: os.environ[var] for var, field in retry_map.items() if var in os.environ
        }
        if retry:
            settings["retry"] = retry

        settings.update({k: v for k, v in overrides.items() if v is not None})
        return cls.build(settings)


def load_config(path: Optional[Path] = None, **overrides: Any) -> MonitorConfig:
    """
    Load configuration for the daemon.

    Uses the YAML file when a path is given, the environment otherwise.
    Keyword overrides (e.g. from the command line) win over both; None
    values are ignored.

    Raises:
        ConfigurationError: file missing/unreadable or settings invalid
    """
    if path is not None:
        config = MonitorConfig.from_yaml(path, **overrides)
        logger.info(f"Configuration loaded from {path}")
    else:
        config = MonitorConfig.from_env(**overrides)
        logger.info("Configuration loaded from environment")
    return config


# Example /etc/reachability-monitor.yaml:
"""
database:
  path: "/var/lib/reachability-monitor/inventory.db"

inventory:
  group_id: 1001          # monitored device group
  alive_param_id: 42      # parameter id of the alive flag

workers: 32

probe:
  method: "icmp"          # icmp | system
  timeout_seconds: 2.0

retry:
  attempts_per_burst: 3
  attempt_delay_seconds: 2
  burst_delay_seconds: 5
  extra_bursts_if_alive: 2

schedule:
  idle_seconds: 15
  fetch_backoff_seconds: 60

api:
  enabled: true
  host: "127.0.0.1"
  port: 8083

log_level: "INFO"
"""
