"""Dashboard configuration schema and JSON loading."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from labdash.fields import as_float, as_int, as_text, integer, section, text

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/labmd/config.json")
CONFIG_ENV_VAR = "LABDASH_CONFIG"

DEFAULT_INTERVAL = 2.0
DEFAULT_HISTORY = 20
DEFAULT_ENDPOINT = "http://localhost:8088/api/stats"
DEFAULT_TIMEOUT = 5.0
DEFAULT_IDLE_TIMEOUT = 60
DEFAULT_IDLE_INTERVAL = 300.0

INTERVAL_RANGE = (1.0, 60.0)
HISTORY_MAX = 100
IDLE_TIMEOUT_RANGE = (10, 3600)
IDLE_INTERVAL_RANGE = (10.0, 600.0)


@dataclass(frozen=True)
class Admin:
    name: str
    email: str = ""


@dataclass(frozen=True)
class MonitorConfig:
    """Polling and history settings.

    Values constructed directly are validated but not clamped; clamping to the
    supported ranges only happens when parsing a config document.
    """

    interval: float = DEFAULT_INTERVAL
    history_cpu: int = DEFAULT_HISTORY
    history_gpu: int = DEFAULT_HISTORY
    history_ram: int = DEFAULT_HISTORY
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = DEFAULT_TIMEOUT
    idle_timeout: int = DEFAULT_IDLE_TIMEOUT  # 0 = never idle
    idle_interval: float = DEFAULT_IDLE_INTERVAL

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"interval must be > 0, got {self.interval}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.idle_interval <= 0:
            raise ValueError(f"idle_interval must be > 0, got {self.idle_interval}")
        for name in ("history_cpu", "history_gpu", "history_ram"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")


@dataclass(frozen=True)
class Config:
    project_name: str = "LabDash"
    lab_name: str = "Lab Dashboard"
    version: str = "version"
    default_doc: str = "index.md"
    admin: Admin | None = None
    monitor: MonitorConfig = field(default_factory=MonitorConfig)


def config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return DEFAULT_CONFIG_PATH


def _clamp(name: str, value: float, low: float, high: float) -> float:
    if value < low:
        logger.warning("%s (%s) too small, using minimum %s", name, value, low)
        return low
    if value > high:
        logger.warning("%s (%s) too large, using maximum %s", name, value, high)
        return high
    return value


def _interval(raw: dict[str, Any]) -> float:
    value = as_float(raw.get("intervalCRGSec"))
    if value is None or value <= 0:
        return DEFAULT_INTERVAL
    return _clamp("intervalCRGSec", value, *INTERVAL_RANGE)


def _history(raw: dict[str, Any], key: str) -> int:
    value = as_int(raw.get(key))
    if value is None or value < 1:
        return DEFAULT_HISTORY
    return int(_clamp(key, value, 1, HISTORY_MAX))


def _timeout(raw: dict[str, Any]) -> float:
    value = as_float(raw.get("timeoutSec"))
    if value is None or value <= 0:
        return DEFAULT_TIMEOUT
    return value


def _idle_timeout(raw: dict[str, Any]) -> int:
    value = as_int(raw.get("idleTimeoutSec"))
    if value is None:
        return DEFAULT_IDLE_TIMEOUT
    if value < IDLE_TIMEOUT_RANGE[0]:
        if value != 0:
            logger.warning("idleTimeoutSec (%s) cannot be < 10, using 0 (never idle)", value)
        return 0
    return int(_clamp("idleTimeoutSec", value, *IDLE_TIMEOUT_RANGE))


def _idle_interval(raw: dict[str, Any]) -> float:
    value = as_float(raw.get("idleIntervalCRGSec"))
    if value is None:
        return DEFAULT_IDLE_INTERVAL
    return _clamp("idleIntervalCRGSec", value, *IDLE_INTERVAL_RANGE)


def _admin(raw: dict[str, Any]) -> Admin | None:
    name = as_text(raw.get("name"))
    if name is None:
        return None
    return Admin(name=name, email=as_text(raw.get("email")) or "")


def parse_config(data: Any) -> Config:
    """Build a Config from an arbitrary JSON value.

    Every field is optional and defaulted independently; a wrong-typed or
    out-of-range value never makes the whole document fall back.
    """
    root = data if isinstance(data, dict) else {}
    monitor = section(root, "monitor")
    defaults = Config()

    return Config(
        project_name=text(root, "projectName", defaults.project_name),
        lab_name=text(root, "labName", defaults.lab_name),
        version=text(root, "version", defaults.version),
        default_doc=text(root, "defaultDoc", defaults.default_doc),
        admin=_admin(section(root, "admin")),
        monitor=MonitorConfig(
            interval=_interval(monitor),
            history_cpu=_history(monitor, "historyCPU"),
            history_gpu=_history(monitor, "historyGPU"),
            history_ram=_history(monitor, "historyRAM"),
            endpoint=text(monitor, "endpoint", DEFAULT_ENDPOINT),
            timeout=_timeout(monitor),
            idle_timeout=_idle_timeout(monitor),
            idle_interval=_idle_interval(monitor),
        ),
    )


def load_config(path: Path | None = None) -> Config:
    """Load the config file, falling back to defaults when it is unusable."""
    path = path or config_path()
    if not path.exists():
        logger.warning(
            "config file not found at %s, using defaults",
            path,
            extra={"event": "config_defaulted"},
        )
        return Config()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error(
            "failed to read config file %s: %s, using defaults",
            path,
            exc,
            extra={"event": "config_defaulted"},
        )
        return Config()

    cfg = parse_config(raw)
    logger.info(
        "config loaded from %s (interval=%ss, history cpu=%d gpu=%d ram=%d)",
        path,
        cfg.monitor.interval,
        cfg.monitor.history_cpu,
        cfg.monitor.history_gpu,
        cfg.monitor.history_ram,
        extra={"event": "config_loaded"},
    )
    return cfg
