"""Server configuration.

Convention-based: a project keeps its settings in ``.sdd/config.json``,
discovered by walking up from the working directory. Missing or corrupt
files fall back to defaults.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from sdd_mcp import __version__

logger = logging.getLogger(__name__)

SDD_DIR_NAME = ".sdd"
CONFIG_FILENAME = "config.json"

SESSION_TIMEOUT_SECONDS = 30 * 60
SWEEP_INTERVAL_SECONDS = 5 * 60
RECOVERY_WINDOW_SECONDS = 24 * 60 * 60

_NUMERIC_KEYS: frozenset[str] = frozenset({"session_timeout", "sweep_interval", "recovery_window"})


@dataclass(frozen=True)
class ServerConfig:
    """Runtime settings for the dispatcher and session manager."""

    name: str = "sdd-mcp"
    version: str = __version__
    session_timeout: float = SESSION_TIMEOUT_SECONDS
    sweep_interval: float = SWEEP_INTERVAL_SECONDS
    recovery_window: float = RECOVERY_WINDOW_SECONDS
    call_timeout: float | None = None
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def find_sdd_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for a .sdd/ directory.

    Returns the .sdd/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / SDD_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {SDD_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def _coerce(key: str, value: Any, default: Any) -> Any:
    if key in _NUMERIC_KEYS:
        if isinstance(value, bool) or not isinstance(value, int | float) or value < 0:
            logger.warning("Invalid value for %s in config: %r, using default %r", key, value, default)
            return default
        return float(value)
    if key == "call_timeout":
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
            logger.warning("Invalid value for call_timeout in config: %r, disabling", value)
            return None
        return float(value)
    if not isinstance(value, str):
        logger.warning("Invalid value for %s in config: %r, using default %r", key, value, default)
        return default
    return value


def read_config(sdd_dir: Path) -> ServerConfig:
    """Read .sdd/config.json. Returns defaults if missing or corrupt."""
    defaults = ServerConfig()
    config_path = sdd_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        raw = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(raw, dict):
        logger.warning("Config file %s contains non-dict JSON, using defaults", config_path)
        return defaults

    known = {f.name for f in fields(ServerConfig)} - {"version"}
    overrides = {key: _coerce(key, value, getattr(defaults, key)) for key, value in raw.items() if key in known}
    return replace(defaults, **overrides)


def write_config(sdd_dir: Path, config: ServerConfig | dict[str, Any]) -> None:
    """Write .sdd/config.json."""
    data = config.to_dict() if isinstance(config, ServerConfig) else dict(config)
    data.pop("version", None)
    config_path = sdd_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(data, indent=2) + "\n")
