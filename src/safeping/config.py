"""Configuration file management for safeping.

Reads and writes ~/.safeping/config.json for settings that don't belong in
the DB (database location, streak lookback, log level).
"""
from __future__ import annotations

import json
from pathlib import Path

from safeping.streaks import DEFAULT_LOOKBACK_DAYS

DEFAULT_CONFIG_PATH: Path = Path.home() / ".safeping" / "config.json"
DEFAULT_LOG_LEVEL = "WARNING"


def load_config(config_path: Path | None = None) -> dict:
    """Load config from JSON file. Returns {} if file missing or invalid."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(data: dict, config_path: Path | None = None) -> None:
    """Write config dict to JSON file. Creates parent dirs if needed."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def set_config_value(key: str, value: object, config_path: Path | None = None) -> None:
    """Persist a single key, keeping the others."""
    config = load_config(config_path)
    config[key] = value
    save_config(config, config_path)


def get_db_path(config_path: Path | None = None) -> Path | None:
    """Return the configured database path, or None to use the default."""
    raw = load_config(config_path).get("db_path")
    if raw:
        return Path(raw).expanduser()
    return None


def get_lookback_days(config_path: Path | None = None) -> int:
    raw = load_config(config_path).get("lookback_days")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_LOOKBACK_DAYS
    return value if value > 0 else DEFAULT_LOOKBACK_DAYS


def get_log_level(config_path: Path | None = None) -> str:
    raw = load_config(config_path).get("log_level")
    if isinstance(raw, str) and raw.strip():
        return raw.strip().upper()
    return DEFAULT_LOG_LEVEL
