"""Runtime configuration loader for the allocation engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml  # type: ignore


@dataclass(frozen=True)
class Config:
    PLAYER_EDIT_WINDOW_MINUTES: int
    LOCK_TIMEOUT_SECONDS: float
    NO_SHOW_ADMIN_NOTE: str
    CANCEL_NO_SHOW_NOTE: str
    REQUIRE_ACTIVE_ROSTER: bool


DEFAULTS: Dict[str, Any] = {
    "PLAYER_EDIT_WINDOW_MINUTES": 30,
    "LOCK_TIMEOUT_SECONDS": 2.0,
    "NO_SHOW_ADMIN_NOTE": "Did not show up without excuse",
    "CANCEL_NO_SHOW_NOTE": "Could not attend after all",
    "REQUIRE_ACTIVE_ROSTER": True,
}

CONFIG_FILE = "roster.yml"

_CONFIG_CACHE: Config | None = None


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in {"1", "true", "t", "yes", "y", "on"}:
            return True
        if s in {"0", "false", "f", "no", "n", "off", ""}:
            return False
    return default


def _coerce_numeric(value: Any, default: float, *, as_int: bool = False) -> float | int:
    if value is None:
        return int(default) if as_int else float(default)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value) if as_int else float(value)
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return int(default) if as_int else float(default)
        try:
            num = float(s)
        except ValueError:
            return int(default) if as_int else float(default)
        return int(num) if as_int else float(num)
    return int(default) if as_int else float(default)


def _normalize_value(key: str, value: Any, defaults: Dict[str, Any]) -> Any:
    default = defaults[key]
    if isinstance(default, bool):
        return _coerce_bool(value, default)
    if isinstance(default, int):
        return int(_coerce_numeric(value, default, as_int=True))
    if isinstance(default, float):
        return float(_coerce_numeric(value, default))
    if value is None:
        return default
    return str(value)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError):
        print(f"[warn] config: {path} unreadable - using defaults")
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(k).upper(): v for k, v in data.items()}


def get_config(path: str | Path = CONFIG_FILE) -> Config:
    """Load configuration with precedence: ENV > roster.yml > defaults."""

    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None:
        return _CONFIG_CACHE

    values: Dict[str, Any] = dict(DEFAULTS)

    yaml_values = _read_yaml(Path(path))
    for key, val in yaml_values.items():
        if key in values:
            values[key] = _normalize_value(key, val, DEFAULTS)

    for key in list(values.keys()):
        env_val = os.getenv(key)
        if env_val is not None:
            values[key] = _normalize_value(key, env_val, DEFAULTS)

    cfg = Config(
        PLAYER_EDIT_WINDOW_MINUTES=max(0, int(values["PLAYER_EDIT_WINDOW_MINUTES"])),
        LOCK_TIMEOUT_SECONDS=max(0.0, float(values["LOCK_TIMEOUT_SECONDS"])),
        NO_SHOW_ADMIN_NOTE=str(values["NO_SHOW_ADMIN_NOTE"]),
        CANCEL_NO_SHOW_NOTE=str(values["CANCEL_NO_SHOW_NOTE"]),
        REQUIRE_ACTIVE_ROSTER=bool(values["REQUIRE_ACTIVE_ROSTER"]),
    )

    _CONFIG_CACHE = cfg
    return cfg


def reset_config_cache() -> None:
    global _CONFIG_CACHE
    _CONFIG_CACHE = None


__all__ = ["Config", "DEFAULTS", "get_config", "reset_config_cache"]
