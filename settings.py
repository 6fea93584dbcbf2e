from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


_STORE_ROOT_ENV = "MOCK_FIRESTORE_ROOT_PATH"
_MIN_DISTANCE_ENV = "LEVEL_MIN_DISTANCE_CM"
_MAX_DISTANCE_ENV = "LEVEL_MAX_DISTANCE_CM"
_TANK_RADIUS_ENV = "TANK_RADIUS_IN"
_TANK_HEIGHT_ENV = "TANK_HEIGHT_IN"
_TIERS_ENV = "NOTIFICATION_TIERS"
_SAMPLE_INTERVAL_ENV = "SAMPLE_INTERVAL_SECONDS"
_EMPTYING_TIMEOUT_ENV = "EMPTYING_TIMEOUT_SECONDS"
_TIMEZONE_ENV = "BIN_TIMEZONE"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_TIERS: Tuple[int, ...] = (90, 95, 100)


@dataclass(frozen=True)
class Settings:
    store_root_path: Optional[str]
    min_distance_cm: float
    max_distance_cm: float
    tank_radius_in: float
    tank_height_in: float
    notification_tiers: Tuple[int, ...]
    sample_interval_seconds: float
    emptying_timeout_seconds: float
    timezone: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_tiers(default: Tuple[int, ...]) -> Tuple[int, ...]:
    value = os.getenv(_TIERS_ENV)
    if value is None:
        return default
    tiers: set[int] = set()
    for part in value.split(","):
        candidate = part.strip()
        if not candidate:
            continue
        try:
            tier = int(candidate)
        except ValueError:
            return default
        if not 0 < tier <= 100:
            return default
        tiers.add(tier)
    return tuple(sorted(tiers)) or default


def _read_timezone(default: str) -> str:
    candidate = _read_str_env(_TIMEZONE_ENV, default)
    try:
        ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        return default
    return candidate


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    min_distance = _read_positive_float(_MIN_DISTANCE_ENV, 2.0)
    max_distance = _read_positive_float(_MAX_DISTANCE_ENV, 100.0)
    if max_distance <= min_distance:
        min_distance, max_distance = 2.0, 100.0
    return Settings(
        store_root_path=_read_optional_env(_STORE_ROOT_ENV, "./tmp/mock_firestore"),
        min_distance_cm=min_distance,
        max_distance_cm=max_distance,
        tank_radius_in=_read_positive_float(_TANK_RADIUS_ENV, 10.0),
        tank_height_in=_read_positive_float(_TANK_HEIGHT_ENV, 24.0),
        notification_tiers=_read_tiers(DEFAULT_TIERS),
        sample_interval_seconds=_read_positive_float(_SAMPLE_INTERVAL_ENV, 60.0),
        emptying_timeout_seconds=_read_positive_float(_EMPTYING_TIMEOUT_ENV, 10.0),
        timezone=_read_timezone("Asia/Manila"),
        log_level=_read_log_level("INFO"),
    )
