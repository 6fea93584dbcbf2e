"""Distance to fill-level conversion and emptied-volume estimation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

CUBIC_INCH_TO_LITERS = 0.016387064


@dataclass(frozen=True)
class LevelCalculator:
    """Linear map from sensor distance to a 0-100 fill percentage.

    ``min_distance`` is the reading of a full bin, ``max_distance`` the
    reading of an empty one.
    """

    min_distance: float = 2.0
    max_distance: float = 100.0

    def __post_init__(self) -> None:
        if self.max_distance <= self.min_distance:
            raise ValueError("max_distance must be greater than min_distance.")

    def level_percent(self, distance_cm: Any) -> int:
        distance = _coerce(distance_cm)
        if math.isnan(distance) or distance >= self.max_distance:
            return 0
        if distance <= self.min_distance:
            return 100
        ratio = (self.max_distance - distance) / (self.max_distance - self.min_distance)
        return clamp_level(math.floor(ratio * 100 + 0.5))


@dataclass(frozen=True)
class TankGeometry:
    """Cylindrical bin body, dimensions in inches."""

    radius_in: float = 10.0
    height_in: float = 24.0

    @property
    def capacity_liters(self) -> float:
        return math.pi * self.radius_in**2 * self.height_in * CUBIC_INCH_TO_LITERS

    def volume_liters(self, level_before: float, level_after: float) -> float:
        """Volume removed between two fill levels; never negative."""
        delta = level_before - level_after
        return max(0.0, self.capacity_liters * (delta / 100))


def clamp_level(value: Any) -> int:
    """Round a device-reported level onto the 0-100 integer scale."""
    number = _coerce(value)
    if math.isnan(number):
        return 0
    return int(min(100, max(0, math.floor(number + 0.5))))


def _coerce(value: Any) -> float:
    if isinstance(value, bool):
        return math.nan
    try:
        number = float(value)
    except (TypeError, ValueError):
        return math.nan
    if math.isinf(number):
        return math.nan
    return number
