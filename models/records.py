"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
    admin = "admin"
    user = "user"


@dataclass(slots=True)
class BinReading:
    """A single telemetry push, normalized from the raw payload."""

    bin_id: str
    distance_cm: float
    observed_at: datetime
    trash_level: Optional[float] = None
    altitude: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass(slots=True, frozen=True)
class LevelUpdate:
    """A fill level derived from one reading."""

    bin_id: str
    level: int
    observed_at: datetime


@dataclass(slots=True, frozen=True)
class SessionContext:
    """Identity of the actor driving a pipeline call."""

    user_id: str
    role: Role
    display_name: str

    @property
    def is_admin(self) -> bool:
        return self.role is Role.admin
