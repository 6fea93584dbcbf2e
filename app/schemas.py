"""Pydantic schemas for stored documents and the HTTP API layer."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import Role


class TimeWindow(str, Enum):
    """Calendar-aligned windows offered by the analytics views."""

    today = "today"
    week = "week"
    month = "month"
    year = "year"
    all_time = "all-time"


class EmptyingState(str, Enum):
    idle = "idle"
    awaiting_confirmation = "awaiting_confirmation"


class EmptyingOutcome(str, Enum):
    """Terminal result of an emptying session."""

    confirmed = "confirmed"
    timed_out = "timed_out"
    cancelled = "cancelled"
    failed = "failed"


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TrashLevelSample(_Document):
    """Rate-limited snapshot of a bin's fill level."""

    id: str
    bin: str
    trash_level: int = Field(..., ge=0, le=100, alias="trashLevel")
    created_at: datetime = Field(..., alias="createdAt")


class Notification(_Document):
    """Threshold crossing raised for a bin."""

    id: str
    notification_id: str = Field(..., alias="notificationId")
    bin: str
    trash_level: int = Field(..., ge=0, le=100, alias="trashLevel")
    formatted_datetime: str = Field(
        ..., alias="datetime", description="Occurrence time in the bin's local timezone."
    )
    occurred_at: datetime = Field(..., alias="occurredAt")
    is_read: bool = Field(default=False, alias="isRead")


class EmptyingEvent(_Document):
    """Immutable record of a collector emptying a bin."""

    id: str
    bin: str
    volume: float = Field(..., ge=0, description="Emptied volume in liters.")
    collector: str
    user_id: str = Field(..., alias="userId")
    emptied_at: datetime = Field(..., alias="emptiedAt")


class BinAssignment(_Document):
    id: str
    bin: str
    assignee: List[str] = Field(default_factory=list)


class User(_Document):
    id: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    email: str
    role: Role = Role.user
    is_deleted: bool = Field(default=False, alias="isDeleted")

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class GpsFix(BaseModel):
    altitude: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class TelemetryPush(_Document):
    """Payload a bin sensor writes under its key in the telemetry store."""

    distance_cm: Optional[float] = Field(default=None, alias="distance(cm)")
    trash_level: Optional[float] = Field(default=None, alias="trashLevel")
    gps: Optional[GpsFix] = None


class LevelSnapshot(BaseModel):
    bin: str
    level: int = Field(..., ge=0, le=100)
    observed_at: datetime


class VisibleBins(BaseModel):
    user_id: str
    bins: List[str] = Field(default_factory=list)


class EmptyingStartRequest(BaseModel):
    user_id: str = Field(..., description="Collector performing the emptying.")


class EmptyingStatus(BaseModel):
    """Snapshot of the current or most recent emptying session for a bin."""

    bin: str
    state: EmptyingState
    collector_id: str
    level_before: int
    level_after: Optional[int] = None
    volume: Optional[float] = None
    outcome: Optional[EmptyingOutcome] = None
    reason: Optional[str] = None
    event_id: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class BinVolume(BaseModel):
    bin: str
    volume: float


class VolumeByBinResponse(BaseModel):
    window: TimeWindow
    total: float
    bins: List[BinVolume] = Field(default_factory=list)


class LeaderboardEntry(BaseModel):
    user_id: str
    name: str
    volume: float


class LeaderboardResponse(BaseModel):
    window: TimeWindow
    entries: List[LeaderboardEntry] = Field(default_factory=list)
    top_performer: Optional[LeaderboardEntry] = None


class MonthBucket(BaseModel):
    month: str = Field(..., description="Label formatted as 'Mon YYYY'.")
    volume: float
    is_current_month: bool = False


class UserBuckets(BaseModel):
    user_id: str
    all_time: float = 0.0
    last_30_days: float = 0.0
    last_7_days: float = 0.0
    last_24_hours: float = 0.0
    monthly: List[MonthBucket] = Field(default_factory=list)


class CollectorVolume(BaseModel):
    collector: str
    volume: float


class DailyHistory(BaseModel):
    """Emptying activity for one local calendar day, newest first."""

    day: date
    total: float = 0.0
    entries: List[EmptyingEvent] = Field(default_factory=list)
    by_collector: List[CollectorVolume] = Field(default_factory=list)
    by_bin: List[BinVolume] = Field(default_factory=list)
