"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    BinAssignment,
    DailyHistory,
    EmptyingStartRequest,
    EmptyingStatus,
    LeaderboardResponse,
    LevelSnapshot,
    Notification,
    TelemetryPush,
    TimeWindow,
    TrashLevelSample,
    User,
    UserBuckets,
    VisibleBins,
    VolumeByBinResponse,
)
from models.records import LevelUpdate
from services.errors import (
    EmptyingInProgressError,
    NoActiveEmptyingError,
    UnknownAssignmentError,
    UnknownBinError,
    UnknownUserError,
    UserDeletedError,
)
from services.monitor import MonitorService, build_default_monitor

router = APIRouter()


def get_monitor() -> MonitorService:
    return build_default_monitor()


def _snapshot(update: LevelUpdate) -> LevelSnapshot:
    return LevelSnapshot(bin=update.bin_id, level=update.level, observed_at=update.observed_at)


def _not_found(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post(
    "/bins/{bin_id}/telemetry",
    response_model=LevelSnapshot,
    summary="Push a sensor reading for a bin.",
)
async def push_telemetry(
    bin_id: str,
    payload: TelemetryPush,
    monitor: MonitorService = Depends(get_monitor),
) -> LevelSnapshot:
    try:
        update = monitor.push_telemetry(bin_id, payload.model_dump(by_alias=True, exclude_none=True))
    except UnknownBinError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Telemetry carries neither a distance nor a trash level.",
        ) from exc
    return _snapshot(update)


@router.get(
    "/bins/{bin_id}/level",
    response_model=LevelSnapshot,
    summary="Current fill level of a bin.",
)
async def get_level(
    bin_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> LevelSnapshot:
    try:
        update = monitor.current_level(bin_id)
    except UnknownBinError as exc:
        raise _not_found(exc) from exc
    return _snapshot(update)


@router.get(
    "/bins",
    response_model=VisibleBins,
    summary="Bins visible to a user.",
)
async def list_bins(
    user_id: str = Query(..., description="User whose visibility applies."),
    monitor: MonitorService = Depends(get_monitor),
) -> VisibleBins:
    try:
        bins = monitor.visible_bins(user_id)
    except UnknownUserError as exc:
        raise _not_found(exc) from exc
    except UserDeletedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return VisibleBins(user_id=user_id, bins=bins)


@router.get(
    "/bins/{bin_id}/notifications",
    response_model=List[Notification],
    summary="Threshold notifications for a bin, newest first.",
)
async def list_notifications(
    bin_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> List[Notification]:
    return monitor.directory.notifications_for_bin(bin_id)


@router.post(
    "/notifications/{notification_id}/read",
    response_model=Notification,
    summary="Mark a notification as read.",
)
async def mark_notification_read(
    notification_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> Notification:
    try:
        return monitor.directory.mark_notification_read(notification_id)
    except KeyError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0]) from exc


@router.get(
    "/bins/{bin_id}/levels",
    response_model=List[TrashLevelSample],
    summary="Level samples of a bin for one local day.",
)
async def level_series(
    bin_id: str,
    day: date = Query(..., description="Local calendar day (YYYY-MM-DD)."),
    monitor: MonitorService = Depends(get_monitor),
) -> List[TrashLevelSample]:
    return monitor.analytics.level_series(bin_id, day)


@router.post(
    "/bins/{bin_id}/emptying",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=EmptyingStatus,
    summary="Start an emptying session and await the level change.",
)
async def start_emptying(
    bin_id: str,
    request: EmptyingStartRequest,
    monitor: MonitorService = Depends(get_monitor),
) -> EmptyingStatus:
    try:
        session = monitor.start_emptying(bin_id, request.user_id)
    except (UnknownUserError, UnknownBinError) as exc:
        raise _not_found(exc) from exc
    except UserDeletedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except EmptyingInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return session.to_status()


@router.get(
    "/bins/{bin_id}/emptying",
    response_model=EmptyingStatus,
    summary="Current or most recent emptying session for a bin.",
)
async def get_emptying(
    bin_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> EmptyingStatus:
    try:
        session = monitor.emptying_status(bin_id)
    except NoActiveEmptyingError as exc:
        raise _not_found(exc) from exc
    return session.to_status()


@router.delete(
    "/bins/{bin_id}/emptying",
    response_model=EmptyingStatus,
    summary="Cancel the emptying session awaiting confirmation.",
)
async def cancel_emptying(
    bin_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> EmptyingStatus:
    try:
        session = monitor.cancel_emptying(bin_id)
    except NoActiveEmptyingError as exc:
        raise _not_found(exc) from exc
    return session.to_status()


@router.get(
    "/analytics/bins",
    response_model=VolumeByBinResponse,
    summary="Emptied volume per bin within a window.",
)
async def volume_by_bin(
    window: TimeWindow = Query(TimeWindow.all_time),
    monitor: MonitorService = Depends(get_monitor),
) -> VolumeByBinResponse:
    return monitor.analytics.volume_by_bin(window)


@router.get(
    "/analytics/leaderboard",
    response_model=LeaderboardResponse,
    summary="Collectors ranked by emptied volume within a window.",
)
async def leaderboard(
    window: TimeWindow = Query(TimeWindow.all_time),
    monitor: MonitorService = Depends(get_monitor),
) -> LeaderboardResponse:
    return monitor.analytics.leaderboard(window)


@router.get(
    "/analytics/users/{user_id}",
    response_model=UserBuckets,
    summary="Rolling totals and monthly histogram for one collector.",
)
async def user_buckets(
    user_id: str,
    newest_first: bool = Query(False),
    monitor: MonitorService = Depends(get_monitor),
) -> UserBuckets:
    return monitor.analytics.user_buckets(user_id, newest_first=newest_first)


@router.get(
    "/analytics/history",
    response_model=DailyHistory,
    summary="Emptying history for one local day.",
)
async def daily_history(
    day: date = Query(..., description="Local calendar day (YYYY-MM-DD)."),
    collector: Optional[str] = Query(None, description="Collector display name."),
    bin_id: Optional[str] = Query(None, alias="bin"),
    monitor: MonitorService = Depends(get_monitor),
) -> DailyHistory:
    return monitor.analytics.daily_history(day, collector=collector, bin_id=bin_id)


@router.put(
    "/assignments/{assignment_id}/assignees/{user_id}",
    response_model=BinAssignment,
    summary="Assign a collector to a bin.",
)
async def assign_user(
    assignment_id: str,
    user_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> BinAssignment:
    try:
        return monitor.directory.assign_user(assignment_id, user_id)
    except UnknownAssignmentError as exc:
        raise _not_found(exc) from exc


@router.delete(
    "/assignments/{assignment_id}/assignees/{user_id}",
    response_model=BinAssignment,
    summary="Remove a collector from a bin.",
)
async def unassign_user(
    assignment_id: str,
    user_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> BinAssignment:
    try:
        return monitor.directory.unassign_user(assignment_id, user_id)
    except UnknownAssignmentError as exc:
        raise _not_found(exc) from exc


@router.delete(
    "/users/{user_id}",
    response_model=User,
    summary="Soft delete a user.",
)
async def soft_delete_user(
    user_id: str,
    monitor: MonitorService = Depends(get_monitor),
) -> User:
    try:
        return monitor.directory.soft_delete_user(user_id)
    except UnknownUserError as exc:
        raise _not_found(exc) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
