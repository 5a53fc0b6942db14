"""Attendance API routes for single occurrences, whole series and history."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from danceapp.database import get_db
from danceapp.schemas.attendee import (
    AttendeeOut,
    AttendRequest,
    HistoryOut,
    RecordActionRequest,
    SeriesAttendRequest,
    SeriesReportOut,
)
from danceapp.services import attendance_service, event_service, permissions
from danceapp.services.series_attendance import attend_series

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/events/{event_id}/attend", response_model=AttendeeOut, status_code=status.HTTP_200_OK)
def attend(
    event_id: int,
    payload: AttendRequest,
    actor_user_id: Optional[int] = Query(None, description="ID of the acting user; omit for guests"),
    db: Session = Depends(get_db),
):
    """Record an attendance action for a user or a guest on one occurrence."""
    event = event_service.get_event(db, event_id)
    permissions.ensure_can_attend(
        db, event, actor_user_id, payload.user_id, payload.guest_email, payload.action,
    )
    return attendance_service.attend(
        db,
        event_id,
        payload.action,
        user_id=payload.user_id,
        guest_email=payload.guest_email,
        guest_name=payload.guest_name,
        role=payload.role,
        performed_by_id=actor_user_id,
        notes=payload.notes,
        metadata=payload.metadata,
    )


@router.post("/events/{event_id}/attend-series", response_model=SeriesReportOut)
def attend_whole_series(
    event_id: int,
    payload: SeriesAttendRequest,
    actor_user_id: Optional[int] = Query(None, description="ID of the acting user; omit for guests"),
    db: Session = Depends(get_db),
):
    """Apply one attendance action to every remaining occurrence of a series.

    Per-occurrence failures are reported, not raised.
    """
    event = event_service.get_event(db, event_id)
    permissions.ensure_can_attend(
        db, event, actor_user_id, payload.user_id, payload.guest_email, payload.action,
    )
    report = attend_series(
        db,
        event_id,
        payload.action,
        user_id=payload.user_id,
        guest_email=payload.guest_email,
        guest_name=payload.guest_name,
        role=payload.role,
        performed_by_id=actor_user_id,
        notes=payload.notes,
        metadata=payload.metadata,
        from_occurrence=payload.from_occurrence,
    )
    return SeriesReportOut.model_validate(report)


@router.post("/attendees/{attendee_id}/actions", response_model=AttendeeOut)
def record_action(
    attendee_id: int,
    payload: RecordActionRequest,
    actor_user_id: int = Query(..., description="ID of the user performing the action"),
    db: Session = Depends(get_db),
):
    """Append an action to an existing attendee (confirm a seat, change role...)."""
    attendee = attendance_service.get_attendee(db, attendee_id)
    permissions.ensure_can_record(attendee.event, attendee, actor_user_id, payload.action)
    return attendance_service.record_action(
        db,
        attendee_id,
        payload.action,
        role=payload.role,
        performed_by_id=actor_user_id,
        notes=payload.notes,
        metadata=payload.metadata,
    )


@router.get("/events/{event_id}/attendees", response_model=list[AttendeeOut])
def list_attendees(
    event_id: int,
    include_withdrawn: bool = Query(True),
    actor_user_id: Optional[int] = Query(None, description="ID of the viewing user"),
    db: Session = Depends(get_db),
):
    """List an occurrence's attendees with their current status."""
    event = event_service.get_event(db, event_id)
    permissions.ensure_can_view(db, event, actor_user_id)
    return attendance_service.list_attendees(db, event_id, include_withdrawn=include_withdrawn)


@router.get("/events/{event_id}/history", response_model=list[HistoryOut])
def get_history(
    event_id: int,
    attendee_id: Optional[int] = Query(None),
    actor_user_id: int = Query(..., description="ID of the viewing organizer"),
    db: Session = Depends(get_db),
):
    """Attendance audit trail for an occurrence, oldest first (organizers only)."""
    event = event_service.get_event(db, event_id)
    permissions.ensure_organizer(db, event, actor_user_id)
    return attendance_service.get_history(db, event_id, attendee_id=attendee_id)
