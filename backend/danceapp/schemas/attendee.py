"""Pydantic schemas for attendance."""
from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field

from danceapp.models.attendance_history import AttendanceAction
from danceapp.models.attendee import DanceRole


class AttendRequest(BaseModel):
    action: AttendanceAction = AttendanceAction.registered
    user_id: Optional[int] = None
    guest_email: Optional[str] = None
    guest_name: Optional[str] = None
    role: Optional[DanceRole] = None
    notes: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class SeriesAttendRequest(AttendRequest):
    from_occurrence: bool = False


class RecordActionRequest(BaseModel):
    action: AttendanceAction
    role: Optional[DanceRole] = None
    notes: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class AttendeeOut(BaseModel):
    id: int
    event_id: int
    user_id: Optional[int] = None
    guest_email: Optional[str] = None
    guest_name: Optional[str] = None
    role: Optional[DanceRole] = None
    was_invited: bool
    status: Optional[AttendanceAction] = None
    is_attending: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class HistoryOut(BaseModel):
    id: int
    attendee_id: int
    action: AttendanceAction
    previous_role: Optional[str] = None
    new_role: Optional[str] = None
    performed_by_id: Optional[int] = None
    notes: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(default=None, validation_alias="meta")
    created_at: datetime

    model_config = {"from_attributes": True}


class OccurrenceResultOut(BaseModel):
    event_id: int
    date_start: datetime
    attendee_id: Optional[int] = None
    status: Optional[AttendanceAction] = None
    error: Optional[str] = None
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class SeriesReportOut(BaseModel):
    series_root_id: int
    action: AttendanceAction
    is_complete: bool
    failed_event_ids: list[int] = []
    succeeded: list[OccurrenceResultOut] = []
    failed: list[OccurrenceResultOut] = []
    skipped: list[OccurrenceResultOut] = []

    model_config = {"from_attributes": True}
