"""Pydantic schemas for Events."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from danceapp.models.attendance_history import AttendanceAction
from danceapp.models.attendee import DanceRole
from danceapp.models.event import EventVisibility


class EventCreate(BaseModel):
    workspace_id: int
    created_by_id: int
    name: str
    date_start: datetime
    date_end: Optional[datetime] = None
    description: Optional[str] = None
    location: Optional[str] = None
    capacity_min: Optional[int] = None
    capacity_max: Optional[int] = None
    leader_offset: int = 0
    visibility: EventVisibility = EventVisibility.workspace_only
    timezone: Optional[str] = None  # IANA name; settings default when omitted
    rrule: Optional[str] = None
    additional_organizer_ids: list[int] = []


class EventUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None
    capacity_min: Optional[int] = None
    capacity_max: Optional[int] = None
    leader_offset: Optional[int] = None
    visibility: Optional[EventVisibility] = None
    additional_organizer_ids: Optional[list[int]] = None


class EventCancelRequest(BaseModel):
    cancelled_by_user_id: int
    reason: Optional[str] = None
    cascade: bool = False  # cancel every non-cancelled occurrence of the series, parent and past ones included


class CapacityOut(BaseModel):
    capacity_min: Optional[int] = None
    capacity_max: Optional[int] = None
    leader_offset: int
    attendee_count: int
    confirmed_attendee_count: int
    available_spots: Optional[int] = None
    is_at_capacity: bool
    meets_minimum: bool
    leader_count: int
    follower_count: int
    unassigned_count: int
    leaders_wanted: int
    leader_balance: int

    model_config = {"from_attributes": True}


class PermissionsOut(BaseModel):
    can_edit: bool
    can_cancel: bool
    can_attend: bool
    can_invite: bool
    is_attending: bool
    user_attendance_status: Optional[AttendanceAction] = None
    user_dance_role: Optional[DanceRole] = None

    model_config = {"from_attributes": True}


class EventOut(BaseModel):
    id: int
    workspace_id: int
    created_by_id: int
    name: str
    description: Optional[str] = None
    date_start: datetime
    date_end: Optional[datetime] = None
    timezone: str
    location: Optional[str] = None
    capacity_min: Optional[int] = None
    capacity_max: Optional[int] = None
    leader_offset: int
    visibility: EventVisibility
    is_cancelled: bool
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    rrule: Optional[str] = None
    parent_event_id: Optional[int] = None
    is_recurring: bool
    series_count: Optional[int] = None
    duration_minutes: Optional[int] = None
    organizer_ids: list[int] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class EventDetailOut(EventOut):
    capacity: CapacityOut
    permissions: Optional[PermissionsOut] = None
