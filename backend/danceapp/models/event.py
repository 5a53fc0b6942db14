"""Event ORM model: one row per occurrence, standalone or part of a series."""
import enum
from typing import Optional

from sqlalchemy import Boolean, Column, Enum as SAEnum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from danceapp.database import Base
from danceapp.models.types import UTCDateTime, utcnow


class EventVisibility(str, enum.Enum):
    public = "PUBLIC"
    workspace_only = "WORKSPACE_ONLY"
    invitation_only = "INVITATION_ONLY"


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    date_start = Column(UTCDateTime, nullable=False, index=True)
    date_end = Column(UTCDateTime, nullable=True)
    timezone = Column(String(50), nullable=False, default="UTC")  # IANA tz
    location = Column(String(500), nullable=True)
    capacity_min = Column(Integer, nullable=True)
    capacity_max = Column(Integer, nullable=True)
    leader_offset = Column(Integer, nullable=False, default=0)
    visibility = Column(
        SAEnum(EventVisibility, native_enum=False, length=20),
        nullable=False,
        default=EventVisibility.workspace_only,
    )
    is_cancelled = Column(Boolean, nullable=False, default=False)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    rrule = Column(String(500), nullable=True)
    parent_event_id = Column(Integer, ForeignKey("events.id"), nullable=True, index=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    organizers = relationship("EventOrganizer", back_populates="event", cascade="all, delete-orphan")
    attendees = relationship("Attendee", back_populates="event", order_by="Attendee.id")
    parent = relationship("Event", remote_side=[id], back_populates="children")
    children = relationship("Event", back_populates="parent", order_by="Event.date_start")

    @property
    def is_recurring(self) -> bool:
        return self.rrule is not None or self.parent_event_id is not None

    @property
    def is_parent_event(self) -> bool:
        return self.rrule is not None and self.parent_event_id is None

    @property
    def series_root_id(self) -> int:
        return self.parent_event_id or self.id

    @property
    def series_count(self) -> Optional[int]:
        if not self.is_parent_event:
            return None
        return len(self.children)

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.date_end is None:
            return None
        return round((self.date_end - self.date_start).total_seconds() / 60)

    @property
    def organizer_ids(self) -> list[int]:
        return [org.user_id for org in self.organizers]


class EventOrganizer(Base):
    __tablename__ = "event_organizers"

    event_id = Column(Integer, ForeignKey("events.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    added_at = Column(UTCDateTime, nullable=False, default=utcnow)

    event = relationship("Event", back_populates="organizers")
    user = relationship("User")
