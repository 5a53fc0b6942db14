"""Attendee ORM model: one identity's participation in one occurrence."""
import enum
from typing import Optional

from sqlalchemy import Boolean, Column, Enum as SAEnum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from danceapp.database import Base
from danceapp.models.attendance_history import AttendanceAction, AttendanceHistory
from danceapp.models.types import UTCDateTime, utcnow


class DanceRole(str, enum.Enum):
    leader = "LEADER"
    follower = "FOLLOWER"


# Statuses that hold a seat
ATTENDING_ACTIONS = frozenset({AttendanceAction.registered, AttendanceAction.confirmed})


class Attendee(Base):
    __tablename__ = "attendees"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_attendees_event_user"),
        UniqueConstraint("event_id", "guest_email", name="uq_attendees_event_guest_email"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_name = Column(String(200), nullable=True)
    role = Column(SAEnum(DanceRole, native_enum=False, length=20), nullable=True)
    was_invited = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    event = relationship("Event", back_populates="attendees")
    user = relationship("User")
    history = relationship(
        "AttendanceHistory",
        back_populates="attendee",
        order_by=(AttendanceHistory.created_at, AttendanceHistory.id),
    )

    @property
    def status(self) -> Optional[AttendanceAction]:
        """Action of the most recent history entry, None before the first one."""
        if not self.history:
            return None
        return self.history[-1].action

    @property
    def is_attending(self) -> bool:
        return self.status in ATTENDING_ACTIONS

    @property
    def is_guest(self) -> bool:
        return self.user_id is None and self.guest_email is not None
