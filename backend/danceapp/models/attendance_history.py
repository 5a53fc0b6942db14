"""AttendanceHistory ORM model: append-only audit trail per attendee.

Rows are never updated or deleted. The latest row, ordered by
(created_at, id), is the attendee's current status.
"""
import enum

from sqlalchemy import JSON, Column, Enum as SAEnum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from danceapp.database import Base
from danceapp.models.types import UTCDateTime, utcnow


class AttendanceAction(str, enum.Enum):
    invited = "INVITED"
    registered = "REGISTERED"
    confirmed = "CONFIRMED"
    cancelled = "CANCELLED"
    declined = "DECLINED"
    role_changed = "ROLE_CHANGED"


class AttendanceHistory(Base):
    __tablename__ = "attendance_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    attendee_id = Column(Integer, ForeignKey("attendees.id"), nullable=False, index=True)
    action = Column(SAEnum(AttendanceAction, native_enum=False, length=20), nullable=False)
    previous_role = Column(String(20), nullable=True)
    new_role = Column(String(20), nullable=True)
    performed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    notes = Column(String(500), nullable=True)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    attendee = relationship("Attendee", back_populates="history")
