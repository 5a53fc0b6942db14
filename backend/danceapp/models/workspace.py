"""Workspace and WorkspaceMember ORM models (one workspace per studio)."""
import enum

from sqlalchemy import Column, Enum as SAEnum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from danceapp.database import Base
from danceapp.models.types import UTCDateTime, utcnow


class WorkspaceRole(str, enum.Enum):
    owner = "OWNER"
    teacher = "TEACHER"
    student = "STUDENT"


class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    slug = Column(String(100), nullable=False, unique=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    members = relationship("WorkspaceMember", back_populates="workspace", cascade="all, delete-orphan")


class WorkspaceMember(Base):
    __tablename__ = "workspace_members"

    workspace_id = Column(Integer, ForeignKey("workspaces.id"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    role = Column(SAEnum(WorkspaceRole, native_enum=False, length=20), nullable=False, default=WorkspaceRole.student)
    joined_at = Column(UTCDateTime, nullable=False, default=utcnow)

    workspace = relationship("Workspace", back_populates="members")
