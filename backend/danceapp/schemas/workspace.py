"""Pydantic schemas for Workspaces."""
from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel

from danceapp.models.workspace import WorkspaceRole


class WorkspaceCreate(BaseModel):
    name: str
    slug: str
    created_by_id: int


class WorkspaceOut(BaseModel):
    id: int
    name: str
    slug: str
    created_by_id: int
    created_at: datetime
    members: list[WorkspaceMemberOut] = []

    model_config = {"from_attributes": True}


class WorkspaceMemberAdd(BaseModel):
    user_id: int
    role: WorkspaceRole = WorkspaceRole.student


class WorkspaceMemberOut(BaseModel):
    user_id: int
    role: WorkspaceRole
    joined_at: datetime

    model_config = {"from_attributes": True}


# Rebuild WorkspaceOut now that WorkspaceMemberOut is defined
WorkspaceOut.model_rebuild()
