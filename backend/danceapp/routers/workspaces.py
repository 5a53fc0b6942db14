"""Workspace (studio) management API routes."""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from danceapp.database import get_db
from danceapp.models.user import User
from danceapp.models.workspace import Workspace, WorkspaceMember, WorkspaceRole
from danceapp.schemas.workspace import WorkspaceCreate, WorkspaceMemberAdd, WorkspaceMemberOut, WorkspaceOut

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=WorkspaceOut, status_code=status.HTTP_201_CREATED)
def create_workspace(payload: WorkspaceCreate, db: Session = Depends(get_db)):
    """Create a workspace. The creator is automatically added as owner."""
    creator = db.query(User).filter(User.id == payload.created_by_id).first()
    if not creator:
        raise HTTPException(status_code=404, detail="Creator user not found")
    if db.query(Workspace).filter(Workspace.slug == payload.slug).first():
        raise HTTPException(status_code=409, detail=f"Workspace slug '{payload.slug}' is taken")

    workspace = Workspace(name=payload.name, slug=payload.slug, created_by_id=payload.created_by_id)
    db.add(workspace)
    db.flush()

    db.add(WorkspaceMember(workspace_id=workspace.id, user_id=payload.created_by_id, role=WorkspaceRole.owner))
    db.commit()
    db.refresh(workspace)
    logger.info("Created workspace '%s' (%s) by user %s", workspace.name, workspace.id, payload.created_by_id)
    return workspace


@router.get("/{workspace_id}", response_model=WorkspaceOut)
def get_workspace(workspace_id: int, db: Session = Depends(get_db)):
    """Fetch a single workspace with its members."""
    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")
    return workspace


@router.post("/{workspace_id}/members", response_model=WorkspaceMemberOut, status_code=status.HTTP_201_CREATED)
def add_member(workspace_id: int, payload: WorkspaceMemberAdd, db: Session = Depends(get_db)):
    """Add a user to a workspace."""
    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")

    user = db.query(User).filter(User.id == payload.user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    existing = (
        db.query(WorkspaceMember)
        .filter(WorkspaceMember.workspace_id == workspace_id, WorkspaceMember.user_id == payload.user_id)
        .first()
    )
    if existing:
        raise HTTPException(status_code=409, detail="User is already a member of this workspace")

    member = WorkspaceMember(workspace_id=workspace_id, user_id=payload.user_id, role=payload.role)
    db.add(member)
    db.commit()
    db.refresh(member)
    logger.info("Added user %s to workspace %s as %s", payload.user_id, workspace_id, payload.role.value)
    return member
