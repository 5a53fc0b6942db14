"""Event API routes, delegating to event_service for invariant enforcement."""
import logging
from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from danceapp.database import get_db
from danceapp.models.event import Event, EventVisibility
from danceapp.models.workspace import Workspace
from danceapp.schemas.event import (
    CapacityOut,
    EventCancelRequest,
    EventCreate,
    EventDetailOut,
    EventOut,
    EventUpdate,
    PermissionsOut,
)
from danceapp.services import event_service, permissions
from danceapp.services.capacity import compute_capacity
from danceapp.services.event_service import EventFilter

logger = logging.getLogger(__name__)
router = APIRouter()


def _detail(db: Session, event: Event, actor_user_id: Optional[int]) -> EventDetailOut:
    perms = permissions.compute_permissions(db, event, actor_user_id)
    return EventDetailOut(
        **EventOut.model_validate(event).model_dump(),
        capacity=CapacityOut.model_validate(compute_capacity(event)),
        permissions=PermissionsOut.model_validate(perms) if perms else None,
    )


@router.post("/", response_model=EventDetailOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    """Create a standalone event, or a whole series when an RRULE is given."""
    if not db.query(Workspace).filter(Workspace.id == payload.workspace_id).first():
        raise HTTPException(status_code=404, detail="Workspace not found")
    permissions.ensure_can_create(db, payload.workspace_id, payload.created_by_id)
    event = event_service.create_event(db=db, **payload.model_dump())
    return _detail(db, event, payload.created_by_id)


@router.get("/", response_model=list[EventOut])
def list_events(
    workspace_id: int = Query(...),
    search: Optional[str] = Query(None),
    visibility: Optional[EventVisibility] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    include_cancelled: bool = Query(False),
    organizer_id: Optional[int] = Query(None),
    series_root_id: Optional[int] = Query(None),
    actor_user_id: Optional[int] = Query(None, description="ID of the viewing user"),
    db: Session = Depends(get_db),
):
    """List a workspace's events the viewer is allowed to see."""
    event_filter = EventFilter(
        workspace_id=workspace_id,
        search=search,
        visibility=visibility,
        date_from=date_from,
        date_to=date_to,
        include_cancelled=include_cancelled,
        organizer_id=organizer_id,
        series_root_id=series_root_id,
        allowed_visibilities=permissions.visible_visibilities(db, workspace_id, actor_user_id),
        viewer_id=actor_user_id,
    )
    return event_service.list_events(db, event_filter)


@router.get("/{event_id}", response_model=EventDetailOut)
def get_event(
    event_id: int,
    actor_user_id: Optional[int] = Query(None, description="ID of the viewing user"),
    db: Session = Depends(get_db),
):
    """Fetch one occurrence with its capacity figures and the viewer's permissions."""
    event = event_service.get_event(db, event_id)
    permissions.ensure_can_view(db, event, actor_user_id)
    return _detail(db, event, actor_user_id)


@router.get("/{event_id}/series", response_model=list[EventOut])
def get_series(
    event_id: int,
    upcoming_only: bool = Query(False, description="Only occurrences from this one onwards"),
    actor_user_id: Optional[int] = Query(None, description="ID of the viewing user"),
    db: Session = Depends(get_db),
):
    """List every occurrence of the series this event belongs to."""
    event = event_service.get_event(db, event_id)
    permissions.ensure_can_view(db, event, actor_user_id)
    return event_service.get_series(db, event, from_date=event.date_start if upcoming_only else None)


@router.put("/{event_id}", response_model=EventDetailOut)
def update_event(
    event_id: int,
    payload: EventUpdate,
    actor_user_id: int = Query(..., description="ID of the user performing the update"),
    db: Session = Depends(get_db),
):
    """Update an occurrence (organizer only). Parent updates cascade to the series."""
    event = event_service.get_event(db, event_id)
    permissions.ensure_organizer(db, event, actor_user_id)
    updated = event_service.update_event(db, event_id, payload.model_dump(exclude_unset=True))
    return _detail(db, updated, actor_user_id)


@router.post("/{event_id}/cancel", response_model=EventOut)
def cancel_event(event_id: int, payload: EventCancelRequest, db: Session = Depends(get_db)):
    """Cancel one occurrence.

    With ``cascade`` every non-cancelled occurrence of the series is
    cancelled, the parent and past occurrences included.
    """
    event = event_service.get_event(db, event_id)
    permissions.ensure_organizer(db, event, payload.cancelled_by_user_id)
    return event_service.cancel_event(db, event_id, reason=payload.reason, cascade=payload.cascade)
