"""Event permission checks used at the API boundary.

The event and attendance services assume the caller is already authorized;
routers call these helpers first.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from danceapp.models.attendance_history import AttendanceAction
from danceapp.models.attendee import Attendee, DanceRole
from danceapp.models.event import Event, EventVisibility
from danceapp.models.user import User
from danceapp.models.workspace import WorkspaceMember, WorkspaceRole
from danceapp.services.exceptions import ForbiddenError

logger = logging.getLogger(__name__)

ORGANIZING_ROLES = frozenset({WorkspaceRole.owner, WorkspaceRole.teacher})
ORGANIZER_ACTIONS = frozenset({AttendanceAction.invited, AttendanceAction.confirmed})


@dataclass(frozen=True)
class EventPermissions:
    can_edit: bool
    can_cancel: bool
    can_attend: bool
    can_invite: bool
    is_attending: bool
    user_attendance_status: Optional[AttendanceAction]
    user_dance_role: Optional[DanceRole]


def is_organizer(event: Event, user_id: Optional[int]) -> bool:
    return user_id is not None and user_id in event.organizer_ids


def is_member(db: Session, workspace_id: int, user_id: Optional[int]) -> bool:
    if user_id is None:
        return False
    member = (
        db.query(WorkspaceMember)
        .filter(WorkspaceMember.workspace_id == workspace_id, WorkspaceMember.user_id == user_id)
        .first()
    )
    return member is not None


def _is_super_admin(db: Session, user_id: Optional[int]) -> bool:
    if user_id is None:
        return False
    user = db.query(User).filter(User.id == user_id).first()
    return bool(user and user.is_super_admin)


def _user_attendee(db: Session, event: Event, user_id: Optional[int]) -> Optional[Attendee]:
    if user_id is None:
        return None
    return db.query(Attendee).filter(Attendee.event_id == event.id, Attendee.user_id == user_id).first()


def can_manage(db: Session, event: Event, user_id: Optional[int]) -> bool:
    """Organizers, the creator and super admins may edit or cancel."""
    if user_id is None:
        return False
    return is_organizer(event, user_id) or event.created_by_id == user_id or _is_super_admin(db, user_id)


def visible_visibilities(db: Session, workspace_id: int, user_id: Optional[int]) -> frozenset:
    """Visibilities a viewer may list without being organizer or attendee."""
    if is_member(db, workspace_id, user_id):
        return frozenset({EventVisibility.public, EventVisibility.workspace_only})
    return frozenset({EventVisibility.public})


def ensure_can_view(db: Session, event: Event, user_id: Optional[int]) -> None:
    if event.visibility == EventVisibility.public:
        return
    if user_id is None:
        raise ForbiddenError("Authentication required")
    if is_organizer(event, user_id):
        return
    if event.visibility == EventVisibility.workspace_only:
        if not is_member(db, event.workspace_id, user_id):
            raise ForbiddenError("Access denied")
    elif _user_attendee(db, event, user_id) is None:
        raise ForbiddenError("Access denied")


def ensure_organizer(db: Session, event: Event, user_id: Optional[int]) -> None:
    if not can_manage(db, event, user_id):
        logger.warning("User %s denied organizer action on event %s", user_id, event.id)
        raise ForbiddenError("Only event organizers can perform this action")


def can_attend(db: Session, event: Event, user_id: Optional[int]) -> bool:
    if event.is_cancelled:
        return False
    if event.visibility == EventVisibility.public:
        return True
    if event.visibility == EventVisibility.workspace_only:
        return is_member(db, event.workspace_id, user_id)
    return is_organizer(event, user_id) or _user_attendee(db, event, user_id) is not None


def ensure_can_attend(
    db: Session,
    event: Event,
    actor_id: Optional[int],
    user_id: Optional[int],
    guest_email: Optional[str],
    action: AttendanceAction,
) -> None:
    """Who may record attendance for whom.

    Organizers may act for anyone and are the only ones who invite or
    confirm. Invitation-only events accept answers only from users already
    on the list. Workspace events are open to members acting for
    themselves. Public events are open to users acting for themselves and
    to anonymous guests.
    """
    if is_organizer(event, actor_id):
        return
    if user_id is not None and actor_id != user_id:
        raise ForbiddenError("Only organizers can register other users")
    if guest_email and actor_id is not None:
        raise ForbiddenError("Only organizers can register guests")
    if action in ORGANIZER_ACTIONS:
        raise ForbiddenError(f"Only organizers can record {action.value}")

    if event.visibility == EventVisibility.invitation_only:
        if user_id is None or _user_attendee(db, event, user_id) is None:
            raise ForbiddenError("This event is invitation only")
    elif event.visibility == EventVisibility.workspace_only:
        if user_id is None:
            raise ForbiddenError("Guests cannot attend workspace events")
        if not is_member(db, event.workspace_id, user_id):
            raise ForbiddenError("Not a member of this workspace")


def compute_permissions(db: Session, event: Event, user_id: Optional[int]) -> Optional[EventPermissions]:
    """Permissions of ``user_id`` on the event; None for anonymous viewers.

    ``is_attending`` follows the attendee's own status only: a registration on
    a cancelled occurrence still counts.
    """
    if user_id is None:
        return None
    manage = can_manage(db, event, user_id)
    attendee = _user_attendee(db, event, user_id)
    return EventPermissions(
        can_edit=manage,
        can_cancel=manage,
        can_attend=can_attend(db, event, user_id),
        can_invite=is_organizer(event, user_id) or event.created_by_id == user_id,
        is_attending=attendee.is_attending if attendee else False,
        user_attendance_status=attendee.status if attendee else None,
        user_dance_role=attendee.role if attendee else None,
    )


def ensure_can_create(db: Session, workspace_id: int, user_id: int) -> None:
    """Workspace owners and teachers schedule events."""
    if _is_super_admin(db, user_id):
        return
    member = (
        db.query(WorkspaceMember)
        .filter(WorkspaceMember.workspace_id == workspace_id, WorkspaceMember.user_id == user_id)
        .first()
    )
    if member is None or member.role not in ORGANIZING_ROLES:
        logger.warning("User %s denied event creation in workspace %s", user_id, workspace_id)
        raise ForbiddenError("Only workspace owners and teachers can create events")


def ensure_can_record(event: Event, attendee: Attendee, actor_id: Optional[int], action: AttendanceAction) -> None:
    """Organizers record anything; attendees only answer for themselves."""
    if is_organizer(event, actor_id):
        return
    if actor_id is None or attendee.user_id != actor_id:
        raise ForbiddenError("Only organizers can update another attendee")
    if action in ORGANIZER_ACTIONS:
        raise ForbiddenError(f"Only organizers can record {action.value}")
