"""Attendance service: the per-occurrence attendance state machine.

Each call appends exactly one AttendanceHistory row; the attendee's current
status is always the action of its latest row. History is an event log, so
repeating an action appends again rather than being deduplicated, and any
action may be the first one (organizers pre-confirm seats, invite, etc.).

Each attend() call is its own transaction. A lost race on creating the
attendee row is retried as an append to the row the other request created.
"""
import logging
from typing import Any, Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from danceapp.models.attendance_history import AttendanceAction, AttendanceHistory
from danceapp.models.attendee import Attendee, DanceRole
from danceapp.services import event_service
from danceapp.services.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from danceapp.services.validation import validate_identity

logger = logging.getLogger(__name__)

# Actions that claim a seat; refused on a cancelled occurrence
SEAT_ACTIONS = frozenset({
    AttendanceAction.invited,
    AttendanceAction.registered,
    AttendanceAction.confirmed,
})


def coerce_action(action: Union[AttendanceAction, str]) -> AttendanceAction:
    try:
        return AttendanceAction(action)
    except ValueError as exc:
        raise ValidationError(f"Unknown attendance action '{action}'", field="action") from exc


def coerce_role(role: Union[DanceRole, str, None]) -> Optional[DanceRole]:
    if role is None:
        return None
    try:
        return DanceRole(role)
    except ValueError as exc:
        raise ValidationError(f"Unknown dance role '{role}'", field="role") from exc


def current_status(attendee: Attendee) -> Optional[AttendanceAction]:
    """Action of the attendee's most recent history entry."""
    return attendee.status


def _find_attendee(
    db: Session,
    event_id: int,
    user_id: Optional[int],
    guest_email: Optional[str],
) -> Optional[Attendee]:
    query = db.query(Attendee).filter(Attendee.event_id == event_id)
    if user_id is not None:
        query = query.filter(Attendee.user_id == user_id)
    else:
        query = query.filter(Attendee.guest_email == guest_email)
    return query.first()


def find_attendee(
    db: Session,
    event_id: int,
    user_id: Optional[int] = None,
    guest_email: Optional[str] = None,
) -> Optional[Attendee]:
    """Look up the attendee row for one identity on one occurrence."""
    guest_email = validate_identity(user_id, guest_email)
    return _find_attendee(db, event_id, user_id, guest_email)


def _create_attendee(
    db: Session,
    event_id: int,
    user_id: Optional[int],
    guest_email: Optional[str],
    guest_name: Optional[str],
) -> Attendee:
    attendee = Attendee(
        event_id=event_id,
        user_id=user_id,
        guest_email=guest_email,
        guest_name=guest_name if user_id is None else None,
    )
    db.add(attendee)
    try:
        db.flush()
    except IntegrityError:
        # Another request created the row between our lookup and insert
        db.rollback()
        existing = _find_attendee(db, event_id, user_id, guest_email)
        if existing is None:
            raise ConflictError(f"Could not register attendee on event {event_id}; retry the request")
        logger.info("Attendee %s on event %s was created concurrently; appending to it", existing.id, event_id)
        return existing
    return attendee


def _append_action(
    db: Session,
    attendee: Attendee,
    action: AttendanceAction,
    role: Optional[DanceRole],
    performed_by_id: Optional[int],
    guest_name: Optional[str] = None,
    notes: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Attendee:
    previous_role = attendee.role
    if role is not None:
        attendee.role = role
    if guest_name and attendee.user_id is None:
        attendee.guest_name = guest_name
    if action == AttendanceAction.invited:
        attendee.was_invited = True

    entry = AttendanceHistory(
        attendee=attendee,
        action=action,
        performed_by_id=performed_by_id,
        notes=notes,
        meta=metadata,
    )
    if action == AttendanceAction.role_changed:
        entry.previous_role = previous_role.value if previous_role else None
        entry.new_role = role.value
    db.add(entry)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to record %s for attendee on event %s", action.value, attendee.event_id)
        raise PersistenceError(f"Failed to record {action.value}") from exc
    db.refresh(attendee)
    logger.info(
        "Attendee %s on event %s: %s (performed by %s)",
        attendee.id, attendee.event_id, action.value, performed_by_id,
    )
    return attendee


def _check_action(event_is_cancelled: bool, action: AttendanceAction, role: Optional[DanceRole]) -> None:
    if action == AttendanceAction.role_changed and role is None:
        raise ValidationError("A role is required to record ROLE_CHANGED", field="role")
    if event_is_cancelled and action in SEAT_ACTIONS:
        raise ValidationError(f"Cannot record {action.value} on a cancelled event", field="action")


def attend(
    db: Session,
    event_id: int,
    action: Union[AttendanceAction, str] = AttendanceAction.registered,
    user_id: Optional[int] = None,
    guest_email: Optional[str] = None,
    guest_name: Optional[str] = None,
    role: Union[DanceRole, str, None] = None,
    performed_by_id: Optional[int] = None,
    notes: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Attendee:
    """Record one attendance action for a user or a guest on one occurrence.

    Exactly one of ``user_id`` / ``guest_email`` must be given.
    ``performed_by_id`` defaults to ``user_id``; for guests it is the acting
    organizer, or None for anonymous self-service.
    """
    guest_email = validate_identity(user_id, guest_email)
    action = coerce_action(action)
    role = coerce_role(role)

    event = event_service.get_event(db, event_id)
    _check_action(event.is_cancelled, action, role)

    attendee = _find_attendee(db, event_id, user_id, guest_email)
    if attendee is None:
        attendee = _create_attendee(db, event_id, user_id, guest_email, guest_name)

    if performed_by_id is None:
        performed_by_id = user_id
    return _append_action(
        db, attendee, action, role, performed_by_id,
        guest_name=guest_name, notes=notes, metadata=metadata,
    )


def get_attendee(db: Session, attendee_id: int) -> Attendee:
    attendee = db.query(Attendee).filter(Attendee.id == attendee_id).first()
    if not attendee:
        raise NotFoundError("Attendee", attendee_id)
    return attendee


def record_action(
    db: Session,
    attendee_id: int,
    action: Union[AttendanceAction, str],
    role: Union[DanceRole, str, None] = None,
    performed_by_id: Optional[int] = None,
    notes: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> Attendee:
    """Append an action to an existing attendee (e.g. an organizer confirming a seat)."""
    action = coerce_action(action)
    role = coerce_role(role)
    attendee = get_attendee(db, attendee_id)
    _check_action(attendee.event.is_cancelled, action, role)
    return _append_action(db, attendee, action, role, performed_by_id, notes=notes, metadata=metadata)


def list_attendees(db: Session, event_id: int, include_withdrawn: bool = True) -> list[Attendee]:
    event = event_service.get_event(db, event_id)
    attendees = list(event.attendees)
    if not include_withdrawn:
        attendees = [a for a in attendees if a.is_attending]
    return attendees


def get_history(db: Session, event_id: int, attendee_id: Optional[int] = None) -> list[AttendanceHistory]:
    """History rows for an occurrence, oldest first."""
    event_service.get_event(db, event_id)
    query = (
        db.query(AttendanceHistory)
        .join(Attendee, AttendanceHistory.attendee_id == Attendee.id)
        .filter(Attendee.event_id == event_id)
    )
    if attendee_id is not None:
        query = query.filter(AttendanceHistory.attendee_id == attendee_id)
    return query.order_by(AttendanceHistory.created_at, AttendanceHistory.id).all()
