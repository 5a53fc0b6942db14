"""Core event service: event and series lifecycle.

Responsibilities:
- Creation of standalone events and whole series (parent + expanded children)
  in a single transaction
- Updates, cascading non-temporal fields from a series parent to its
  non-cancelled children
- Cancellation of one occurrence or of a whole series (terminal state)
- Listing through an explicit EventFilter

Authorization is the caller's job; these functions only enforce data-level
invariants.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from danceapp.config import settings
from danceapp.models.attendee import Attendee
from danceapp.models.event import Event, EventOrganizer, EventVisibility
from danceapp.models.types import ensure_utc, utcnow
from danceapp.services import recurrence
from danceapp.services.exceptions import NotFoundError, PersistenceError, ValidationError
from danceapp.services.validation import validate_capacity, validate_leader_offset, validate_schedule

logger = logging.getLogger(__name__)

# Fields copied from a series parent to its children on update
CASCADED_FIELDS = (
    "name",
    "description",
    "location",
    "capacity_min",
    "capacity_max",
    "leader_offset",
    "visibility",
)
# Applied to the targeted occurrence only
TEMPORAL_FIELDS = ("date_start", "date_end")


@dataclass
class EventFilter:
    """Optional predicates for listing events. Unset fields do not filter."""

    workspace_id: Optional[int] = None
    search: Optional[str] = None
    visibility: Optional[EventVisibility] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    include_cancelled: bool = False
    organizer_id: Optional[int] = None
    series_root_id: Optional[int] = None
    # Visibility restriction for the viewer; None means unrestricted
    allowed_visibilities: Optional[frozenset] = None
    # Viewer whose organized/attended events stay visible despite the restriction
    viewer_id: Optional[int] = None


def apply_event_filter(query: Query, event_filter: EventFilter) -> Query:
    """Narrow an Event query with every predicate set on the filter."""
    if event_filter.workspace_id is not None:
        query = query.filter(Event.workspace_id == event_filter.workspace_id)
    if event_filter.search:
        pattern = f"%{event_filter.search}%"
        query = query.filter(
            or_(
                Event.name.ilike(pattern),
                Event.description.ilike(pattern),
                Event.location.ilike(pattern),
            )
        )
    if event_filter.visibility is not None:
        query = query.filter(Event.visibility == event_filter.visibility)
    if event_filter.date_from is not None:
        query = query.filter(Event.date_start >= event_filter.date_from)
    if event_filter.date_to is not None:
        query = query.filter(Event.date_start <= event_filter.date_to)
    if not event_filter.include_cancelled:
        query = query.filter(Event.is_cancelled.is_(False))
    if event_filter.organizer_id is not None:
        query = query.filter(Event.organizers.any(EventOrganizer.user_id == event_filter.organizer_id))
    if event_filter.series_root_id is not None:
        root_id = event_filter.series_root_id
        query = query.filter(or_(Event.id == root_id, Event.parent_event_id == root_id))
    if event_filter.allowed_visibilities is not None:
        condition = Event.visibility.in_(list(event_filter.allowed_visibilities))
        if event_filter.viewer_id is not None:
            condition = or_(
                condition,
                Event.organizers.any(EventOrganizer.user_id == event_filter.viewer_id),
                Event.attendees.any(Attendee.user_id == event_filter.viewer_id),
            )
        query = query.filter(condition)
    return query


def list_events(db: Session, event_filter: EventFilter) -> list[Event]:
    query = apply_event_filter(db.query(Event), event_filter)
    return query.order_by(Event.date_start, Event.id).all()


def get_event(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise NotFoundError("Event", event_id)
    return event


def get_series(db: Session, event: Event, from_date: Optional[datetime] = None) -> list[Event]:
    """All occurrences of the event's series (just the event when standalone)."""
    root_id = event.series_root_id
    query = db.query(Event).filter(or_(Event.id == root_id, Event.parent_event_id == root_id))
    if from_date is not None:
        query = query.filter(Event.date_start >= from_date)
    return query.order_by(Event.date_start, Event.id).all()


def _commit(db: Session, description: str) -> None:
    """Commit the unit of work; on store failure roll it back entirely."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to %s; transaction rolled back", description)
        raise PersistenceError(f"Failed to {description}") from exc


def _organizer_ids(created_by_id: int, additional: Optional[Iterable[int]]) -> list[int]:
    ids = [created_by_id]
    for user_id in additional or ():
        if user_id not in ids:
            ids.append(user_id)
    return ids


def _add_organizers(event: Event, user_ids: Iterable[int]) -> None:
    existing = set(event.organizer_ids)
    for user_id in user_ids:
        if user_id not in existing:
            event.organizers.append(EventOrganizer(user_id=user_id))
            existing.add(user_id)


def create_event(
    db: Session,
    workspace_id: int,
    created_by_id: int,
    name: str,
    date_start: datetime,
    date_end: Optional[datetime] = None,
    description: Optional[str] = None,
    location: Optional[str] = None,
    capacity_min: Optional[int] = None,
    capacity_max: Optional[int] = None,
    leader_offset: int = 0,
    visibility: EventVisibility = EventVisibility.workspace_only,
    timezone: Optional[str] = None,
    rrule: Optional[str] = None,
    additional_organizer_ids: Optional[list[int]] = None,
) -> Event:
    """Create an event and, when ``rrule`` is set, every child occurrence.

    All rows are written in one transaction; nothing is persisted if the rule
    is invalid or the store fails.
    """
    if not name or not name.strip():
        raise ValidationError("Event name is required", field="name")
    date_start, date_end = ensure_utc(date_start), ensure_utc(date_end)
    validate_schedule(date_start, date_end)
    validate_capacity(capacity_min, capacity_max)
    validate_leader_offset(leader_offset)
    tz_name = timezone or settings.DEFAULT_TIMEZONE
    recurrence.get_timezone(tz_name)

    rrule = rrule.strip() if rrule else None
    occurrences = recurrence.expand(date_start, date_end, rrule, tz_name=tz_name) if rrule else []
    organizer_ids = _organizer_ids(created_by_id, additional_organizer_ids)

    shared = dict(
        workspace_id=workspace_id,
        created_by_id=created_by_id,
        name=name,
        description=description,
        location=location,
        capacity_min=capacity_min,
        capacity_max=capacity_max,
        leader_offset=leader_offset,
        visibility=visibility,
        timezone=tz_name,
    )
    try:
        event = Event(
            date_start=date_start,
            date_end=date_end,
            rrule=rrule,
            organizers=[EventOrganizer(user_id=uid) for uid in organizer_ids],
            **shared,
        )
        db.add(event)
        for occurrence in occurrences:
            db.add(Event(
                date_start=occurrence.date_start,
                date_end=occurrence.date_end,
                parent=event,
                organizers=[EventOrganizer(user_id=uid) for uid in organizer_ids],
                **shared,
            ))
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to write event '%s'; transaction rolled back", name)
        raise PersistenceError(f"Failed to create event '{name}'") from exc
    _commit(db, f"create event '{name}'")
    db.refresh(event)
    logger.info(
        "Created event '%s' (%s) in workspace %s with %d child occurrences",
        name, event.id, workspace_id, len(occurrences),
    )
    return event


def update_event(db: Session, event_id: int, updates: dict[str, Any]) -> Event:
    """Update one occurrence, cascading to the series when it is the parent.

    ``updates`` may hold any of CASCADED_FIELDS, TEMPORAL_FIELDS and
    ``additional_organizer_ids``. Dates never cascade: children keep their
    expanded schedule.
    """
    updates = dict(updates)
    organizer_ids = updates.pop("additional_organizer_ids", None)
    unknown = set(updates) - set(CASCADED_FIELDS) - set(TEMPORAL_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

    event = get_event(db, event_id)
    if event.is_cancelled:
        raise ValidationError("Cannot update a cancelled event")

    if "name" in updates and (not updates["name"] or not updates["name"].strip()):
        raise ValidationError("Event name is required", field="name")
    for field in ("leader_offset", "visibility"):
        if field in updates and updates[field] is None:
            raise ValidationError(f"{field} cannot be cleared", field=field)
    for field in TEMPORAL_FIELDS:
        if field in updates:
            updates[field] = ensure_utc(updates[field])
    if "date_start" in updates or "date_end" in updates:
        validate_schedule(
            updates.get("date_start", event.date_start),
            updates["date_end"] if "date_end" in updates else event.date_end,
        )
    if "leader_offset" in updates:
        validate_leader_offset(updates["leader_offset"])

    cascade_targets = [child for child in event.children if not child.is_cancelled] if event.is_parent_event else []

    # Validate merged bounds on every touched row before writing anything
    for target in [event] + cascade_targets:
        try:
            validate_capacity(
                updates.get("capacity_min", target.capacity_min),
                updates.get("capacity_max", target.capacity_max),
            )
        except ValidationError as exc:
            if target is event:
                raise
            raise ValidationError(f"Occurrence {target.id}: {exc.message}", field=exc.field) from exc

    for field in TEMPORAL_FIELDS:
        if field in updates:
            setattr(event, field, updates[field])
    for target in [event] + cascade_targets:
        for field in CASCADED_FIELDS:
            if field in updates:
                setattr(target, field, updates[field])
        if organizer_ids:
            _add_organizers(target, organizer_ids)

    _commit(db, f"update event {event_id}")
    db.refresh(event)
    logger.info("Updated event %s (cascaded to %d occurrences)", event_id, len(cascade_targets))
    return event


def cancel_event(
    db: Session,
    event_id: int,
    reason: Optional[str] = None,
    cascade: bool = False,
) -> Event:
    """Cancel one occurrence, or every non-cancelled occurrence of its series.

    Attendance is left untouched: registrations stay registered on a
    cancelled occurrence.
    """
    event = get_event(db, event_id)

    if cascade:
        targets = [occurrence for occurrence in get_series(db, event) if not occurrence.is_cancelled]
        if not targets:
            raise ValidationError("Every occurrence of this series is already cancelled")
    else:
        if event.is_cancelled:
            raise ValidationError("Event is already cancelled")
        targets = [event]

    now = utcnow()
    for target in targets:
        target.is_cancelled = True
        target.cancelled_at = now
        target.cancellation_reason = reason

    _commit(db, f"cancel event {event_id}")
    db.refresh(event)
    logger.info("Cancelled %d occurrence(s) from event %s (reason: %s)", len(targets), event_id, reason)
    return event
