"""Series attendance: fans one attendance action out over a whole series.

Every occurrence is written independently: a failure on one occurrence does
not roll back the others. A series can span months, so the coordinator
reports per-occurrence outcomes instead of holding one large transaction;
callers re-invoke for the failed subset.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from sqlalchemy.orm import Session

from danceapp.models.attendance_history import AttendanceAction
from danceapp.models.attendee import DanceRole
from danceapp.services import attendance_service, event_service
from danceapp.services.exceptions import ServiceError
from danceapp.services.validation import validate_identity

logger = logging.getLogger(__name__)


@dataclass
class OccurrenceResult:
    event_id: int
    date_start: datetime
    attendee_id: Optional[int] = None
    status: Optional[AttendanceAction] = None
    error: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class SeriesAttendanceReport:
    series_root_id: int
    action: AttendanceAction
    succeeded: list[OccurrenceResult] = field(default_factory=list)
    failed: list[OccurrenceResult] = field(default_factory=list)
    skipped: list[OccurrenceResult] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.failed

    @property
    def failed_event_ids(self) -> list[int]:
        return [result.event_id for result in self.failed]


def attend_series(
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
    from_occurrence: bool = False,
) -> SeriesAttendanceReport:
    """Apply ``action`` for one identity on every non-cancelled occurrence.

    ``event_id`` may be the parent or any child. With ``from_occurrence`` only
    occurrences starting at or after the targeted one are touched. CANCELLED
    only reaches occurrences the identity already joined.
    """
    guest_email = validate_identity(user_id, guest_email)
    action = attendance_service.coerce_action(action)
    role = attendance_service.coerce_role(role)

    event = event_service.get_event(db, event_id)
    from_date = event.date_start if from_occurrence else None
    report = SeriesAttendanceReport(series_root_id=event.series_root_id, action=action)

    # Plain values: each attend() commits and expires loaded instances
    targets = [
        (occurrence.id, occurrence.date_start, occurrence.is_cancelled)
        for occurrence in event_service.get_series(db, event, from_date=from_date)
    ]
    for occurrence_id, date_start, is_cancelled in targets:
        if is_cancelled:
            report.skipped.append(OccurrenceResult(occurrence_id, date_start, reason="occurrence cancelled"))
            continue
        if action == AttendanceAction.cancelled and attendance_service.find_attendee(
            db, occurrence_id, user_id=user_id, guest_email=guest_email
        ) is None:
            report.skipped.append(OccurrenceResult(occurrence_id, date_start, reason="not attending"))
            continue
        try:
            attendee = attendance_service.attend(
                db,
                occurrence_id,
                action,
                user_id=user_id,
                guest_email=guest_email,
                guest_name=guest_name,
                role=role,
                performed_by_id=performed_by_id,
                notes=notes,
                metadata=metadata,
            )
        except ServiceError as exc:
            logger.warning("Series attendance %s failed on event %s: %s", action.value, occurrence_id, exc.message)
            report.failed.append(OccurrenceResult(occurrence_id, date_start, error=exc.message))
            continue
        report.succeeded.append(
            OccurrenceResult(occurrence_id, date_start, attendee_id=attendee.id, status=attendee.status)
        )

    logger.info(
        "Series %s attendance %s: %d succeeded, %d failed, %d skipped",
        report.series_root_id, action.value, len(report.succeeded), len(report.failed), len(report.skipped),
    )
    return report
