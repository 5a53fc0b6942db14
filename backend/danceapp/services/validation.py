"""Explicit input checks run at the start of each public service operation.

Each function either returns the normalised value or raises ValidationError
before anything is written.
"""
import re
from datetime import datetime
from typing import Optional

from danceapp.services.exceptions import ValidationError

LEADER_OFFSET_RANGE = (-50, 50)
CAPACITY_MAX_LIMIT = 1000

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_schedule(date_start: Optional[datetime], date_end: Optional[datetime]) -> None:
    if date_start is None:
        raise ValidationError("Start date is required", field="date_start")
    if date_end is not None and date_end <= date_start:
        raise ValidationError("End date must be after start date", field="date_end")


def validate_capacity(capacity_min: Optional[int], capacity_max: Optional[int]) -> None:
    if capacity_min is not None and capacity_min < 0:
        raise ValidationError("Minimum capacity cannot be negative", field="capacity_min")
    if capacity_max is not None and not 1 <= capacity_max <= CAPACITY_MAX_LIMIT:
        raise ValidationError(
            f"Maximum capacity must be between 1 and {CAPACITY_MAX_LIMIT}", field="capacity_max"
        )
    if capacity_min is not None and capacity_max is not None and capacity_max < capacity_min:
        raise ValidationError(
            f"Maximum capacity ({capacity_max}) is below minimum capacity ({capacity_min})",
            field="capacity_max",
        )


def validate_leader_offset(leader_offset: Optional[int]) -> None:
    low, high = LEADER_OFFSET_RANGE
    if leader_offset is not None and not low <= leader_offset <= high:
        raise ValidationError(f"Leader offset must be between {low} and {high}", field="leader_offset")


def normalize_email(email: str) -> str:
    normalized = email.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise ValidationError(f"Invalid guest email '{email}'", field="guest_email")
    return normalized


def validate_identity(user_id: Optional[int], guest_email: Optional[str]) -> Optional[str]:
    """Exactly one identity path: a user or a guest email.

    Returns the normalised guest email (None on the user path).
    """
    if user_id is not None and guest_email:
        raise ValidationError("Provide either a user or a guest email, not both", field="guest_email")
    if user_id is None and not guest_email:
        raise ValidationError("A user or a guest email is required", field="user_id")
    if guest_email:
        return normalize_email(guest_email)
    return None
