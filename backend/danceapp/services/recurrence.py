"""Recurrence expansion for event series.

Turns a parent event's schedule plus an iCalendar RRULE into the list of child
occurrences. Expansion runs in the event's wall-clock timezone so a weekly
19:00 class stays at 19:00 local time across DST changes; results are UTC.

The parent is always the first occurrence of the series and is never part of
the returned list. Expansion is pure and deterministic: updates to a series
rely on re-running it, never on diffing stored rows.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytz
from dateutil.rrule import rrulestr

from danceapp.config import settings
from danceapp.models.types import ensure_utc
from danceapp.services.exceptions import ValidationError

logger = logging.getLogger(__name__)

RULE_KEYS = (
    "FREQ", "INTERVAL", "COUNT", "UNTIL", "BYDAY", "BYMONTHDAY", "BYMONTH",
    "BYYEARDAY", "BYWEEKNO", "BYHOUR", "BYMINUTE", "BYSECOND", "BYSETPOS", "WKST",
)
FREQUENCIES = ("YEARLY", "MONTHLY", "WEEKLY", "DAILY", "HOURLY", "MINUTELY", "SECONDLY")
WEEKDAYS = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_BYDAY_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")
_UNTIL_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})(Z)?)?$")
_INT_RE = re.compile(r"^[+-]?\d+$")

# Inclusive (low, high) bounds for integer list parts; zero is never valid
# for the signed ones.
_INT_LIST_BOUNDS = {
    "BYMONTHDAY": (-31, 31),
    "BYMONTH": (1, 12),
    "BYYEARDAY": (-366, 366),
    "BYWEEKNO": (-53, 53),
    "BYHOUR": (0, 23),
    "BYMINUTE": (0, 59),
    "BYSECOND": (0, 59),
    "BYSETPOS": (-366, 366),
}
_SIGNED_PARTS = ("BYMONTHDAY", "BYYEARDAY", "BYWEEKNO", "BYSETPOS")


@dataclass(frozen=True)
class Occurrence:
    """Schedule of one generated child occurrence (UTC)."""

    date_start: datetime
    date_end: Optional[datetime]


@dataclass(frozen=True)
class Horizon:
    """Hard bound on expansion: child count and distance from the first start."""

    max_occurrences: int
    window: timedelta

    @classmethod
    def from_settings(cls) -> "Horizon":
        return cls(
            max_occurrences=settings.RECURRENCE_MAX_OCCURRENCES,
            window=timedelta(days=settings.RECURRENCE_WINDOW_DAYS),
        )


def _invalid(message: str, token: str) -> ValidationError:
    return ValidationError(message, field="rrule", token=token)


def _check_positive_int(key: str, value: str) -> None:
    if not value.isdigit() or int(value) < 1:
        raise _invalid(f"{key} must be a positive integer", f"{key}={value}")


def _check_int_list(key: str, value: str) -> None:
    low, high = _INT_LIST_BOUNDS[key]
    for item in value.split(","):
        if not _INT_RE.match(item):
            raise _invalid(f"Invalid {key} value '{item}'", f"{key}={value}")
        number = int(item)
        if number < low or number > high or (number == 0 and key in _SIGNED_PARTS):
            raise _invalid(f"{key} value {number} is out of range", f"{key}={value}")


def describe_rule(rrule: str) -> dict[str, str]:
    """Parse an RRULE string into its KEY -> VALUE parts, validating each one.

    Accepts an optional ``RRULE:`` prefix and a trailing ``;``. Raises
    ValidationError naming the first offending token.
    """
    if rrule is None or not rrule.strip():
        raise _invalid("Recurrence rule is empty", "")

    text = rrule.strip().upper()
    if "\n" in text or text.startswith("DTSTART"):
        raise _invalid("Recurrence rule must not embed DTSTART; the event start is used", "DTSTART")
    if text.startswith("RRULE:"):
        text = text[len("RRULE:"):]

    parts: dict[str, str] = {}
    for token in text.split(";"):
        if not token:
            continue
        if "=" not in token:
            raise _invalid(f"Malformed recurrence rule token '{token}'", token)
        key, value = token.split("=", 1)
        if key not in RULE_KEYS:
            raise _invalid(f"Unknown recurrence rule part '{key}'", token)
        if key in parts:
            raise _invalid(f"Duplicate recurrence rule part '{key}'", token)
        if not value:
            raise _invalid(f"Recurrence rule part '{key}' has no value", token)
        parts[key] = value

    if "FREQ" not in parts:
        raise _invalid("Recurrence rule requires FREQ", "FREQ")
    if parts["FREQ"] not in FREQUENCIES:
        raise _invalid(f"Unsupported frequency '{parts['FREQ']}'", f"FREQ={parts['FREQ']}")
    if "COUNT" in parts and "UNTIL" in parts:
        raise _invalid("COUNT and UNTIL cannot both be set", f"UNTIL={parts['UNTIL']}")

    for key, value in parts.items():
        if key in ("INTERVAL", "COUNT"):
            _check_positive_int(key, value)
        elif key == "UNTIL":
            if not _UNTIL_RE.match(value):
                raise _invalid(f"Invalid UNTIL value '{value}'", f"UNTIL={value}")
        elif key == "BYDAY":
            for item in value.split(","):
                if not _BYDAY_RE.match(item):
                    raise _invalid(f"Invalid BYDAY value '{item}'", f"BYDAY={value}")
        elif key == "WKST":
            if value not in WEEKDAYS:
                raise _invalid(f"Invalid WKST value '{value}'", f"WKST={value}")
        elif key in _INT_LIST_BOUNDS:
            _check_int_list(key, value)

    return parts


def get_timezone(tz_name: str):
    """Resolve an IANA timezone name, raising ValidationError when unknown."""
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError as exc:
        raise ValidationError(f"Unknown timezone '{tz_name}'", field="timezone") from exc


def _local_until(value: str, tz) -> str:
    """Rewrite UNTIL as naive wall time in the event timezone.

    YYYYMMDD covers the whole local day, a trailing Z means UTC, anything
    else is already local wall time.
    """
    year, month, day, hour, minute, second, utc_flag = _UNTIL_RE.match(value).groups()
    try:
        if hour is None:
            until = datetime(int(year), int(month), int(day), 23, 59, 59)
        else:
            until = datetime(int(year), int(month), int(day), int(hour), int(minute), int(second))
    except ValueError as exc:
        raise _invalid(f"Invalid UNTIL value '{value}'", f"UNTIL={value}") from exc
    if utc_flag:
        until = until.replace(tzinfo=timezone.utc).astimezone(tz).replace(tzinfo=None)
    return until.strftime("%Y%m%dT%H%M%S")


def _to_utc(local: datetime, tz) -> datetime:
    # pytz needs localize(); normalize() shifts wall times that fall in a DST gap
    return tz.normalize(tz.localize(local)).astimezone(timezone.utc)


def expand(
    date_start: datetime,
    date_end: Optional[datetime],
    rrule: str,
    horizon: Optional[Horizon] = None,
    tz_name: str = "UTC",
) -> list[Occurrence]:
    """Expand ``rrule`` anchored at ``date_start`` into child occurrences.

    Returns occurrences strictly after the parent, ascending, each with the
    parent's duration. With COUNT=N the parent counts as one of the N
    occurrences, so at most N-1 children are produced. The horizon caps the
    number of children and how far past ``date_start`` expansion may reach.
    """
    parts = describe_rule(rrule)
    tz = get_timezone(tz_name)
    horizon = horizon or Horizon.from_settings()

    start_utc = ensure_utc(date_start)
    duration = ensure_utc(date_end) - start_utc if date_end is not None else None
    local_start = start_utc.astimezone(tz).replace(tzinfo=None)

    if "UNTIL" in parts:
        parts["UNTIL"] = _local_until(parts["UNTIL"], tz)
    rule_text = ";".join(f"{key}={value}" for key, value in parts.items())
    try:
        rule = rrulestr(rule_text, dtstart=local_start)
    except (ValueError, TypeError) as exc:
        raise _invalid(f"Invalid recurrence rule '{rrule}': {exc}", rrule) from exc

    count = int(parts["COUNT"]) if "COUNT" in parts else None
    limit = horizon.max_occurrences if count is None else min(count - 1, horizon.max_occurrences)
    window_end = local_start + horizon.window

    occurrences: list[Occurrence] = []
    truncated = False
    for local in rule:
        if len(occurrences) >= limit:
            truncated = count is None or count - 1 > limit
            break
        if local > window_end:
            truncated = True
            break
        if local <= local_start:
            continue
        child_start = _to_utc(local, tz)
        child_end = child_start + duration if duration is not None else None
        occurrences.append(Occurrence(date_start=child_start, date_end=child_end))

    if truncated:
        logger.warning(
            "Recurrence '%s' truncated at %d children (horizon: %d occurrences, %s)",
            rrule, len(occurrences), horizon.max_occurrences, horizon.window,
        )
    return occurrences
