"""Capacity and role-balance figures for one occurrence.

Computed on read from the live attendee set and never persisted. Role balance
is a signal for organizers pairing dancers, not a limit: registering past it
is allowed.
"""
from dataclasses import dataclass
from typing import Iterable, Optional

from danceapp.models.attendee import Attendee, DanceRole
from danceapp.models.event import Event


@dataclass(frozen=True)
class EventCapacity:
    capacity_min: Optional[int]
    capacity_max: Optional[int]
    leader_offset: int
    attendee_count: int
    confirmed_attendee_count: int
    available_spots: Optional[int]
    is_at_capacity: bool
    meets_minimum: bool
    leader_count: int
    follower_count: int
    unassigned_count: int
    leaders_wanted: int
    leader_balance: int


def compute_capacity(event: Event, attendees: Optional[Iterable[Attendee]] = None) -> EventCapacity:
    """Derive counts from ``attendees`` (defaults to the event's own rows)."""
    # Status is the latest history action, so an attendee whose last row is
    # ROLE_CHANGED holds no seat until a REGISTERED or CONFIRMED follows.
    attendees = list(event.attendees if attendees is None else attendees)
    confirmed = [attendee for attendee in attendees if attendee.is_attending]
    confirmed_count = len(confirmed)

    capacity_max = event.capacity_max
    if capacity_max is not None:
        available_spots = max(0, capacity_max - confirmed_count)
        is_at_capacity = confirmed_count >= capacity_max
    else:
        available_spots = None
        is_at_capacity = False

    leader_count = sum(1 for attendee in confirmed if attendee.role == DanceRole.leader)
    follower_count = sum(1 for attendee in confirmed if attendee.role == DanceRole.follower)
    leader_offset = event.leader_offset or 0
    leaders_wanted = follower_count + leader_offset

    return EventCapacity(
        capacity_min=event.capacity_min,
        capacity_max=capacity_max,
        leader_offset=leader_offset,
        attendee_count=len(attendees),
        confirmed_attendee_count=confirmed_count,
        available_spots=available_spots,
        is_at_capacity=is_at_capacity,
        meets_minimum=event.capacity_min is None or confirmed_count >= event.capacity_min,
        leader_count=leader_count,
        follower_count=follower_count,
        unassigned_count=confirmed_count - leader_count - follower_count,
        leaders_wanted=leaders_wanted,
        leader_balance=leader_count - leaders_wanted,
    )
