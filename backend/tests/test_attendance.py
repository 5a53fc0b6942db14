"""Tests for the per-occurrence attendance state machine."""
from datetime import datetime, timedelta, timezone

import pytest

from danceapp.models.attendance_history import AttendanceAction, AttendanceHistory
from danceapp.models.attendee import Attendee, DanceRole
from danceapp.services import attendance_service, event_service
from danceapp.services.exceptions import NotFoundError, ValidationError
from tests.conftest import make_user, make_workspace

START = datetime(2025, 7, 1, 19, 0, tzinfo=timezone.utc)


def _setup(db):
    teacher = make_user(db, email="teacher@example.com")
    student = make_user(db, email="student@example.com")
    workspace = make_workspace(db, teacher)
    event = event_service.create_event(db, workspace.id, teacher.id, "Salsa Social",
                                       date_start=START, date_end=START + timedelta(hours=2))
    return teacher, student, event


class TestAttend:
    """History is append-only and the latest row is the status."""

    def test_first_action_creates_attendee(self, db):
        _, student, event = _setup(db)
        attendee = attendance_service.attend(db, event.id, AttendanceAction.registered, user_id=student.id,
                                             role=DanceRole.follower)
        assert attendee.status == AttendanceAction.registered
        assert attendee.is_attending
        assert attendee.role == DanceRole.follower
        assert len(attendee.history) == 1
        assert attendee.history[0].performed_by_id == student.id

    def test_every_call_appends_one_row(self, db):
        _, student, event = _setup(db)
        actions = [
            AttendanceAction.registered,
            AttendanceAction.cancelled,
            AttendanceAction.registered,
            AttendanceAction.registered,
            AttendanceAction.confirmed,
        ]
        for action in actions:
            attendee = attendance_service.attend(db, event.id, action, user_id=student.id)
        assert db.query(Attendee).count() == 1
        assert db.query(AttendanceHistory).count() == len(actions)
        assert [row.action for row in attendee.history] == actions
        assert attendance_service.current_status(attendee) == AttendanceAction.confirmed

    def test_string_action_accepted(self, db):
        _, student, event = _setup(db)
        attendee = attendance_service.attend(db, event.id, "DECLINED", user_id=student.id)
        assert attendee.status == AttendanceAction.declined
        assert not attendee.is_attending

    def test_unknown_action(self, db):
        _, student, event = _setup(db)
        with pytest.raises(ValidationError) as exc_info:
            attendance_service.attend(db, event.id, "MAYBE", user_id=student.id)
        assert exc_info.value.field == "action"

    def test_both_identities_rejected(self, db):
        _, student, event = _setup(db)
        with pytest.raises(ValidationError):
            attendance_service.attend(db, event.id, user_id=student.id, guest_email="guest@example.com")
        assert db.query(Attendee).count() == 0

    def test_no_identity_rejected(self, db):
        _, _, event = _setup(db)
        with pytest.raises(ValidationError):
            attendance_service.attend(db, event.id)

    def test_invalid_guest_email(self, db):
        _, _, event = _setup(db)
        with pytest.raises(ValidationError) as exc_info:
            attendance_service.attend(db, event.id, guest_email="not-an-email")
        assert exc_info.value.field == "guest_email"

    def test_unknown_event(self, db):
        _, student, _ = _setup(db)
        with pytest.raises(NotFoundError):
            attendance_service.attend(db, 999, user_id=student.id)

    def test_role_changed_records_roles(self, db):
        _, student, event = _setup(db)
        attendance_service.attend(db, event.id, user_id=student.id, role=DanceRole.follower)
        attendee = attendance_service.attend(db, event.id, AttendanceAction.role_changed, user_id=student.id,
                                             role=DanceRole.leader)
        last = attendee.history[-1]
        assert last.previous_role == "FOLLOWER"
        assert last.new_role == "LEADER"
        assert attendee.role == DanceRole.leader
        assert attendee.status == AttendanceAction.role_changed

    def test_role_changed_requires_role(self, db):
        _, student, event = _setup(db)
        with pytest.raises(ValidationError) as exc_info:
            attendance_service.attend(db, event.id, AttendanceAction.role_changed, user_id=student.id)
        assert exc_info.value.field == "role"

    def test_invited_sets_flag_and_actor(self, db):
        teacher, student, event = _setup(db)
        attendee = attendance_service.attend(db, event.id, AttendanceAction.invited, user_id=student.id,
                                             performed_by_id=teacher.id)
        assert attendee.was_invited
        assert attendee.history[0].performed_by_id == teacher.id
        assert not attendee.is_attending

    def test_notes_and_metadata_stored(self, db):
        _, student, event = _setup(db)
        attendee = attendance_service.attend(db, event.id, user_id=student.id, notes="first class",
                                             metadata={"source": "web"})
        assert attendee.history[0].notes == "first class"
        assert attendee.history[0].meta == {"source": "web"}


class TestGuests:
    """Guest attendance keyed by email."""

    def test_register_then_cancel(self, db):
        _, _, event = _setup(db)
        attendance_service.attend(db, event.id, AttendanceAction.registered,
                                  guest_email="Guest@Example.com", guest_name="Gina")
        attendee = attendance_service.attend(db, event.id, AttendanceAction.cancelled,
                                             guest_email="guest@example.com")
        assert attendee.user_id is None
        assert attendee.is_guest
        assert attendee.guest_email == "guest@example.com"
        assert attendee.guest_name == "Gina"
        assert [row.action for row in attendee.history] == [AttendanceAction.registered, AttendanceAction.cancelled]
        assert all(row.performed_by_id is None for row in attendee.history)

    def test_find_attendee_by_email(self, db):
        _, _, event = _setup(db)
        attendance_service.attend(db, event.id, guest_email="guest@example.com")
        assert attendance_service.find_attendee(db, event.id, guest_email="GUEST@example.com") is not None
        assert attendance_service.find_attendee(db, event.id, guest_email="other@example.com") is None


class TestCancelledEvents:
    """Event cancellation and attendance are independent."""

    def test_registration_survives_event_cancellation(self, db):
        _, student, event = _setup(db)
        attendee = attendance_service.attend(db, event.id, user_id=student.id)
        event_service.cancel_event(db, event.id)
        db.refresh(attendee)
        assert attendee.status == AttendanceAction.registered
        assert attendee.is_attending

    def test_seat_actions_rejected_on_cancelled_event(self, db):
        _, student, event = _setup(db)
        event_service.cancel_event(db, event.id)
        with pytest.raises(ValidationError):
            attendance_service.attend(db, event.id, AttendanceAction.registered, user_id=student.id)
        assert db.query(Attendee).count() == 0

    def test_withdrawal_allowed_on_cancelled_event(self, db):
        _, student, event = _setup(db)
        attendance_service.attend(db, event.id, user_id=student.id)
        event_service.cancel_event(db, event.id)
        attendee = attendance_service.attend(db, event.id, AttendanceAction.cancelled, user_id=student.id)
        assert attendee.status == AttendanceAction.cancelled


class TestRecordAction:
    """Appending to an existing attendee."""

    def test_confirm_existing_attendee(self, db):
        teacher, student, event = _setup(db)
        attendee = attendance_service.attend(db, event.id, user_id=student.id)
        updated = attendance_service.record_action(db, attendee.id, AttendanceAction.confirmed,
                                                   performed_by_id=teacher.id)
        assert updated.status == AttendanceAction.confirmed
        assert updated.history[-1].performed_by_id == teacher.id

    def test_missing_attendee(self, db):
        with pytest.raises(NotFoundError):
            attendance_service.record_action(db, 404, AttendanceAction.confirmed)


class TestQueries:
    """Attendee listing and history."""

    def test_list_attendees_excluding_withdrawn(self, db):
        teacher, student, event = _setup(db)
        attendance_service.attend(db, event.id, user_id=student.id)
        attendance_service.attend(db, event.id, AttendanceAction.declined, user_id=teacher.id)
        assert len(attendance_service.list_attendees(db, event.id)) == 2
        attending = attendance_service.list_attendees(db, event.id, include_withdrawn=False)
        assert [a.user_id for a in attending] == [student.id]

    def test_history_oldest_first(self, db):
        teacher, student, event = _setup(db)
        attendance_service.attend(db, event.id, user_id=student.id)
        attendance_service.attend(db, event.id, user_id=teacher.id)
        attendance_service.attend(db, event.id, AttendanceAction.cancelled, user_id=student.id)
        history = attendance_service.get_history(db, event.id)
        assert [row.action for row in history] == [
            AttendanceAction.registered, AttendanceAction.registered, AttendanceAction.cancelled,
        ]
        student_attendee = attendance_service.find_attendee(db, event.id, user_id=student.id)
        assert len(attendance_service.get_history(db, event.id, attendee_id=student_attendee.id)) == 2


class TestHistoryOrdering:
    """Rows sharing a timestamp are ordered by id."""

    def test_higher_id_wins_on_timestamp_tie(self, db):
        _, student, event = _setup(db)
        attendee = attendance_service.attend(db, event.id, user_id=student.id)
        tied_at = datetime.now(timezone.utc) + timedelta(hours=1)

        confirmed = AttendanceHistory(attendee_id=attendee.id, action=AttendanceAction.confirmed, created_at=tied_at)
        db.add(confirmed)
        db.flush()
        declined = AttendanceHistory(attendee_id=attendee.id, action=AttendanceAction.declined, created_at=tied_at)
        db.add(declined)
        db.commit()
        assert declined.id > confirmed.id

        db.refresh(attendee)
        assert attendee.status == AttendanceAction.declined
        assert not attendee.is_attending
        history = attendance_service.get_history(db, event.id)
        assert [row.id for row in history][-2:] == [confirmed.id, declined.id]
        assert [row.action for row in history] == [
            AttendanceAction.registered, AttendanceAction.confirmed, AttendanceAction.declined,
        ]


class TestConcurrentCreation:
    """A lost race on creating the attendee row becomes an append."""

    def test_integrity_error_retried_as_append(self, db, monkeypatch):
        _, student, event = _setup(db)
        attendance_service.attend(db, event.id, user_id=student.id)

        # Simulate the other request's insert landing between lookup and insert
        real_find = attendance_service._find_attendee
        calls = {"n": 0}

        def stale_then_real(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_find(*args, **kwargs)

        monkeypatch.setattr(attendance_service, "_find_attendee", stale_then_real)
        attendee = attendance_service.attend(db, event.id, AttendanceAction.confirmed, user_id=student.id)

        assert db.query(Attendee).count() == 1
        assert [row.action for row in attendee.history] == [AttendanceAction.registered, AttendanceAction.confirmed]
