"""Tests for series-wide attendance fan-out."""
from datetime import datetime, timedelta, timezone

import pytest

from danceapp.models.attendance_history import AttendanceAction
from danceapp.models.attendee import Attendee, DanceRole
from danceapp.services import attendance_service, event_service
from danceapp.services.exceptions import PersistenceError, ValidationError
from danceapp.services.series_attendance import attend_series
from tests.conftest import make_user, make_workspace

START = datetime(2025, 7, 1, 19, 0, tzinfo=timezone.utc)


def _setup(db, count=10):
    teacher = make_user(db, email="teacher@example.com")
    student = make_user(db, email="student@example.com")
    workspace = make_workspace(db, teacher)
    parent = event_service.create_event(
        db, workspace.id, teacher.id, "Salsa Beginners",
        date_start=START, date_end=START + timedelta(hours=1),
        rrule=f"FREQ=WEEKLY;BYDAY=MO;COUNT={count}",
    )
    return teacher, student, parent


class TestAttendSeries:
    """Fan-out over every occurrence of a series."""

    def test_registers_every_occurrence(self, db):
        _, student, parent = _setup(db)
        report = attend_series(db, parent.id, AttendanceAction.registered, user_id=student.id,
                               role=DanceRole.leader)
        assert report.is_complete
        assert report.series_root_id == parent.id
        assert len(report.succeeded) == 10
        assert not report.skipped
        assert all(result.status == AttendanceAction.registered for result in report.succeeded)
        assert db.query(Attendee).filter(Attendee.user_id == student.id).count() == 10

    def test_child_target_resolves_whole_series(self, db):
        _, student, parent = _setup(db, count=4)
        child_id = parent.children[1].id
        report = attend_series(db, child_id, user_id=student.id)
        assert len(report.succeeded) == 4
        assert report.series_root_id == parent.id

    def test_from_occurrence_only_touches_later_ones(self, db):
        _, student, parent = _setup(db, count=5)
        child = parent.children[1]
        child_id, child_start = child.id, child.date_start
        report = attend_series(db, child_id, user_id=student.id, from_occurrence=True)
        assert len(report.succeeded) == 3
        assert report.succeeded[0].event_id == child_id
        assert all(result.date_start >= child_start for result in report.succeeded)

    def test_skips_cancelled_occurrences(self, db):
        _, student, parent = _setup(db)
        cancelled_id = parent.children[2].id
        event_service.cancel_event(db, cancelled_id)
        report = attend_series(db, parent.id, user_id=student.id)
        assert len(report.succeeded) == 9
        assert [result.event_id for result in report.skipped] == [cancelled_id]
        assert attendance_service.find_attendee(db, cancelled_id, user_id=student.id) is None

    def test_cancel_only_touches_joined_occurrences(self, db):
        _, student, parent = _setup(db, count=4)
        joined = [parent.id, parent.children[0].id]
        for event_id in joined:
            attendance_service.attend(db, event_id, user_id=student.id)
        report = attend_series(db, parent.id, AttendanceAction.cancelled, user_id=student.id)
        assert sorted(result.event_id for result in report.succeeded) == sorted(joined)
        assert len(report.skipped) == 2
        assert all(result.reason == "not attending" for result in report.skipped)
        assert db.query(Attendee).count() == 2

    def test_guest_series_registration(self, db):
        _, _, parent = _setup(db, count=3)
        report = attend_series(db, parent.id, guest_email="Guest@Example.com", guest_name="Gina")
        assert len(report.succeeded) == 3
        guests = db.query(Attendee).all()
        assert {attendee.guest_email for attendee in guests} == {"guest@example.com"}
        assert all(attendee.user_id is None for attendee in guests)

    def test_identity_validated_before_any_write(self, db):
        _, student, parent = _setup(db, count=3)
        with pytest.raises(ValidationError):
            attend_series(db, parent.id, user_id=student.id, guest_email="guest@example.com")
        assert db.query(Attendee).count() == 0

    def test_partial_failure_is_reported(self, db, monkeypatch):
        _, student, parent = _setup(db, count=4)
        failing_id = parent.children[1].id
        real_attend = attendance_service.attend

        def flaky_attend(db_, event_id, *args, **kwargs):
            if event_id == failing_id:
                raise PersistenceError("Failed to record REGISTERED")
            return real_attend(db_, event_id, *args, **kwargs)

        monkeypatch.setattr(attendance_service, "attend", flaky_attend)
        report = attend_series(db, parent.id, user_id=student.id)

        assert not report.is_complete
        assert report.failed_event_ids == [failing_id]
        assert report.failed[0].error == "Failed to record REGISTERED"
        assert len(report.succeeded) == 3
        # Earlier occurrences stay committed
        assert db.query(Attendee).count() == 3

    def test_retry_failed_subset(self, db, monkeypatch):
        _, student, parent = _setup(db, count=3)
        failing_id = parent.children[0].id
        real_attend = attendance_service.attend

        def flaky_attend(db_, event_id, *args, **kwargs):
            if event_id == failing_id:
                raise PersistenceError("Failed to record REGISTERED")
            return real_attend(db_, event_id, *args, **kwargs)

        monkeypatch.setattr(attendance_service, "attend", flaky_attend)
        report = attend_series(db, parent.id, user_id=student.id)
        monkeypatch.undo()

        for event_id in report.failed_event_ids:
            attendance_service.attend(db, event_id, user_id=student.id)
        assert db.query(Attendee).filter(Attendee.user_id == student.id).count() == 3
