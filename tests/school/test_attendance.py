"""Tests for the attendance writer."""

import datetime as dt

import pytest

from django.db import DatabaseError

from school.attendance import AttendanceWriter
from school.domain import AttendanceStatus
from school.exceptions import AttendanceWriteError
from school.repository import InMemorySchoolRepository
from tests.fakes import FIXED_NOW, fixed_clock


@pytest.fixture
def repository():
    return InMemorySchoolRepository()


@pytest.fixture
def student(repository):
    school_class = repository.add_class("Grade 5 - Section A")
    return repository.add_student("Rohan Kumar", school_class.id)


def test_marks_today_from_clock(repository, student):
    writer = AttendanceWriter(repository, clock=fixed_clock)

    entry = writer.mark_attendance(student.id, student.class_id, "present")

    assert entry.status is AttendanceStatus.PRESENT
    assert entry.date == FIXED_NOW.date()
    assert entry.timestamp == FIXED_NOW
    assert writer.today() == FIXED_NOW.date()


def test_later_mark_replaces_earlier_one(repository, student):
    writer = AttendanceWriter(repository, clock=fixed_clock)

    writer.mark_attendance(student.id, student.class_id, AttendanceStatus.PRESENT)
    writer.mark_attendance(student.id, student.class_id, AttendanceStatus.LATE)

    [entry] = repository.attendance_for_class_on(student.class_id, FIXED_NOW.date())
    assert entry.status is AttendanceStatus.LATE


def test_marks_on_different_days_are_kept(repository, student):
    now = {"value": FIXED_NOW}
    writer = AttendanceWriter(repository, clock=lambda: now["value"])

    writer.mark_attendance(student.id, student.class_id, AttendanceStatus.PRESENT)
    now["value"] = FIXED_NOW + dt.timedelta(days=1)
    writer.mark_attendance(student.id, student.class_id, AttendanceStatus.ABSENT)

    assert len(repository.attendance) == 2


def test_unknown_status_is_rejected(repository, student):
    with pytest.raises(ValueError):
        AttendanceWriter(repository, clock=fixed_clock).mark_attendance(
            student.id, student.class_id, "Excused"
        )


def test_database_errors_become_write_errors(repository, student, monkeypatch):
    def broken(*args, **kwargs):
        raise DatabaseError("connection lost")

    monkeypatch.setattr(repository, "replace_attendance", broken)

    with pytest.raises(AttendanceWriteError, match="connection lost"):
        AttendanceWriter(repository, clock=fixed_clock).mark_attendance(
            student.id, student.class_id, AttendanceStatus.PRESENT
        )
