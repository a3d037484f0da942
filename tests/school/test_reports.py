"""Tests for class summaries, trends and student calendars."""

import datetime as dt

import pytest

from school.domain import AttendanceStatus
from school.reports import attendance_trend, class_day_summary, student_month_calendar
from school.repository import InMemorySchoolRepository

DAY = dt.date(2024, 5, 6)
STAMP = dt.datetime(2024, 5, 6, 9, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def school():
    repository = InMemorySchoolRepository()
    school_class = repository.add_class("Grade 5 - Section A")
    students = [
        repository.add_student(name, school_class.id, roll_number=roll)
        for name, roll in (("Rohan", "01"), ("Priya", "02"), ("Amit", "03"), ("Neha", "04"))
    ]
    return repository, school_class, students


def _mark(repository, student, day, status):
    repository.replace_attendance(student.id, student.class_id, day, status, STAMP)


def test_day_summary_counts_missing_records_as_absent(school):
    repository, school_class, students = school
    _mark(repository, students[0], DAY, AttendanceStatus.PRESENT)
    _mark(repository, students[1], DAY, AttendanceStatus.LATE)
    _mark(repository, students[2], DAY, AttendanceStatus.ABSENT)

    summary = class_day_summary(repository, school_class.id, DAY)

    assert (summary.present, summary.late, summary.absent, summary.total) == (1, 1, 2, 4)
    assert [student.name for student, _ in summary.statuses] == ["Rohan", "Priya", "Amit", "Neha"]
    assert summary.statuses[3][1] is AttendanceStatus.ABSENT


def test_trend_only_lists_days_with_records(school):
    repository, school_class, students = school
    _mark(repository, students[0], DAY, AttendanceStatus.PRESENT)
    _mark(repository, students[1], DAY, AttendanceStatus.ABSENT)
    _mark(repository, students[0], DAY + dt.timedelta(days=2), AttendanceStatus.LATE)

    trend = attendance_trend(repository, school_class.id, DAY, DAY + dt.timedelta(days=6))

    assert [(row.date, row.present, row.absent, row.late) for row in trend] == [
        (DAY, 1, 1, 0),
        (DAY + dt.timedelta(days=2), 0, 0, 1),
    ]


def test_trend_rejects_inverted_range(school):
    repository, school_class, _ = school

    with pytest.raises(ValueError):
        attendance_trend(repository, school_class.id, DAY, DAY - dt.timedelta(days=1))


def test_month_calendar_and_rate(school):
    repository, _, students = school
    student = students[0]
    _mark(repository, student, dt.date(2024, 2, 1), AttendanceStatus.PRESENT)
    _mark(repository, student, dt.date(2024, 2, 2), AttendanceStatus.LATE)
    _mark(repository, student, dt.date(2024, 2, 5), AttendanceStatus.ABSENT)
    _mark(repository, student, dt.date(2024, 3, 1), AttendanceStatus.ABSENT)

    month = student_month_calendar(repository, student.id, 2024, 2)

    assert len(month.days) == 29
    assert month.days[dt.date(2024, 2, 2)] is AttendanceStatus.LATE
    assert month.days[dt.date(2024, 2, 3)] is None
    assert month.recorded_days == 3
    assert month.attendance_rate == pytest.approx(0.6667)


def test_month_without_records_has_no_rate(school):
    repository, _, students = school

    assert student_month_calendar(repository, students[0].id, 2024, 12).attendance_rate is None


def test_invalid_month(school):
    repository, _, students = school

    with pytest.raises(ValueError):
        student_month_calendar(repository, students[0].id, 2024, 13)
