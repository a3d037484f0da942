"""Read-side summaries used by the teacher and family dashboards."""

from __future__ import annotations

import calendar
import datetime as dt
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from .domain import AttendanceStatus, StudentRecord
from .repository import SchoolRepository


@dataclass(frozen=True)
class ClassDaySummary:
    class_id: int
    date: dt.date
    present: int
    late: int
    absent: int
    # Students without a record that day count as Absent.
    statuses: list[tuple[StudentRecord, AttendanceStatus]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.statuses)


@dataclass(frozen=True)
class DayCounts:
    date: dt.date
    present: int = 0
    absent: int = 0
    late: int = 0


@dataclass(frozen=True)
class MonthCalendar:
    student_id: int
    year: int
    month: int
    days: dict[dt.date, Optional[AttendanceStatus]]

    @property
    def recorded_days(self) -> int:
        return sum(1 for status in self.days.values() if status is not None)

    @property
    def attendance_rate(self) -> Optional[float]:
        """Share of recorded days the student attended (late counts as attended)."""

        recorded = self.recorded_days
        if not recorded:
            return None
        attended = sum(
            1
            for status in self.days.values()
            if status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE)
        )
        return round(attended / recorded, 4)


def class_day_summary(repository: SchoolRepository, class_id: int, day: dt.date) -> ClassDaySummary:
    students = sorted(
        repository.students_for_class(class_id), key=lambda s: (s.roll_number, s.name)
    )
    by_student = {
        entry.student_id: entry.status
        for entry in repository.attendance_for_class_on(class_id, day)
    }
    statuses = [(student, by_student.get(student.id, AttendanceStatus.ABSENT)) for student in students]
    counts = Counter(status for _, status in statuses)
    return ClassDaySummary(
        class_id=class_id,
        date=day,
        present=counts[AttendanceStatus.PRESENT],
        late=counts[AttendanceStatus.LATE],
        absent=counts[AttendanceStatus.ABSENT],
        statuses=statuses,
    )


def attendance_trend(
    repository: SchoolRepository, class_id: int, start: dt.date, end: dt.date
) -> list[DayCounts]:
    """Per-day status counts for days that have at least one record, oldest first."""

    if end < start:
        raise ValueError("end must not be before start")

    per_day: dict[dt.date, Counter] = {}
    for entry in repository.attendance_for_class_between(class_id, start, end):
        per_day.setdefault(entry.date, Counter())[entry.status] += 1

    return [
        DayCounts(
            date=day,
            present=counts[AttendanceStatus.PRESENT],
            absent=counts[AttendanceStatus.ABSENT],
            late=counts[AttendanceStatus.LATE],
        )
        for day, counts in sorted(per_day.items())
    ]


def student_month_calendar(
    repository: SchoolRepository, student_id: int, year: int, month: int
) -> MonthCalendar:
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")

    recorded = {
        entry.date: entry.status
        for entry in repository.attendance_for_student_in_month(student_id, year, month)
    }
    _, days_in_month = calendar.monthrange(year, month)
    days = {}
    for day_number in range(1, days_in_month + 1):
        day = dt.date(year, month, day_number)
        days[day] = recorded.get(day)
    return MonthCalendar(student_id=student_id, year=year, month=month, days=days)
