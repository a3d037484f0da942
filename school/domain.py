"""Plain records passed between the data layer and the recognition core.

These mirror the ORM models but carry no database state, so the kiosk session
and its tests can run against any :class:`~school.repository.SchoolRepository`.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AttendanceStatus(str, Enum):
    PRESENT = "Present"
    ABSENT = "Absent"
    LATE = "Late"

    @classmethod
    def parse(cls, value: "AttendanceStatus | str") -> "AttendanceStatus":
        """Accept an enum member or its value (case-insensitive)."""

        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).strip().lower() == member.value.lower():
                return member
        raise ValueError(f"Unknown attendance status: {value!r}")


class NotificationKind(str, Enum):
    ABSENCE = "absence"
    EVENT = "event"
    GENERAL = "general"


# "All" addresses every non-admin account; the rest name a single role.
AUDIENCE_ALL = "All"


@dataclass(frozen=True)
class StudentRecord:
    id: int
    name: str
    class_id: int
    roll_number: str = ""
    photo_url: str = ""
    notes: str = ""
    parent_id: Optional[int] = None
    descriptor: Optional[tuple[float, ...]] = None

    @property
    def has_descriptor(self) -> bool:
        """Only students with a non-empty descriptor can be matched."""
        return bool(self.descriptor)


@dataclass(frozen=True)
class ClassRecord:
    id: int
    name: str
    teacher_id: Optional[int] = None
    teacher_name: str = "Unassigned"


@dataclass(frozen=True)
class AttendanceEntry:
    id: int
    student_id: int
    class_id: int
    date: dt.date
    status: AttendanceStatus
    timestamp: dt.datetime


@dataclass(frozen=True)
class NotificationEntry:
    id: int
    user_id: int
    message: str
    kind: NotificationKind
    timestamp: dt.datetime
    is_read: bool = False


@dataclass(frozen=True)
class AnnouncementEntry:
    id: int
    message: str
    audience: str
    timestamp: dt.datetime
    sent_by: str
