"""Write attendance with one-record-per-student-per-day overwrite semantics."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Callable, Optional

from django.db import DatabaseError
from django.utils import timezone

from .domain import AttendanceEntry, AttendanceStatus
from .exceptions import AttendanceWriteError
from .repository import SchoolRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], dt.datetime]


def local_now() -> dt.datetime:
    return timezone.localtime()


class AttendanceWriter:
    """Mark a student's attendance for "today".

    Today is the calendar date of ``clock()`` in the school's time zone. Any
    existing record for the student on that day is replaced, so a Late mark
    after a Present mark leaves only the Late record.
    """

    def __init__(self, repository: SchoolRepository, clock: Optional[Clock] = None) -> None:
        self._repository = repository
        self._clock = clock or local_now

    def today(self) -> dt.date:
        return self._clock().date()

    def mark_attendance(
        self,
        student_id: int,
        class_id: int,
        status: AttendanceStatus | str,
    ) -> AttendanceEntry:
        status = AttendanceStatus.parse(status)
        now = self._clock()
        try:
            entry = self._repository.replace_attendance(
                student_id, class_id, now.date(), status, now
            )
        except DatabaseError as exc:
            logger.error(
                "Failed to write attendance for student %s",
                student_id,
                extra={
                    "event": "attendance_write",
                    "status": "failure",
                    "student_id": student_id,
                    "class_id": class_id,
                },
            )
            raise AttendanceWriteError(str(exc)) from exc

        logger.info(
            "Attendance marked",
            extra={
                "event": "attendance_write",
                "status": "success",
                "student_id": student_id,
                "class_id": class_id,
                "attendance_status": status.value,
            },
        )
        return entry
