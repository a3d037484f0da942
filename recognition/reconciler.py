"""Turn match results into attendance writes, at most once per student per session."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from school.attendance import AttendanceWriter, local_now
from school.domain import AttendanceEntry, AttendanceStatus, StudentRecord
from school.exceptions import AttendanceWriteError

from . import config, monitoring
from .descriptors import student_label
from .matcher import MatchResult

logger = logging.getLogger(__name__)


class RosterMode(str, Enum):
    # Every enrolled face in the frame is handled.
    KIOSK = "kiosk"
    # The teacher captures one student at a time from the full class list.
    LIVE = "live"


class ReconcileOutcome(str, Enum):
    COMMITTED = "committed"
    ALREADY_PRESENT = "already_present"
    UNKNOWN = "unknown"
    NOT_IN_ROSTER = "not_in_roster"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True)
class LogEntry:
    student_id: int
    student_name: str
    timestamp: dt.datetime


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    student: Optional[StudentRecord] = None

    @property
    def status(self) -> Optional[str]:
        if self.student is None:
            return None
        if self.outcome is ReconcileOutcome.COMMITTED:
            return f"Recognized: {self.student.name}"
        if self.outcome is ReconcileOutcome.ALREADY_PRESENT:
            return f"{self.student.name} is already marked present."
        if self.outcome is ReconcileOutcome.WRITE_FAILED:
            return f"Could not save attendance for {self.student.name}. Please scan again."
        return None


class SessionRoster:
    """Students still to scan (``pending``) and those already handled (``resolved``).

    Both maps are keyed by matcher label and never share a key.
    """

    def __init__(
        self,
        pending: Iterable[StudentRecord] = (),
        resolved: Iterable[StudentRecord] = (),
    ) -> None:
        self.resolved: dict[str, StudentRecord] = {
            student_label(student.id): student for student in resolved
        }
        self.pending: dict[str, StudentRecord] = {
            student_label(student.id): student
            for student in pending
            if student_label(student.id) not in self.resolved
        }

    @classmethod
    def build(
        cls,
        students: Iterable[StudentRecord],
        todays_attendance: Iterable[AttendanceEntry],
        mode: RosterMode = RosterMode.KIOSK,
    ) -> "SessionRoster":
        students = list(students)
        marked = {entry.student_id for entry in todays_attendance}
        resolved = [student for student in students if student.id in marked]
        candidates = students
        if mode is RosterMode.KIOSK:
            candidates = [student for student in students if student.has_descriptor]
        return cls(
            pending=[student for student in candidates if student.id not in marked],
            resolved=resolved,
        )

    @property
    def complete(self) -> bool:
        return not self.pending

    def resolve(self, label: str) -> StudentRecord:
        student = self.pending.pop(label)
        self.resolved[label] = student
        return student


class RosterReconciler:
    """Apply :class:`MatchResult` objects to a :class:`SessionRoster`.

    ``writer`` is only called for pending students. A failed write leaves the
    student pending, so the next detection of the same face retries it.
    """

    def __init__(
        self,
        roster: SessionRoster,
        writer: AttendanceWriter,
        *,
        log_size: Optional[int] = None,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        self.roster = roster
        self._writer = writer
        self._clock = clock or local_now
        self._log: deque[LogEntry] = deque(maxlen=log_size or config.kiosk_log_size())
        self._lock = threading.RLock()

    @property
    def log(self) -> list[LogEntry]:
        """Newest first."""
        with self._lock:
            return list(self._log)

    def apply(self, match: MatchResult) -> ReconcileResult:
        with self._lock:
            result = self._apply(match)
        monitoring.record_reconcile(result.outcome.value)
        return result

    def _apply(self, match: MatchResult) -> ReconcileResult:
        if match.is_unknown:
            return ReconcileResult(ReconcileOutcome.UNKNOWN)

        roster = self.roster
        if match.label in roster.resolved:
            return ReconcileResult(ReconcileOutcome.ALREADY_PRESENT, roster.resolved[match.label])

        student = roster.pending.get(match.label)
        if student is None:
            return ReconcileResult(ReconcileOutcome.NOT_IN_ROSTER)

        try:
            self._writer.mark_attendance(student.id, student.class_id, AttendanceStatus.PRESENT)
        except AttendanceWriteError:
            logger.warning(
                "Attendance write failed; %s stays pending",
                student.name,
                extra={"event": "reconcile", "student_id": student.id, "outcome": "write_failed"},
            )
            return ReconcileResult(ReconcileOutcome.WRITE_FAILED, student)

        roster.resolve(match.label)
        self._log.appendleft(LogEntry(student.id, student.name, self._clock()))
        logger.info(
            "Student recognised and marked present",
            extra={
                "event": "reconcile",
                "student_id": student.id,
                "distance": match.distance,
                "outcome": "committed",
            },
        )
        return ReconcileResult(ReconcileOutcome.COMMITTED, student)
