"""Deterministic stand-ins for the vision backend, matcher, camera and writer."""

from __future__ import annotations

import datetime as dt
import threading
from collections import deque
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np

from recognition.errors import CameraError, ModelLoadFailure
from recognition.matcher import UNKNOWN_LABEL, MatchResult
from recognition.vision import DetectedFace
from school.attendance import AttendanceWriter
from school.domain import StudentRecord
from school.exceptions import AttendanceWriteError
from school.repository import InMemorySchoolRepository

FIXED_NOW = dt.datetime(2024, 5, 6, 9, 30, tzinfo=dt.timezone.utc)


def fixed_clock() -> dt.datetime:
    return FIXED_NOW


def face(student_id: int, width: int = 100) -> DetectedFace:
    """A detected face whose embedding encodes the student id in the first slot."""

    return DetectedFace(
        embedding=np.array([float(student_id), 0.0, 0.0]),
        box={"x": 0, "y": 0, "w": width, "h": width},
    )


def unknown_face(width: int = 100) -> DetectedFace:
    return face(0, width)


class ScriptedVision:
    """Returns the next scripted list of faces for each detection call."""

    def __init__(
        self,
        frames: Iterable[Sequence[DetectedFace]] = (),
        *,
        load_error: Optional[Exception] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self._frames = deque(list(batch) for batch in frames)
        self.load_error = load_error
        self.gate = gate
        self.entered = threading.Event()
        self.load_calls = 0
        self.detect_calls = 0

    def queue(self, *faces: DetectedFace) -> None:
        self._frames.append(list(faces))

    def load_models(self) -> None:
        self.load_calls += 1
        if self.load_error is not None:
            raise self.load_error

    def detect_faces(self, frame) -> list[DetectedFace]:
        self.detect_calls += 1
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if not self._frames:
            return []
        return self._frames.popleft()


class ScriptedMatcher:
    """Labels a probe by the student id stored in its first component."""

    def __init__(self, references: Mapping[str, Sequence[np.ndarray]], threshold=None) -> None:
        self.labels = set(references)
        self.threshold = threshold
        self.calls = 0

    def find_best_match(self, probe: np.ndarray) -> MatchResult:
        self.calls += 1
        label = str(int(probe[0]))
        if label not in self.labels:
            return MatchResult(UNKNOWN_LABEL, None, probe)
        return MatchResult(label, 0.1, probe)


class FakeSource:
    def __init__(self, frames: Iterable[Optional[np.ndarray]] = ()) -> None:
        self.frames = deque(frames)
        self.closed = False
        self.reads = 0

    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        self.reads += 1
        if self.frames:
            return self.frames.popleft()
        return np.zeros((4, 4, 3), dtype=np.uint8)


class FakeCamera:
    """Raises the next scripted error on request, otherwise hands out a source."""

    def __init__(self, errors: Iterable[Optional[CameraError]] = ()) -> None:
        self.errors = deque(errors)
        self.requests = 0
        self.stops = 0
        self.source: Optional[FakeSource] = None

    def request_stream(self) -> FakeSource:
        self.requests += 1
        if self.errors:
            error = self.errors.popleft()
            if error is not None:
                raise error
        self.source = FakeSource()
        return self.source

    def stop(self, source) -> None:
        self.stops += 1
        source.closed = True


class RecordingWriter(AttendanceWriter):
    """AttendanceWriter that counts calls, can fail the first N writes and can block on a gate."""

    def __init__(
        self, repository, *, failures: int = 0, gate: Optional[threading.Event] = None
    ) -> None:
        super().__init__(repository, clock=fixed_clock)
        self.failures = failures
        self.gate = gate
        self.entered = threading.Event()
        self.calls: list[int] = []

    def mark_attendance(self, student_id, class_id, status):
        self.calls.append(student_id)
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.failures > 0:
            self.failures -= 1
            raise AttendanceWriteError("database unavailable")
        return super().mark_attendance(student_id, class_id, status)


class SchoolFixture:
    """An in-memory class with enrolled and unenrolled students."""

    def __init__(self, enrolled: int = 3, unenrolled: int = 0) -> None:
        self.repo = InMemorySchoolRepository()
        self.teacher_id = self.repo.add_user("Rahul Sharma", "teacher")
        self.school_class = self.repo.add_class("Grade 5 - Section A", self.teacher_id)
        self.students: list[StudentRecord] = []
        for index in range(enrolled):
            student = self.repo.add_student(f"Student {index + 1}", self.school_class.id)
            self.students.append(self.repo.set_descriptor(student.id, [float(student.id), 0.0, 0.0]))
        for index in range(unenrolled):
            self.students.append(
                self.repo.add_student(f"Unenrolled {index + 1}", self.school_class.id)
            )

    @property
    def class_id(self) -> int:
        return self.school_class.id


__all__ = [
    "FIXED_NOW",
    "FakeCamera",
    "FakeSource",
    "ModelLoadFailure",
    "RecordingWriter",
    "SchoolFixture",
    "ScriptedMatcher",
    "ScriptedVision",
    "face",
    "fixed_clock",
    "unknown_face",
]
