"""Enrolled face descriptors: one embedding per student, overwritten on re-enrollment."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np

from school.domain import StudentRecord
from school.exceptions import InvalidDescriptor
from school.repository import SchoolRepository

from .errors import NoFaceDetected
from .pipeline import facial_area_size

if TYPE_CHECKING:
    from .vision import VisionBackend

logger = logging.getLogger(__name__)


def student_label(student_id: int) -> str:
    """Matcher label used for a student."""
    return str(student_id)


def validate_descriptor(descriptor: Sequence[float] | np.ndarray) -> tuple[float, ...]:
    try:
        vector = np.asarray(descriptor, dtype=float).ravel()
    except (TypeError, ValueError) as exc:
        raise InvalidDescriptor("Face descriptor must be a sequence of numbers.") from exc
    if vector.size == 0:
        raise InvalidDescriptor("Face descriptor must not be empty.")
    if not np.all(np.isfinite(vector)):
        raise InvalidDescriptor("Face descriptor must only contain finite numbers.")
    return tuple(float(value) for value in vector)


class DescriptorStore:
    def __init__(self, repository: SchoolRepository) -> None:
        self._repository = repository

    def descriptors_for_class(self, class_id: int) -> list[tuple[StudentRecord, np.ndarray]]:
        """Students in the class that can be matched, with their descriptor."""

        return [
            (student, np.asarray(student.descriptor, dtype=float))
            for student in self._repository.students_for_class(class_id)
            if student.has_descriptor
        ]

    def set_descriptor(
        self, student_id: int, descriptor: Sequence[float] | np.ndarray
    ) -> StudentRecord:
        """Replace the student's descriptor. There is no merging with the old one."""

        vector = validate_descriptor(descriptor)
        student = self._repository.set_descriptor(student_id, vector)
        logger.info(
            "Face descriptor stored",
            extra={"event": "enroll", "student_id": student_id, "dimensions": len(vector)},
        )
        return student

    def enroll_from_frame(
        self, student_id: int, frame: np.ndarray, vision: "VisionBackend"
    ) -> StudentRecord:
        """Detect the dominant face in an enrollment capture and store it."""

        self._repository.get_student(student_id)
        faces = vision.detect_faces(frame)
        if not faces:
            raise NoFaceDetected()
        face = max(faces, key=lambda detected: facial_area_size(detected.box))
        return self.set_descriptor(student_id, face.embedding)
