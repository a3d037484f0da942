"""Errors raised by the school data layer."""


class SchoolError(Exception):
    """Base class for school data errors."""


class StudentNotFound(SchoolError, LookupError):
    def __init__(self, student_id) -> None:
        super().__init__(f"Student {student_id} does not exist.")
        self.student_id = student_id


class ClassNotFound(SchoolError, LookupError):
    def __init__(self, class_id) -> None:
        super().__init__(f"Class {class_id} does not exist.")
        self.class_id = class_id


class InvalidDescriptor(SchoolError, ValueError):
    """A face descriptor was empty, non-numeric or contained non-finite values."""


class AttendanceWriteError(SchoolError):
    """Persisting an attendance record failed; the caller may retry later."""
