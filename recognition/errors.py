"""Errors raised by the recognition kiosk.

Each error carries the ``status`` line shown to the operator, so the session
and the API can surface failures without a second lookup table.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    MODEL_LOAD = "model_load"
    NOTHING_TO_SCAN = "nothing_to_scan"
    CAMERA_PERMISSION = "camera_permission"
    CAMERA_NOT_FOUND = "camera_not_found"
    CAMERA_OTHER = "camera_other"

    @property
    def retryable(self) -> bool:
        """Camera failures can be retried by requesting the camera again."""
        return self in (
            ErrorKind.CAMERA_PERMISSION,
            ErrorKind.CAMERA_NOT_FOUND,
            ErrorKind.CAMERA_OTHER,
        )


class RecognitionError(Exception):
    status = "Error: Face recognition failed."
    kind: ErrorKind | None = None

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.status)


class ModelLoadFailure(RecognitionError):
    status = "Error: Could not load AI models. Please check your internet connection and refresh."
    kind = ErrorKind.MODEL_LOAD


class NoMatchableStudents(RecognitionError):
    status = (
        "No students with enrolled faces in this class. "
        "Please enroll faces from the teacher dashboard."
    )
    kind = ErrorKind.NOTHING_TO_SCAN


class CameraError(RecognitionError):
    status = "Error: Could not access the camera."
    kind = ErrorKind.CAMERA_OTHER


class CameraPermissionDenied(CameraError):
    status = "Error: Camera access was denied. Please allow camera access in your browser settings."
    kind = ErrorKind.CAMERA_PERMISSION


class CameraNotFound(CameraError):
    status = "Error: No camera found on this device."
    kind = ErrorKind.CAMERA_NOT_FOUND


# Failures a browser reports after opening its own camera failed.
CLIENT_CAMERA_ERRORS = {
    "permission_denied": CameraPermissionDenied,
    "not_found": CameraNotFound,
}


class NoFaceDetected(RecognitionError):
    status = "Capture failed. Please try again."


class InvalidTransition(RecognitionError):
    status = "Error: That action is not available right now."

    def __init__(self, state, event) -> None:
        super().__init__(f"Cannot apply {event} while {state}.")
        self.state = state
        self.event = event


class ScanInProgress(RecognitionError):
    status = "Scanning frame..."


class SessionNotFound(RecognitionError, LookupError):
    status = "Error: Attendance session not found."


class InvalidFrame(RecognitionError, ValueError):
    status = "Error: The captured frame could not be read."
