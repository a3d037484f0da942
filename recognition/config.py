"""Recognition settings, read at call time so tests can override them."""

from __future__ import annotations

from django.conf import settings


def distance_threshold() -> float:
    return float(getattr(settings, "RECOGNITION_DISTANCE_THRESHOLD", 0.6))


def distance_metric() -> str:
    return str(getattr(settings, "RECOGNITION_DISTANCE_METRIC", "euclidean_l2"))


def model_name() -> str:
    return str(getattr(settings, "RECOGNITION_MODEL", "Facenet"))


def detector_backend() -> str:
    return str(getattr(settings, "RECOGNITION_DETECTOR_BACKEND", "opencv"))


def enforce_detection() -> bool:
    return bool(getattr(settings, "RECOGNITION_ENFORCE_DETECTION", False))


def camera_backend() -> str:
    return str(getattr(settings, "RECOGNITION_CAMERA_BACKEND", "upload"))


def camera_index() -> int:
    return int(getattr(settings, "RECOGNITION_CAMERA_INDEX", 0))


def camera_warmup_seconds() -> float:
    return float(getattr(settings, "RECOGNITION_CAMERA_WARMUP_SECONDS", 2.0))


def frame_timeout_seconds() -> float:
    return float(getattr(settings, "RECOGNITION_FRAME_TIMEOUT_SECONDS", 1.0))


def kiosk_log_size() -> int:
    return max(1, int(getattr(settings, "RECOGNITION_KIOSK_LOG_SIZE", 5)))


def scan_rate_limit() -> str:
    return str(getattr(settings, "RECOGNITION_SCAN_RATE_LIMIT", "60/m"))


def enroll_rate_limit() -> str:
    return str(getattr(settings, "RECOGNITION_ENROLL_RATE_LIMIT", "10/m"))


def max_upload_bytes() -> int:
    return int(getattr(settings, "RECOGNITION_MAX_UPLOAD_BYTES", 5 * 1024 * 1024))


def session_idle_seconds() -> float:
    return max(0.0, float(getattr(settings, "RECOGNITION_SESSION_IDLE_SECONDS", 900.0)))
