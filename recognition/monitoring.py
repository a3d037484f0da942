"""Prometheus metrics and Sentry breadcrumbs for the attendance kiosk."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Mapping, Optional

from django.conf import settings

import sentry_sdk
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

_THRESHOLD_SETTING_NAMES: Dict[str, str] = {
    "camera_start": "RECOGNITION_CAMERA_START_ALERT_SECONDS",
    "model_load": "RECOGNITION_MODEL_LOAD_ALERT_SECONDS",
    "detection": "RECOGNITION_DETECTION_ALERT_SECONDS",
}

_DEFAULT_THRESHOLDS: Dict[str, float] = {
    "camera_start": 3.0,
    "model_load": 10.0,
    "detection": 2.0,
}

_METRICS_LOCK = threading.Lock()


def _build_metrics() -> None:
    global REGISTRY
    global CAMERA_START_COUNTER
    global CAMERA_START_LATENCY
    global CAMERA_STOP_COUNTER
    global FRAME_DROP_COUNTER
    global STAGE_DURATION_HISTOGRAM
    global SCAN_COUNTER
    global RECONCILE_COUNTER
    global ACTIVE_SESSIONS_GAUGE

    REGISTRY = CollectorRegistry(auto_describe=True)

    CAMERA_START_COUNTER = Counter(
        "kiosk_camera_start",
        "Camera start attempts by outcome",
        labelnames=("status",),
        registry=REGISTRY,
    )
    CAMERA_START_LATENCY = Histogram(
        "kiosk_camera_start_latency_seconds",
        "Camera start latency in seconds",
        buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0),
        registry=REGISTRY,
    )
    CAMERA_STOP_COUNTER = Counter(
        "kiosk_camera_stop",
        "Camera releases by outcome",
        labelnames=("status",),
        registry=REGISTRY,
    )
    FRAME_DROP_COUNTER = Counter(
        "kiosk_frame_drop",
        "Times the camera returned no frame",
        registry=REGISTRY,
    )
    STAGE_DURATION_HISTOGRAM = Histogram(
        "kiosk_stage_duration_seconds",
        "Duration of model loading and face detection",
        labelnames=("stage",),
        buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        registry=REGISTRY,
    )
    SCAN_COUNTER = Counter(
        "kiosk_scans",
        "Scan requests by result",
        labelnames=("result",),
        registry=REGISTRY,
    )
    RECONCILE_COUNTER = Counter(
        "kiosk_reconcile_outcomes",
        "Per-face reconciliation outcomes",
        labelnames=("outcome",),
        registry=REGISTRY,
    )
    ACTIVE_SESSIONS_GAUGE = Gauge(
        "kiosk_active_sessions",
        "Attendance sessions currently registered",
        registry=REGISTRY,
    )


_build_metrics()


def reset_for_tests() -> None:
    """Recreate the metrics registry (intended for test suites)."""

    with _METRICS_LOCK:
        _build_metrics()


def get_threshold(key: str) -> float:
    if key not in _THRESHOLD_SETTING_NAMES:
        raise KeyError(f"Unknown threshold key: {key}")
    default = _DEFAULT_THRESHOLDS[key]
    try:
        return float(getattr(settings, _THRESHOLD_SETTING_NAMES[key], default))
    except (TypeError, ValueError):
        return default


def metric_value(name: str, labels: Optional[Dict[str, str]] = None) -> float:
    """Current value of a sample, 0.0 when it has not been recorded yet."""

    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def record_breadcrumb(
    message: str,
    *,
    category: str = "attendance.kiosk",
    level: str = "info",
    data: Mapping[str, Any] | None = None,
) -> None:
    """Add a breadcrumb to the current Sentry scope; a no-op without a DSN."""

    sentry_sdk.add_breadcrumb(
        message=message, category=category, level=level, data=dict(data or {})
    )


def record_camera_start(success: bool, latency: Optional[float], error: Optional[str] = None) -> None:
    status = "success" if success else "failure"
    CAMERA_START_COUNTER.labels(status=status).inc()
    if latency is not None:
        CAMERA_START_LATENCY.observe(max(0.0, latency))
    extra = {"event": "camera_start", "status": status, "latency_seconds": latency}
    if not success:
        logger.warning("Camera failed to start", extra={**extra, "error": error})
        return
    logger.info("Camera started", extra=extra)
    threshold = get_threshold("camera_start")
    if latency is not None and latency > threshold:
        logger.warning(
            "Camera start latency %.3fs exceeded threshold %.3fs",
            latency,
            threshold,
            extra={**extra, "threshold": threshold},
        )


def record_camera_stop(success: bool, error: Optional[str] = None) -> None:
    status = "success" if success else "failure"
    CAMERA_STOP_COUNTER.labels(status=status).inc()
    if success:
        logger.info("Camera stopped", extra={"event": "camera_stop", "status": status})
    else:
        logger.error(
            "Camera failed to stop cleanly",
            extra={"event": "camera_stop", "status": status, "error": error},
        )


def record_frame_drop() -> None:
    FRAME_DROP_COUNTER.inc()
    logger.debug("Camera returned no frame", extra={"event": "frame_drop"})


def observe_stage_duration(stage: str, duration: float, *, threshold_key: Optional[str] = None) -> None:
    """Record how long a stage took and warn when it is slower than configured."""

    STAGE_DURATION_HISTOGRAM.labels(stage=stage).observe(max(0.0, duration))
    if threshold_key is None:
        return
    threshold = get_threshold(threshold_key)
    if duration > threshold:
        logger.warning(
            "Recognition stage '%s' exceeded threshold",
            stage,
            extra={
                "event": "stage_duration",
                "stage": stage,
                "duration_seconds": duration,
                "threshold": threshold,
            },
        )


def record_scan(result: str) -> None:
    SCAN_COUNTER.labels(result=result).inc()


def record_reconcile(outcome: str) -> None:
    RECONCILE_COUNTER.labels(outcome=outcome).inc()


def set_active_sessions(count: int) -> None:
    ACTIVE_SESSIONS_GAUGE.set(max(0, count))


def export_metrics() -> bytes:
    return generate_latest(REGISTRY)


def prometheus_content_type() -> str:
    return CONTENT_TYPE_LATEST


__all__ = [
    "export_metrics",
    "get_threshold",
    "metric_value",
    "observe_stage_duration",
    "prometheus_content_type",
    "record_breadcrumb",
    "record_camera_start",
    "record_camera_stop",
    "record_frame_drop",
    "record_reconcile",
    "record_scan",
    "reset_for_tests",
    "set_active_sessions",
]
