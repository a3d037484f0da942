"""Pieces shared by the school and recognition API views."""

from __future__ import annotations

import logging
from functools import wraps
from typing import Callable

from rest_framework import status
from rest_framework.response import Response

from django_ratelimit.core import is_ratelimited

from recognition.errors import (
    InvalidTransition,
    ModelLoadFailure,
    RecognitionError,
    ScanInProgress,
)
from school.exceptions import AttendanceWriteError

logger = logging.getLogger(__name__)


def _error_status(exc: Exception) -> int | None:
    if isinstance(exc, LookupError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (InvalidTransition, ScanInProgress)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, (ModelLoadFailure, AttendanceWriteError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, (ValueError, RecognitionError)):
        return status.HTTP_400_BAD_REQUEST
    return None


class DomainErrorsMixin:
    """Turn school and recognition errors into JSON error responses."""

    def handle_exception(self, exc):
        code = _error_status(exc)
        if code is None:
            return super().handle_exception(exc)
        detail = getattr(exc, "status", None) if isinstance(exc, RecognitionError) else None
        logger.info(
            "API request failed with %s",
            type(exc).__name__,
            extra={"event": "api_error", "status_code": code, "view": type(self).__name__},
        )
        return Response({"detail": detail or str(exc), "error": type(exc).__name__}, status=code)


def rate_limited(group: str, rate: Callable[[], str]):
    """Apply django-ratelimit to a DRF view method, keyed by user or IP."""

    def decorator(view_method):
        @wraps(view_method)
        def _wrapped(self, request, *args, **kwargs):
            current_rate = rate()
            if not current_rate:
                return view_method(self, request, *args, **kwargs)

            was_limited = is_ratelimited(
                request=request,
                group=group,
                key="user_or_ip",
                rate=current_rate,
                method=["POST"],
                increment=True,
            )
            if was_limited:
                logger.warning(
                    "Rate limit triggered for %s on %s",
                    request.user if request.user.is_authenticated else request.META.get("REMOTE_ADDR", "unknown"),
                    group,
                    extra={"event": "rate_limited", "group": group},
                )
                return Response(
                    {"detail": "Too many attempts. Please wait."},
                    status=status.HTTP_429_TOO_MANY_REQUESTS,
                )
            return view_method(self, request, *args, **kwargs)

        return _wrapped

    return decorator
