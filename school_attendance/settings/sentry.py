"""Sentry configuration helpers used by production deployments."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, MutableMapping
from typing import Any

from django.core.exceptions import ImproperlyConfigured

import sentry_sdk
from sentry_sdk.integrations import DidNotEnable
from sentry_sdk.integrations.django import DjangoIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from . import base as base_settings

__all__ = ["initialize_sentry", "scrub_event"]

_SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie"}
# Request body keys that carry camera frames or face descriptors.
_BIOMETRIC_FIELDS = {"image", "frame", "descriptor", "face_descriptor"}


def _get_sample_rate(var_name: str, default: float) -> float:
    """Return a tracing sample rate constrained between 0.0 and 1.0 inclusive."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default
    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(
            f"{var_name} must be a floating point number between 0.0 and 1.0."
        ) from exc
    if not 0.0 <= value <= 1.0:
        raise ImproperlyConfigured(f"{var_name} must be between 0.0 and 1.0 when provided.")
    return value


def _filter_keys(payload: MutableMapping[str, Any], keys: set[str]) -> None:
    for key in list(payload):
        if key.lower() in keys:
            payload[key] = "[Filtered]"


def scrub_event(event: dict[str, Any], *, send_default_pii: bool) -> dict[str, Any]:
    """Strip credentials and biometric payloads from a captured event."""

    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, MutableMapping):
            _filter_keys(headers, _SENSITIVE_HEADERS)
        data = request.get("data")
        if isinstance(data, MutableMapping):
            _filter_keys(data, _BIOMETRIC_FIELDS)
    if not send_default_pii:
        event.pop("user", None)
    return event


def initialize_sentry() -> None:
    """Initialise Sentry SDK when a DSN is supplied via the environment."""

    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return

    send_default_pii = base_settings._get_bool_env("SENTRY_SEND_DEFAULT_PII", default=False)

    def _before_send(event: dict[str, Any], _hint: Mapping[str, Any] | None) -> dict[str, Any]:
        return scrub_event(event, send_default_pii=send_default_pii)

    integrations: list[Any] = [
        DjangoIntegration(transaction_style="url"),
        LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
    ]

    try:
        from sentry_sdk.integrations.celery import CeleryIntegration

        integrations.append(CeleryIntegration())
    except DidNotEnable:
        logging.getLogger(__name__).info("Celery integration unavailable for Sentry")

    sentry_sdk.init(
        dsn=dsn,
        environment=os.environ.get("SENTRY_ENVIRONMENT", "production"),
        release=os.environ.get("SENTRY_RELEASE"),
        integrations=integrations,
        traces_sample_rate=_get_sample_rate("SENTRY_TRACES_SAMPLE_RATE", default=0.0),
        profiles_sample_rate=_get_sample_rate("SENTRY_PROFILES_SAMPLE_RATE", default=0.0),
        send_default_pii=send_default_pii,
        before_send=_before_send,
    )
    sentry_sdk.set_tag("service", "school-attendance")
