"""Smoke tests for the production settings module."""

from __future__ import annotations

import importlib
import sys

import pytest

from django.core.exceptions import ImproperlyConfigured

from school_attendance.settings.sentry import scrub_event

_SETTINGS_MODULES = [
    "school_attendance.settings.production",
    "school_attendance.settings.sentry",
    "school_attendance.settings.base",
]


def _reload_production_settings(monkeypatch):
    """Import a fresh copy of the production settings; the originals come back after the test."""

    for module in _SETTINGS_MODULES:
        monkeypatch.delitem(sys.modules, module, raising=False)
    return importlib.import_module("school_attendance.settings.production")


@pytest.fixture
def production_env(monkeypatch):
    monkeypatch.setenv("DJANGO_SECRET_KEY", "a-long-and-random-production-secret")
    monkeypatch.setenv("DJANGO_ALLOWED_HOSTS", "school.example.com, api.school.example.com")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.setenv("DB_NAME", "ci_db")
    monkeypatch.setenv("DB_USER", "ci_user")
    monkeypatch.setenv("DB_PASSWORD", "ci_password")
    monkeypatch.setenv("DB_HOST", "postgres")
    monkeypatch.setenv("DB_PORT", "6543")
    monkeypatch.setenv("DB_CONN_MAX_AGE", "120")
    return monkeypatch


def test_production_database_configuration(production_env):
    settings = _reload_production_settings(production_env)

    database = settings.DATABASES["default"]
    assert database["ENGINE"] == "django.db.backends.postgresql"
    assert database["NAME"] == "ci_db"
    assert database["USER"] == "ci_user"
    assert database["PASSWORD"] == "ci_password"
    assert database["HOST"] == "postgres"
    assert database["PORT"] == "6543"
    assert database["CONN_MAX_AGE"] == 120
    assert database["OPTIONS"]["sslmode"] == "require"


def test_production_security_defaults(production_env):
    settings = _reload_production_settings(production_env)

    assert settings.DEBUG is False
    assert settings.ALLOWED_HOSTS == ["school.example.com", "api.school.example.com"]
    assert settings.SECURE_SSL_REDIRECT is True
    assert settings.SESSION_COOKIE_SECURE is True
    assert settings.CSRF_COOKIE_SECURE is True
    assert settings.SECURE_HSTS_SECONDS == 3600
    assert settings.CELERY_TASK_ALWAYS_EAGER is False


def test_production_requires_allowed_hosts(production_env):
    production_env.delenv("DJANGO_ALLOWED_HOSTS")

    with pytest.raises(ImproperlyConfigured):
        _reload_production_settings(production_env)


def test_production_requires_secret_key(production_env):
    production_env.delenv("DJANGO_SECRET_KEY")

    with pytest.raises(ImproperlyConfigured):
        _reload_production_settings(production_env)


def test_invalid_recognition_threshold_is_rejected(production_env):
    production_env.setenv("RECOGNITION_DISTANCE_THRESHOLD", "not-a-number")

    with pytest.raises(ImproperlyConfigured):
        _reload_production_settings(production_env)


def test_scrub_event_filters_credentials_and_biometrics():
    event = {
        "request": {
            "headers": {"Authorization": "Bearer token", "Accept": "application/json"},
            "data": {"image": "data:image/jpeg;base64,AAAA", "class_id": 3},
        },
        "user": {"id": 7},
    }

    scrubbed = scrub_event(event, send_default_pii=False)

    assert scrubbed["request"]["headers"]["Authorization"] == "[Filtered]"
    assert scrubbed["request"]["headers"]["Accept"] == "application/json"
    assert scrubbed["request"]["data"]["image"] == "[Filtered]"
    assert scrubbed["request"]["data"]["class_id"] == 3
    assert "user" not in scrubbed
