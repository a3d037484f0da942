"""Production settings overriding the defaults with hardened options."""

from __future__ import annotations

from django.core.exceptions import ImproperlyConfigured

from .base import *  # noqa: F401,F403
from .base import DATABASES as _BASE_DATABASES
from .base import (
    DEFAULT_SECRET_KEY,
    SECRET_KEY,
    build_postgres_database_config,
    configure_environment,
)
from .sentry import initialize_sentry

DEBUG = False

if SECRET_KEY == DEFAULT_SECRET_KEY:
    raise ImproperlyConfigured("DJANGO_SECRET_KEY must be set in production.")

# SQLite is never used in production; fall back to the discrete DB_* variables.
DATABASES = {"default": dict(_BASE_DATABASES["default"])}
if DATABASES["default"].get("ENGINE") == "django.db.backends.sqlite3":
    DATABASES["default"] = build_postgres_database_config()

CELERY_TASK_ALWAYS_EAGER = False
CELERY_TASK_EAGER_PROPAGATES = False

globals().update(
    configure_environment(
        secure_defaults=True,
        default_allowed_hosts=(),
        require_allowed_hosts=True,
        databases=DATABASES,
    )
)

initialize_sentry()
