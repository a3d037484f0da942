"""
Django settings for the school attendance service.

Everything environment specific is read from environment variables so the same
module serves local development, the test suite and (via ``production.py``)
hardened deployments.
"""

import json
import os
import sys
import warnings
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from django.core.exceptions import ImproperlyConfigured

import dj_database_url
from cryptography.fernet import Fernet

BASE_DIR = Path(__file__).resolve().parent.parent.parent
DEV_KEY_CACHE_PATH = Path(
    os.environ.get("DEV_ENCRYPTION_KEY_FILE", BASE_DIR / ".dev_encryption_keys.json")
)


# --- Environment helpers ---


def _get_bool_env(var_name: str, default: bool = False) -> bool:
    """Return a boolean from an environment variable."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default
    return raw_value.lower() in {"1", "true", "yes", "on"}


def _parse_int_env(var_name: str, default: int, *, minimum: int | None = None) -> int:
    """Return an integer from the environment, enforcing an optional minimum."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default

    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"{var_name} must be an integer if provided.") from exc

    if minimum is not None and value < minimum:
        raise ImproperlyConfigured(f"{var_name} must be >= {minimum} if provided.")

    return value


def _get_float_env(
    var_name: str,
    default: float,
    *,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """Return a float from the environment with optional bounds enforcement."""

    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default

    try:
        value = float(raw_value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"{var_name} must be a float if provided.") from exc

    if minimum is not None and value < minimum:
        raise ImproperlyConfigured(f"{var_name} must be >= {minimum} if provided.")
    if maximum is not None and value > maximum:
        raise ImproperlyConfigured(f"{var_name} must be <= {maximum} if provided.")

    return value


def _get_choice_env(var_name: str, default: str, choices: Sequence[str]) -> str:
    """Return a lower-cased value that must be one of ``choices``."""

    value = os.environ.get(var_name, default).strip().lower()
    if value not in choices:
        raise ImproperlyConfigured(f"{var_name} must be one of: {', '.join(choices)}.")
    return value


TESTING = "test" in sys.argv or (len(sys.argv) > 0 and "pytest" in sys.argv[0])

DEFAULT_SECRET_KEY = "school-attendance-development-key-do-not-deploy"

DEBUG = _get_bool_env("DJANGO_DEBUG", default=not TESTING)

# Development and test runs get the insecure defaults; anything else must be configured.
_RELAXED_DEFAULTS = DEBUG or TESTING

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", DEFAULT_SECRET_KEY)
if SECRET_KEY == DEFAULT_SECRET_KEY and not _RELAXED_DEFAULTS:
    raise ImproperlyConfigured(
        "DJANGO_SECRET_KEY must be set to a secure value when DJANGO_DEBUG is not enabled."
    )


# --- Face descriptor encryption ---


def _validate_fernet_key(key: str | bytes, setting_name: str) -> bytes:
    """Ensure the provided key material is a valid Fernet key."""

    key_bytes = key.encode() if isinstance(key, str) else key
    try:
        Fernet(key_bytes)
    except (ValueError, TypeError) as exc:
        raise ImproperlyConfigured(
            f"{setting_name} must be a valid 32-byte base64-encoded Fernet key."
        ) from exc
    return key_bytes


def _cached_dev_key(var_name: str) -> bytes:
    """Return a development key that survives restarts, generating it once."""

    cache: dict[str, str] = {}
    if DEV_KEY_CACHE_PATH.exists():
        try:
            cache = json.loads(DEV_KEY_CACHE_PATH.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            warnings.warn(f"Ignoring invalid dev key cache file: {exc}")
            cache = {}

    cached_value = cache.get(var_name)
    if cached_value:
        try:
            return _validate_fernet_key(cached_value, var_name)
        except ImproperlyConfigured:
            warnings.warn(f"Ignoring invalid cached {var_name}; regenerating.")

    key_bytes = Fernet.generate_key()
    cache[var_name] = key_bytes.decode()
    try:
        DEV_KEY_CACHE_PATH.write_text(json.dumps(cache, indent=2))
    except OSError as exc:
        warnings.warn(f"Unable to persist dev encryption key cache: {exc}")
    return key_bytes


def _load_face_data_encryption_key() -> bytes:
    """Load the Fernet key used to encrypt stored face descriptors."""

    key = os.environ.get("FACE_DATA_ENCRYPTION_KEY")
    if key:
        return _validate_fernet_key(key, "FACE_DATA_ENCRYPTION_KEY")

    if DEBUG or TESTING:
        return _cached_dev_key("FACE_DATA_ENCRYPTION_KEY")

    raise ImproperlyConfigured(
        "FACE_DATA_ENCRYPTION_KEY environment variable must be set in production environments."
    )


FACE_DATA_ENCRYPTION_KEY = _load_face_data_encryption_key()


# --- Celery ---

CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_TASK_ALWAYS_EAGER = _get_bool_env("CELERY_TASK_ALWAYS_EAGER", default=TESTING)
CELERY_TASK_EAGER_PROPAGATES = CELERY_TASK_ALWAYS_EAGER
CELERY_TIMEZONE = os.environ.get("DJANGO_TIME_ZONE", "Asia/Kolkata")

CELERY_BEAT_SCHEDULE = {
    "daily-absence-alerts": {
        "task": "school.tasks.send_daily_absence_alerts",
        # Seconds between runs; operators usually pin this to the end of the school day.
        "schedule": _parse_int_env("CELERY_ABSENCE_ALERT_SCHEDULE", 86400, minimum=60),
        "options": {"queue": "notifications"},
    },
}


# --- Hosts and transport security ---

LOCALHOST_ALIASES: tuple[str, ...] = ("localhost", "127.0.0.1", "[::1]", "testserver")


def _resolve_allowed_hosts(
    *,
    default_allowed_hosts: Sequence[str],
    require_explicit_hosts: bool,
) -> list[str]:
    """Return the allowed host list based on deployment defaults."""

    allowed_hosts_env = os.environ.get("DJANGO_ALLOWED_HOSTS")
    if allowed_hosts_env:
        return [host.strip() for host in allowed_hosts_env.split(",") if host.strip()]

    if require_explicit_hosts:
        raise ImproperlyConfigured(
            "DJANGO_ALLOWED_HOSTS must be provided (comma separated) when secure defaults are enforced."
        )

    return list(default_allowed_hosts)


def configure_environment(
    *,
    secure_defaults: bool,
    default_allowed_hosts: Sequence[str],
    require_allowed_hosts: bool,
    databases: dict[str, dict[str, Any]],
) -> dict[str, Any]:
    """Return security-sensitive settings for the active environment.

    The caller merges the result into its own module namespace so that
    ``production.py`` overrides what it imported from this module.
    """

    db_options = databases["default"].setdefault("OPTIONS", {})
    if _get_bool_env("DATABASE_SSL_REQUIRE", default=secure_defaults):
        db_options["sslmode"] = os.environ.get("DATABASE_SSLMODE", "require")
    else:
        db_options.pop("sslmode", None)

    return {
        "ALLOWED_HOSTS": _resolve_allowed_hosts(
            default_allowed_hosts=default_allowed_hosts,
            require_explicit_hosts=require_allowed_hosts,
        ),
        "SECURE_SSL_REDIRECT": _get_bool_env(
            "DJANGO_SECURE_SSL_REDIRECT", default=secure_defaults
        ),
        "SECURE_HSTS_SECONDS": _parse_int_env(
            "DJANGO_SECURE_HSTS_SECONDS",
            default=3600 if secure_defaults else 0,
            minimum=0,
        ),
        "SESSION_COOKIE_SECURE": _get_bool_env(
            "DJANGO_SESSION_COOKIE_SECURE", default=secure_defaults
        ),
        "SESSION_COOKIE_HTTPONLY": True,
        "CSRF_COOKIE_SECURE": _get_bool_env("DJANGO_CSRF_COOKIE_SECURE", default=secure_defaults),
    }


# --- Application Configuration ---

INSTALLED_APPS = [
    "users.apps.UsersConfig",
    "school.apps.SchoolConfig",
    "recognition.apps.RecognitionConfig",
    "rest_framework",
    "django_ratelimit",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "school_attendance.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "school_attendance.wsgi.application"
ASGI_APPLICATION = "school_attendance.asgi.application"


# --- Database Configuration ---

default_db_url = os.environ.get("DATABASE_URL", f"sqlite:///{(BASE_DIR / 'db.sqlite3').as_posix()}")
conn_max_age = _parse_int_env("DATABASE_CONN_MAX_AGE", 0, minimum=0)

DATABASES = {
    "default": dj_database_url.parse(default_db_url, conn_max_age=conn_max_age),
}


def build_postgres_database_config() -> dict[str, Any]:
    """Return a PostgreSQL configuration derived from discrete environment variables."""

    return {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.environ.get("DB_NAME", "school_attendance"),
        "USER": os.environ.get("DB_USER", "school_attendance"),
        "PASSWORD": os.environ.get("DB_PASSWORD", "school_attendance"),
        "HOST": os.environ.get("DB_HOST", "localhost"),
        "PORT": os.environ.get("DB_PORT", "5432"),
        "CONN_MAX_AGE": _parse_int_env("DB_CONN_MAX_AGE", 600, minimum=0),
    }


globals().update(
    configure_environment(
        secure_defaults=not _RELAXED_DEFAULTS,
        default_allowed_hosts=LOCALHOST_ALIASES,
        require_allowed_hosts=not _RELAXED_DEFAULTS,
        databases=DATABASES,
    )
)


# --- Cache Configuration ---
# django-ratelimit counts requests in the default cache. LocMemCache is per
# process; multi-process deployments should point REDIS_CACHE_URL at Redis.

_redis_cache_url = os.environ.get("REDIS_CACHE_URL")
if _redis_cache_url:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": _redis_cache_url,
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "school-attendance",
        }
    }
    SILENCED_SYSTEM_CHECKS = [
        "django_ratelimit.E003",
        "django_ratelimit.W001",
    ]


AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# --- Internationalization ---

LANGUAGE_CODE = "en-us"
# Attendance days are local calendar days in the school's time zone.
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = Path(os.environ.get("DJANGO_STATIC_ROOT", BASE_DIR / "staticfiles"))

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# --- REST framework ---

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.IsAuthenticated"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PAGINATION_CLASS": None,
}


# --- Logging ---

LOG_LEVEL = os.environ.get("DJANGO_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "recognition": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "school": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "users": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}


# --- Recognition ---

# Faces whose nearest enrolled descriptor is farther than this are "unknown".
# Lower values are stricter. The default matches the kiosk's historic behaviour.
RECOGNITION_DISTANCE_THRESHOLD = _get_float_env(
    "RECOGNITION_DISTANCE_THRESHOLD", 0.6, minimum=0.0
)
RECOGNITION_DISTANCE_METRIC = _get_choice_env(
    "RECOGNITION_DISTANCE_METRIC",
    "euclidean_l2",
    ("euclidean", "euclidean_l2", "cosine", "manhattan"),
)
RECOGNITION_MODEL = os.environ.get("RECOGNITION_MODEL", "Facenet")
RECOGNITION_DETECTOR_BACKEND = os.environ.get("RECOGNITION_DETECTOR_BACKEND", "opencv")
RECOGNITION_ENFORCE_DETECTION = _get_bool_env("RECOGNITION_ENFORCE_DETECTION", default=False)

RECOGNITION_CAMERA_BACKEND = _get_choice_env(
    "RECOGNITION_CAMERA_BACKEND", "upload", ("upload", "webcam")
)
RECOGNITION_CAMERA_INDEX = _parse_int_env("RECOGNITION_CAMERA_INDEX", 0, minimum=0)
RECOGNITION_CAMERA_WARMUP_SECONDS = _get_float_env(
    "RECOGNITION_CAMERA_WARMUP_SECONDS", 2.0, minimum=0.0
)
RECOGNITION_FRAME_TIMEOUT_SECONDS = _get_float_env(
    "RECOGNITION_FRAME_TIMEOUT_SECONDS", 1.0, minimum=0.0
)

RECOGNITION_KIOSK_LOG_SIZE = _parse_int_env("RECOGNITION_KIOSK_LOG_SIZE", 5, minimum=1)
# Sessions untouched for this long are stopped and forgotten; 0 keeps them forever.
RECOGNITION_SESSION_IDLE_SECONDS = _get_float_env(
    "RECOGNITION_SESSION_IDLE_SECONDS", 900.0, minimum=0.0
)

RATELIMIT_USE_CACHE = "default"
RECOGNITION_SCAN_RATE_LIMIT = os.environ.get("RECOGNITION_SCAN_RATE_LIMIT", "60/m")
RECOGNITION_ENROLL_RATE_LIMIT = os.environ.get("RECOGNITION_ENROLL_RATE_LIMIT", "10/m")
RECOGNITION_MAX_UPLOAD_BYTES = _parse_int_env(
    "RECOGNITION_MAX_UPLOAD_BYTES", 5 * 1024 * 1024, minimum=1024
)
