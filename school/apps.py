"""App configuration for the school app (rosters, attendance, notices)."""

from django.apps import AppConfig


class SchoolConfig(AppConfig):
    """Configuration class for the school app."""

    name = "school"
    default_auto_field = "django.db.models.BigAutoField"
