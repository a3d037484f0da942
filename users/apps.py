"""App configuration for the users app (roles and profiles)."""

from django.apps import AppConfig


class UsersConfig(AppConfig):
    """Configuration class for the users app."""

    name = "users"
    default_auto_field = "django.db.models.BigAutoField"
