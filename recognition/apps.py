"""App configuration for the recognition app (face matching and kiosk sessions)."""

from django.apps import AppConfig


class RecognitionConfig(AppConfig):
    """The recognition app has no models; sessions live in process memory."""

    name = "recognition"
    verbose_name = "Face recognition kiosk"
