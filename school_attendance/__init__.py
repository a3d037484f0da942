"""Project package for the school attendance service."""

from .celery import app as celery_app

__all__ = ["celery_app"]
