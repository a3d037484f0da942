"""Celery jobs for end-of-day absence alerts."""

from __future__ import annotations

import logging
from typing import Any

from django.db import transaction
from django.utils import timezone

from celery import shared_task

from .exceptions import ClassNotFound
from .notifications import send_absence_notifications
from .repository import DjangoSchoolRepository

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="school.tasks.send_absence_alerts")
def send_absence_alerts(self, class_id: int) -> dict[str, Any]:
    """Notify parents of today's absentees in one class."""

    repository = DjangoSchoolRepository()
    try:
        absent = send_absence_notifications(repository, class_id, timezone.localdate())
    except ClassNotFound:
        logger.warning("Absence alerts skipped; class %s no longer exists.", class_id)
        return {"class_id": class_id, "status": "missing-class", "absent": 0}
    return {"class_id": class_id, "status": "sent", "absent": absent}


@shared_task(bind=True, name="school.tasks.send_daily_absence_alerts")
def send_daily_absence_alerts(self) -> dict[str, Any]:
    """Run absence alerts for every class; scheduled by Celery beat.

    A class that fails is logged and listed under ``failed``; the remaining
    classes are still alerted.
    """

    repository = DjangoSchoolRepository()
    today = timezone.localdate()
    results: dict[int, int] = {}
    failed: list[int] = []
    for school_class in repository.list_classes():
        try:
            with transaction.atomic():
                results[school_class.id] = send_absence_notifications(
                    repository, school_class.id, today
                )
        except Exception:
            logger.exception(
                "Absence alerts failed for class %s",
                school_class.id,
                extra={"event": "absence_alerts", "class_id": school_class.id},
            )
            failed.append(school_class.id)
    return {
        "date": today.isoformat(),
        "classes": len(results),
        "absent": sum(results.values()),
        "failed": failed,
    }


__all__ = ["send_absence_alerts", "send_daily_absence_alerts"]
