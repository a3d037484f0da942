"""Absence alerts to parents and admin broadcasts."""

from __future__ import annotations

import datetime as dt
import logging

from .domain import AUDIENCE_ALL, AnnouncementEntry, NotificationKind
from .repository import SchoolRepository

logger = logging.getLogger(__name__)

VALID_AUDIENCES = (AUDIENCE_ALL, "admin", "teacher", "student", "parent")


def send_absence_notifications(repository: SchoolRepository, class_id: int, day: dt.date) -> int:
    """Notify parents of students with no attendance record on ``day``.

    Returns the number of such students, including those without a parent
    account (they are counted but nobody is notified).
    """

    school_class = repository.get_class(class_id)
    recorded = {entry.student_id for entry in repository.attendance_for_class_on(class_id, day)}
    absent = [
        student
        for student in repository.students_for_class(class_id)
        if student.id not in recorded
    ]

    notified = 0
    for student in absent:
        if student.parent_id is None:
            continue
        repository.add_notification(
            student.parent_id,
            f"{student.name} was marked absent from {school_class.name} today. "
            "Please contact the school.",
            NotificationKind.ABSENCE,
        )
        notified += 1

    logger.info(
        "Absence alerts sent for %s",
        school_class.name,
        extra={
            "event": "absence_alerts",
            "class_id": class_id,
            "absent": len(absent),
            "notified": notified,
        },
    )
    return len(absent)


def broadcast_announcement(
    repository: SchoolRepository, message: str, audience: str, sent_by: str
) -> AnnouncementEntry:
    """Record an announcement and drop a general notification to each recipient."""

    if audience not in VALID_AUDIENCES:
        raise ValueError(f"Unknown audience: {audience!r}")
    message = message.strip()
    if not message:
        raise ValueError("Announcement message must not be empty.")

    announcement = repository.add_announcement(message, audience, sent_by)
    recipients = repository.users_for_audience(audience)
    for user_id in recipients:
        repository.add_notification(user_id, message, NotificationKind.GENERAL)

    logger.info(
        "Announcement broadcast",
        extra={"event": "broadcast", "audience": audience, "recipients": len(recipients)},
    )
    return announcement
