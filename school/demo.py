"""Seed a small demo school: staff, families, two classes and recent attendance."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth.models import User
from django.db import transaction
from django.utils import timezone

from src.common import get_random_state
from users.models import Role, UserProfile

from .domain import AttendanceStatus, NotificationKind
from .models import Announcement, AttendanceRecord, Notification, SchoolClass, Student

logger = logging.getLogger(__name__)

# username, full name, email, role
DEMO_USERS = (
    ("admin01", "School Admin", "admin.school@gmail.com", Role.ADMIN),
    ("teacher01", "Rajesh Sharma", "teacher1.school@gmail.com", Role.TEACHER),
    ("teacher02", "Priya Singh", "teacher2.school@gmail.com", Role.TEACHER),
    ("student01", "Rohan Kumar", "student1.school@gmail.com", Role.STUDENT),
    ("student02", "Ananya Verma", "student2.school@gmail.com", Role.STUDENT),
    ("parent01", "Mr. Kumar", "parent1.school@gmail.com", Role.PARENT),
    ("parent02", "Mrs. Verma", "parent2.school@gmail.com", Role.PARENT),
)

# class name, teacher username
DEMO_CLASSES = (
    ("Grade 5 - Section A", "teacher01"),
    ("Grade 8 - Section B", "teacher02"),
)

# key, name, roll number, class name, parent username, notes
DEMO_STUDENTS = (
    ("student01", "Rohan Kumar", "5A-01", "Grade 5 - Section A", "parent01", "Active participant in class."),
    ("student03", "Priya Patel", "5A-02", "Grade 5 - Section A", None, ""),
    ("student04", "Amit Singh", "5A-03", "Grade 5 - Section A", None, ""),
    ("student02", "Ananya Verma", "8B-01", "Grade 8 - Section B", "parent02", "Excellent in mathematics."),
    ("student05", "Vikram Reddy", "8B-02", "Grade 8 - Section B", None, ""),
)

# Which accounts may view which students.
DEMO_LINKS = {
    "student01": ("student01",),
    "student02": ("student02",),
    "parent01": ("student01",),
    "parent02": ("student02",),
}

ABSENCE_PROBABILITY = 0.1


@dataclass
class SeedSummary:
    users: int = 0
    classes: int = 0
    students: int = 0
    attendance: int = 0
    notifications: int = 0
    announcements: int = 0


def _split_name(full_name: str) -> tuple[str, str]:
    first, _, last = full_name.partition(" ")
    return first, last


def _ensure_user(username: str, full_name: str, email: str, role: Role, password: str) -> User:
    first_name, last_name = _split_name(full_name)
    user, created = User.objects.get_or_create(
        username=username,
        defaults={"email": email, "first_name": first_name, "last_name": last_name},
    )
    if created:
        user.set_password(password)
        user.is_staff = role == Role.ADMIN
        user.save()
    UserProfile.objects.update_or_create(
        user=user,
        defaults={"role": role, "photo_url": f"https://picsum.photos/seed/{username}/100"},
    )
    return user


@transaction.atomic
def seed_demo_school(
    *,
    password: str = "demo-pass-123",
    days: int = 60,
    seed: Optional[int] = None,
    today: Optional[dt.date] = None,
) -> SeedSummary:
    """Create (or refresh) the demo school. Safe to run repeatedly.

    Attendance covers the last ``days`` calendar days, skipping weekends, with
    roughly one absence in ten. ``seed`` makes the absences reproducible.
    """

    rng = get_random_state(seed)
    today = today or timezone.localdate()
    summary = SeedSummary()

    users = {
        username: _ensure_user(username, name, email, role, password)
        for username, name, email, role in DEMO_USERS
    }
    summary.users = len(users)

    classes = {}
    for name, teacher_username in DEMO_CLASSES:
        school_class, _ = SchoolClass.objects.update_or_create(
            name=name, defaults={"teacher": users[teacher_username]}
        )
        classes[name] = school_class
    summary.classes = len(classes)

    students = {}
    for key, name, roll_number, class_name, parent_username, notes in DEMO_STUDENTS:
        student, _ = Student.objects.update_or_create(
            roll_number=roll_number,
            school_class=classes[class_name],
            defaults={
                "name": name,
                "notes": notes,
                "parent": users.get(parent_username) if parent_username else None,
                "photo_url": f"https://picsum.photos/seed/{key}/200",
            },
        )
        students[key] = student
    summary.students = len(students)

    for username, student_keys in DEMO_LINKS.items():
        users[username].profile.linked_students.set([students[key] for key in student_keys])

    for offset in range(days):
        day = today - dt.timedelta(days=offset)
        if day.weekday() >= 5:
            continue
        stamp = timezone.make_aware(dt.datetime.combine(day, dt.time(9, 0)))
        for student in students.values():
            status = (
                AttendanceStatus.ABSENT
                if rng.random() < ABSENCE_PROBABILITY
                else AttendanceStatus.PRESENT
            )
            AttendanceRecord.objects.update_or_create(
                student=student,
                date=day,
                defaults={
                    "school_class": student.school_class,
                    "status": status.value,
                    "timestamp": stamp,
                },
            )
            summary.attendance += 1

    now = timezone.now()
    notices = (
        (users["parent01"], "Rohan Kumar was marked absent today.", NotificationKind.ABSENCE, now, False),
        (
            users["parent02"],
            "Parent-Teacher meeting is scheduled for next Friday.",
            NotificationKind.EVENT,
            now - dt.timedelta(days=1),
            True,
        ),
    )
    for user, message, kind, timestamp, is_read in notices:
        _, created = Notification.objects.get_or_create(
            user=user,
            message=message,
            defaults={"kind": kind.value, "timestamp": timestamp, "is_read": is_read},
        )
        summary.notifications += int(created)

    _, created = Announcement.objects.get_or_create(
        message="The school will be closed tomorrow due to heavy rain.",
        defaults={
            "audience": "All",
            "sent_by": users["admin01"].get_full_name(),
            "timestamp": now - dt.timedelta(days=2),
        },
    )
    summary.announcements = int(created)

    logger.info("Demo school seeded", extra={"event": "seed_demo", **summary.__dict__})
    return summary
