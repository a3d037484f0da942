"""Tests for absence alerts and announcement broadcasts."""

import datetime as dt

import pytest

from school.domain import AUDIENCE_ALL, AttendanceStatus, NotificationKind
from school.notifications import broadcast_announcement, send_absence_notifications
from school.repository import InMemorySchoolRepository

DAY = dt.date(2024, 5, 6)
STAMP = dt.datetime(2024, 5, 6, 9, 0, tzinfo=dt.timezone.utc)


@pytest.fixture
def school():
    repository = InMemorySchoolRepository()
    parent = repository.add_user("Mr. Kumar", "parent")
    school_class = repository.add_class("Grade 5 - Section A")
    rohan = repository.add_student("Rohan Kumar", school_class.id, parent_id=parent)
    priya = repository.add_student("Priya Patel", school_class.id)
    amit = repository.add_student("Amit Singh", school_class.id)
    return repository, school_class, parent, (rohan, priya, amit)


def test_parents_of_students_without_record_are_notified(school):
    repository, school_class, parent, (rohan, priya, amit) = school
    repository.replace_attendance(amit.id, school_class.id, DAY, AttendanceStatus.PRESENT, STAMP)

    absent = send_absence_notifications(repository, school_class.id, DAY)

    assert absent == 2
    [notification] = repository.notifications_for_user(parent)
    assert notification.kind is NotificationKind.ABSENCE
    assert "Rohan Kumar" in notification.message
    assert school_class.name in notification.message


def test_explicit_absent_record_is_not_alerted(school):
    repository, school_class, parent, (rohan, _, _) = school
    repository.replace_attendance(rohan.id, school_class.id, DAY, AttendanceStatus.ABSENT, STAMP)

    send_absence_notifications(repository, school_class.id, DAY)

    assert repository.notifications_for_user(parent) == []


def test_broadcast_reaches_every_non_admin(school):
    repository, _, parent, _ = school
    admin = repository.add_user("Principal", "admin")
    teacher = repository.add_user("Ms. Singh", "teacher")

    announcement = broadcast_announcement(repository, "  School closed tomorrow.  ", AUDIENCE_ALL, "Principal")

    assert announcement.message == "School closed tomorrow."
    assert repository.announcements() == [announcement]
    assert [n.message for n in repository.notifications_for_user(teacher)] == ["School closed tomorrow."]
    assert len(repository.notifications_for_user(parent)) == 1
    assert repository.notifications_for_user(admin) == []


def test_broadcast_to_single_role(school):
    repository, _, parent, _ = school
    teacher = repository.add_user("Ms. Singh", "teacher")

    broadcast_announcement(repository, "Staff meeting at 3pm.", "teacher", "Principal")

    assert len(repository.notifications_for_user(teacher)) == 1
    assert repository.notifications_for_user(parent) == []


@pytest.mark.parametrize("message,audience", [("Hello", "janitors"), ("   ", AUDIENCE_ALL)])
def test_broadcast_validation(school, message, audience):
    repository = school[0]

    with pytest.raises(ValueError):
        broadcast_announcement(repository, message, audience, "Principal")

    assert repository.announcements() == []
