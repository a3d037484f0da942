"""Tests for the Celery absence alert jobs (run eagerly)."""

import pytest

from django.utils import timezone

from school.domain import AttendanceStatus
from school.models import Notification
from school.repository import DjangoSchoolRepository
from school.tasks import send_absence_alerts, send_daily_absence_alerts

pytestmark = [pytest.mark.django_db, pytest.mark.slow]


@pytest.fixture
def school(make_user):
    repository = DjangoSchoolRepository()
    parent = make_user("parent", "parent")
    first = repository.add_class("Grade 5 - Section A")
    second = repository.add_class("Grade 8 - Section B")
    repository.add_student("Rohan Kumar", first.id, parent_id=parent.id)
    present = repository.add_student("Priya Patel", first.id)
    repository.add_student("Ananya Verma", second.id)
    now = timezone.localtime()
    repository.replace_attendance(present.id, first.id, now.date(), AttendanceStatus.PRESENT, now)
    return first, second, parent


def test_send_absence_alerts_for_one_class(school):
    first, _, parent = school

    result = send_absence_alerts.apply(args=[first.id]).get()

    assert result == {"class_id": first.id, "status": "sent", "absent": 1}
    assert Notification.objects.filter(user=parent, kind="absence").count() == 1


def test_missing_class_is_skipped(school):
    result = send_absence_alerts.apply(args=[404]).get()

    assert result == {"class_id": 404, "status": "missing-class", "absent": 0}


def test_daily_alerts_cover_every_class(school):
    result = send_daily_absence_alerts.apply().get()

    assert result["classes"] == 2
    assert result["absent"] == 2
    assert result["date"] == timezone.localdate().isoformat()
    assert result["failed"] == []


def test_daily_alerts_continue_after_a_class_fails(school, monkeypatch):
    from school import tasks

    first, second, parent = school
    original = tasks.send_absence_notifications

    def flaky(repository, class_id, day):
        if class_id == first.id:
            raise RuntimeError("mail relay down")
        return original(repository, class_id, day)

    monkeypatch.setattr(tasks, "send_absence_notifications", flaky)

    result = send_daily_absence_alerts.apply().get()

    assert result["failed"] == [first.id]
    assert result["classes"] == 1
    assert result["absent"] == 1
    assert not Notification.objects.filter(user=parent, kind="absence").exists()
