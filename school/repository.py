"""Persistence for rosters, attendance and notices behind a small protocol.

The kiosk core only talks to :class:`SchoolRepository`. Production wires in
:class:`DjangoSchoolRepository`; the in-memory variant keeps the same semantics
without a database and backs the session tests.
"""

from __future__ import annotations

import datetime as dt
import itertools
import logging
import threading
from dataclasses import replace
from typing import Iterable, Optional, Protocol, Sequence

from django.contrib.auth.models import User
from django.db import transaction
from django.utils import timezone

from src.common import FaceDataEncryption, InvalidToken

from .domain import (
    AUDIENCE_ALL,
    AnnouncementEntry,
    AttendanceEntry,
    AttendanceStatus,
    ClassRecord,
    NotificationEntry,
    NotificationKind,
    StudentRecord,
)
from .exceptions import ClassNotFound, StudentNotFound
from .models import Announcement, AttendanceRecord, Notification, SchoolClass, Student

logger = logging.getLogger(__name__)

_STUDENT_FIELDS = {"name", "roll_number", "photo_url", "notes", "parent_id", "class_id"}


def _month_bounds(year: int, month: int) -> tuple[dt.date, dt.date]:
    first = dt.date(year, month, 1)
    next_month = dt.date(year + month // 12, month % 12 + 1, 1)
    return first, next_month - dt.timedelta(days=1)


class SchoolRepository(Protocol):
    """Operations the attendance core and the API need from storage."""

    def get_class(self, class_id: int) -> ClassRecord: ...

    def list_classes(self, teacher_id: Optional[int] = None) -> list[ClassRecord]: ...

    def add_class(self, name: str, teacher_id: Optional[int] = None) -> ClassRecord: ...

    def students_for_class(self, class_id: int) -> list[StudentRecord]: ...

    def get_student(self, student_id: int) -> StudentRecord: ...

    def students_by_ids(self, student_ids: Iterable[int]) -> list[StudentRecord]: ...

    def add_student(self, name: str, class_id: int, **fields) -> StudentRecord: ...

    def update_student(self, student_id: int, **changes) -> StudentRecord: ...

    def set_descriptor(self, student_id: int, descriptor: Sequence[float]) -> StudentRecord: ...

    def attendance_for_class_on(self, class_id: int, day: dt.date) -> list[AttendanceEntry]: ...

    def attendance_for_class_between(
        self, class_id: int, start: dt.date, end: dt.date
    ) -> list[AttendanceEntry]: ...

    def attendance_for_student_in_month(
        self, student_id: int, year: int, month: int
    ) -> list[AttendanceEntry]: ...

    def replace_attendance(
        self,
        student_id: int,
        class_id: int,
        day: dt.date,
        status: AttendanceStatus,
        timestamp: dt.datetime,
    ) -> AttendanceEntry: ...

    def notifications_for_user(self, user_id: int) -> list[NotificationEntry]: ...

    def add_notification(
        self,
        user_id: int,
        message: str,
        kind: NotificationKind,
        timestamp: Optional[dt.datetime] = None,
    ) -> NotificationEntry: ...

    def announcements(self) -> list[AnnouncementEntry]: ...

    def add_announcement(
        self,
        message: str,
        audience: str,
        sent_by: str,
        timestamp: Optional[dt.datetime] = None,
    ) -> AnnouncementEntry: ...

    def users_for_audience(self, audience: str) -> list[int]: ...


class DjangoSchoolRepository:
    """ORM-backed repository. Descriptors are encrypted with Fernet at rest."""

    def __init__(self, encryption: Optional[FaceDataEncryption] = None) -> None:
        self._encryption = encryption or FaceDataEncryption()

    # -- conversion ---------------------------------------------------

    def _descriptor_of(self, student) -> Optional[tuple[float, ...]]:
        token = student.face_descriptor
        if not token:
            return None
        try:
            return self._encryption.decrypt_descriptor(bytes(token))
        except InvalidToken:
            logger.warning(
                "Failed to decrypt face descriptor for student %s; treating as not enrolled.",
                student.pk,
                extra={"event": "descriptor_decrypt_failed", "student_id": student.pk},
            )
            return None

    def _student_record(self, student) -> StudentRecord:
        return StudentRecord(
            id=student.pk,
            name=student.name,
            class_id=student.school_class_id,
            roll_number=student.roll_number,
            photo_url=student.photo_url,
            notes=student.notes,
            parent_id=student.parent_id,
            descriptor=self._descriptor_of(student),
        )

    @staticmethod
    def _class_record(school_class) -> ClassRecord:
        teacher = school_class.teacher
        if teacher is None:
            teacher_name = "Unassigned"
        else:
            teacher_name = teacher.get_full_name() or teacher.get_username()
        return ClassRecord(
            id=school_class.pk,
            name=school_class.name,
            teacher_id=school_class.teacher_id,
            teacher_name=teacher_name,
        )

    @staticmethod
    def _attendance_entry(record) -> AttendanceEntry:
        return AttendanceEntry(
            id=record.pk,
            student_id=record.student_id,
            class_id=record.school_class_id,
            date=record.date,
            status=AttendanceStatus(record.status),
            timestamp=record.timestamp,
        )

    @staticmethod
    def _notification_entry(notification) -> NotificationEntry:
        return NotificationEntry(
            id=notification.pk,
            user_id=notification.user_id,
            message=notification.message,
            kind=NotificationKind(notification.kind),
            timestamp=notification.timestamp,
            is_read=notification.is_read,
        )

    @staticmethod
    def _announcement_entry(announcement) -> AnnouncementEntry:
        return AnnouncementEntry(
            id=announcement.pk,
            message=announcement.message,
            audience=announcement.audience,
            timestamp=announcement.timestamp,
            sent_by=announcement.sent_by,
        )

    # -- classes ------------------------------------------------------

    def get_class(self, class_id: int) -> ClassRecord:
        try:
            school_class = SchoolClass.objects.select_related("teacher").get(pk=class_id)
        except SchoolClass.DoesNotExist as exc:
            raise ClassNotFound(class_id) from exc
        return self._class_record(school_class)

    def list_classes(self, teacher_id: Optional[int] = None) -> list[ClassRecord]:
        queryset = SchoolClass.objects.select_related("teacher")
        if teacher_id is not None:
            queryset = queryset.filter(teacher_id=teacher_id)
        return [self._class_record(school_class) for school_class in queryset]

    def add_class(self, name: str, teacher_id: Optional[int] = None) -> ClassRecord:
        school_class = SchoolClass.objects.create(name=name, teacher_id=teacher_id)
        return self.get_class(school_class.pk)

    # -- students -----------------------------------------------------

    def students_for_class(self, class_id: int) -> list[StudentRecord]:
        return [
            self._student_record(student)
            for student in Student.objects.filter(school_class_id=class_id)
        ]

    def get_student(self, student_id: int) -> StudentRecord:
        try:
            student = Student.objects.get(pk=student_id)
        except Student.DoesNotExist as exc:
            raise StudentNotFound(student_id) from exc
        return self._student_record(student)

    def students_by_ids(self, student_ids: Iterable[int]) -> list[StudentRecord]:
        return [
            self._student_record(student)
            for student in Student.objects.filter(pk__in=list(student_ids))
        ]

    def add_student(self, name: str, class_id: int, **fields) -> StudentRecord:
        if not SchoolClass.objects.filter(pk=class_id).exists():
            raise ClassNotFound(class_id)
        unknown = set(fields) - (_STUDENT_FIELDS - {"name", "class_id"})
        if unknown:
            raise TypeError(f"Unexpected student fields: {sorted(unknown)}")
        student = Student.objects.create(name=name, school_class_id=class_id, **fields)
        return self._student_record(student)

    def update_student(self, student_id: int, **changes) -> StudentRecord:
        unknown = set(changes) - _STUDENT_FIELDS
        if unknown:
            raise TypeError(f"Unexpected student fields: {sorted(unknown)}")
        if "class_id" in changes:
            class_id = changes.pop("class_id")
            if not SchoolClass.objects.filter(pk=class_id).exists():
                raise ClassNotFound(class_id)
            changes["school_class_id"] = class_id
        updated = Student.objects.filter(pk=student_id).update(**changes) if changes else None
        if updated == 0:
            raise StudentNotFound(student_id)
        return self.get_student(student_id)

    def set_descriptor(self, student_id: int, descriptor: Sequence[float]) -> StudentRecord:
        token = self._encryption.encrypt_descriptor(descriptor)
        updated = Student.objects.filter(pk=student_id).update(
            face_descriptor=token, descriptor_updated_at=timezone.now()
        )
        if not updated:
            raise StudentNotFound(student_id)
        return self.get_student(student_id)

    # -- attendance ---------------------------------------------------

    def attendance_for_class_on(self, class_id: int, day: dt.date) -> list[AttendanceEntry]:
        queryset = AttendanceRecord.objects.filter(school_class_id=class_id, date=day)
        return [self._attendance_entry(record) for record in queryset]

    def attendance_for_class_between(
        self, class_id: int, start: dt.date, end: dt.date
    ) -> list[AttendanceEntry]:
        queryset = AttendanceRecord.objects.filter(
            school_class_id=class_id, date__gte=start, date__lte=end
        ).order_by("date", "student_id")
        return [self._attendance_entry(record) for record in queryset]

    def attendance_for_student_in_month(
        self, student_id: int, year: int, month: int
    ) -> list[AttendanceEntry]:
        first, last = _month_bounds(year, month)
        queryset = AttendanceRecord.objects.filter(
            student_id=student_id, date__gte=first, date__lte=last
        ).order_by("date")
        return [self._attendance_entry(record) for record in queryset]

    def replace_attendance(
        self,
        student_id: int,
        class_id: int,
        day: dt.date,
        status: AttendanceStatus,
        timestamp: dt.datetime,
    ) -> AttendanceEntry:
        with transaction.atomic():
            AttendanceRecord.objects.filter(student_id=student_id, date=day).delete()
            record = AttendanceRecord.objects.create(
                student_id=student_id,
                school_class_id=class_id,
                date=day,
                status=status.value,
                timestamp=timestamp,
            )
        return self._attendance_entry(record)

    # -- notices ------------------------------------------------------

    def notifications_for_user(self, user_id: int) -> list[NotificationEntry]:
        queryset = Notification.objects.filter(user_id=user_id).order_by("-timestamp", "-pk")
        return [self._notification_entry(notification) for notification in queryset]

    def add_notification(
        self,
        user_id: int,
        message: str,
        kind: NotificationKind,
        timestamp: Optional[dt.datetime] = None,
    ) -> NotificationEntry:
        notification = Notification.objects.create(
            user_id=user_id,
            message=message,
            kind=NotificationKind(kind).value,
            timestamp=timestamp or timezone.now(),
        )
        return self._notification_entry(notification)

    def announcements(self) -> list[AnnouncementEntry]:
        return [
            self._announcement_entry(announcement)
            for announcement in Announcement.objects.order_by("-timestamp", "-pk")
        ]

    def add_announcement(
        self,
        message: str,
        audience: str,
        sent_by: str,
        timestamp: Optional[dt.datetime] = None,
    ) -> AnnouncementEntry:
        announcement = Announcement.objects.create(
            message=message,
            audience=audience,
            sent_by=sent_by,
            timestamp=timestamp or timezone.now(),
        )
        return self._announcement_entry(announcement)

    def users_for_audience(self, audience: str) -> list[int]:
        from users.models import Role

        queryset = User.objects.filter(is_active=True, profile__isnull=False)
        if audience == AUDIENCE_ALL:
            queryset = queryset.exclude(profile__role=Role.ADMIN)
        else:
            queryset = queryset.filter(profile__role=Role(audience))
        return list(queryset.order_by("pk").values_list("pk", flat=True))


class InMemorySchoolRepository:
    """Dictionary-backed repository with the same semantics as the ORM one."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self.users: dict[int, tuple[str, str]] = {}
        self.classes: dict[int, ClassRecord] = {}
        self.students: dict[int, StudentRecord] = {}
        self.attendance: dict[int, AttendanceEntry] = {}
        self.notifications: dict[int, NotificationEntry] = {}
        self._announcements: dict[int, AnnouncementEntry] = {}

    def _next_id(self) -> int:
        return next(self._ids)

    def add_user(self, name: str, role: str, user_id: Optional[int] = None) -> int:
        with self._lock:
            user_id = user_id if user_id is not None else self._next_id()
            self.users[user_id] = (name, role)
            return user_id

    # -- classes ------------------------------------------------------

    def get_class(self, class_id: int) -> ClassRecord:
        try:
            return self.classes[class_id]
        except KeyError as exc:
            raise ClassNotFound(class_id) from exc

    def list_classes(self, teacher_id: Optional[int] = None) -> list[ClassRecord]:
        classes = sorted(self.classes.values(), key=lambda record: record.name)
        if teacher_id is None:
            return classes
        return [record for record in classes if record.teacher_id == teacher_id]

    def add_class(self, name: str, teacher_id: Optional[int] = None) -> ClassRecord:
        with self._lock:
            teacher_name = self.users[teacher_id][0] if teacher_id in self.users else "Unassigned"
            record = ClassRecord(
                id=self._next_id(), name=name, teacher_id=teacher_id, teacher_name=teacher_name
            )
            self.classes[record.id] = record
            return record

    # -- students -----------------------------------------------------

    def students_for_class(self, class_id: int) -> list[StudentRecord]:
        return [record for record in self.students.values() if record.class_id == class_id]

    def get_student(self, student_id: int) -> StudentRecord:
        try:
            return self.students[student_id]
        except KeyError as exc:
            raise StudentNotFound(student_id) from exc

    def students_by_ids(self, student_ids: Iterable[int]) -> list[StudentRecord]:
        wanted = set(student_ids)
        return [record for record in self.students.values() if record.id in wanted]

    def add_student(self, name: str, class_id: int, **fields) -> StudentRecord:
        self.get_class(class_id)
        with self._lock:
            record = StudentRecord(id=self._next_id(), name=name, class_id=class_id, **fields)
            self.students[record.id] = record
            return record

    def update_student(self, student_id: int, **changes) -> StudentRecord:
        unknown = set(changes) - _STUDENT_FIELDS
        if unknown:
            raise TypeError(f"Unexpected student fields: {sorted(unknown)}")
        with self._lock:
            record = self.get_student(student_id)
            if "class_id" in changes:
                self.get_class(changes["class_id"])
            updated = replace(record, **changes)
            self.students[student_id] = updated
            return updated

    def set_descriptor(self, student_id: int, descriptor: Sequence[float]) -> StudentRecord:
        with self._lock:
            record = self.get_student(student_id)
            updated = replace(record, descriptor=tuple(float(value) for value in descriptor))
            self.students[student_id] = updated
            return updated

    # -- attendance ---------------------------------------------------

    def attendance_for_class_on(self, class_id: int, day: dt.date) -> list[AttendanceEntry]:
        return [
            entry
            for entry in self.attendance.values()
            if entry.class_id == class_id and entry.date == day
        ]

    def attendance_for_class_between(
        self, class_id: int, start: dt.date, end: dt.date
    ) -> list[AttendanceEntry]:
        entries = [
            entry
            for entry in self.attendance.values()
            if entry.class_id == class_id and start <= entry.date <= end
        ]
        return sorted(entries, key=lambda entry: (entry.date, entry.student_id))

    def attendance_for_student_in_month(
        self, student_id: int, year: int, month: int
    ) -> list[AttendanceEntry]:
        first, last = _month_bounds(year, month)
        entries = [
            entry
            for entry in self.attendance.values()
            if entry.student_id == student_id and first <= entry.date <= last
        ]
        return sorted(entries, key=lambda entry: entry.date)

    def replace_attendance(
        self,
        student_id: int,
        class_id: int,
        day: dt.date,
        status: AttendanceStatus,
        timestamp: dt.datetime,
    ) -> AttendanceEntry:
        with self._lock:
            stale = [
                key
                for key, entry in self.attendance.items()
                if entry.student_id == student_id and entry.date == day
            ]
            for key in stale:
                del self.attendance[key]
            entry = AttendanceEntry(
                id=self._next_id(),
                student_id=student_id,
                class_id=class_id,
                date=day,
                status=status,
                timestamp=timestamp,
            )
            self.attendance[entry.id] = entry
            return entry

    # -- notices ------------------------------------------------------

    def notifications_for_user(self, user_id: int) -> list[NotificationEntry]:
        entries = [entry for entry in self.notifications.values() if entry.user_id == user_id]
        return sorted(entries, key=lambda entry: (entry.timestamp, entry.id), reverse=True)

    def add_notification(
        self,
        user_id: int,
        message: str,
        kind: NotificationKind,
        timestamp: Optional[dt.datetime] = None,
    ) -> NotificationEntry:
        with self._lock:
            entry = NotificationEntry(
                id=self._next_id(),
                user_id=user_id,
                message=message,
                kind=NotificationKind(kind),
                timestamp=timestamp or timezone.now(),
            )
            self.notifications[entry.id] = entry
            return entry

    def announcements(self) -> list[AnnouncementEntry]:
        return sorted(
            self._announcements.values(),
            key=lambda entry: (entry.timestamp, entry.id),
            reverse=True,
        )

    def add_announcement(
        self,
        message: str,
        audience: str,
        sent_by: str,
        timestamp: Optional[dt.datetime] = None,
    ) -> AnnouncementEntry:
        with self._lock:
            entry = AnnouncementEntry(
                id=self._next_id(),
                message=message,
                audience=audience,
                timestamp=timestamp or timezone.now(),
                sent_by=sent_by,
            )
            self._announcements[entry.id] = entry
            return entry

    def users_for_audience(self, audience: str) -> list[int]:
        if audience == AUDIENCE_ALL:
            return sorted(uid for uid, (_, role) in self.users.items() if role != "admin")
        return sorted(uid for uid, (_, role) in self.users.items() if role == audience)
