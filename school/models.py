"""
Database models for classes, students, attendance and school notices.

Face descriptors are stored Fernet-encrypted; see
:class:`school.repository.DjangoSchoolRepository` for the read/write path.
"""

from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone

from .domain import AUDIENCE_ALL, AttendanceStatus, NotificationKind

ATTENDANCE_STATUS_CHOICES = [(status.value, status.value) for status in AttendanceStatus]
NOTIFICATION_KIND_CHOICES = [(kind.value, kind.value.title()) for kind in NotificationKind]
AUDIENCE_CHOICES = [
    (AUDIENCE_ALL, "All"),
    ("admin", "Admin"),
    ("teacher", "Teacher"),
    ("student", "Student"),
    ("parent", "Parent"),
]


class SchoolClass(models.Model):
    """A class section such as "Grade 5 - Section A"."""

    name = models.CharField(max_length=128, help_text="Display name of the class.")
    teacher = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="classes_taught",
        help_text="Teacher responsible for the class.",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "class"
        verbose_name_plural = "classes"

    def __str__(self) -> str:
        return self.name


class Student(models.Model):
    """A student on a class roster, optionally enrolled for face recognition."""

    name = models.CharField(max_length=128)
    roll_number = models.CharField(max_length=32, blank=True)
    school_class = models.ForeignKey(
        SchoolClass,
        on_delete=models.CASCADE,
        related_name="students",
        help_text="The class this student belongs to.",
    )
    photo_url = models.URLField(blank=True)
    notes = models.TextField(blank=True)
    parent = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="children",
        help_text="Parent account that receives absence alerts.",
    )
    face_descriptor = models.BinaryField(
        null=True,
        blank=True,
        editable=False,
        help_text="Encrypted face embedding captured at enrollment.",
    )
    descriptor_updated_at = models.DateTimeField(null=True, blank=True, editable=False)

    class Meta:
        ordering = ["school_class", "roll_number", "name"]
        indexes = [
            models.Index(fields=["school_class", "name"], name="school_student_class_name_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.roll_number})" if self.roll_number else self.name


class AttendanceRecord(models.Model):
    """Attendance for one student on one calendar day."""

    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, related_name="attendance_records"
    )
    school_class = models.ForeignKey(
        SchoolClass, on_delete=models.CASCADE, related_name="attendance_records"
    )
    date = models.DateField(default=timezone.localdate, db_index=True)
    status = models.CharField(max_length=16, choices=ATTENDANCE_STATUS_CHOICES)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-date", "student__name"]
        constraints = [
            models.UniqueConstraint(
                fields=["student", "date"], name="school_attendance_one_per_day"
            ),
        ]
        indexes = [
            models.Index(fields=["school_class", "date"], name="school_att_class_date_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.student.name} - {self.date} - {self.status}"


class Notification(models.Model):
    """A message delivered to a single user."""

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="school_notifications")
    message = models.TextField()
    kind = models.CharField(
        max_length=16, choices=NOTIFICATION_KIND_CHOICES, default=NotificationKind.GENERAL.value
    )
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    is_read = models.BooleanField(default=False)

    class Meta:
        ordering = ["-timestamp"]

    def __str__(self) -> str:
        return f"{self.user.get_username()}: {self.message[:40]}"


class Announcement(models.Model):
    """A broadcast sent by an admin to an audience."""

    message = models.TextField()
    audience = models.CharField(max_length=16, choices=AUDIENCE_CHOICES, default=AUDIENCE_ALL)
    timestamp = models.DateTimeField(default=timezone.now, db_index=True)
    sent_by = models.CharField(max_length=150)

    class Meta:
        ordering = ["-timestamp"]

    def __str__(self) -> str:
        return f"[{self.audience}] {self.message[:40]}"
