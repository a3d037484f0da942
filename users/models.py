"""
Role and profile models for the users app.

Authentication itself is Django's; this module only records which of the four
school roles an account plays and which students it may see.
"""

from django.contrib.auth.models import User
from django.db import models


class Role(models.TextChoices):
    """School roles. Permissions in :mod:`users.permissions` key off these."""

    ADMIN = "admin", "Admin"
    TEACHER = "teacher", "Teacher"
    STUDENT = "student", "Student"
    PARENT = "parent", "Parent"


class UserProfile(models.Model):
    """Extra information attached to each account."""

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name="profile",
        help_text="The account this profile belongs to.",
    )
    role = models.CharField(
        max_length=16,
        choices=Role.choices,
        default=Role.STUDENT,
        db_index=True,
        help_text="The role that decides what the account can see and do.",
    )
    photo_url = models.URLField(blank=True, help_text="Avatar shown next to the user's name.")
    linked_students = models.ManyToManyField(
        "school.Student",
        blank=True,
        related_name="linked_profiles",
        help_text="Students a parent or student account may view.",
    )

    class Meta:
        ordering = ["user__username"]

    def __str__(self) -> str:
        return f"{self.user.get_username()} ({self.get_role_display()})"

    @property
    def display_name(self) -> str:
        return self.user.get_full_name() or self.user.get_username()
