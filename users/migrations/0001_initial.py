"""Create the user profile table."""

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("school", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="UserProfile",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("admin", "Admin"),
                            ("teacher", "Teacher"),
                            ("student", "Student"),
                            ("parent", "Parent"),
                        ],
                        db_index=True,
                        default="student",
                        help_text="The role that decides what the account can see and do.",
                        max_length=16,
                    ),
                ),
                (
                    "photo_url",
                    models.URLField(blank=True, help_text="Avatar shown next to the user's name."),
                ),
                (
                    "user",
                    models.OneToOneField(
                        help_text="The account this profile belongs to.",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "linked_students",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Students a parent or student account may view.",
                        related_name="linked_profiles",
                        to="school.student",
                    ),
                ),
            ],
            options={
                "ordering": ["user__username"],
            },
        ),
    ]
