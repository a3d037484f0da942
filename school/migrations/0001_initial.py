"""Create class, student, attendance, notification and announcement tables."""

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SchoolClass",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("name", models.CharField(help_text="Display name of the class.", max_length=128)),
                (
                    "teacher",
                    models.ForeignKey(
                        blank=True,
                        help_text="Teacher responsible for the class.",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="classes_taught",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "class",
                "verbose_name_plural": "classes",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Student",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("name", models.CharField(max_length=128)),
                ("roll_number", models.CharField(blank=True, max_length=32)),
                ("photo_url", models.URLField(blank=True)),
                ("notes", models.TextField(blank=True)),
                (
                    "face_descriptor",
                    models.BinaryField(
                        blank=True,
                        editable=False,
                        help_text="Encrypted face embedding captured at enrollment.",
                        null=True,
                    ),
                ),
                (
                    "descriptor_updated_at",
                    models.DateTimeField(blank=True, editable=False, null=True),
                ),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        help_text="Parent account that receives absence alerts.",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="children",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "school_class",
                    models.ForeignKey(
                        help_text="The class this student belongs to.",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="students",
                        to="school.schoolclass",
                    ),
                ),
            ],
            options={
                "ordering": ["school_class", "roll_number", "name"],
                "indexes": [
                    models.Index(
                        fields=["school_class", "name"], name="school_student_class_name_idx"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="AttendanceRecord",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                (
                    "date",
                    models.DateField(db_index=True, default=django.utils.timezone.localdate),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("Present", "Present"), ("Absent", "Absent"), ("Late", "Late")],
                        max_length=16,
                    ),
                ),
                ("timestamp", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "school_class",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attendance_records",
                        to="school.schoolclass",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="attendance_records",
                        to="school.student",
                    ),
                ),
            ],
            options={
                "ordering": ["-date", "student__name"],
                "indexes": [
                    models.Index(fields=["school_class", "date"], name="school_att_class_date_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("student", "date"), name="school_attendance_one_per_day"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Notification",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("message", models.TextField()),
                (
                    "kind",
                    models.CharField(
                        choices=[("absence", "Absence"), ("event", "Event"), ("general", "General")],
                        default="general",
                        max_length=16,
                    ),
                ),
                (
                    "timestamp",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now),
                ),
                ("is_read", models.BooleanField(default=False)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="school_notifications",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-timestamp"],
            },
        ),
        migrations.CreateModel(
            name="Announcement",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("message", models.TextField()),
                (
                    "audience",
                    models.CharField(
                        choices=[
                            ("All", "All"),
                            ("admin", "Admin"),
                            ("teacher", "Teacher"),
                            ("student", "Student"),
                            ("parent", "Parent"),
                        ],
                        default="All",
                        max_length=16,
                    ),
                ),
                (
                    "timestamp",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now),
                ),
                ("sent_by", models.CharField(max_length=150)),
            ],
            options={
                "ordering": ["-timestamp"],
            },
        ),
    ]
