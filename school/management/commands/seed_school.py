"""Populate the database with the demo school."""

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from school.demo import seed_demo_school


class Command(BaseCommand):
    help = "Create demo users, classes, students and the last N days of attendance."

    def add_arguments(self, parser) -> None:
        parser.add_argument("--days", type=int, default=60, help="Days of attendance history.")
        parser.add_argument(
            "--seed", type=int, default=None, help="Random seed for reproducible absences."
        )
        parser.add_argument(
            "--password",
            default="demo-pass-123",
            help="Password given to newly created demo accounts.",
        )

    def handle(self, *args, **options) -> None:
        days: int = options["days"]
        if days < 0:
            raise CommandError("--days must be zero or positive")

        summary = seed_demo_school(
            password=options["password"], days=days, seed=options["seed"]
        )
        self.stdout.write(
            self.style.SUCCESS(
                f"Seeded {summary.users} users, {summary.classes} classes, "
                f"{summary.students} students and {summary.attendance} attendance records."
            )
        )
