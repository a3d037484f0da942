"""Run an attendance kiosk against a local webcam from the terminal."""

from __future__ import annotations

import asyncio

from django.core.management.base import BaseCommand, CommandError

from recognition.camera import build_camera
from recognition.reconciler import RosterMode
from recognition.session import AttendanceSession, SessionState
from recognition.vision import get_vision_backend
from school.exceptions import ClassNotFound
from school.repository import DjangoSchoolRepository


class Command(BaseCommand):
    help = "Scan faces from the webcam and mark students of a class present"

    def add_arguments(self, parser):
        parser.add_argument("--class-id", type=int, required=True, help="Class to take attendance for")
        parser.add_argument(
            "--mode",
            choices=[mode.value for mode in RosterMode],
            default=RosterMode.KIOSK.value,
            help="kiosk handles every face in a frame, live only the largest one",
        )
        parser.add_argument(
            "--threshold", type=float, default=None, help="Override the match distance threshold"
        )
        parser.add_argument(
            "--camera",
            choices=["webcam", "upload"],
            default="webcam",
            help="Camera backend (default: webcam)",
        )
        parser.add_argument(
            "--interval", type=float, default=1.0, help="Seconds to wait between scans (default: 1.0)"
        )
        parser.add_argument(
            "--max-scans",
            type=int,
            default=0,
            help="Stop after this many scans; 0 runs until everyone is scanned",
        )

    def handle(self, *args, **options):
        if options["interval"] < 0:
            raise CommandError("--interval must be zero or positive")

        session = AttendanceSession(
            options["class_id"],
            DjangoSchoolRepository(),
            vision=get_vision_backend(),
            camera=build_camera(options["camera"]),
            mode=RosterMode(options["mode"]),
            threshold=options["threshold"],
        )

        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._run(session, options["interval"], options["max_scans"]))
        except ClassNotFound as exc:
            raise CommandError(str(exc)) from exc
        except KeyboardInterrupt:
            self.stdout.write("Interrupted.")
        finally:
            loop.run_until_complete(session.stop())
            loop.run_until_complete(loop.shutdown_asyncgens())
            asyncio.set_event_loop(None)
            loop.close()

        snapshot = session.snapshot()
        self.stdout.write(self.style.SUCCESS(f"Session ended: {snapshot.status}"))

    async def _run(self, session: AttendanceSession, interval: float, max_scans: int) -> None:
        snapshot = await session.start()
        self.stdout.write(snapshot.status)
        if snapshot.state is SessionState.ERROR:
            raise CommandError(snapshot.status)

        snapshot = await session.start_camera()
        self.stdout.write(snapshot.status)
        if snapshot.state is SessionState.ERROR:
            raise CommandError(snapshot.status)

        scans = 0
        while not session.complete and (max_scans <= 0 or scans < max_scans):
            report = await session.scan()
            scans += 1
            self.stdout.write(report.status)
            if interval:
                await asyncio.sleep(interval)

        for entry in reversed(session.snapshot().log):
            self.stdout.write(f"{entry.timestamp:%H:%M:%S}  {entry.student_name}")
        if session.complete:
            self.stdout.write(self.style.SUCCESS("All students scanned!"))
