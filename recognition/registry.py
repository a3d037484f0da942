"""In-process registry of live attendance sessions."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, Optional

from asgiref.sync import async_to_sync

from school.repository import DjangoSchoolRepository, SchoolRepository

from . import config, monitoring
from .camera import Camera, build_camera
from .errors import SessionNotFound
from .reconciler import RosterMode
from .session import AttendanceSession
from .vision import VisionBackend, get_vision_backend

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Sessions live in this process only; a server restart forgets them.

    A kiosk tab that is closed never calls stop, so sessions idle for longer
    than ``RECOGNITION_SESSION_IDLE_SECONDS`` are stopped, releasing their
    camera, the next time the registry is used. Starting a new session for a
    class replaces the same owner's previous session for it.
    """

    def __init__(
        self,
        repository_factory: Callable[[], SchoolRepository] = DjangoSchoolRepository,
        vision_factory: Callable[[], VisionBackend] = get_vision_backend,
        camera_factory: Callable[[], Camera] = build_camera,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repository_factory = repository_factory
        self._vision_factory = vision_factory
        self._camera_factory = camera_factory
        self._clock = clock
        self._sessions: dict[str, AttendanceSession] = {}
        self._last_seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def _pop(self, session_id: str) -> Optional[AttendanceSession]:
        self._last_seen.pop(session_id, None)
        return self._sessions.pop(session_id, None)

    def _pop_idle(self, now: float) -> list[AttendanceSession]:
        idle_seconds = config.session_idle_seconds()
        if not idle_seconds:
            return []
        expired = [
            session_id
            for session_id, seen in self._last_seen.items()
            if now - seen > idle_seconds
        ]
        return [session for session in map(self._pop, expired) if session is not None]

    def _stop_all(self, sessions: Iterable[AttendanceSession], reason: str) -> None:
        for session in sessions:
            try:
                async_to_sync(session.stop)()
            except Exception:
                logger.exception(
                    "Failed to stop %s attendance session",
                    reason,
                    extra={"event": "session_evict", "session": session.id},
                )
                continue
            logger.info(
                "Stopped %s attendance session",
                reason,
                extra={"event": "session_evict", "session": session.id, "reason": reason},
            )

    def create(
        self,
        class_id: int,
        *,
        owner_id: Optional[int] = None,
        mode: RosterMode = RosterMode.KIOSK,
        threshold: Optional[float] = None,
    ) -> AttendanceSession:
        session = AttendanceSession(
            class_id,
            self._repository_factory(),
            vision=self._vision_factory(),
            camera=self._camera_factory(),
            mode=mode,
            threshold=threshold,
            owner_id=owner_id,
        )
        with self._lock:
            now = self._clock()
            idle = self._pop_idle(now)
            replaced = []
            if owner_id is not None:
                replaced = [
                    self._pop(existing.id)
                    for existing in list(self._sessions.values())
                    if existing.owner_id == owner_id and existing.class_id == class_id
                ]
            self._sessions[session.id] = session
            self._last_seen[session.id] = now
            monitoring.set_active_sessions(len(self._sessions))
        self._stop_all(idle, "idle")
        self._stop_all(replaced, "replaced")
        logger.info(
            "Attendance session created",
            extra={"event": "session_create", "session": session.id, "class_id": class_id},
        )
        return session

    def get(self, session_id: str) -> AttendanceSession:
        with self._lock:
            now = self._clock()
            idle = self._pop_idle(now)
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_seen[session_id] = now
            if idle:
                monitoring.set_active_sessions(len(self._sessions))
        self._stop_all(idle, "idle")
        if session is None:
            raise SessionNotFound()
        return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._pop(session_id)
            monitoring.set_active_sessions(len(self._sessions))

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


_registry_lock = threading.Lock()
_registry_instance: Optional[SessionRegistry] = None


def get_session_registry() -> SessionRegistry:
    global _registry_instance
    if _registry_instance is None:
        with _registry_lock:
            if _registry_instance is None:
                _registry_instance = SessionRegistry()
    return _registry_instance


def set_session_registry(registry: Optional[SessionRegistry]) -> None:
    """Replace the shared registry; ``None`` resets it to a fresh default."""

    global _registry_instance
    with _registry_lock:
        _registry_instance = registry
