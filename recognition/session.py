"""Attendance scanning session: an explicit state machine around the kiosk flow.

The flow is load models -> build roster and matcher -> start camera -> scan
frames until everyone is marked or the operator stops. ``transition`` is the
single source of truth for which step may follow which; ``AttendanceSession``
drives it, pushing blocking work off the event loop with ``sync_to_async``.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Mapping, Optional, Sequence

from asgiref.sync import sync_to_async

import numpy as np

from school.attendance import AttendanceWriter
from school.repository import SchoolRepository

from . import monitoring
from .camera import Camera, FrameSource
from .descriptors import DescriptorStore, student_label
from .errors import (
    CameraError,
    ErrorKind,
    InvalidTransition,
    ModelLoadFailure,
    NoMatchableStudents,
    RecognitionError,
    ScanInProgress,
)
from .matcher import DescriptorMatcher, MatchResult, Matcher
from .pipeline import facial_area_size
from .reconciler import (
    LogEntry,
    ReconcileOutcome,
    ReconcileResult,
    RosterMode,
    RosterReconciler,
    SessionRoster,
)
from .vision import DetectedFace, VisionBackend

logger = logging.getLogger(__name__)

STATUS_IDLE = "Session not started."
STATUS_LOADING = "Loading AI models..."
STATUS_READY = "Ready to start camera."
STATUS_STARTING_CAMERA = "Starting camera..."
STATUS_CAMERA_ACTIVE = "Camera active. Ready to scan."
STATUS_SCANNING = "Scanning frame..."
STATUS_CAMERA_STOPPED = "Camera stopped."
STATUS_NO_FRAME = "No frame available from the camera. Please try again."
STATUS_NO_FACES = "No faces detected in this frame."
STATUS_NO_FACE_LIVE = "No face detected in capture. Please try again."
STATUS_NO_MATCH = "No recognized students found in this frame."
STATUS_NO_MATCH_LIVE = "No recognized student found in absent list."
STATUS_ALL_SCANNED = "All students scanned!"


class SessionState(str, Enum):
    IDLE = "idle"
    LOADING_MODELS = "loading_models"
    MODELS_READY = "models_ready"
    CAMERA_OFF = "camera_off"
    CAMERA_ON = "camera_on"
    SCANNING = "scanning"
    ERROR = "error"


class SessionEvent(str, Enum):
    START = "start"
    MODELS_LOADED = "models_loaded"
    LOAD_FAILED = "load_failed"
    NOTHING_TO_SCAN = "nothing_to_scan"
    CAMERA_REQUESTED = "camera_requested"
    CAMERA_STARTED = "camera_started"
    CAMERA_FAILED = "camera_failed"
    SCAN_STARTED = "scan_started"
    SCAN_FINISHED = "scan_finished"
    STOP = "stop"


_TRANSITIONS: Mapping[tuple[SessionState, SessionEvent], SessionState] = {
    (SessionState.IDLE, SessionEvent.START): SessionState.LOADING_MODELS,
    (SessionState.LOADING_MODELS, SessionEvent.MODELS_LOADED): SessionState.MODELS_READY,
    (SessionState.LOADING_MODELS, SessionEvent.LOAD_FAILED): SessionState.ERROR,
    (SessionState.MODELS_READY, SessionEvent.NOTHING_TO_SCAN): SessionState.ERROR,
    (SessionState.MODELS_READY, SessionEvent.CAMERA_REQUESTED): SessionState.CAMERA_OFF,
    (SessionState.CAMERA_OFF, SessionEvent.CAMERA_STARTED): SessionState.CAMERA_ON,
    (SessionState.CAMERA_OFF, SessionEvent.CAMERA_FAILED): SessionState.ERROR,
    (SessionState.CAMERA_ON, SessionEvent.SCAN_STARTED): SessionState.SCANNING,
    (SessionState.SCANNING, SessionEvent.SCAN_FINISHED): SessionState.CAMERA_ON,
}


def transition(
    state: SessionState,
    event: SessionEvent,
    error_kind: Optional[ErrorKind] = None,
) -> SessionState:
    """Return the state that follows ``event`` or raise :class:`InvalidTransition`.

    ``error_kind`` only matters in the error state: a camera error can be left
    by requesting the camera again, anything else needs a stop.
    """

    if event is SessionEvent.STOP:
        if state is SessionState.IDLE:
            raise InvalidTransition(state, event)
        return SessionState.IDLE

    if state is SessionState.ERROR and event is SessionEvent.CAMERA_REQUESTED:
        if error_kind is not None and error_kind.retryable:
            return SessionState.CAMERA_OFF
        raise InvalidTransition(state, event)

    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state, event) from None


MatcherFactory = Callable[[Mapping[str, Sequence[np.ndarray]], Optional[float]], Matcher]


def _default_matcher_factory(
    references: Mapping[str, Sequence[np.ndarray]], threshold: Optional[float]
) -> Matcher:
    return DescriptorMatcher(references, threshold=threshold)


@dataclass(frozen=True)
class ScanReport:
    status: str
    faces: int = 0
    results: tuple[ReconcileResult, ...] = ()
    discarded: bool = False
    complete: bool = False

    @property
    def committed(self) -> list[int]:
        return [
            result.student.id
            for result in self.results
            if result.outcome is ReconcileOutcome.COMMITTED and result.student is not None
        ]


@dataclass(frozen=True)
class SessionSnapshot:
    id: str
    class_id: int
    mode: RosterMode
    state: SessionState
    status: str
    error_kind: Optional[ErrorKind]
    complete: bool
    pending: list[dict] = field(default_factory=list)
    resolved: list[dict] = field(default_factory=list)
    log: list[LogEntry] = field(default_factory=list)

    @property
    def retryable(self) -> bool:
        return self.error_kind is not None and self.error_kind.retryable


class AttendanceSession:
    """One operator's scanning session for one class.

    State changes happen under ``_lock`` because requests for the same session
    may arrive on different threads. ``_generation`` increases on every stop so
    work started before the stop can tell that its results are stale.
    """

    def __init__(
        self,
        class_id: int,
        repository: SchoolRepository,
        *,
        vision: VisionBackend,
        camera: Camera,
        writer: Optional[AttendanceWriter] = None,
        matcher_factory: Optional[MatcherFactory] = None,
        mode: RosterMode = RosterMode.KIOSK,
        threshold: Optional[float] = None,
        owner_id: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.class_id = class_id
        self.mode = RosterMode(mode)
        self.owner_id = owner_id
        self.threshold = threshold
        self._repository = repository
        self._vision = vision
        self._camera = camera
        self._writer = writer or AttendanceWriter(repository)
        self._matcher_factory = matcher_factory or _default_matcher_factory

        self._lock = threading.RLock()
        self._generation = 0
        self._scan_token: Optional[object] = None
        self._source: Optional[FrameSource] = None

        self.state = SessionState.IDLE
        self.status = STATUS_IDLE
        self.error_kind: Optional[ErrorKind] = None
        self.matcher: Optional[Matcher] = None
        self.reconciler: Optional[RosterReconciler] = None

    # -- helpers -------------------------------------------------------

    def _apply(self, event: SessionEvent) -> None:
        self.state = transition(self.state, event, self.error_kind)

    def _fail(self, event: SessionEvent, error: RecognitionError) -> None:
        self._apply(event)
        self.error_kind = error.kind
        self.status = error.status
        monitoring.record_breadcrumb(
            "Attendance session failed",
            level="warning",
            data={"session": self.id, "class_id": self.class_id, "kind": getattr(error.kind, "value", None)},
        )
        logger.warning(
            "Attendance session entered error state: %s",
            error.status,
            extra={"event": "session_error", "session": self.id, "kind": getattr(error.kind, "value", None)},
        )

    @property
    def roster(self) -> Optional[SessionRoster]:
        return self.reconciler.roster if self.reconciler else None

    @property
    def complete(self) -> bool:
        roster = self.roster
        return roster is not None and roster.complete

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            roster = self.roster
            return SessionSnapshot(
                id=self.id,
                class_id=self.class_id,
                mode=self.mode,
                state=self.state,
                status=self.status,
                error_kind=self.error_kind,
                complete=self.complete,
                pending=[
                    {"id": student.id, "name": student.name}
                    for student in (roster.pending.values() if roster else ())
                ],
                resolved=[
                    {"id": student.id, "name": student.name}
                    for student in (roster.resolved.values() if roster else ())
                ],
                log=self.reconciler.log if self.reconciler else [],
            )

    # -- lifecycle -----------------------------------------------------

    async def start(self) -> SessionSnapshot:
        """Load models, then snapshot enrolled descriptors and today's attendance."""

        await sync_to_async(self._repository.get_class, thread_sensitive=True)(self.class_id)

        with self._lock:
            self._apply(SessionEvent.START)
            self.error_kind = None
            self.status = STATUS_LOADING
            generation = self._generation
        monitoring.record_breadcrumb(
            "Attendance session starting",
            data={"session": self.id, "class_id": self.class_id, "mode": self.mode.value},
        )

        try:
            await sync_to_async(self._vision.load_models, thread_sensitive=False)()
        except ModelLoadFailure as exc:
            with self._lock:
                if generation == self._generation:
                    self._fail(SessionEvent.LOAD_FAILED, exc)
            return self.snapshot()

        enrolled = await sync_to_async(
            DescriptorStore(self._repository).descriptors_for_class, thread_sensitive=True
        )(self.class_id)
        students = await sync_to_async(self._repository.students_for_class, thread_sensitive=True)(
            self.class_id
        )
        todays_attendance = await sync_to_async(
            self._repository.attendance_for_class_on, thread_sensitive=True
        )(self.class_id, self._writer.today())

        with self._lock:
            if generation != self._generation:
                logger.info(
                    "Discarding model load for a stopped session",
                    extra={"event": "session_start", "session": self.id},
                )
                return self.snapshot()
            self._apply(SessionEvent.MODELS_LOADED)

            references = {student_label(student.id): [descriptor] for student, descriptor in enrolled}
            if not references:
                self._fail(SessionEvent.NOTHING_TO_SCAN, NoMatchableStudents())
                return self.snapshot()

            self.matcher = self._matcher_factory(references, self.threshold)
            roster = SessionRoster.build(students, todays_attendance, self.mode)
            self.reconciler = RosterReconciler(roster, self._writer)
            self.status = STATUS_ALL_SCANNED if roster.complete else STATUS_READY

        logger.info(
            "Attendance session ready",
            extra={
                "event": "session_start",
                "session": self.id,
                "class_id": self.class_id,
                "enrolled": len(references),
                "pending": len(roster.pending),
            },
        )
        return self.snapshot()

    async def start_camera(self, reported: Optional[CameraError] = None) -> SessionSnapshot:
        """Open the camera stream.

        ``reported`` is a failure the browser hit while opening its own camera;
        the stream is then not requested and the session records that error.
        """

        with self._lock:
            self._apply(SessionEvent.CAMERA_REQUESTED)
            self.error_kind = None
            self.status = STATUS_STARTING_CAMERA
            generation = self._generation

        if reported is not None:
            monitoring.record_camera_start(False, None, error=reported.kind.value)
            with self._lock:
                if generation == self._generation:
                    self._fail(SessionEvent.CAMERA_FAILED, reported)
            return self.snapshot()

        try:
            source = await sync_to_async(self._camera.request_stream, thread_sensitive=False)()
        except CameraError as exc:
            with self._lock:
                if generation == self._generation:
                    self._fail(SessionEvent.CAMERA_FAILED, exc)
            return self.snapshot()

        with self._lock:
            stale = generation != self._generation
            if not stale:
                self._source = source
                self._apply(SessionEvent.CAMERA_STARTED)
                self.status = STATUS_ALL_SCANNED if self.complete else STATUS_CAMERA_ACTIVE
        if stale:
            await sync_to_async(self._camera.stop, thread_sensitive=False)(source)
        else:
            monitoring.record_breadcrumb("Camera started", data={"session": self.id})
        return self.snapshot()

    async def scan(self, frame: Optional[np.ndarray] = None) -> ScanReport:
        """Detect faces in one frame and mark recognised students present.

        ``frame`` is used when given (browser upload); otherwise the next frame
        is read from the camera stream.
        """

        with self._lock:
            if self._scan_token is not None:
                raise ScanInProgress()
            if self.state is SessionState.CAMERA_ON and self.complete:
                self.status = STATUS_ALL_SCANNED
                monitoring.record_scan("complete")
                return ScanReport(STATUS_ALL_SCANNED, complete=True)
            self._apply(SessionEvent.SCAN_STARTED)
            token = object()
            self._scan_token = token
            self.status = STATUS_SCANNING
            generation = self._generation
            source = self._source
            matcher = self.matcher
            reconciler = self.reconciler

        report: Optional[ScanReport] = None
        try:
            report = await self._scan_frame(frame, source, matcher, reconciler, generation)
            return report
        finally:
            with self._lock:
                if self._scan_token is token:
                    self._scan_token = None
                    if self.state is SessionState.SCANNING:
                        self._apply(SessionEvent.SCAN_FINISHED)
                        self.status = report.status if report else STATUS_CAMERA_ACTIVE
            monitoring.record_scan(self._scan_result_label(report))

    @staticmethod
    def _scan_result_label(report: Optional[ScanReport]) -> str:
        if report is None:
            return "error"
        if report.committed:
            return "recognized"
        if report.discarded:
            return "discarded"
        if report.faces:
            return "unrecognized"
        return "no_face"

    async def _scan_frame(
        self,
        frame: Optional[np.ndarray],
        source: Optional[FrameSource],
        matcher: Optional[Matcher],
        reconciler: Optional[RosterReconciler],
        generation: int,
    ) -> ScanReport:
        live = self.mode is RosterMode.LIVE
        if frame is None and source is not None:
            frame = await sync_to_async(source.read, thread_sensitive=False)()
        if frame is None:
            return ScanReport(STATUS_NO_FRAME)

        faces: list[DetectedFace] = await sync_to_async(
            self._vision.detect_faces, thread_sensitive=False
        )(frame)
        if not faces:
            return ScanReport(STATUS_NO_FACE_LIVE if live else STATUS_NO_FACES)
        if live:
            faces = [max(faces, key=lambda face: facial_area_size(face.box))]

        if matcher is None or reconciler is None:
            raise InvalidTransition(self.state, SessionEvent.SCAN_STARTED)
        matches: list[MatchResult] = [matcher.find_best_match(face.embedding) for face in faces]

        results: list[ReconcileResult] = []
        for match in matches:
            if not self._still_scanning(generation):
                logger.info(
                    "Discarding scan results after stop",
                    extra={"event": "scan", "session": self.id, "faces": len(faces)},
                )
                return ScanReport(
                    STATUS_CAMERA_STOPPED,
                    faces=len(faces),
                    results=tuple(results),
                    discarded=True,
                )
            results.append(await sync_to_async(reconciler.apply, thread_sensitive=True)(match))

        return ScanReport(
            self._status_for(results, live),
            faces=len(faces),
            results=tuple(results),
            complete=reconciler.roster.complete,
        )

    def _still_scanning(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation and self.state is SessionState.SCANNING

    @staticmethod
    def _status_for(results: Sequence[ReconcileResult], live: bool) -> str:
        for outcome in (
            ReconcileOutcome.COMMITTED,
            ReconcileOutcome.WRITE_FAILED,
            ReconcileOutcome.ALREADY_PRESENT,
        ):
            matching = [result for result in results if result.outcome is outcome]
            if matching:
                return matching[-1].status or STATUS_NO_MATCH
        return STATUS_NO_MATCH_LIVE if live else STATUS_NO_MATCH

    async def stop(self) -> SessionSnapshot:
        """Release the camera and drop the roster. Stopping an idle session is a no-op."""

        with self._lock:
            if self.state is SessionState.IDLE:
                return self.snapshot()
            self._apply(SessionEvent.STOP)
            self._generation += 1
            self._scan_token = None
            source, self._source = self._source, None
            self.reconciler = None
            self.matcher = None
            self.error_kind = None
            self.status = STATUS_CAMERA_STOPPED

        if source is not None:
            await sync_to_async(self._camera.stop, thread_sensitive=False)(source)
        monitoring.record_breadcrumb("Attendance session stopped", data={"session": self.id})
        logger.info("Attendance session stopped", extra={"event": "session_stop", "session": self.id})
        return self.snapshot()


__all__ = [
    "AttendanceSession",
    "ScanReport",
    "SessionEvent",
    "SessionSnapshot",
    "SessionState",
    "transition",
]
