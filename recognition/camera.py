"""Camera access for attendance sessions.

Two backends exist: ``webcam`` reads a local device through imutils'
``VideoStream`` on a capture thread, and ``upload`` receives frames posted by
the browser kiosk page.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Optional, Protocol, Tuple

from django.core.exceptions import ImproperlyConfigured

import numpy as np
from imutils.video import VideoStream

from . import config, monitoring
from .errors import CameraError, CameraNotFound, CameraPermissionDenied

logger = logging.getLogger(__name__)

# V4L2 device node for a camera index.
DEVICE_PATH_TEMPLATE = "/dev/video{index}"


class FrameSource(Protocol):
    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]: ...


class Camera(Protocol):
    def request_stream(self) -> FrameSource: ...

    def stop(self, source: FrameSource) -> None: ...


class WebcamSource:
    """Owns one ``VideoStream`` and keeps the latest frame behind a condition."""

    def __init__(self, stream: VideoStream) -> None:
        self._stream: Optional[VideoStream] = stream
        self._running = True
        self._frame_lock = threading.Condition()
        self._latest_frame: Optional[np.ndarray] = None
        self._latest_frame_id = 0
        self._last_read_id = 0
        self._thread = threading.Thread(target=self._capture_loop, daemon=True)
        self._thread.start()

    @property
    def running(self) -> bool:
        return self._running

    def _capture_loop(self) -> None:
        while self._running and self._stream is not None:
            frame = self._stream.read()
            if frame is None:
                monitoring.record_frame_drop()
                time.sleep(0.01)
                continue

            with self._frame_lock:
                self._latest_frame = frame.copy()
                self._latest_frame_id += 1
                self._frame_lock.notify_all()

    def _wait_for_frame(
        self, after_frame_id: int, timeout: Optional[float]
    ) -> Tuple[Optional[np.ndarray], int]:
        end_time = None if timeout is None else time.monotonic() + max(timeout, 0.0)

        with self._frame_lock:
            while self._running and self._latest_frame_id <= after_frame_id:
                if end_time is None:
                    self._frame_lock.wait()
                    continue
                remaining = end_time - time.monotonic()
                if remaining <= 0:
                    break
                self._frame_lock.wait(timeout=remaining)

            if self._latest_frame is None or self._latest_frame_id <= after_frame_id:
                return None, after_frame_id
            return self._latest_frame.copy(), self._latest_frame_id

    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """Return a frame newer than the last one read, or ``None`` on timeout."""

        if timeout is None:
            timeout = config.frame_timeout_seconds()
        frame, frame_id = self._wait_for_frame(self._last_read_id, timeout)
        if frame is not None:
            self._last_read_id = frame_id
        return frame

    def close(self) -> None:
        if not self._running:
            return
        self._running = False
        with self._frame_lock:
            self._frame_lock.notify_all()
        self._thread.join(timeout=1.0)

        stream, self._stream = self._stream, None
        error: Optional[str] = None
        try:
            if stream is not None:
                stream.stop()
        except Exception as exc:
            error = str(exc)
            raise
        finally:
            self._latest_frame = None
            monitoring.record_camera_stop(error is None, error=error)


class WebcamCamera:
    """Local device camera. A fresh stream is opened for every request.

    ``cv2.VideoCapture`` does not raise when a device is missing or locked, so a
    failed open is diagnosed from the device node: present but not accessible
    means permission was denied, anything else means no camera.
    """

    def __init__(
        self,
        src: Optional[int] = None,
        warmup_time: Optional[float] = None,
        first_frame_timeout: Optional[float] = None,
    ) -> None:
        self._src = config.camera_index() if src is None else src
        self._warmup_time = max(
            0.0, config.camera_warmup_seconds() if warmup_time is None else warmup_time
        )
        self._first_frame_timeout = (
            config.frame_timeout_seconds() if first_frame_timeout is None else first_frame_timeout
        )

    def request_stream(self) -> WebcamSource:
        started = time.perf_counter()
        try:
            stream = VideoStream(src=self._src).start()
        except PermissionError as exc:
            monitoring.record_camera_start(False, time.perf_counter() - started, error=str(exc))
            raise CameraPermissionDenied() from exc
        except OSError as exc:
            monitoring.record_camera_start(False, time.perf_counter() - started, error=str(exc))
            raise CameraError() from exc

        if not _capture_opened(stream):
            stream.stop()
            error = self._unavailable_error()
            monitoring.record_camera_start(False, time.perf_counter() - started, error=error.kind.value)
            raise error

        if self._warmup_time:
            time.sleep(self._warmup_time)

        source = WebcamSource(stream)
        if source.read(timeout=self._first_frame_timeout) is None:
            source.close()
            error = self._unavailable_error()
            monitoring.record_camera_start(False, time.perf_counter() - started, error=error.kind.value)
            raise error

        monitoring.record_camera_start(True, time.perf_counter() - started)
        return source

    def _unavailable_error(self) -> CameraError:
        path = DEVICE_PATH_TEMPLATE.format(index=self._src)
        if os.path.exists(path) and not os.access(path, os.R_OK | os.W_OK):
            return CameraPermissionDenied()
        return CameraNotFound()

    def stop(self, source: FrameSource) -> None:
        if isinstance(source, WebcamSource):
            source.close()


def _capture_opened(stream) -> bool:
    """Whether the ``cv2.VideoCapture`` behind an imutils stream opened its device.

    Streams without a ``cv2.VideoCapture`` (PiCamera) are assumed open and are
    judged by their first frame instead.
    """

    capture = getattr(getattr(stream, "stream", None), "stream", None)
    is_opened = getattr(capture, "isOpened", None)
    if is_opened is None:
        return True
    return bool(is_opened())


class UploadSource:
    """Holds the most recent frame posted by the browser until it is read."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: Optional[np.ndarray] = None
        self.closed = False

    def push(self, frame: np.ndarray) -> None:
        with self._lock:
            self._frame = frame

    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        with self._lock:
            frame, self._frame = self._frame, None
        return frame


class UploadCamera:
    """Camera whose frames arrive with each scan request."""

    def request_stream(self) -> UploadSource:
        monitoring.record_camera_start(True, 0.0)
        return UploadSource()

    def stop(self, source: FrameSource) -> None:
        if isinstance(source, UploadSource):
            source.closed = True
        monitoring.record_camera_stop(True)


def build_camera(backend: Optional[str] = None) -> Camera:
    backend = (backend or config.camera_backend()).lower()
    if backend == "webcam":
        return WebcamCamera()
    if backend == "upload":
        return UploadCamera()
    raise ImproperlyConfigured(
        f"RECOGNITION_CAMERA_BACKEND must be 'upload' or 'webcam', got {backend!r}."
    )
