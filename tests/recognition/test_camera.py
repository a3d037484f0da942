"""Tests for the webcam and upload camera backends."""

import threading
from types import SimpleNamespace

import numpy as np
import pytest

from django.core.exceptions import ImproperlyConfigured

from recognition import camera as camera_module
from recognition import monitoring
from recognition.camera import UploadCamera, UploadSource, WebcamCamera, WebcamSource, build_camera
from recognition.errors import CameraError, CameraNotFound, CameraPermissionDenied


class _FakeStream:
    def __init__(self, frame=None, limit=None, opened=None):
        self.frame = frame
        self.limit = limit
        self.stopped = threading.Event()
        if opened is not None:
            # imutils VideoStream -> WebcamVideoStream -> cv2.VideoCapture
            self.stream = SimpleNamespace(stream=SimpleNamespace(isOpened=lambda: opened))

    def start(self):
        return self

    def read(self):
        if self.frame is None or self.limit == 0:
            return None
        if self.limit is not None:
            self.limit -= 1
        return self.frame.copy()

    def stop(self):
        self.stopped.set()


def _patch_stream(monkeypatch, factory):
    monkeypatch.setattr(camera_module, "VideoStream", factory)


def test_webcam_request_returns_live_source(monkeypatch):
    stream = _FakeStream(np.full((4, 4, 3), 7, dtype=np.uint8))
    _patch_stream(monkeypatch, lambda src: stream)
    camera = WebcamCamera(src=0, warmup_time=0, first_frame_timeout=1.0)

    source = camera.request_stream()
    try:
        frame = source.read(timeout=1.0)
        assert frame is not None
        assert frame[0, 0, 0] == 7
    finally:
        camera.stop(source)

    assert stream.stopped.is_set()
    assert not source.running
    assert monitoring.metric_value("kiosk_camera_start_total", {"status": "success"}) == 1.0
    assert monitoring.metric_value("kiosk_camera_stop_total", {"status": "success"}) == 1.0


def test_webcam_permission_error_is_reported_separately(monkeypatch):
    def denied(src):
        raise PermissionError("camera busy")

    _patch_stream(monkeypatch, denied)

    with pytest.raises(CameraPermissionDenied) as excinfo:
        WebcamCamera(src=0, warmup_time=0).request_stream()

    assert excinfo.value.kind.retryable
    assert monitoring.metric_value("kiosk_camera_start_total", {"status": "failure"}) == 1.0


def test_webcam_os_error_is_generic_camera_error(monkeypatch):
    def broken(src):
        raise OSError("device error")

    _patch_stream(monkeypatch, broken)

    with pytest.raises(CameraError) as excinfo:
        WebcamCamera(src=0, warmup_time=0).request_stream()

    assert not isinstance(excinfo.value, (CameraPermissionDenied, CameraNotFound))


def test_webcam_without_frames_is_not_found(monkeypatch, tmp_path):
    monkeypatch.setattr(camera_module, "DEVICE_PATH_TEMPLATE", str(tmp_path / "video{index}"))
    stream = _FakeStream(frame=None)
    _patch_stream(monkeypatch, lambda src: stream)

    with pytest.raises(CameraNotFound):
        WebcamCamera(src=3, warmup_time=0, first_frame_timeout=0.05).request_stream()

    assert stream.stopped.is_set()
    assert monitoring.metric_value("kiosk_frame_drop_total") > 0


def test_webcam_that_failed_to_open_without_device_node_is_not_found(monkeypatch, tmp_path):
    monkeypatch.setattr(camera_module, "DEVICE_PATH_TEMPLATE", str(tmp_path / "video{index}"))
    stream = _FakeStream(np.zeros((2, 2, 3), dtype=np.uint8), opened=False)
    _patch_stream(monkeypatch, lambda src: stream)

    with pytest.raises(CameraNotFound):
        WebcamCamera(src=97, warmup_time=0, first_frame_timeout=0.05).request_stream()

    assert stream.stopped.is_set()
    assert monitoring.metric_value("kiosk_camera_start_total", {"status": "failure"}) == 1.0


def test_webcam_with_inaccessible_device_node_is_permission_denied(monkeypatch, tmp_path):
    (tmp_path / "video0").touch()
    monkeypatch.setattr(camera_module, "DEVICE_PATH_TEMPLATE", str(tmp_path / "video{index}"))
    monkeypatch.setattr(camera_module.os, "access", lambda path, mode: False)
    stream = _FakeStream(opened=False)
    _patch_stream(monkeypatch, lambda src: stream)

    with pytest.raises(CameraPermissionDenied) as excinfo:
        WebcamCamera(src=0, warmup_time=0, first_frame_timeout=0.05).request_stream()

    assert excinfo.value.kind.retryable
    assert stream.stopped.is_set()


def test_webcam_silent_but_inaccessible_device_is_permission_denied(monkeypatch, tmp_path):
    (tmp_path / "video1").touch()
    monkeypatch.setattr(camera_module, "DEVICE_PATH_TEMPLATE", str(tmp_path / "video{index}"))
    monkeypatch.setattr(camera_module.os, "access", lambda path, mode: False)
    _patch_stream(monkeypatch, lambda src: _FakeStream(frame=None, opened=True))

    with pytest.raises(CameraPermissionDenied):
        WebcamCamera(src=1, warmup_time=0, first_frame_timeout=0.05).request_stream()


def test_webcam_source_only_returns_newer_frames():
    stream = _FakeStream(np.zeros((2, 2, 3), dtype=np.uint8), limit=1)
    source = WebcamSource(stream)
    try:
        assert source.read(timeout=1.0) is not None
        assert source.read(timeout=0.05) is None
    finally:
        source.close()


def test_upload_source_hands_out_each_frame_once():
    source = UploadSource()
    frame = np.ones((2, 2, 3), dtype=np.uint8)

    source.push(frame)

    assert source.read() is frame
    assert source.read() is None


def test_upload_camera_stop_closes_source():
    camera = UploadCamera()

    source = camera.request_stream()
    camera.stop(source)

    assert source.closed
    assert monitoring.metric_value("kiosk_camera_stop_total", {"status": "success"}) == 1.0


def test_build_camera_uses_configured_backend(settings):
    settings.RECOGNITION_CAMERA_BACKEND = "upload"
    assert isinstance(build_camera(), UploadCamera)
    assert isinstance(build_camera("WEBCAM"), WebcamCamera)

    with pytest.raises(ImproperlyConfigured):
        build_camera("firewire")
