"""Tests for the DeepFace-backed vision backend using a stubbed DeepFace module."""

import numpy as np
import pytest

from recognition import monitoring, vision
from recognition.errors import ModelLoadFailure
from recognition.vision import DeepFaceBackend, get_vision_backend, reset_vision_backend


class _FakeDeepFace:
    def __init__(self, representations=None, error=None):
        self.representations = representations or []
        self.error = error
        self.built = []
        self.frames = []

    def build_model(self, model_name):
        self.built.append(model_name)

    def represent(self, img_path, model_name, detector_backend, enforce_detection):
        self.frames.append(img_path)
        if self.error is not None:
            raise self.error
        return self.representations


@pytest.fixture
def deepface(monkeypatch):
    fake = _FakeDeepFace()
    monkeypatch.setattr(vision, "_import_deepface", lambda: fake)
    return fake


def _backend():
    return DeepFaceBackend(model_name="Facenet", detector_backend="opencv", enforce_detection=False)


def test_load_models_builds_model_once(deepface):
    backend = _backend()

    backend.load_models()
    backend.load_models()

    assert deepface.built == ["Facenet"]
    assert backend.loaded
    assert monitoring.metric_value(
        "kiosk_stage_duration_seconds_count", {"stage": "model_load"}
    ) == 1.0


def test_load_failure_is_wrapped(monkeypatch):
    def broken():
        raise ImportError("tensorflow missing")

    monkeypatch.setattr(vision, "_import_deepface", broken)
    backend = _backend()

    with pytest.raises(ModelLoadFailure):
        backend.load_models()

    assert not backend.loaded


def test_detect_faces_returns_every_face(deepface):
    deepface.representations = [
        {"embedding": [1.0, 0.0], "facial_area": {"x": 0, "y": 0, "w": 10, "h": 10}, "face_confidence": 0.9},
        {"embedding": [0.0, 1.0], "facial_area": {"x": 20, "y": 0, "w": 30, "h": 30}, "face_confidence": 0.8},
    ]

    faces = _backend().detect_faces(np.zeros((10, 10, 3), dtype=np.uint8))

    assert [face.box["w"] for face in faces] == [10, 30]
    np.testing.assert_allclose(faces[1].embedding, [0.0, 1.0])
    assert monitoring.metric_value(
        "kiosk_stage_duration_seconds_count", {"stage": "detection"}
    ) == 1.0


def test_whole_frame_fallback_is_not_a_face(deepface):
    deepface.representations = [
        {"embedding": [1.0, 0.0], "facial_area": {"x": 0, "y": 0, "w": 10, "h": 10}, "face_confidence": 0}
    ]

    assert _backend().detect_faces(np.zeros((10, 10, 3), dtype=np.uint8)) == []


def test_enforced_detection_error_means_no_faces(deepface):
    deepface.error = ValueError("Face could not be detected")

    assert _backend().detect_faces(np.zeros((10, 10, 3), dtype=np.uint8)) == []


def test_wide_frames_are_downscaled(deepface):
    _backend().detect_faces(np.zeros((600, 1600, 3), dtype=np.uint8))

    assert deepface.frames[0].shape[1] == vision.MAX_FRAME_WIDTH


def test_shared_backend_reads_settings(settings):
    settings.RECOGNITION_MODEL = "ArcFace"
    reset_vision_backend()
    try:
        backend = get_vision_backend()
        assert backend is get_vision_backend()
        assert backend.model_name == "ArcFace"
    finally:
        reset_vision_backend()
