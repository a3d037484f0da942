"""Face detection and embedding through DeepFace.

DeepFace pulls in TensorFlow, so it is imported lazily the first time models
are loaded. Everything above this module only sees :class:`DetectedFace`.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import numpy as np
from imutils import resize

from . import config, monitoring
from .errors import ModelLoadFailure
from .pipeline import FacialArea, extract_all_embeddings

logger = logging.getLogger(__name__)

# Frames wider than this are downscaled before detection.
MAX_FRAME_WIDTH = 800


@dataclass(frozen=True)
class DetectedFace:
    embedding: np.ndarray
    box: Optional[FacialArea]


class VisionBackend(Protocol):
    def load_models(self) -> None: ...

    def detect_faces(self, frame: np.ndarray) -> list[DetectedFace]: ...


def _import_deepface() -> Any:
    from deepface import DeepFace

    return DeepFace


class DeepFaceBackend:
    """Production :class:`VisionBackend` backed by ``DeepFace.represent``."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        detector_backend: Optional[str] = None,
        enforce_detection: Optional[bool] = None,
    ) -> None:
        self.model_name = model_name or config.model_name()
        self.detector_backend = detector_backend or config.detector_backend()
        self.enforce_detection = (
            config.enforce_detection() if enforce_detection is None else enforce_detection
        )
        self._deepface: Any = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._deepface is not None

    def load_models(self) -> None:
        with self._lock:
            if self._deepface is not None:
                return
            started = time.perf_counter()
            try:
                deepface = _import_deepface()
                deepface.build_model(model_name=self.model_name)
            except Exception as exc:
                logger.exception(
                    "Failed to load recognition models",
                    extra={"event": "model_load", "model": self.model_name},
                )
                raise ModelLoadFailure() from exc
            duration = time.perf_counter() - started
            monitoring.observe_stage_duration("model_load", duration, threshold_key="model_load")
            logger.info(
                "Recognition models loaded",
                extra={"event": "model_load", "model": self.model_name, "duration_seconds": duration},
            )
            self._deepface = deepface

    def detect_faces(self, frame: np.ndarray) -> list[DetectedFace]:
        if self._deepface is None:
            self.load_models()

        if frame.ndim >= 2 and frame.shape[1] > MAX_FRAME_WIDTH:
            frame = resize(frame, width=MAX_FRAME_WIDTH)

        started = time.perf_counter()
        try:
            representations = self._deepface.represent(
                img_path=frame,
                model_name=self.model_name,
                detector_backend=self.detector_backend,
                enforce_detection=self.enforce_detection,
            )
        except ValueError:
            # DeepFace raises ValueError when enforce_detection finds no face.
            logger.debug("DeepFace found no face in frame", extra={"event": "detect"})
            return []
        finally:
            monitoring.observe_stage_duration(
                "detection", time.perf_counter() - started, threshold_key="detection"
            )

        if isinstance(representations, list):
            # With enforce_detection off DeepFace embeds the whole frame when no
            # face is found and reports a confidence of zero for it.
            representations = [
                item
                for item in representations
                if not (isinstance(item, dict) and item.get("face_confidence") == 0)
            ]

        return [
            DetectedFace(embedding=embedding, box=area)
            for embedding, area in extract_all_embeddings(representations)
        ]


_backend_lock = threading.Lock()
_backend_instance: Optional[DeepFaceBackend] = None


def get_vision_backend() -> DeepFaceBackend:
    """Return the shared DeepFace backend so models are loaded once per process."""

    global _backend_instance
    if _backend_instance is None:
        with _backend_lock:
            if _backend_instance is None:
                _backend_instance = DeepFaceBackend()
    return _backend_instance


def reset_vision_backend() -> None:
    global _backend_instance
    _backend_instance = None
