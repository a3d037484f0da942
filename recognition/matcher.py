"""Labelled nearest-neighbour matching of face embeddings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Sequence

import numpy as np

from . import config
from .pipeline import SUPPORTED_METRICS, is_within_distance_threshold, mean_distance

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "unknown"


@dataclass(frozen=True)
class MatchResult:
    label: str
    distance: Optional[float]
    probe: Optional[np.ndarray] = None

    @property
    def is_unknown(self) -> bool:
        return self.label == UNKNOWN_LABEL


class Matcher(Protocol):
    def find_best_match(self, probe: np.ndarray) -> MatchResult: ...


class DescriptorMatcher:
    """Match a probe embedding against labelled reference descriptors.

    A label's distance is the mean distance to all of its references. The
    closest label wins unless its distance exceeds ``threshold``, in which case
    the result is :data:`UNKNOWN_LABEL`.
    """

    def __init__(
        self,
        references: Mapping[str, Sequence[np.ndarray]],
        threshold: Optional[float] = None,
        metric: Optional[str] = None,
    ) -> None:
        self.threshold = config.distance_threshold() if threshold is None else float(threshold)
        self.metric = (metric or config.distance_metric()).lower()
        if self.metric not in SUPPORTED_METRICS:
            raise ValueError(f"Unsupported distance metric: {self.metric!r}")
        if self.threshold < 0:
            raise ValueError("threshold must be non-negative")
        self._references = {
            label: [np.asarray(vector, dtype=float) for vector in vectors]
            for label, vectors in references.items()
            if len(vectors)
        }

    @property
    def labels(self) -> list[str]:
        return list(self._references)

    def find_best_match(self, probe: np.ndarray) -> MatchResult:
        probe = np.asarray(probe, dtype=float)
        best_label: Optional[str] = None
        best_distance: Optional[float] = None

        for label, references in self._references.items():
            distance = mean_distance(references, probe, self.metric)
            if distance is None:
                continue
            if best_distance is None or distance < best_distance:
                best_label, best_distance = label, distance

        if best_label is None or not is_within_distance_threshold(best_distance, self.threshold):
            logger.debug(
                "No reference within threshold",
                extra={"event": "match", "distance": best_distance, "threshold": self.threshold},
            )
            return MatchResult(UNKNOWN_LABEL, best_distance, probe)
        return MatchResult(best_label, best_distance, probe)
