"""Pure helpers for turning DeepFace output into comparable face embeddings.

Nothing here touches DeepFace itself, so the embedding coercion, distance
metrics and threshold rules can be covered with synthetic vectors.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

FacialArea = Dict[str, int]

SUPPORTED_METRICS = ("euclidean", "euclidean_l2", "cosine", "manhattan")


def extract_embedding(representation: Any) -> Tuple[Optional[np.ndarray], Optional[FacialArea]]:
    """Coerce one DeepFace representation into a float vector.

    Accepts the ``{"embedding": [...], "facial_area": {...}}`` dicts returned by
    ``DeepFace.represent``, a bare sequence of numbers, or a one-row ndarray.
    Returns ``(None, area)`` when the values are missing, empty or non-numeric.
    """

    vector: Optional[Sequence[float]] = None
    facial_area: Optional[FacialArea] = None

    if isinstance(representation, Mapping):
        vector = representation.get("embedding")
        area = representation.get("facial_area")
        facial_area = dict(area) if isinstance(area, Mapping) else None
    elif isinstance(representation, np.ndarray):
        vector = representation[0] if representation.ndim == 2 and len(representation) else representation
    elif isinstance(representation, (list, tuple)):
        vector = representation

    if vector is None:
        return None, facial_area

    try:
        embedding = np.array([float(value) for value in vector], dtype=float)
    except (TypeError, ValueError):
        logger.debug("Unable to coerce embedding values to floats: %r", vector)
        return None, facial_area

    if embedding.size == 0 or not np.all(np.isfinite(embedding)):
        return None, facial_area

    return embedding, facial_area


def extract_all_embeddings(representations: Any) -> list[tuple[np.ndarray, Optional[FacialArea]]]:
    """Return ``(embedding, facial_area)`` for every usable face in a frame."""

    if isinstance(representations, Mapping):
        items: Iterable[Any] = [representations]
    elif isinstance(representations, np.ndarray) and representations.ndim == 2:
        items = list(representations)
    elif isinstance(representations, list):
        # A flat list of numbers is a single embedding, not a list of faces.
        if representations and all(isinstance(v, (int, float)) for v in representations):
            items = [representations]
        else:
            items = representations
    else:
        logger.debug("No embeddings in representation of type %r", type(representations))
        return []

    results = []
    for item in items:
        embedding, area = extract_embedding(item)
        if embedding is not None:
            results.append((embedding, area))
    return results


def facial_area_size(area: Optional[Mapping[str, int]]) -> int:
    if not area:
        return 0
    return max(0, int(area.get("w", 0))) * max(0, int(area.get("h", 0)))


def _unit(vector: np.ndarray) -> Optional[np.ndarray]:
    norm = float(np.linalg.norm(vector))
    if norm == 0.0:
        return None
    return vector / norm


def calculate_embedding_distance(
    candidate: np.ndarray, probe: np.ndarray, metric: str
) -> Optional[float]:
    """Distance between two embeddings, or ``None`` when it cannot be computed.

    ``euclidean_l2`` is the Euclidean distance between the L2-normalised
    vectors (DeepFace's convention), so it lies in ``[0, 2]``.
    """

    metric = metric.lower()
    if candidate.shape != probe.shape:
        logger.debug("Embedding shapes differ: %s vs %s", candidate.shape, probe.shape)
        return None

    if metric == "cosine":
        a, b = _unit(candidate), _unit(probe)
        if a is None or b is None:
            return None
        return 1.0 - float(np.dot(a, b))

    if metric == "euclidean_l2":
        a, b = _unit(candidate), _unit(probe)
        if a is None or b is None:
            return None
        return float(np.linalg.norm(a - b))

    if metric == "manhattan":
        return float(np.sum(np.abs(candidate - probe)))

    if metric != "euclidean":
        logger.debug("Unknown metric %r; falling back to euclidean", metric)
    return float(np.linalg.norm(candidate - probe))


def mean_distance(
    references: Sequence[np.ndarray], probe: np.ndarray, metric: str
) -> Optional[float]:
    """Mean distance from ``probe`` to every reference that can be compared."""

    distances = [
        distance
        for distance in (calculate_embedding_distance(ref, probe, metric) for ref in references)
        if distance is not None
    ]
    if not distances:
        return None
    return float(sum(distances) / len(distances))


def is_within_distance_threshold(distance: Optional[float], threshold: float) -> bool:
    """Return ``True`` when the distance does not exceed the configured threshold."""

    if distance is None or math.isnan(distance):
        return False
    return bool(distance <= threshold)
