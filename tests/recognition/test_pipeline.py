"""Unit tests for the embedding and distance helpers."""

import math

import numpy as np
import pytest

from recognition import pipeline


def test_extract_embedding_normalises_deepface_payload() -> None:
    """DeepFace dictionaries should be coerced into numpy vectors."""

    embedding, facial_area = pipeline.extract_embedding(
        {"embedding": ["1.0", 0.5, 0], "facial_area": {"x": 1, "y": 2, "w": 3, "h": 4}}
    )

    assert facial_area == {"x": 1, "y": 2, "w": 3, "h": 4}
    np.testing.assert_allclose(embedding, np.array([1.0, 0.5, 0.0]))


@pytest.mark.parametrize(
    "payload",
    [
        {"embedding": ["not-a-number"], "facial_area": {"x": 1}},
        {"embedding": [], "facial_area": {"x": 1}},
        {"embedding": [1.0, float("nan")], "facial_area": {"x": 1}},
    ],
)
def test_extract_embedding_rejects_unusable_values(payload) -> None:
    embedding, facial_area = pipeline.extract_embedding(payload)

    assert embedding is None
    assert facial_area == {"x": 1}


def test_extract_all_embeddings_keeps_every_usable_face() -> None:
    faces = pipeline.extract_all_embeddings(
        [
            {"embedding": [1.0, 0.0], "facial_area": {"w": 10, "h": 10}},
            {"embedding": ["bad"], "facial_area": {"w": 5, "h": 5}},
            {"embedding": [0.0, 1.0], "facial_area": {"w": 20, "h": 20}},
        ]
    )

    assert [area["w"] for _, area in faces] == [10, 20]


def test_extract_all_embeddings_treats_flat_list_as_one_face() -> None:
    faces = pipeline.extract_all_embeddings([0.1, 0.2, 0.3])

    assert len(faces) == 1
    np.testing.assert_allclose(faces[0][0], [0.1, 0.2, 0.3])


@pytest.mark.parametrize(
    "metric,expected",
    [
        ("euclidean", pytest.approx(math.sqrt(2))),
        ("euclidean_l2", pytest.approx(math.sqrt(2))),
        ("manhattan", 2.0),
        ("cosine", pytest.approx(1.0)),
    ],
)
def test_calculate_embedding_distance_supported_metrics(metric: str, expected) -> None:
    probe = np.array([1.0, 0.0])
    candidate = np.array([0.0, 1.0])

    assert pipeline.calculate_embedding_distance(candidate, probe, metric) == expected


def test_euclidean_l2_ignores_vector_magnitude() -> None:
    probe = np.array([3.0, 4.0])
    candidate = np.array([30.0, 40.0])

    assert pipeline.calculate_embedding_distance(candidate, probe, "euclidean_l2") == pytest.approx(0.0)
    assert pipeline.calculate_embedding_distance(candidate, probe, "euclidean") == pytest.approx(45.0)


@pytest.mark.parametrize("metric", ["cosine", "euclidean_l2"])
def test_zero_vectors_have_no_normalised_distance(metric: str) -> None:
    assert pipeline.calculate_embedding_distance(np.zeros(3), np.array([1.0, 2.0, 3.0]), metric) is None


def test_mismatched_shapes_are_not_comparable() -> None:
    assert pipeline.calculate_embedding_distance(np.ones(3), np.ones(4), "euclidean") is None


def test_mean_distance_skips_incomparable_references() -> None:
    references = [np.array([1.0, 0.0]), np.array([3.0, 0.0]), np.ones(3)]

    assert pipeline.mean_distance(references, np.array([0.0, 0.0]), "euclidean") == pytest.approx(2.0)
    assert pipeline.mean_distance([np.ones(3)], np.array([0.0, 0.0]), "euclidean") is None


@pytest.mark.parametrize(
    "distance,threshold,expected",
    [(0.59, 0.6, True), (0.6, 0.6, True), (0.61, 0.6, False), (None, 0.6, False), (float("nan"), 0.6, False)],
)
def test_is_within_distance_threshold(distance, threshold, expected) -> None:
    assert pipeline.is_within_distance_threshold(distance, threshold) is expected


def test_facial_area_size_handles_missing_boxes() -> None:
    assert pipeline.facial_area_size({"w": 10, "h": 20}) == 200
    assert pipeline.facial_area_size(None) == 0
    assert pipeline.facial_area_size({"w": -5, "h": 20}) == 0
