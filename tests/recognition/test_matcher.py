"""Tests for labelled descriptor matching."""

import numpy as np
import pytest

from recognition.matcher import UNKNOWN_LABEL, DescriptorMatcher


def _references():
    return {
        "1": [np.array([1.0, 0.0, 0.0])],
        "2": [np.array([0.0, 1.0, 0.0])],
    }


def test_nearest_label_wins_within_threshold():
    matcher = DescriptorMatcher(_references(), threshold=0.6, metric="euclidean_l2")

    result = matcher.find_best_match(np.array([0.9, 0.1, 0.0]))

    assert result.label == "1"
    assert not result.is_unknown
    probe = np.array([0.9, 0.1, 0.0])
    expected = np.linalg.norm(probe / np.linalg.norm(probe) - np.array([1.0, 0.0, 0.0]))
    assert result.distance == pytest.approx(expected)


def test_distance_beyond_threshold_is_unknown():
    matcher = DescriptorMatcher(_references(), threshold=0.6, metric="euclidean_l2")

    result = matcher.find_best_match(np.array([0.0, 0.0, 1.0]))

    assert result.label == UNKNOWN_LABEL
    assert result.is_unknown
    assert result.distance == pytest.approx(np.sqrt(2))


def test_label_distance_is_mean_over_its_descriptors():
    matcher = DescriptorMatcher(
        {"1": [np.array([0.0, 0.0]), np.array([4.0, 0.0])], "2": [np.array([1.5, 0.0])]},
        threshold=10.0,
        metric="euclidean",
    )

    result = matcher.find_best_match(np.array([0.0, 0.0]))

    assert result.label == "2"
    assert result.distance == pytest.approx(1.5)


def test_threshold_defaults_to_setting(settings):
    settings.RECOGNITION_DISTANCE_THRESHOLD = 0.05

    matcher = DescriptorMatcher(_references(), metric="euclidean_l2")

    assert matcher.threshold == 0.05
    assert matcher.find_best_match(np.array([0.9, 0.1, 0.0])).is_unknown


def test_labels_without_descriptors_are_ignored():
    matcher = DescriptorMatcher({"1": [np.array([1.0, 0.0])], "2": []}, threshold=0.6)

    assert matcher.labels == ["1"]


def test_rejects_unknown_metric_and_negative_threshold():
    with pytest.raises(ValueError):
        DescriptorMatcher(_references(), metric="hamming")
    with pytest.raises(ValueError):
        DescriptorMatcher(_references(), threshold=-1)
