"""Tests for softmax decoding and argmax tie-breaking."""

from __future__ import annotations

import math

import numpy as np
import pytest

from scooterwatch.ml.decoder import argmax, decode, softmax
from scooterwatch.ml.errors import InvariantViolation

LOGIT_VECTORS = [
    [0.0, 0.0, 0.0],
    [5.0, 1.0, 0.0],
    [-3.2, 7.1, 0.4],
    [1000.0, 0.0, -1000.0],
    [-50.0, -51.0, -49.5],
    [1e-8, 2e-8, 3e-8],
]


class TestSoftmax:
    @pytest.mark.parametrize("logits", LOGIT_VECTORS)
    def test_is_a_probability_distribution(self, logits: list[float]) -> None:
        probs = decode(logits).probabilities
        assert math.isclose(sum(probs), 1.0, abs_tol=1e-6)
        assert all(0.0 <= p <= 1.0 for p in probs)

    @pytest.mark.parametrize("shift", [-100.0, -1.5, 0.0, 3.0, 250.0])
    def test_shift_invariant(self, shift: float) -> None:
        logits = np.array([0.3, -1.2, 2.5])
        np.testing.assert_allclose(softmax(logits + shift), softmax(logits), atol=1e-9)

    def test_large_logits_do_not_overflow(self) -> None:
        probs = softmax(np.array([1000.0, 999.0, -1000.0]))
        assert np.all(np.isfinite(probs))
        assert probs[0] > probs[1] > probs[2]

    def test_known_values(self) -> None:
        probs = softmax(np.array([0.0, math.log(2.0), math.log(5.0)]))
        np.testing.assert_allclose(probs, [1 / 8, 2 / 8, 5 / 8], rtol=1e-12)


class TestArgmax:
    def test_first_maximum_wins(self) -> None:
        assert argmax([0.5, 0.5, 0.2]) == 0
        assert argmax([0.1, 0.7, 0.7]) == 1

    def test_tied_logits_decode_to_first_class(self) -> None:
        result = decode([0.5, 0.5, 0.2])
        assert result.class_id == 0
        assert result.confidence == result.probabilities[0]


class TestDecode:
    def test_picks_highest_class(self) -> None:
        result = decode([0.0, 1.0, 5.0])
        assert result.class_id == 2
        assert result.confidence == pytest.approx(max(result.probabilities))
        assert result.confidence > 0.9

    def test_accepts_model_row_shape(self) -> None:
        result = decode(np.array([[1.0, 4.0, 0.0]], dtype=np.float32))
        assert result.class_id == 1

    @pytest.mark.parametrize("logits", [[], [1.0, 2.0], [1.0, 2.0, 3.0, 4.0]])
    def test_wrong_length_is_invariant_violation(self, logits: list[float]) -> None:
        with pytest.raises(InvariantViolation, match="Expected 3 class scores"):
            decode(logits)

    def test_non_finite_scores_are_invariant_violation(self) -> None:
        with pytest.raises(InvariantViolation, match="Non-finite"):
            decode([float("nan"), 0.0, 1.0])
