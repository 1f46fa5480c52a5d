"""Convert raw model logits into probabilities and a class decision."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from scooterwatch.ml.errors import InvariantViolation

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

NUM_CLASSES: int = 3


@dataclass(frozen=True)
class DecodedScores:
    """Softmax distribution plus the winning class."""

    probabilities: tuple[float, ...]
    class_id: int
    confidence: float


def softmax(logits: NDArray[np.float64]) -> NDArray[np.float64]:
    """Numerically stable softmax over a 1-D vector."""
    shifted = logits - np.max(logits)
    exps = np.exp(shifted)
    return exps / np.sum(exps)


def argmax(values: Sequence[float]) -> int:
    """Index of the maximum value; the first one wins on ties."""
    best = 0
    for i in range(1, len(values)):
        if values[i] > values[best]:
            best = i
    return best


def decode(scores: Sequence[float] | NDArray[np.floating]) -> DecodedScores:
    """Decode a 3-wide logit vector.

    Raises:
        InvariantViolation: If the vector does not hold exactly three finite scores.
    """
    logits = np.asarray(scores, dtype=np.float64).reshape(-1)
    if logits.shape != (NUM_CLASSES,):
        raise InvariantViolation(f"Expected {NUM_CLASSES} class scores, got {logits.size}")
    if not np.all(np.isfinite(logits)):
        raise InvariantViolation(f"Non-finite class scores: {logits.tolist()}")

    probabilities = tuple(float(p) for p in softmax(logits))
    class_id = argmax(probabilities)
    return DecodedScores(
        probabilities=probabilities,
        class_id=class_id,
        confidence=probabilities[class_id],
    )
