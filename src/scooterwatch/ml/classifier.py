"""A single classification stage: one model, run on a tensor, decoded to a class."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Protocol

from scooterwatch.ml.decoder import decode
from scooterwatch.ml.errors import SessionNotReadyError

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from scooterwatch.ml.model_manager import ModelManager
    from scooterwatch.ml.session import SessionHandle

logger = logging.getLogger(__name__)


class PresenceClass(IntEnum):
    ABSENT = 0
    PARTIAL = 1
    FULL = 2


class ParkingClass(IntEnum):
    UNDETERMINED = 0
    INSIDE = 1
    OUTSIDE = 2


@dataclass(frozen=True)
class StagePrediction:
    """Outcome of one model invocation."""

    class_id: int
    confidence: float
    elapsed_ms: int
    probabilities: tuple[float, ...] = ()


class ClassifierStage(Protocol):
    """Protocol for a loadable, runnable, releasable classification model."""

    @property
    def model_name(self) -> str:
        """Return the model identifier string."""
        ...

    @property
    def is_ready(self) -> bool:
        """Whether a session is loaded and not yet released."""
        ...

    def load(self, model_bytes: bytes | None = None) -> None:
        """Load the model from serialized bytes, or fetch the registered file when None.

        Raises:
            ModelLoadError: If the model cannot be fetched or is not a valid model.
        """
        ...

    def predict(self, tensor: NDArray[np.float32]) -> StagePrediction:
        """Run the model on a (1, 3, 224, 224) tensor and decode the result.

        Raises:
            SessionNotReadyError: If no session is loaded.
            InferenceError: On runtime failure.
        """
        ...

    def release(self) -> None:
        """Release the underlying session (idempotent)."""
        ...


class OnnxClassifierStage:
    """ClassifierStage backed by a session from the model manager."""

    def __init__(self, model_name: str, manager: ModelManager) -> None:
        self._model_name = model_name
        self._manager = manager
        self._handle: SessionHandle | None = None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def is_ready(self) -> bool:
        return self._handle is not None and not self._handle.is_released

    def load(self, model_bytes: bytes | None = None) -> None:
        """Load the model from the given bytes, or fetch it through the manager.

        Raises:
            ModelLoadError: If the model cannot be fetched or is not a valid model.
        """
        if model_bytes is None:
            self._handle = self._manager.load(self._model_name)
        else:
            self._handle = self._manager.load_model(self._model_name, model_bytes)

    def predict(self, tensor: NDArray[np.float32]) -> StagePrediction:
        if self._handle is None:
            raise SessionNotReadyError(f"Model {self._model_name} has not been loaded")

        timed = self._handle.run(tensor)
        decoded = decode(timed.scores)
        logger.debug(
            "%s: class=%d probabilities=%s elapsed=%dms",
            self._model_name,
            decoded.class_id,
            ", ".join(f"{p:.2%}" for p in decoded.probabilities),
            timed.elapsed_ms,
        )
        return StagePrediction(
            class_id=decoded.class_id,
            confidence=decoded.confidence,
            elapsed_ms=timed.elapsed_ms,
            probabilities=decoded.probabilities,
        )

    def release(self) -> None:
        if self._handle is not None:
            self._handle.release()
