"""Timed, releasable wrapper around a single ONNX InferenceSession."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from scooterwatch.ml.errors import InferenceError, InvariantViolation, SessionNotReadyError
from scooterwatch.ml.preprocessing import INPUT_SHAPE

if TYPE_CHECKING:
    from numpy.typing import NDArray
    from onnxruntime import InferenceSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimedScores:
    """Raw class scores for one image and the wall-clock time of the run call."""

    scores: tuple[float, ...]
    elapsed_ms: int


class SessionHandle:
    """Owns one loaded model session.

    A handle is created once per model by the model manager and released
    exactly once on shutdown. ``release`` is idempotent; ``run`` after
    release raises ``SessionNotReadyError``.
    """

    def __init__(self, model_name: str, session: InferenceSession) -> None:
        self._model_name = model_name
        self._session: InferenceSession | None = session
        self._lock = threading.Lock()
        self._input_name = session.get_inputs()[0].name

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def is_released(self) -> bool:
        return self._session is None

    def run(self, tensor: NDArray[np.float32]) -> TimedScores:
        """Execute the model on a (1, 3, 224, 224) tensor.

        Only the ``InferenceSession.run`` call is timed.

        Raises:
            SessionNotReadyError: If the session has been released.
            InferenceError: On a malformed tensor or any runtime failure.
            InvariantViolation: If the model output is not a single row of scores.
        """
        if tensor.shape != INPUT_SHAPE or tensor.dtype != np.float32:
            raise InferenceError(
                f"{self._model_name}: expected float32 tensor of shape {INPUT_SHAPE}, "
                f"got {tensor.dtype} {tensor.shape}"
            )

        with self._lock:
            session = self._session
            if session is None:
                raise SessionNotReadyError(f"Session for {self._model_name} is not loaded")

            start = time.perf_counter()
            try:
                outputs = session.run(None, {self._input_name: tensor})
            except Exception as exc:
                raise InferenceError(f"{self._model_name}: inference failed: {exc}") from exc
            elapsed_ms = int((time.perf_counter() - start) * 1000)

        if not outputs:
            raise InvariantViolation(f"{self._model_name}: model returned no outputs")
        logits = np.asarray(outputs[0])
        if logits.ndim != 2 or logits.shape[0] != 1:
            raise InvariantViolation(f"{self._model_name}: expected output of shape (1, N), got {logits.shape}")

        return TimedScores(scores=tuple(float(x) for x in logits[0]), elapsed_ms=elapsed_ms)

    def release(self) -> None:
        """Drop the underlying session. Calling this twice is a no-op."""
        with self._lock:
            if self._session is None:
                return
            self._session = None
        logger.info("Released session for %s", self._model_name)
