"""Error taxonomy for the classification pipeline."""

from __future__ import annotations


class ScooterWatchError(Exception):
    """Base class for all pipeline errors."""


class DecodeError(ScooterWatchError, ValueError):
    """Image bytes could not be decoded into an RGB image."""


class ModelLoadError(ScooterWatchError, RuntimeError):
    """A model binary is missing or is not a valid serialized model."""


class SessionNotReadyError(ScooterWatchError, RuntimeError):
    """Inference was requested on a session that is not loaded (or already released)."""


class InferenceError(ScooterWatchError, RuntimeError):
    """The runtime failed while executing a model."""


class InvariantViolation(ScooterWatchError, AssertionError):
    """An internal contract was broken, e.g. a model returned an unexpected output shape."""
