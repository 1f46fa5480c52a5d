"""Shared fixtures: in-memory images and fake ONNX sessions."""

from __future__ import annotations

import io
from types import SimpleNamespace
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import numpy as np
import pytest
from PIL import Image

from scooterwatch.ml.classifier import OnnxClassifierStage
from scooterwatch.ml.session import SessionHandle

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


def encode_image(
    size: tuple[int, int] = (224, 224),
    color: int | tuple[int, ...] = (128, 128, 128),
    mode: str = "RGB",
    fmt: str = "PNG",
) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def fake_session(logits: Sequence[float] | None = None, error: Exception | None = None) -> MagicMock:
    """A MagicMock standing in for onnxruntime.InferenceSession."""
    session = MagicMock()
    session.get_inputs.return_value = [SimpleNamespace(name="input")]
    if error is not None:
        session.run.side_effect = error
    else:
        session.run.return_value = [np.array([list(logits or (0.0, 0.0, 0.0))], dtype=np.float32)]
    return session


def loaded_stage(model_name: str, session: MagicMock) -> OnnxClassifierStage:
    """An OnnxClassifierStage already loaded with the given fake session."""
    manager = MagicMock()
    manager.load_model.return_value = SessionHandle(model_name, session)
    stage = OnnxClassifierStage(model_name, manager)
    stage.load(b"serialized-model")
    return stage


@pytest.fixture()
def gray_png() -> bytes:
    return encode_image()


@pytest.fixture()
def make_stage() -> Callable[..., OnnxClassifierStage]:
    return loaded_stage
