"""Tests for the timed session wrapper."""

from __future__ import annotations

from unittest.mock import patch

import numpy as np
import pytest

from conftest import fake_session
from scooterwatch.ml.errors import InferenceError, InvariantViolation, SessionNotReadyError
from scooterwatch.ml.preprocessing import INPUT_SHAPE
from scooterwatch.ml.session import SessionHandle


def _tensor() -> np.ndarray:
    return np.zeros(INPUT_SHAPE, dtype=np.float32)


class TestRun:
    def test_returns_scores_of_first_row(self) -> None:
        handle = SessionHandle("mobilenetv3_large", fake_session([5.0, 1.0, 0.0]))
        timed = handle.run(_tensor())
        assert timed.scores == (5.0, 1.0, 0.0)
        assert timed.elapsed_ms >= 0

    def test_feeds_tensor_under_model_input_name(self) -> None:
        session = fake_session([0.0, 1.0, 2.0])
        tensor = _tensor()
        SessionHandle("mobilenetv3_large", session).run(tensor)

        session.run.assert_called_once()
        output_names, feeds = session.run.call_args.args
        assert output_names is None
        assert feeds["input"] is tensor

    def test_times_only_the_run_call(self) -> None:
        handle = SessionHandle("mobilenetv3_large", fake_session([0.0, 1.0, 2.0]))
        with patch("scooterwatch.ml.session.time.perf_counter", side_effect=[10.0, 10.2505]):
            timed = handle.run(_tensor())
        assert timed.elapsed_ms == 250

    @pytest.mark.parametrize(
        "tensor",
        [
            np.zeros((1, 3, 112, 112), dtype=np.float32),
            np.zeros((3, 224, 224), dtype=np.float32),
            np.zeros(INPUT_SHAPE, dtype=np.float64),
        ],
    )
    def test_rejects_malformed_tensor_without_running(self, tensor: np.ndarray) -> None:
        session = fake_session([0.0, 0.0, 0.0])
        with pytest.raises(InferenceError, match="expected float32 tensor"):
            SessionHandle("efficientnetv2s", session).run(tensor)
        session.run.assert_not_called()

    def test_runtime_failure_becomes_inference_error(self) -> None:
        cause = RuntimeError("CUDA out of memory")
        handle = SessionHandle("efficientnetv2s", fake_session(error=cause))
        with pytest.raises(InferenceError, match="CUDA out of memory") as excinfo:
            handle.run(_tensor())
        assert excinfo.value.__cause__ is cause

    def test_unexpected_output_shape_is_invariant_violation(self) -> None:
        session = fake_session()
        session.run.return_value = [np.zeros((2, 3), dtype=np.float32)]
        with pytest.raises(InvariantViolation, match=r"shape \(1, N\)"):
            SessionHandle("efficientnetv2s", session).run(_tensor())

    def test_no_outputs_is_invariant_violation(self) -> None:
        session = fake_session()
        session.run.return_value = []
        with pytest.raises(InvariantViolation, match="no outputs"):
            SessionHandle("efficientnetv2s", session).run(_tensor())


class TestRelease:
    def test_run_after_release_raises_not_ready(self) -> None:
        session = fake_session([0.0, 0.0, 1.0])
        handle = SessionHandle("mobilenetv3_large", session)
        handle.release()

        assert handle.is_released
        with pytest.raises(SessionNotReadyError):
            handle.run(_tensor())
        session.run.assert_not_called()

    def test_double_release_is_noop(self) -> None:
        handle = SessionHandle("mobilenetv3_large", fake_session())
        handle.release()
        handle.release()
        assert handle.is_released
