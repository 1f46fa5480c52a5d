"""Model manager: download, load and release ONNX classification models.

Handles fetching model files from HuggingFace (or the local models
directory), creating one long-lived InferenceSession per model and
releasing every session on shutdown.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from scooterwatch.ml.errors import ModelLoadError
from scooterwatch.ml.session import SessionHandle

if TYPE_CHECKING:
    from scooterwatch.config import Settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ModelManager(Protocol):
    """Protocol for model lifecycle management."""

    def ensure_downloaded(self, model_name: str) -> Path:
        """Ensure a model file is available locally and return its path."""
        ...

    def load_model(self, model_name: str, model_bytes: bytes) -> SessionHandle:
        """Create a session from a serialized model."""
        ...

    def load(self, model_name: str) -> SessionHandle:
        """Fetch a registered model and create a session from it."""
        ...

    def get_loaded_models(self) -> list[str]:
        """Return names of currently loaded models."""
        ...

    def shutdown(self) -> None:
        """Release all sessions."""
        ...


# ---------------------------------------------------------------------------
# Model registry
# ---------------------------------------------------------------------------


class ModelTask(StrEnum):
    SCOOTER_PRESENCE = "scooter_presence"
    PARKING_STATUS = "parking_status"


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a single ONNX model."""

    name: str
    filename: str
    task: ModelTask
    labels: tuple[str, str, str]


MODEL_REGISTRY: dict[str, ModelSpec] = {
    "mobilenetv3_large": ModelSpec(
        name="mobilenetv3_large",
        filename="mobilenetv3_large.onnx",
        task=ModelTask.SCOOTER_PRESENCE,
        labels=("absent", "partial", "full"),
    ),
    "efficientnetv2s": ModelSpec(
        name="efficientnetv2s",
        filename="efficientnetv2s.onnx",
        task=ModelTask.PARKING_STATUS,
        labels=("undetermined", "inside", "outside"),
    ),
}


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------


class OnnxModelManager:
    """Fetches model files and owns the ONNX sessions created from them."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._models_dir = Path(settings.models_dir)

        self._lock = threading.Lock()
        self._sessions: dict[str, SessionHandle] = {}

        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    # -- Public API ---------------------------------------------------------

    def ensure_downloaded(self, model_name: str) -> Path:
        """Return the local model file, downloading it from HuggingFace if absent."""
        spec = get_spec(model_name)

        local = self._models_dir / spec.filename
        if local.exists():
            return local

        self._models_dir.mkdir(parents=True, exist_ok=True)
        downloaded = Path(
            hf_hub_download(
                repo_id=self._settings.model_repo_id,
                filename=spec.filename,
                local_dir=str(self._models_dir),
            )
        )
        logger.info("Downloaded %s to %s", model_name, downloaded)
        return downloaded

    def read_model_bytes(self, model_name: str) -> bytes:
        """Return the serialized model, fetching it first if needed.

        Raises:
            KeyError: If the model name is not in the registry.
            ModelLoadError: If the file cannot be fetched or read.
        """
        try:
            return self.ensure_downloaded(model_name).read_bytes()
        except KeyError:
            raise
        except Exception as exc:
            raise ModelLoadError(f"Could not fetch model '{model_name}': {exc}") from exc

    def load_model(self, model_name: str, model_bytes: bytes) -> SessionHandle:
        """Create a session from a serialized model and keep it for the process lifetime.

        Reloading a name replaces its session and releases the previous one.
        Invalid bytes leave any previous session in place.

        Raises:
            ModelLoadError: If the bytes are not a valid model for the runtime.
        """
        try:
            session = InferenceSession(
                model_bytes,
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:
            raise ModelLoadError(f"Invalid model binary for '{model_name}': {exc}") from exc

        handle = SessionHandle(model_name, session)
        with self._lock:
            previous = self._sessions.get(model_name)
            self._sessions[model_name] = handle
        if previous is not None:
            previous.release()
        logger.info("Loaded session for %s", model_name)
        return handle

    def load(self, model_name: str) -> SessionHandle:
        """Fetch a registered model and load it."""
        return self.load_model(model_name, self.read_model_bytes(model_name))

    def get_loaded_models(self) -> list[str]:
        """Return names of models with live sessions."""
        with self._lock:
            return [name for name, handle in self._sessions.items() if not handle.is_released]

    def shutdown(self) -> None:
        """Release all sessions."""
        with self._lock:
            handles = list(self._sessions.values())
            self._sessions.clear()
        for handle in handles:
            handle.release()
        logger.info("All model sessions released")

    # -- Internal -----------------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts


def get_spec(model_name: str) -> ModelSpec:
    """Look up a registered model."""
    try:
        return MODEL_REGISTRY[model_name]
    except KeyError:
        raise KeyError(f"Unknown model: {model_name}") from None
