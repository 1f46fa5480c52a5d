"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request, UploadFile, status
from fastapi.responses import JSONResponse

from scooterwatch.api.middleware import verify_api_key
from scooterwatch.api.schemas import (
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelsResponse,
    PredictionResponse,
)
from scooterwatch.ml.errors import DecodeError, InferenceError, InvariantViolation, SessionNotReadyError
from scooterwatch.ml.model_manager import MODEL_REGISTRY

if TYPE_CHECKING:
    from scooterwatch.config import Settings
    from scooterwatch.ml.inference import InferencePool
    from scooterwatch.ml.model_manager import ModelManager
    from scooterwatch.ml.pipeline import ScooterClassifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_classifier(request: Request) -> ScooterClassifier:
    classifier: ScooterClassifier = request.app.state.classifier
    return classifier


def _get_model_manager(request: Request) -> ModelManager:
    manager: ModelManager = request.app.state.model_manager
    return manager


def _active_model_names(settings: Settings) -> set[str]:
    return {name for name in (settings.presence_model, settings.parking_model) if name}


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


@router.post(
    "/classify",
    response_model=PredictionResponse,
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify scooter presence and parking status",
)
async def classify(request: Request, file: UploadFile) -> PredictionResponse | JSONResponse:
    """Detect a scooter in an uploaded photo and whether it is parked inside the zone."""
    settings = _get_settings(request)
    image_bytes = await file.read(settings.max_file_size + 1)
    if len(image_bytes) > settings.max_file_size:
        return _error(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            f"File exceeds {settings.max_file_size} bytes",
        )

    pool = _get_inference_pool(request)
    classifier = _get_classifier(request)
    try:
        prediction = await pool.classify(classifier, image_bytes)
    except DecodeError as exc:
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))
    except SessionNotReadyError as exc:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))
    except TimeoutError:
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Classifier busy, retry later")
    except (InferenceError, InvariantViolation) as exc:
        logger.exception("Classification failed for %s", file.filename)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    return PredictionResponse.from_prediction(prediction)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    classifier = _get_classifier(request)
    manager = _get_model_manager(request)
    return HealthResponse(
        status="ok" if classifier.is_ready else "degraded",
        gpu=settings.device == "cuda",
        ready=classifier.is_ready,
        models_loaded=manager.get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="List available models",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return registered models and whether the current configuration uses them."""
    settings = _get_settings(request)
    active_models = _active_model_names(settings)

    models = [
        ModelInfo(
            name=spec.name,
            task=spec.task,
            status="active" if spec.name in active_models else "available",
            labels=list(spec.labels),
        )
        for spec in MODEL_REGISTRY.values()
    ]
    return ModelsResponse(models=models)
