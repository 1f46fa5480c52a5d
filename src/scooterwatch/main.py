"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from scooterwatch.config import Settings
    from scooterwatch.ml.model_manager import ModelManager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scooterwatch.api.routes import router
from scooterwatch.config import get_settings
from scooterwatch.ml.classifier import OnnxClassifierStage
from scooterwatch.ml.errors import ModelLoadError
from scooterwatch.ml.inference import InferencePool
from scooterwatch.ml.model_manager import OnnxModelManager
from scooterwatch.ml.pipeline import ScooterClassifier
from scooterwatch.ml.preprocessing import ImageNormalizer

logger = logging.getLogger(__name__)


def build_classifier(settings: Settings, manager: ModelManager) -> ScooterClassifier:
    """Load both stages and wire them into a classifier.

    A stage whose model fails to load stays unloaded; requests that need it
    get SessionNotReadyError instead of the process going down.
    """
    presence = OnnxClassifierStage(settings.presence_model, manager)
    parking = OnnxClassifierStage(settings.parking_model, manager) if settings.parking_model else None

    for stage in (presence, parking):
        if stage is None:
            continue
        try:
            stage.load()
        except (ModelLoadError, KeyError):
            logger.exception("Failed to load model %s", stage.model_name)

    return ScooterClassifier(
        ImageNormalizer(max_image_pixels=settings.max_image_pixels),
        presence=presence,
        parking=parking,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load models on startup, release them on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting ScooterWatch (device=%s, max_concurrent=%s, presence=%s, parking=%s)",
        settings.device,
        settings.max_concurrent,
        settings.presence_model,
        settings.parking_model or "<none>",
    )

    model_manager = OnnxModelManager(settings)
    app.state.model_manager = model_manager
    app.state.classifier = build_classifier(settings, model_manager)
    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool

    logger.info("ScooterWatch ready (classifier_ready=%s)", app.state.classifier.is_ready)
    yield

    logger.info("Shutting down ScooterWatch")
    inference_pool.shutdown()
    app.state.classifier.shutdown()
    model_manager.shutdown()
    logger.info("ScooterWatch shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="ScooterWatch",
        description="Scooter presence and parking-zone classification API",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("scooterwatch.main:app", host=settings.host, port=settings.port)
