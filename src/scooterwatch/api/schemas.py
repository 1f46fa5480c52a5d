"""Pydantic request/response schemas for the ScooterWatch API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from scooterwatch.ml.classifier import StagePrediction
    from scooterwatch.ml.pipeline import ScooterPrediction


class StageResult(BaseModel):
    """Outcome of one model stage."""

    class_id: int = Field(ge=0, le=2)
    confidence: float = Field(ge=0.0, le=1.0)
    elapsed_ms: int = Field(ge=0)
    probabilities: list[float]

    @classmethod
    def from_stage(cls, stage: StagePrediction) -> StageResult:
        return cls(
            class_id=stage.class_id,
            confidence=stage.confidence,
            elapsed_ms=stage.elapsed_ms,
            probabilities=list(stage.probabilities),
        )


class PredictionResponse(BaseModel):
    """Response for the classify endpoint."""

    label: str = Field(description="'no_scooter', 'inside', 'outside', or 'hard_to_say'")
    presence_class: int = Field(ge=0, le=2, description="0 = absent, 1 = partial, 2 = full")
    presence_confidence: float = Field(ge=0.0, le=1.0)
    presence_probabilities: list[float]
    parking_status: StageResult | None = Field(
        description="Parking stage outcome (0 = undetermined, 1 = inside, 2 = outside); null when skipped"
    )
    total_elapsed_ms: int = Field(ge=0)
    degraded: bool = Field(description="True when the parking stage failed and was dropped")

    @classmethod
    def from_prediction(cls, prediction: ScooterPrediction) -> PredictionResponse:
        parking = prediction.parking_status
        return cls(
            label=prediction.label.value,
            presence_class=prediction.presence_class,
            presence_confidence=prediction.presence_confidence,
            presence_probabilities=list(prediction.presence_probabilities),
            parking_status=StageResult.from_stage(parking) if parking is not None else None,
            total_elapsed_ms=prediction.total_elapsed_ms,
            degraded=prediction.degraded,
        )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    ready: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about a registered model."""

    name: str
    task: str = Field(description="Model task: 'scooter_presence' or 'parking_status'")
    status: str = Field(description="Model status: 'active' or 'available'")
    labels: list[str]


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
