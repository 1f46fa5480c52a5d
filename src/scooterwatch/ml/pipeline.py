"""Two-stage scooter classification.

Stage one decides whether a scooter is in the photo at all. Only when it
is (partially or fully) does stage two decide whether it is parked inside
or outside the designated zone. Both stages share one normalized tensor.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from scooterwatch.ml.classifier import ParkingClass, PresenceClass, StagePrediction
from scooterwatch.ml.errors import InferenceError, SessionNotReadyError

if TYPE_CHECKING:
    from scooterwatch.ml.classifier import ClassifierStage
    from scooterwatch.ml.preprocessing import ImageNormalizer

logger = logging.getLogger(__name__)


class ParkingLabel(StrEnum):
    NO_SCOOTER = "no_scooter"
    INSIDE = "inside"
    OUTSIDE = "outside"
    HARD_TO_SAY = "hard_to_say"


@dataclass(frozen=True)
class ScooterPrediction:
    """Final result of one classification request."""

    presence_class: int
    presence_confidence: float
    total_elapsed_ms: int
    parking_status: StagePrediction | None = None
    presence_probabilities: tuple[float, ...] = ()
    degraded: bool = False

    @property
    def label(self) -> ParkingLabel:
        return derive_label(self.presence_class, self.parking_status)


def derive_label(presence_class: int, parking_status: StagePrediction | None) -> ParkingLabel:
    """Collapse both stage outcomes into one categorical label."""
    if presence_class == PresenceClass.ABSENT:
        return ParkingLabel.NO_SCOOTER
    if parking_status is None:
        return ParkingLabel.HARD_TO_SAY
    if parking_status.class_id == ParkingClass.INSIDE:
        return ParkingLabel.INSIDE
    if parking_status.class_id == ParkingClass.OUTSIDE:
        return ParkingLabel.OUTSIDE
    return ParkingLabel.HARD_TO_SAY


class ScooterClassifier:
    """Runs presence detection, then parking-status detection when a scooter is seen.

    ``parking`` may be None, in which case every request stops after the
    presence stage. Requests are serialized: the underlying sessions are
    never run concurrently.
    """

    def __init__(
        self,
        normalizer: ImageNormalizer,
        presence: ClassifierStage,
        parking: ClassifierStage | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._presence = presence
        self._parking = parking
        self._lock = threading.Lock()

    @property
    def is_ready(self) -> bool:
        return self._presence.is_ready

    @property
    def stages(self) -> list[ClassifierStage]:
        return [self._presence] if self._parking is None else [self._presence, self._parking]

    def classify(self, image_bytes: bytes) -> ScooterPrediction:
        """Classify one image.

        Raises:
            DecodeError: If the image cannot be decoded.
            SessionNotReadyError: If the presence model is not loaded.
            InferenceError: If the presence model fails.
        """
        tensor = self._normalizer.normalize(image_bytes)

        with self._lock:
            presence = self._presence.predict(tensor)
            parking: StagePrediction | None = None
            degraded = False

            if presence.class_id != PresenceClass.ABSENT and self._parking is not None:
                try:
                    parking = self._parking.predict(tensor)
                except (InferenceError, SessionNotReadyError):
                    logger.warning(
                        "Parking stage %s failed, returning presence result only",
                        self._parking.model_name,
                        exc_info=True,
                    )
                    degraded = True

        total_ms = presence.elapsed_ms + (parking.elapsed_ms if parking is not None else 0)
        prediction = ScooterPrediction(
            presence_class=presence.class_id,
            presence_confidence=presence.confidence,
            total_elapsed_ms=total_ms,
            parking_status=parking,
            presence_probabilities=presence.probabilities,
            degraded=degraded,
        )
        logger.info(
            "Classified image: label=%s presence=%d (%.1f%%) total=%dms",
            prediction.label,
            prediction.presence_class,
            prediction.presence_confidence * 100,
            total_ms,
        )
        return prediction

    def shutdown(self) -> None:
        """Release both stages."""
        for stage in self.stages:
            stage.release()
