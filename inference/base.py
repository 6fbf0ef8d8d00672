from abc import ABC, abstractmethod
from typing import Any, Dict

from pydantic import ValidationError

from router.types import ModelType
from .types import (
    AnomalyDetectionInput,
    AnomalyDetectionOutput,
    FusionInput,
    FusionOutput,
    ObjectDetectionInput,
    ObjectDetectionOutput,
    TrajectoryPredictionInput,
    TrajectoryPredictionOutput,
)


class InvalidModelInput(ValueError):
    """Request data does not match the model's input record."""

    def __init__(self, model_type: ModelType, detail: str):
        self.model_type = model_type
        self.detail = detail
        super().__init__(f"Invalid input for {model_type.value}: {detail}")


class ModelBackend(ABC):
    """
    Abstract model boundary.
    Server code must depend ONLY on this interface.
    """

    name = "abstract"

    def predict(self, model_type: ModelType, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate ``data`` for ``model_type``, run the model and return its
        output as a JSON-ready dict.

        Raises:
            InvalidModelInput: data fails validation.
        """
        model_type = ModelType(model_type)
        input_model, run = {
            ModelType.TRAJECTORY_PREDICTION: (TrajectoryPredictionInput, self.predict_trajectory),
            ModelType.ANOMALY_DETECTION: (AnomalyDetectionInput, self.detect_anomaly),
            ModelType.OBJECT_DETECTION: (ObjectDetectionInput, self.detect_objects),
            ModelType.SENSOR_FUSION: (FusionInput, self.fuse_sensors),
        }[model_type]

        try:
            request = input_model.model_validate(data)
        except ValidationError as e:
            raise InvalidModelInput(model_type, str(e)) from e

        return run(request).model_dump(mode="json")

    @abstractmethod
    def predict_trajectory(self, request: TrajectoryPredictionInput) -> TrajectoryPredictionOutput:
        raise NotImplementedError

    @abstractmethod
    def detect_anomaly(self, request: AnomalyDetectionInput) -> AnomalyDetectionOutput:
        raise NotImplementedError

    @abstractmethod
    def detect_objects(self, request: ObjectDetectionInput) -> ObjectDetectionOutput:
        raise NotImplementedError

    @abstractmethod
    def fuse_sensors(self, request: FusionInput) -> FusionOutput:
        raise NotImplementedError

    @abstractmethod
    def update_threshold(self, new_threshold: float) -> None:
        """Set the score above which detect_anomaly reports an anomaly."""
        raise NotImplementedError
