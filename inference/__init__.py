"""
Model boundary layer for simulated AV inference.

This package provides a clean abstraction for model invocation,
allowing the ML server to remain agnostic of the underlying models.

Supported backends:
- StubModelBackend: Deterministic simulated models (default for demo/CI/tests)

Example usage:
    from inference import StubModelBackend
    from router.types import ModelType

    backend = StubModelBackend()
    prediction = backend.predict(
        ModelType.TRAJECTORY_PREDICTION,
        {"history": [{"x": 0, "y": 0}, {"x": 1, "y": 1}], "prediction_horizon": 3},
    )
"""

from .types import (
    AnomalyDetectionInput,
    AnomalyDetectionOutput,
    BoundingBox,
    DetectedObject,
    FusionInput,
    FusionOutput,
    ObjectDetectionInput,
    ObjectDetectionOutput,
    SensorData,
    SensorStatus,
    TrajectoryPoint,
    TrajectoryPredictionInput,
    TrajectoryPredictionOutput,
)
from .base import InvalidModelInput, ModelBackend
from .stub import StubModelBackend

__all__ = [
    "AnomalyDetectionInput",
    "AnomalyDetectionOutput",
    "BoundingBox",
    "DetectedObject",
    "FusionInput",
    "FusionOutput",
    "ObjectDetectionInput",
    "ObjectDetectionOutput",
    "SensorData",
    "SensorStatus",
    "TrajectoryPoint",
    "TrajectoryPredictionInput",
    "TrajectoryPredictionOutput",
    "InvalidModelInput",
    "ModelBackend",
    "StubModelBackend",
]
