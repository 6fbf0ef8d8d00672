import math
import random
import time
from typing import Dict, List

from .base import ModelBackend
from .types import (
    AnomalyDetectionInput,
    AnomalyDetectionOutput,
    BoundingBox,
    DetectedObject,
    FusionInput,
    FusionOutput,
    ObjectDetectionInput,
    ObjectDetectionOutput,
    SensorStatus,
    TrajectoryPoint,
    TrajectoryPredictionInput,
    TrajectoryPredictionOutput,
)

OBJECT_CLASSES = [
    "car",
    "truck",
    "pedestrian",
    "bicycle",
    "motorcycle",
    "bus",
    "traffic_light",
    "stop_sign",
]

SENSOR_WEIGHTS: Dict[str, float] = {
    "lidar": 0.4,
    "camera": 0.35,
    "radar": 0.25,
}
DEFAULT_SENSOR_WEIGHT = 0.2


def fusion_quality(confidence: float) -> str:
    if confidence >= 0.8:
        return "excellent"
    if confidence >= 0.6:
        return "good"
    if confidence >= 0.4:
        return "fair"
    return "poor"


class StubModelBackend(ModelBackend):
    """
    Deterministic simulated models for the demo server, CI and tests.

    Same inputs always produce the same outputs (processing_time_ms aside):
    object detection seeds its generator from frame_id.
    """

    name = "stub"

    TRAJECTORY_CONFIDENCE = 0.9
    ACTIVE_SENSOR_CONFIDENCE = 0.95

    def __init__(self, anomaly_threshold: float = 0.85):
        self.anomaly_threshold = anomaly_threshold

    def update_threshold(self, new_threshold: float) -> None:
        self.anomaly_threshold = new_threshold

    def predict_trajectory(self, request: TrajectoryPredictionInput) -> TrajectoryPredictionOutput:
        """Linear extrapolation from the last two history points."""
        history = request.history
        if len(history) < 2:
            return TrajectoryPredictionOutput(predictions=[], confidence=0.0)

        prev, last = history[-2], history[-1]
        dx = last.x - prev.x
        dy = last.y - prev.y
        dt = None
        if last.timestamp is not None and prev.timestamp is not None:
            dt = last.timestamp - prev.timestamp

        predictions: List[TrajectoryPoint] = []
        for step in range(1, request.prediction_horizon + 1):
            predictions.append(
                TrajectoryPoint(
                    x=last.x + dx * step,
                    y=last.y + dy * step,
                    timestamp=last.timestamp + dt * step if dt is not None else None,
                )
            )

        return TrajectoryPredictionOutput(
            predictions=predictions,
            confidence=self.TRAJECTORY_CONFIDENCE,
        )

    def detect_anomaly(self, request: AnomalyDetectionInput) -> AnomalyDetectionOutput:
        """Coefficient of variation per sensor, averaged."""
        sensor_scores = []
        for sensor in request.sensor_readings:
            if not sensor.values:
                sensor_scores.append((sensor.sensor_type, 0.0))
                continue
            mean = sum(sensor.values) / len(sensor.values)
            variance = sum((v - mean) ** 2 for v in sensor.values) / len(sensor.values)
            sensor_scores.append((sensor.sensor_type, math.sqrt(variance) / (mean + 0.001)))

        anomaly_score = (
            sum(score for _, score in sensor_scores) / len(sensor_scores)
            if sensor_scores
            else 0.0
        )
        return AnomalyDetectionOutput(
            anomaly_score=anomaly_score,
            is_anomaly=anomaly_score > self.anomaly_threshold,
            threshold=self.anomaly_threshold,
            sensor_scores=sensor_scores,
        )

    def detect_objects(self, request: ObjectDetectionInput) -> ObjectDetectionOutput:
        start = time.perf_counter()
        rng = random.Random(request.frame_id)

        count = rng.randrange(5, 15) if request.simulate_complex else rng.randrange(2, 8)
        objects = [
            DetectedObject(
                id=f"obj_{i}",
                class_name=rng.choice(OBJECT_CLASSES),
                confidence=0.7 + rng.random() * 0.3,
                bounding_box=BoundingBox(
                    x=rng.uniform(-50.0, 50.0),
                    y=rng.uniform(-50.0, 50.0),
                    width=rng.uniform(5.0, 20.0),
                    height=rng.uniform(5.0, 20.0),
                ),
            )
            for i in range(count)
        ]

        return ObjectDetectionOutput(
            frame_id=request.frame_id,
            objects=objects,
            processing_time_ms=(time.perf_counter() - start) * 1000.0,
        )

    def fuse_sensors(self, request: FusionInput) -> FusionOutput:
        """Weighted confidence over active sensors."""
        statuses = []
        total_weight = 0.0
        weighted_confidence = 0.0

        for sensor_type, is_active in request.sensor_data.items():
            weight = SENSOR_WEIGHTS.get(sensor_type, DEFAULT_SENSOR_WEIGHT)
            confidence = self.ACTIVE_SENSOR_CONFIDENCE if is_active else 0.0
            if is_active:
                total_weight += weight
                weighted_confidence += weight * confidence
            statuses.append(
                SensorStatus(
                    sensor_type=sensor_type,
                    is_active=is_active,
                    confidence=confidence,
                    last_update=request.timestamp,
                )
            )

        overall = weighted_confidence / total_weight if total_weight > 0 else 0.0
        return FusionOutput(
            overall_confidence=overall,
            sensor_statuses=statuses,
            fusion_quality=fusion_quality(overall),
        )
