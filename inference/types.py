from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


# Trajectory prediction

class TrajectoryPoint(BaseModel):
    x: float
    y: float
    timestamp: Optional[int] = None  # epoch ms


class TrajectoryPredictionInput(BaseModel):
    history: List[TrajectoryPoint]
    prediction_horizon: int = Field(default=20, ge=0, le=500)


class TrajectoryPredictionOutput(BaseModel):
    predictions: List[TrajectoryPoint]
    confidence: float


# Anomaly detection

class SensorData(BaseModel):
    sensor_type: str
    values: List[float]
    timestamp: Optional[int] = None


class AnomalyDetectionInput(BaseModel):
    sensor_readings: List[SensorData]


class AnomalyDetectionOutput(BaseModel):
    anomaly_score: float
    is_anomaly: bool
    threshold: float
    sensor_scores: List[Tuple[str, float]]


# Object detection

class BoundingBox(BaseModel):
    x: float
    y: float
    width: float
    height: float


class DetectedObject(BaseModel):
    id: str
    class_name: str
    confidence: float
    bounding_box: BoundingBox


class ObjectDetectionInput(BaseModel):
    frame_id: str
    timestamp: Optional[int] = None
    simulate_complex: bool = False


class ObjectDetectionOutput(BaseModel):
    frame_id: str
    objects: List[DetectedObject]
    processing_time_ms: float


# Sensor fusion

class FusionInput(BaseModel):
    sensor_data: Dict[str, bool]  # sensor name -> active
    timestamp: Optional[int] = None


class SensorStatus(BaseModel):
    sensor_type: str
    is_active: bool
    confidence: float
    last_update: Optional[int] = None


class FusionOutput(BaseModel):
    overall_confidence: float
    sensor_statuses: List[SensorStatus]
    fusion_quality: str  # excellent | good | fair | poor
