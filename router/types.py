"""
Wire and state types for the inference request router.

Every frame exchanged with the ML server is an Envelope:

    {
        "message_type": "inference_request" | "inference_response" | "heartbeat" | "error",
        "payload": { ... }
    }

The payload model is chosen by message_type. Optional fields are left off
the wire when unset.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, model_validator


class MessageType(str, Enum):
    """Envelope tag."""

    INFERENCE_REQUEST = "inference_request"
    INFERENCE_RESPONSE = "inference_response"
    HEARTBEAT = "heartbeat"
    ERROR = "error"


class ModelType(str, Enum):
    """Simulated models served by the ML server."""

    TRAJECTORY_PREDICTION = "trajectory_prediction"
    ANOMALY_DETECTION = "anomaly_detection"
    OBJECT_DETECTION = "object_detection"
    SENSOR_FUSION = "sensor_fusion"


class ConnectionState(str, Enum):
    """Lifecycle of the socket owned by ConnectionManager."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


# ──────────────────────────────────────────────────────────────
# PAYLOADS
# ──────────────────────────────────────────────────────────────


class InferenceRequestPayload(BaseModel):
    model_type: ModelType
    data: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None


class InferenceResponsePayload(BaseModel):
    model_type: ModelType
    prediction: Dict[str, Any] = Field(default_factory=dict)
    request_id: Optional[str] = None
    latency_ms: Optional[float] = None
    timestamp: Optional[str] = None


class HeartbeatPayload(BaseModel):
    timestamp: str = Field(default_factory=lambda: utc_now_iso())


class ErrorPayload(BaseModel):
    message: str
    request_id: Optional[str] = None


Payload = Union[
    InferenceRequestPayload,
    InferenceResponsePayload,
    HeartbeatPayload,
    ErrorPayload,
]

_PAYLOAD_MODELS = {
    MessageType.INFERENCE_REQUEST.value: InferenceRequestPayload,
    MessageType.INFERENCE_RESPONSE.value: InferenceResponsePayload,
    MessageType.HEARTBEAT.value: HeartbeatPayload,
    MessageType.ERROR.value: ErrorPayload,
}


class Envelope(BaseModel):
    """Unit of wire exchange."""

    message_type: MessageType
    payload: Payload

    @model_validator(mode="before")
    @classmethod
    def _select_payload_model(cls, data: Any) -> Any:
        # Raw dicts are validated against the model named by the tag,
        # never guessed from the union.
        if not isinstance(data, dict) or not isinstance(data.get("message_type"), str):
            return data
        tag = data["message_type"]
        payload_model = _PAYLOAD_MODELS.get(tag.value if isinstance(tag, MessageType) else tag)
        payload = data.get("payload")
        if payload_model is not None and isinstance(payload, dict):
            data = {**data, "payload": payload_model.model_validate(payload)}
        return data

    @model_validator(mode="after")
    def _check_payload_matches_tag(self) -> "Envelope":
        expected = _PAYLOAD_MODELS[self.message_type.value]
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"payload {type(self.payload).__name__} does not match "
                f"message_type {self.message_type.value}"
            )
        return self


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601."""
    return datetime.now(timezone.utc).isoformat()


def heartbeat_envelope() -> Envelope:
    return Envelope(message_type=MessageType.HEARTBEAT, payload=HeartbeatPayload())


def error_envelope(message: str, request_id: Optional[str] = None) -> Envelope:
    return Envelope(
        message_type=MessageType.ERROR,
        payload=ErrorPayload(message=message, request_id=request_id),
    )
