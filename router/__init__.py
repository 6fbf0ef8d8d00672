"""
Inference request router.

Dispatches simulated AV inference requests over a persistent WebSocket and
routes each response back to the caller awaiting it.

Layers (outbound order):
- InferenceClient: typed façade (predict_trajectory, detect_anomaly, ...)
- RequestCorrelator: pending requests, timeouts, subscriptions
- codec: Envelope <-> JSON text
- ConnectionManager: socket lifetime, heartbeat, reconnect policy

Example usage:
    from router import ConnectionManager, InferenceClient

    async with InferenceClient(ConnectionManager("ws://localhost:8080/ws")) as client:
        result = await client.detect_objects("frame_001")
"""

from .types import (
    ConnectionState,
    Envelope,
    ErrorPayload,
    HeartbeatPayload,
    InferenceRequestPayload,
    InferenceResponsePayload,
    MessageType,
    ModelType,
)
from .errors import (
    ConnectError,
    DecodeError,
    DisconnectedWhilePending,
    InvalidTransition,
    RequestTimeout,
    RouterError,
    SendFailure,
    ServerError,
)
from .codec import decode, encode
from .correlator import PendingRequest, RequestCorrelator
from .connection import ConnectionManager
from .client import InferenceClient
from .tracing import LoggingTracer, NoOpTracer, TraceMetadata, Tracer

__all__ = [
    "ConnectionState",
    "Envelope",
    "ErrorPayload",
    "HeartbeatPayload",
    "InferenceRequestPayload",
    "InferenceResponsePayload",
    "MessageType",
    "ModelType",
    "ConnectError",
    "DecodeError",
    "DisconnectedWhilePending",
    "InvalidTransition",
    "RequestTimeout",
    "RouterError",
    "SendFailure",
    "ServerError",
    "decode",
    "encode",
    "PendingRequest",
    "RequestCorrelator",
    "ConnectionManager",
    "InferenceClient",
    "LoggingTracer",
    "NoOpTracer",
    "TraceMetadata",
    "Tracer",
]
