"""
Inference façade over the connection manager and request correlator.

One coroutine per simulated model. Each builds an inference_request
envelope, registers a pending request, sends it, and returns the matched
response's ``prediction`` record.

Failure modes seen by callers:
- RequestTimeout: no matching response in time (also the outcome of a send
  attempted while disconnected)
- DisconnectedWhilePending: the connection dropped while waiting
- ServerError: the server rejected the request
"""

import logging
import time
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from pydantic import BaseModel

from router.connection import ConnectionManager
from router.correlator import RequestCorrelator, ResponseHandler
from router.errors import RouterError
from router.tracing import NoOpTracer, TraceMetadata, Tracer, emit_event
from router.types import (
    ConnectionState,
    Envelope,
    InferenceRequestPayload,
    MessageType,
    ModelType,
)

logger = logging.getLogger(__name__)

Record = Union[Mapping[str, Any], BaseModel]

DEFAULT_PREDICTION_HORIZON = 20


def _as_dict(record: Record) -> Dict[str, Any]:
    if isinstance(record, BaseModel):
        return record.model_dump(exclude_none=True)
    return dict(record)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class InferenceClient:
    """
    Typed entry point for simulated AV inference.

    Usage:
        connection = ConnectionManager("ws://localhost:8080/ws")
        async with InferenceClient(connection) as client:
            prediction = await client.predict_trajectory([{"x": 0, "y": 0}, {"x": 1, "y": 1}])

    The client wires itself as the connection's message handler and rejects
    every pending request when an established connection drops.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        correlator: Optional[RequestCorrelator] = None,
        tracer: Optional[Tracer] = None,
    ):
        self.connection = connection
        self.correlator = correlator or RequestCorrelator()
        self.tracer = tracer or NoOpTracer()

        self.connection.on_message = self.correlator.dispatch
        self._remove_listener = self.connection.add_state_listener(self._on_state_change)

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        """Connect to the ML server. Raises ConnectError on failure."""
        await self.connection.connect()

    async def close(self) -> None:
        """Disconnect and reject anything still pending."""
        await self.connection.disconnect()
        self.correlator.reject_all("client closed")

    async def __aenter__(self) -> "InferenceClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def subscribe(self, model_type: ModelType, handler: ResponseHandler) -> Callable[[], None]:
        """Passively observe every response of model_type. Returns an unsubscribe callable."""
        return self.correlator.subscribe(model_type, handler)

    def _on_state_change(self, previous: ConnectionState, current: ConnectionState) -> None:
        if previous is ConnectionState.CONNECTED and current is ConnectionState.DISCONNECTED:
            self.correlator.reject_all("connection closed")

    # ── Model-specific calls ──────────────────────────────────

    async def predict_trajectory(
        self,
        history: Iterable[Record],
        horizon: int = DEFAULT_PREDICTION_HORIZON,
    ) -> Dict[str, Any]:
        """Extrapolate a trajectory ``horizon`` steps past ``history``."""
        return await self.send_request(
            ModelType.TRAJECTORY_PREDICTION,
            {
                "history": [_as_dict(point) for point in history],
                "prediction_horizon": horizon,
            },
        )

    async def detect_anomaly(self, sensor_readings: Iterable[Record]) -> Dict[str, Any]:
        """Score a batch of sensor readings for anomalies."""
        return await self.send_request(
            ModelType.ANOMALY_DETECTION,
            {"sensor_readings": [_as_dict(reading) for reading in sensor_readings]},
        )

    async def detect_objects(self, frame_id: str, simulate_complex: bool = False) -> Dict[str, Any]:
        """Detect objects in a (simulated) camera frame."""
        return await self.send_request(
            ModelType.OBJECT_DETECTION,
            {
                "frame_id": frame_id,
                "timestamp": _epoch_ms(),
                "simulate_complex": simulate_complex,
            },
        )

    async def fuse_sensors(self, sensor_data: Mapping[str, bool]) -> Dict[str, Any]:
        """Fuse per-sensor activity flags into an overall confidence."""
        return await self.send_request(
            ModelType.SENSOR_FUSION,
            {"sensor_data": dict(sensor_data), "timestamp": _epoch_ms()},
        )

    # ── Shared request path ───────────────────────────────────

    async def send_request(self, model_type: ModelType, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send one inference request and await its correlated response.

        Returns:
            The response's prediction record.

        Raises:
            RequestTimeout, DisconnectedWhilePending, ServerError
        """
        model_type = ModelType(model_type)
        pending = self.correlator.register(model_type)
        trace = TraceMetadata(trace_id=pending.id, model_type=model_type.value)

        envelope = Envelope(
            message_type=MessageType.INFERENCE_REQUEST,
            payload=InferenceRequestPayload(model_type=model_type, data=data, request_id=pending.id),
        )
        sent = await self.connection.send(envelope)
        emit_event(self.tracer, "inference_request_sent", {"sent": sent}, trace)
        if not sent:
            logger.warning(
                "request_not_sent id=%s model_type=%s; awaiting timeout",
                pending.id,
                model_type.value,
            )

        try:
            response = await pending.future
        except RouterError as e:
            emit_event(
                self.tracer,
                "inference_request_failed",
                {"error": type(e).__name__, "detail": str(e)},
                trace,
            )
            raise

        emit_event(
            self.tracer,
            "inference_response_received",
            {"latency_ms": response.latency_ms, "echoed_id": response.request_id == pending.id},
            trace,
        )
        return response.prediction
