"""
WebSocket inference endpoint of the simulated ML server.

Frame flow:
  text frame → decode → backend.predict → inference_response (request_id echoed)

Replies:
  - inference_request  → inference_response, or error naming the request_id
  - heartbeat          → heartbeat with the server's clock
  - malformed frame    → error
  - anything else      → no reply
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from inference import InvalidModelInput, ModelBackend
from router import codec
from router.errors import DecodeError
from router.types import (
    Envelope,
    InferenceResponsePayload,
    MessageType,
    error_envelope,
    heartbeat_envelope,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["inference"])


def run_inference(backend: ModelBackend, request) -> InferenceResponsePayload:
    """Run one InferenceRequestPayload through the backend, timing it."""
    start = time.perf_counter()
    prediction = backend.predict(request.model_type, request.data)
    return InferenceResponsePayload(
        model_type=request.model_type,
        prediction=prediction,
        request_id=request.request_id,
        latency_ms=(time.perf_counter() - start) * 1000.0,
        timestamp=utc_now_iso(),
    )


def handle_text_message(backend: ModelBackend, text: str) -> Optional[str]:
    """
    Process one inbound text frame.

    Returns:
        The reply frame, or None when no reply is due.
    """
    try:
        message = codec.decode(text)
    except DecodeError as e:
        logger.warning(f"Dropping malformed frame: {e}")
        return codec.encode(error_envelope(f"malformed message: {e}"))

    if message.message_type is MessageType.INFERENCE_REQUEST:
        request = message.payload
        try:
            response = run_inference(backend, request)
        except InvalidModelInput as e:
            logger.warning(f"Rejected {request.model_type.value} request {request.request_id}: {e.detail}")
            return codec.encode(error_envelope(str(e), request_id=request.request_id))

        return codec.encode(
            Envelope(message_type=MessageType.INFERENCE_RESPONSE, payload=response)
        )

    if message.message_type is MessageType.HEARTBEAT:
        return codec.encode(heartbeat_envelope())

    logger.debug(f"Received unhandled message type: {message.message_type.value}")
    return None


@router.websocket("/ws")
async def inference_socket(websocket: WebSocket):
    """Serve inference requests for one client connection."""
    await websocket.accept()
    state = websocket.app.state
    state.active_connections += 1
    logger.info(f"New WebSocket connection established ({state.active_connections} active)")

    try:
        while True:
            text = await websocket.receive_text()
            reply = handle_text_message(state.backend, text)
            if reply is not None:
                await websocket.send_text(reply)
    except WebSocketDisconnect:
        logger.info("WebSocket connection closed")
    finally:
        state.active_connections -= 1
