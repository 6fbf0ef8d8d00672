"""
REST inference endpoints of the simulated ML server.

  GET  /api/models             → served model types
  POST /api/inference/{model}  → InferenceResponsePayload (model: trajectory | anomaly | objects | fusion)
  PUT  /api/anomaly/threshold  → set the anomaly detection threshold
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, HTTPException, Request
from pydantic import BaseModel, Field

from inference import InvalidModelInput
from router.types import InferenceRequestPayload, InferenceResponsePayload, ModelType

from .ws import run_inference

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["inference"])


class ThresholdUpdate(BaseModel):
    threshold: float = Field(ge=0.0)


MODEL_ALIASES: Dict[str, ModelType] = {
    "trajectory": ModelType.TRAJECTORY_PREDICTION,
    "anomaly": ModelType.ANOMALY_DETECTION,
    "objects": ModelType.OBJECT_DETECTION,
    "fusion": ModelType.SENSOR_FUSION,
}


@router.get("/models")
async def list_models() -> List[str]:
    """List the model types this server answers."""
    return [model_type.value for model_type in ModelType]


@router.post("/inference/{model}", response_model=InferenceResponsePayload, response_model_exclude_none=True)
async def inference(model: str, request: Request, data: Dict[str, Any] = Body(...)):
    """Run one inference request outside the WebSocket session."""
    model_type = MODEL_ALIASES.get(model)
    if model_type is None:
        raise HTTPException(status_code=400, detail=f"Unknown model: {model}")

    payload = InferenceRequestPayload(model_type=model_type, data=data)
    try:
        return run_inference(request.app.state.backend, payload)
    except InvalidModelInput as e:
        logger.warning(f"Rejected REST {model_type.value} request: {e.detail}")
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/anomaly/threshold")
async def update_anomaly_threshold(update: ThresholdUpdate, request: Request) -> Dict[str, float]:
    """Change the score above which anomaly detection flags an anomaly."""
    request.app.state.backend.update_threshold(update.threshold)
    logger.info(f"Anomaly threshold set to {update.threshold}")
    return {"threshold": update.threshold}
