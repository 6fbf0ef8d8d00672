"""
HTTP and WebSocket routers of the simulated ML server.
"""

from .health import HealthChecker, HealthStatus
from .health import router as health_router
from .rest import router as rest_router
from .ws import handle_text_message, run_inference
from .ws import router as ws_router

__all__ = [
    "HealthChecker",
    "HealthStatus",
    "health_router",
    "rest_router",
    "ws_router",
    "handle_text_message",
    "run_inference",
]
