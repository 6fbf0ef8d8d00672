"""
Health check endpoints for the simulated ML server.

Provides:
- /health: plain-text banner
- /health/live: Liveness probe (process is running)
- /health/ready: Readiness probe (a model backend is attached)

Neither probe calls the models themselves.
"""

import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])


@dataclass
class HealthStatus:
    """Health status response."""

    status: str  # "healthy", "unhealthy"
    timestamp: str
    ready: bool
    uptime_seconds: float
    backend: str
    active_connections: int
    message: str


class HealthChecker:
    """Reports server readiness from application state."""

    def __init__(self, start_time: float):
        self.start_time = start_time

    def check_live(self, app_state) -> HealthStatus:
        return HealthStatus(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            ready=True,
            uptime_seconds=time.time() - self.start_time,
            backend=self._backend_name(app_state),
            active_connections=getattr(app_state, "active_connections", 0),
            message="ML server process is running",
        )

    def check_ready(self, app_state) -> HealthStatus:
        backend = getattr(app_state, "backend", None)
        ready = backend is not None
        return HealthStatus(
            status="healthy" if ready else "unhealthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            ready=ready,
            uptime_seconds=time.time() - self.start_time,
            backend=self._backend_name(app_state),
            active_connections=getattr(app_state, "active_connections", 0),
            message="Model backend attached" if ready else "No model backend configured",
        )

    @staticmethod
    def _backend_name(app_state) -> str:
        backend = getattr(app_state, "backend", None)
        return getattr(backend, "name", "none") if backend is not None else "none"

    @staticmethod
    def to_dict(status: HealthStatus) -> Dict[str, Any]:
        return asdict(status)


@router.get("/health", response_class=PlainTextResponse)
async def health_banner():
    return "ML Server is running"


@router.get("/health/live")
async def health_live(request: Request):
    """Liveness probe."""
    checker: HealthChecker = request.app.state.health_checker
    return checker.to_dict(checker.check_live(request.app.state))


@router.get("/health/ready")
async def health_ready(request: Request):
    """Readiness probe."""
    checker: HealthChecker = request.app.state.health_checker
    return checker.to_dict(checker.check_ready(request.app.state))
