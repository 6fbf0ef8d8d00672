"""
FastAPI Application Entry Point: simulated ML server

Integrates:
  - WebSocket inference endpoint (/ws)
  - REST inference endpoints (/api)
  - Health checks
  - Middleware for logging & error handling

Run: uvicorn main:app --host 127.0.0.1 --port 8080
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from api import HealthChecker, health_router, rest_router, ws_router
from config import Config
from inference import ModelBackend
from infra import get_config

# Setup logging
logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(backend: Optional[ModelBackend] = None) -> FastAPI:
    """
    Build the ML server application.

    Args:
        backend: Model backend to serve; defaults to the one selected by
            MODEL_BACKEND.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info("=" * 60)
        logger.info("ML Server starting up...")
        logger.info(f"Environment: {Config.ENVIRONMENT}")
        logger.info(f"Model Backend: {app.state.backend.name}")
        logger.info("=" * 60)

        yield

        # Shutdown
        logger.info(f"ML Server shutting down ({app.state.active_connections} open connections)")

    app = FastAPI(
        title="AV Inference ML Server",
        description="Simulated autonomous-vehicle models over WebSocket and REST",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.backend = backend or get_config().create_model_backend()
    app.state.active_connections = 0
    app.state.health_checker = HealthChecker(start_time=time.time())

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # dashboard is served from another origin
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware for logging
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        logger.debug(f"{request.method} {request.url.path}")
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logger.error(f"Request error: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"},
            )

    # Include routers
    app.include_router(health_router)
    app.include_router(rest_router)
    app.include_router(ws_router)

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "AV Inference ML Server",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "websocket": "WS /ws",
                "models": "GET /api/models",
                "inference": "POST /api/inference/{trajectory|anomaly|objects|fusion}",
                "anomaly_threshold": "PUT /api/anomaly/threshold",
                "health": "GET /health",
                "health_live": "GET /health/live",
                "health_ready": "GET /health/ready",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=Config.ML_SERVER_HOST,
        port=Config.ML_SERVER_PORT,
        log_level=Config.LOG_LEVEL.lower(),
    )
