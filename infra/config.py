"""
Infrastructure configuration system.

Environment-based settings for the inference router client and the model
backend, with defaults matching a local ML server on port 8080.
"""

import os
from typing import Literal, Optional
from dataclasses import dataclass

from inference import ModelBackend, StubModelBackend
from router import ConnectionManager, InferenceClient, RequestCorrelator
from router.connection import Connector
from router.tracing import LoggingTracer, NoOpTracer, Tracer


ModelBackendType = Literal["stub"]


@dataclass
class InfraConfig:
    """Infrastructure configuration from environment."""

    # Router
    ml_server_url: str = "ws://localhost:8080/ws"
    request_timeout_s: float = 5.0
    heartbeat_interval_s: float = 30.0
    reconnect_base_delay_s: float = 1.0
    max_reconnect_attempts: int = 5
    connect_timeout_s: float = 10.0
    trace_enabled: bool = False

    # Models
    model_backend: ModelBackendType = "stub"
    anomaly_threshold: float = 0.85

    @classmethod
    def from_env(cls) -> "InfraConfig":
        """
        Load configuration from environment variables.

        Unset variables fall back to the dataclass defaults.
        """
        return cls(
            # Router Configuration
            ml_server_url=os.getenv("ML_SERVER_URL", "ws://localhost:8080/ws"),
            request_timeout_s=float(os.getenv("REQUEST_TIMEOUT_S", "5.0")),
            heartbeat_interval_s=float(os.getenv("HEARTBEAT_INTERVAL_S", "30.0")),
            reconnect_base_delay_s=float(os.getenv("RECONNECT_BASE_DELAY_S", "1.0")),
            max_reconnect_attempts=int(os.getenv("MAX_RECONNECT_ATTEMPTS", "5")),
            connect_timeout_s=float(os.getenv("CONNECT_TIMEOUT_S", "10.0")),
            trace_enabled=os.getenv("ROUTER_TRACE", "false").lower() == "true",

            # Model Configuration
            model_backend=os.getenv("MODEL_BACKEND", "stub"),  # type: ignore
            anomaly_threshold=float(os.getenv("ANOMALY_THRESHOLD", "0.85")),
        )

    def create_model_backend(self) -> ModelBackend:
        """Create model backend instance based on configuration."""
        if self.model_backend == "stub":
            return StubModelBackend(anomaly_threshold=self.anomaly_threshold)
        else:
            # Default to stub
            return StubModelBackend(anomaly_threshold=self.anomaly_threshold)

    def create_correlator(self) -> RequestCorrelator:
        return RequestCorrelator(timeout_s=self.request_timeout_s)

    def create_connection_manager(self, connector: Optional[Connector] = None) -> ConnectionManager:
        return ConnectionManager(
            url=self.ml_server_url,
            connector=connector,
            heartbeat_interval_s=self.heartbeat_interval_s,
            reconnect_base_delay_s=self.reconnect_base_delay_s,
            max_reconnect_attempts=self.max_reconnect_attempts,
            connect_timeout_s=self.connect_timeout_s,
        )

    def create_tracer(self) -> Tracer:
        return LoggingTracer() if self.trace_enabled else NoOpTracer()

    def create_client(self, connector: Optional[Connector] = None) -> InferenceClient:
        """Create a fully wired, not yet connected, inference client."""
        return InferenceClient(
            connection=self.create_connection_manager(connector),
            correlator=self.create_correlator(),
            tracer=self.create_tracer(),
        )


def get_config() -> InfraConfig:
    """Get infrastructure configuration from the current environment."""
    return InfraConfig.from_env()
