"""
Passive trace hooks for router activity.

Tracing never influences execution:
- Never changes a request outcome
- Never raises into the caller
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class TraceMetadata:
    """Identity attached to every trace event."""

    trace_id: str  # request id for request-scoped events
    model_type: Optional[str] = None


class Tracer(ABC):
    """Trace sink interface. Implementations must not raise."""

    @abstractmethod
    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        """Record a point-in-time event (e.g. "inference_request_sent")."""
        pass

    @abstractmethod
    def is_enabled(self) -> bool:
        pass


class NoOpTracer(Tracer):
    """Tracer used when tracing is disabled."""

    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        pass

    def is_enabled(self) -> bool:
        return False


class LoggingTracer(Tracer):
    """Writes trace events to the router.trace logger at DEBUG level."""

    def __init__(self, logger_name: str = "router.trace"):
        self._log = logging.getLogger(logger_name)

    def record_event(
        self, name: str, metadata: Dict[str, Any], trace_metadata: TraceMetadata
    ) -> None:
        self._log.debug(
            "%s trace_id=%s model_type=%s %s",
            name,
            trace_metadata.trace_id,
            trace_metadata.model_type,
            metadata,
        )

    def is_enabled(self) -> bool:
        return self._log.isEnabledFor(logging.DEBUG)


def emit_event(
    tracer: Optional[Tracer],
    name: str,
    metadata: Dict[str, Any],
    trace_metadata: TraceMetadata,
) -> None:
    """Safely emit a trace event. Never raises."""
    if tracer is None:
        return
    try:
        tracer.record_event(name, metadata, trace_metadata)
    except Exception:
        logger.debug("tracer %s failed on %s", type(tracer).__name__, name, exc_info=True)
