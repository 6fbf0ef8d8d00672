"""
Router error taxonomy.

Connection-level errors are recovered by the reconnect policy; request-level
errors reach only the caller that issued the request. None are fatal.
"""

from typing import Optional


class RouterError(Exception):
    """Base class for every router failure."""


class ConnectError(RouterError):
    """Opening the socket failed or timed out."""

    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.detail = detail
        super().__init__(f"Could not connect to {url}: {detail}" if detail else f"Could not connect to {url}")


class DecodeError(RouterError):
    """Inbound frame could not be turned into an Envelope."""


class SendFailure(RouterError):
    """Envelope could not be transmitted."""


class RequestTimeout(RouterError):
    """No matching response arrived before the deadline."""

    def __init__(self, request_id: str, model_type: str, timeout_s: float):
        self.request_id = request_id
        self.model_type = model_type
        self.timeout_s = timeout_s
        super().__init__(f"Request timeout: {request_id} ({model_type}) after {timeout_s}s")


class DisconnectedWhilePending(RouterError):
    """The connection dropped while the request was still awaiting a response."""

    def __init__(self, request_id: str, model_type: str, reason: str = "connection closed"):
        self.request_id = request_id
        self.model_type = model_type
        self.reason = reason
        super().__init__(f"Request {request_id} ({model_type}) abandoned: {reason}")


class ServerError(RouterError):
    """The server answered a request with an error envelope."""

    def __init__(self, message: str, request_id: Optional[str] = None):
        self.request_id = request_id
        self.server_message = message
        super().__init__(f"Server error for {request_id}: {message}" if request_id else f"Server error: {message}")


class InvalidTransition(RouterError):
    """Connection state change not allowed by the state machine."""

    def __init__(self, previous: str, current: str):
        self.previous = previous
        self.current = current
        super().__init__(f"Invalid connection transition {previous} -> {current}")
