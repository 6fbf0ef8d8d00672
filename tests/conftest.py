"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from websockets.exceptions import ConnectionClosedOK  # noqa: E402

from api.ws import handle_text_message  # noqa: E402
from inference import StubModelBackend  # noqa: E402
from router import codec  # noqa: E402
from router.types import MessageType  # noqa: E402

Responder = Callable[[str], Optional[str]]

_CLOSED = object()


class FakeConnection:
    """
    In-memory stand-in for a websockets client connection.

    Frames sent by the client are recorded in ``sent``; a responder, if
    given, answers each one. ``push`` delivers a server frame, ``drop``
    simulates the server closing the socket.
    """

    def __init__(self, responder: Optional[Responder] = None):
        self.responder = responder
        self.sent: List[str] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(text)
        if self.responder is not None:
            reply = self.responder(text)
            if reply is not None:
                self._inbox.put_nowait(reply)

    def push(self, text: str) -> None:
        self._inbox.put_nowait(text)

    def drop(self) -> None:
        self._inbox.put_nowait(_CLOSED)

    async def close(self) -> None:
        self.closed = True
        self._inbox.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            self.closed = True
            raise StopAsyncIteration
        return item

    def sent_envelopes(self, message_type: Optional[MessageType] = None):
        envelopes = [codec.decode(frame) for frame in self.sent]
        if message_type is None:
            return envelopes
        return [e for e in envelopes if e.message_type is message_type]


class FakeConnector:
    """Connector returning FakeConnections; set ``fail`` to refuse connections."""

    def __init__(self, responder: Optional[Responder] = None):
        self.responder = responder
        self.fail = False
        self.calls = 0
        self.connections: List[FakeConnection] = []

    async def __call__(self, url: str) -> FakeConnection:
        self.calls += 1
        if self.fail:
            raise OSError(f"connection refused: {url}")
        connection = FakeConnection(self.responder)
        self.connections.append(connection)
        return connection

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]


def stub_server(backend: Optional[StubModelBackend] = None) -> Responder:
    """Responder running the real server frame handler over a stub backend."""
    backend = backend or StubModelBackend()
    return lambda text: handle_text_message(backend, text)


def legacy_server(backend: Optional[StubModelBackend] = None) -> Responder:
    """Like stub_server, but for a server that never echoes request_id."""
    serve = stub_server(backend)

    def respond(text: str) -> Optional[str]:
        reply = serve(text)
        if reply is None:
            return None
        envelope = codec.decode(reply)
        if envelope.message_type is MessageType.INFERENCE_RESPONSE:
            envelope.payload.request_id = None
        return codec.encode(envelope)

    return respond


@pytest.fixture
def fake_connector() -> FakeConnector:
    """Connector with no server behind it; tests push frames by hand."""
    return FakeConnector()


@pytest.fixture
def loopback_connector() -> FakeConnector:
    """Connector wired to the ML server frame handler (request_id echoed)."""
    return FakeConnector(stub_server())


@pytest.fixture
def legacy_connector() -> FakeConnector:
    """Connector wired to a server that does not echo request_id."""
    return FakeConnector(legacy_server())


@pytest.fixture
def wait_until():
    """Poll a condition on the running loop until true or timeout."""

    async def _wait(condition: Callable[[], bool], timeout: float = 1.0, interval: float = 0.005) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(interval)
        return True

    return _wait


@pytest.fixture
def make_connector() -> Callable[..., FakeConnector]:
    """Factory for connectors with a custom responder."""
    return FakeConnector
