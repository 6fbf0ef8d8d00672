"""
Connection manager for the ML server WebSocket.

Owns the socket lifetime as an explicit state machine:

    disconnected -> connecting -> connected -> disconnected -> reconnecting -> connecting ...

Policies:
- Heartbeat sent on open, then every heartbeat_interval_s (default 30 s)
- Unrequested close: retry n waits n * reconnect_base_delay_s, at most
  max_reconnect_attempts retries, then stay disconnected until connect()
- send() never raises; failures are logged and reported as False
- Malformed inbound frames are logged and dropped
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from router import codec
from router.errors import ConnectError, DecodeError, InvalidTransition, SendFailure
from router.types import ConnectionState, Envelope, MessageType, heartbeat_envelope

logger = logging.getLogger(__name__)

DEFAULT_URL = "ws://localhost:8080/ws"
DEFAULT_HEARTBEAT_INTERVAL_S = 30.0
DEFAULT_RECONNECT_BASE_DELAY_S = 1.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 5
DEFAULT_CONNECT_TIMEOUT_S = 10.0

Connector = Callable[[str], Awaitable[Any]]
MessageHandler = Callable[[Envelope], None]
StateListener = Callable[[ConnectionState, ConnectionState], None]

_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING, ConnectionState.RECONNECTING}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.CONNECTED, ConnectionState.DISCONNECTED}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
    ConnectionState.RECONNECTING: frozenset({ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}),
}


async def websocket_connector(url: str) -> Any:
    """Default connector: a websockets client connection."""
    return await websockets.connect(url)


class ConnectionManager:
    """
    Persistent WebSocket connection with heartbeat and bounded reconnects.

    Usage:
        manager = ConnectionManager("ws://localhost:8080/ws", on_message=correlator.dispatch)
        await manager.connect()
        await manager.send(envelope)
        await manager.disconnect()

    The connector is injectable: any coroutine function taking the URL and
    returning an object with async ``send(str)``, async ``close()`` and
    async iteration over inbound text frames.
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        on_message: Optional[MessageHandler] = None,
        connector: Optional[Connector] = None,
        heartbeat_interval_s: float = DEFAULT_HEARTBEAT_INTERVAL_S,
        reconnect_base_delay_s: float = DEFAULT_RECONNECT_BASE_DELAY_S,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    ):
        self.url = url
        self.on_message = on_message
        self.heartbeat_interval_s = heartbeat_interval_s
        self.reconnect_base_delay_s = reconnect_base_delay_s
        self.max_reconnect_attempts = max_reconnect_attempts
        self.connect_timeout_s = connect_timeout_s
        self._connector = connector or websocket_connector

        self._state = ConnectionState.DISCONNECTED
        self._ws: Optional[Any] = None
        self._reconnect_attempts = 0
        self._closing = False
        self._listeners: List[StateListener] = []

        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._open_lock: Optional[asyncio.Lock] = None

    # ── State ─────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._ws is not None

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call listener(previous, current) on every transition. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _transition(self, new_state: ConnectionState) -> None:
        previous = self._state
        if new_state is previous:
            return
        if new_state not in _TRANSITIONS[previous]:
            raise InvalidTransition(previous.value, new_state.value)

        self._state = new_state
        logger.info("connection_state %s -> %s url=%s", previous.value, new_state.value, self.url)
        for listener in list(self._listeners):
            try:
                listener(previous, new_state)
            except Exception:
                logger.exception("state_listener_failed listener=%r", listener)

    # ── Lifecycle ─────────────────────────────────────────────

    async def connect(self) -> None:
        """
        Open the socket.

        Cancels any scheduled reconnect. No-op when already connected.

        Raises:
            ConnectError: the connector failed or timed out.
        """
        self._closing = False
        await self._cancel_reconnect()
        await self._open()

    async def disconnect(self) -> None:
        """Close the socket and stop background tasks. Idempotent."""
        self._closing = True
        await self._cancel_reconnect()
        self._stop_session_tasks()

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except (ConnectionClosed, OSError) as e:
                logger.debug("close_failed url=%s error=%s", self.url, e)

        if self._state is ConnectionState.CONNECTING:
            return  # the in-flight open settles the state
        self._transition(ConnectionState.DISCONNECTED)

    async def _open(self) -> None:
        # One open at a time; later callers see the settled state
        if self._open_lock is None:
            self._open_lock = asyncio.Lock()
        async with self._open_lock:
            await self._open_socket()

    async def _open_socket(self) -> None:
        if self._state is ConnectionState.CONNECTED or self._closing:
            return
        self._transition(ConnectionState.CONNECTING)

        try:
            ws = await asyncio.wait_for(self._connector(self.url), timeout=self.connect_timeout_s)
        except asyncio.TimeoutError as e:
            self._transition(ConnectionState.DISCONNECTED)
            raise ConnectError(self.url, f"timed out after {self.connect_timeout_s}s") from e
        except asyncio.CancelledError:
            self._transition(ConnectionState.DISCONNECTED)
            raise
        except Exception as e:
            self._transition(ConnectionState.DISCONNECTED)
            raise ConnectError(self.url, f"{type(e).__name__}: {e}") from e

        if self._closing:
            # disconnect() ran while the socket was opening
            await ws.close()
            self._transition(ConnectionState.DISCONNECTED)
            return

        self._ws = ws
        self._reconnect_attempts = 0
        self._transition(ConnectionState.CONNECTED)
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    # ── Outbound ──────────────────────────────────────────────

    async def send(self, envelope: Envelope) -> bool:
        """
        Transmit an envelope.

        Returns:
            True if handed to the socket, False if not connected or the
            transport failed. Never raises.
        """
        try:
            await self._transmit(envelope)
            return True
        except SendFailure as e:
            logger.error("send_failed type=%s error=%s", envelope.message_type.value, e)
            return False

    async def _transmit(self, envelope: Envelope) -> None:
        ws = self._ws
        if not self.is_connected or ws is None:
            raise SendFailure(f"WebSocket is not connected (state={self._state.value})")
        try:
            await ws.send(codec.encode(envelope))
        except (ConnectionClosed, OSError) as e:
            raise SendFailure(f"{type(e).__name__}: {e}") from e

    async def _heartbeat_loop(self) -> None:
        while self.is_connected:
            await self.send(heartbeat_envelope())
            await asyncio.sleep(self.heartbeat_interval_s)

    # ── Inbound ───────────────────────────────────────────────

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._dispatch_frame(raw)
        except ConnectionClosed as e:
            logger.warning("connection_lost url=%s reason=%s", self.url, e)
        except OSError as e:
            logger.error("socket_error url=%s error=%s", self.url, e)
        finally:
            if ws is self._ws:
                self._handle_close()

    def _dispatch_frame(self, raw: Any) -> None:
        try:
            envelope = codec.decode(raw)
        except DecodeError as e:
            logger.warning("frame_dropped url=%s error=%s", self.url, e)
            return

        if envelope.message_type is MessageType.HEARTBEAT:
            logger.debug("heartbeat_received timestamp=%s", envelope.payload.timestamp)
            return

        if self.on_message is None:
            logger.debug("no_handler type=%s", envelope.message_type.value)
            return
        try:
            self.on_message(envelope)
        except Exception:
            logger.exception("message_handler_failed type=%s", envelope.message_type.value)

    def _handle_close(self) -> None:
        self._ws = None
        self._stop_session_tasks()
        self._transition(ConnectionState.DISCONNECTED)
        if not self._closing:
            self._schedule_reconnect()

    # ── Reconnect policy ──────────────────────────────────────

    def _schedule_reconnect(self) -> None:
        if self._reconnect_attempts >= self.max_reconnect_attempts:
            logger.error(
                "reconnect_exhausted attempts=%d url=%s",
                self._reconnect_attempts,
                self.url,
            )
            self._transition(ConnectionState.DISCONNECTED)
            return

        self._reconnect_attempts += 1
        delay = self.reconnect_base_delay_s * self._reconnect_attempts
        logger.info(
            "reconnect_scheduled attempt=%d/%d delay_s=%.2f",
            self._reconnect_attempts,
            self.max_reconnect_attempts,
            delay,
        )
        self._transition(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self._open()
        except ConnectError as e:
            logger.warning("reconnect_failed attempt=%d error=%s", self._reconnect_attempts, e)
            if not self._closing:
                self._schedule_reconnect()

    # ── Task bookkeeping ──────────────────────────────────────

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            # Let an in-flight open settle its own state first
            await asyncio.gather(task, return_exceptions=True)
        if self._state is ConnectionState.RECONNECTING:
            self._transition(ConnectionState.DISCONNECTED)

    def _stop_session_tasks(self) -> None:
        current = asyncio.current_task()
        for name in ("_reader_task", "_heartbeat_task"):
            task = getattr(self, name)
            setattr(self, name, None)
            if task is not None and task is not current and not task.done():
                task.cancel()
