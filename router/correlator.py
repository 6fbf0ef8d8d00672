"""
Request correlator.

Matches inbound inference responses to the pending request that caused them.

Matching order:
1. A response echoing a request_id resolves exactly that request, or
   nothing if it is no longer pending (timed out, rejected, cancelled).
2. A response without request_id resolves the first pending request
   (insertion order) with the same model_type. With two in-flight
   requests of the same model_type and a server that does not echo
   request_id, a response can reach the wrong caller.

Responses nobody is waiting for are ignored. Subscribers see every
response of their model_type, matched or not.
"""

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from router.errors import DisconnectedWhilePending, RequestTimeout, ServerError
from router.types import (
    Envelope,
    ErrorPayload,
    InferenceResponsePayload,
    MessageType,
    ModelType,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_S = 5.0

ResponseHandler = Callable[[InferenceResponsePayload], Any]


@dataclass
class PendingRequest:
    id: str
    model_type: ModelType
    future: "asyncio.Future[InferenceResponsePayload]"
    created_at: float
    deadline: float
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)


def new_request_id(model_type: ModelType) -> str:
    """Unique token of the form {model_type}_{epoch_ms}_{random}."""
    return f"{model_type.value}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class RequestCorrelator:
    """
    Owns the pending-request map and the per-model subscriber lists.

    Must be used from inside a running event loop.
    """

    def __init__(self, timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S):
        self.timeout_s = timeout_s
        self._pending: Dict[str, PendingRequest] = {}
        self._subscribers: Dict[ModelType, List[ResponseHandler]] = {}
        self._subscriber_tasks: Set[asyncio.Future] = set()

    # ── Pending requests ──────────────────────────────────────

    def register(self, model_type: ModelType, request_id: Optional[str] = None) -> PendingRequest:
        """
        Create a pending request and arm its timeout.

        Await ``pending.future`` for the matched InferenceResponsePayload.
        """
        loop = asyncio.get_running_loop()
        model_type = ModelType(model_type)
        request_id = request_id or new_request_id(model_type)
        if request_id in self._pending:
            raise ValueError(f"request id already pending: {request_id}")

        now = loop.time()
        pending = PendingRequest(
            id=request_id,
            model_type=model_type,
            future=loop.create_future(),
            created_at=now,
            deadline=now + self.timeout_s,
        )
        pending.timer = loop.call_later(self.timeout_s, self._expire, request_id)
        # Any completion (resolve, reject, caller cancel) drops the entry
        pending.future.add_done_callback(lambda _f, rid=request_id: self._discard(rid))
        self._pending[request_id] = pending

        logger.debug("request_registered id=%s model_type=%s", request_id, model_type.value)
        return pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._pending

    def reject_all(self, reason: str = "connection closed") -> int:
        """Reject every pending request with DisconnectedWhilePending."""
        pending = list(self._pending.values())
        for request in pending:
            self._settle(
                request,
                error=DisconnectedWhilePending(request.id, request.model_type.value, reason),
            )
        if pending:
            logger.warning("rejected_pending count=%d reason=%s", len(pending), reason)
        return len(pending)

    # ── Inbound dispatch ──────────────────────────────────────

    def dispatch(self, envelope: Envelope) -> None:
        """Single inbound path for decoded envelopes."""
        if envelope.message_type is MessageType.INFERENCE_RESPONSE:
            self.handle_response(envelope.payload)
        elif envelope.message_type is MessageType.ERROR:
            self.handle_error(envelope.payload)
        else:
            logger.debug("ignored_message type=%s", envelope.message_type.value)

    def handle_response(self, response: InferenceResponsePayload) -> Optional[PendingRequest]:
        """
        Resolve the pending request this response belongs to.

        Returns:
            The resolved PendingRequest, or None if nothing was waiting.
        """
        match = self._match(response)
        if match is not None:
            self._settle(match, result=response)
            logger.debug(
                "response_matched id=%s model_type=%s",
                match.id,
                response.model_type.value,
            )
        else:
            logger.debug("response_unmatched model_type=%s", response.model_type.value)

        self._notify_subscribers(response)
        return match

    def handle_error(self, error: ErrorPayload) -> bool:
        """Reject the request named by an error envelope. Returns True if one was pending."""
        request = self._pending.get(error.request_id) if error.request_id else None
        if request is None:
            logger.error("server_error message=%s", error.message)
            return False

        logger.warning("server_error id=%s message=%s", request.id, error.message)
        self._settle(request, error=ServerError(error.message, request.id))
        return True

    def _match(self, response: InferenceResponsePayload) -> Optional[PendingRequest]:
        if response.request_id is not None:
            # An echoed id matches exactly that request or nothing
            candidate = self._pending.get(response.request_id)
            if candidate is None or candidate.model_type is not response.model_type:
                return None
            return candidate

        for request in self._pending.values():
            if request.model_type is response.model_type and not request.future.done():
                return request
        return None

    # ── Subscriptions ─────────────────────────────────────────

    def subscribe(self, model_type: ModelType, handler: ResponseHandler) -> Callable[[], None]:
        """
        Register a passive handler for every response of model_type.

        Returns:
            A callable that removes exactly this handler.
        """
        model_type = ModelType(model_type)
        self._subscribers.setdefault(model_type, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(model_type)
            if handlers and handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def _notify_subscribers(self, response: InferenceResponsePayload) -> None:
        for handler in list(self._subscribers.get(response.model_type, ())):
            try:
                result = handler(response)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._subscriber_tasks.add(task)
                    task.add_done_callback(
                        lambda t, mt=response.model_type, h=handler: self._subscriber_done(t, mt, h)
                    )
            except Exception:
                logger.exception(
                    "subscriber_failed model_type=%s handler=%r",
                    response.model_type.value,
                    handler,
                )

    def _subscriber_done(self, task: asyncio.Future, model_type: ModelType, handler: ResponseHandler) -> None:
        self._subscriber_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "subscriber_failed model_type=%s handler=%r",
                model_type.value,
                handler,
                exc_info=error,
            )

    # ── Internals ─────────────────────────────────────────────

    def _expire(self, request_id: str) -> None:
        request = self._pending.get(request_id)
        if request is None:
            return
        logger.warning(
            "request_timeout id=%s model_type=%s timeout_s=%s",
            request_id,
            request.model_type.value,
            self.timeout_s,
        )
        self._settle(
            request,
            error=RequestTimeout(request_id, request.model_type.value, self.timeout_s),
        )

    def _settle(
        self,
        request: PendingRequest,
        result: Optional[InferenceResponsePayload] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        self._discard(request.id)
        if request.future.done():
            return
        if error is not None:
            request.future.set_exception(error)
        else:
            request.future.set_result(result)

    def _discard(self, request_id: str) -> None:
        request = self._pending.pop(request_id, None)
        if request is not None and request.timer is not None:
            request.timer.cancel()
