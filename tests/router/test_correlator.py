"""
tests/router/test_correlator.py

Tests for RequestCorrelator.

Verifies:
✔ register() issues {model_type}_{ms}_{random} ids and arms a timeout
✔ Echoed request_id resolves exactly that request
✔ Without an echo, the oldest pending request of the model_type wins
✔ Unmatched responses are ignored; subscribers still see them
✔ Timeouts reject with RequestTimeout and free the entry
✔ reject_all() rejects every pending request
✔ Error envelopes reject the named request with ServerError
✔ A failing subscriber does not affect other handlers
"""

import asyncio
import logging
from unittest.mock import MagicMock

import pytest

from router.correlator import RequestCorrelator, new_request_id
from router.errors import DisconnectedWhilePending, RequestTimeout, ServerError
from router.types import (
    Envelope,
    ErrorPayload,
    InferenceRequestPayload,
    InferenceResponsePayload,
    MessageType,
    ModelType,
    heartbeat_envelope,
)


# ─────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────


def make_response(model_type, prediction=None, request_id=None):
    return InferenceResponsePayload(
        model_type=model_type,
        prediction=prediction if prediction is not None else {},
        request_id=request_id,
    )


# ─────────────────────────────────────────────────────
# Registration
# ─────────────────────────────────────────────────────


class TestRegister:
    def test_request_id_format(self):
        request_id = new_request_id(ModelType.ANOMALY_DETECTION)
        prefix, epoch_ms, suffix = request_id.rsplit("_", 2)

        assert prefix == "anomaly_detection"
        assert epoch_ms.isdigit()
        assert len(suffix) == 8

    def test_request_ids_are_unique(self):
        ids = {new_request_id(ModelType.OBJECT_DETECTION) for _ in range(200)}
        assert len(ids) == 200

    @pytest.mark.asyncio
    async def test_register_tracks_pending(self):
        correlator = RequestCorrelator(timeout_s=5.0)
        pending = correlator.register(ModelType.SENSOR_FUSION)

        assert pending.id.startswith("sensor_fusion_")
        assert pending.id in correlator
        assert correlator.pending_count == 1
        assert pending.deadline == pytest.approx(pending.created_at + 5.0)
        assert not pending.future.done()

        correlator.reject_all("test teardown")
        with pytest.raises(DisconnectedWhilePending):
            await pending.future

    @pytest.mark.asyncio
    async def test_register_accepts_string_model_type(self):
        correlator = RequestCorrelator()
        pending = correlator.register("object_detection")

        assert pending.model_type is ModelType.OBJECT_DETECTION
        correlator.reject_all()
        with pytest.raises(DisconnectedWhilePending):
            await pending.future

    @pytest.mark.asyncio
    async def test_duplicate_request_id_rejected(self):
        correlator = RequestCorrelator()
        pending = correlator.register(ModelType.OBJECT_DETECTION, request_id="dup")

        with pytest.raises(ValueError):
            correlator.register(ModelType.OBJECT_DETECTION, request_id="dup")

        correlator.reject_all()
        with pytest.raises(DisconnectedWhilePending):
            await pending.future


# ─────────────────────────────────────────────────────
# Response matching
# ─────────────────────────────────────────────────────


class TestResponseMatching:
    @pytest.mark.asyncio
    async def test_first_match_by_model_type(self):
        correlator = RequestCorrelator()
        pending = correlator.register(ModelType.TRAJECTORY_PREDICTION)

        matched = correlator.handle_response(
            make_response(ModelType.TRAJECTORY_PREDICTION, {"predictions": [{"x": 2, "y": 2}]})
        )

        assert matched is pending
        response = await pending.future
        assert response.prediction == {"predictions": [{"x": 2, "y": 2}]}
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_distinct_model_types_resolve_independently(self):
        correlator = RequestCorrelator()
        trajectory = correlator.register(ModelType.TRAJECTORY_PREDICTION)
        fusion = correlator.register(ModelType.SENSOR_FUSION)

        correlator.handle_response(make_response(ModelType.SENSOR_FUSION, {"fusion_quality": "good"}))
        correlator.handle_response(make_response(ModelType.TRAJECTORY_PREDICTION, {"confidence": 0.9}))

        assert (await fusion.future).prediction == {"fusion_quality": "good"}
        assert (await trajectory.future).prediction == {"confidence": 0.9}

    @pytest.mark.asyncio
    async def test_echoed_request_id_routes_to_that_request(self):
        correlator = RequestCorrelator()
        first = correlator.register(ModelType.OBJECT_DETECTION)
        second = correlator.register(ModelType.OBJECT_DETECTION)

        correlator.handle_response(make_response(ModelType.OBJECT_DETECTION, {"frame_id": "b"}, second.id))
        correlator.handle_response(make_response(ModelType.OBJECT_DETECTION, {"frame_id": "a"}, first.id))

        assert (await first.future).prediction == {"frame_id": "a"}
        assert (await second.future).prediction == {"frame_id": "b"}

    @pytest.mark.asyncio
    async def test_same_model_type_without_echo_resolves_oldest_first(self):
        correlator = RequestCorrelator()
        first = correlator.register(ModelType.OBJECT_DETECTION)
        second = correlator.register(ModelType.OBJECT_DETECTION)

        # Server answers the second request first but does not echo ids
        correlator.handle_response(make_response(ModelType.OBJECT_DETECTION, {"frame_id": "b"}))
        correlator.handle_response(make_response(ModelType.OBJECT_DETECTION, {"frame_id": "a"}))

        assert (await first.future).prediction == {"frame_id": "b"}
        assert (await second.future).prediction == {"frame_id": "a"}

    @pytest.mark.asyncio
    async def test_echoed_id_with_wrong_model_type_is_dropped(self):
        correlator = RequestCorrelator()
        anomaly = correlator.register(ModelType.ANOMALY_DETECTION)
        fusion = correlator.register(ModelType.SENSOR_FUSION)

        matched = correlator.handle_response(make_response(ModelType.SENSOR_FUSION, {}, anomaly.id))

        assert matched is None
        assert not anomaly.future.done()
        assert not fusion.future.done()
        correlator.reject_all()
        for pending in (anomaly, fusion):
            with pytest.raises(DisconnectedWhilePending):
                await pending.future

    @pytest.mark.asyncio
    async def test_unmatched_response_is_ignored(self):
        correlator = RequestCorrelator()
        handler = MagicMock()
        correlator.subscribe(ModelType.ANOMALY_DETECTION, handler)
        response = make_response(ModelType.ANOMALY_DETECTION, {"is_anomaly": False})

        assert correlator.handle_response(response) is None
        assert correlator.pending_count == 0
        handler.assert_called_once_with(response)


# ─────────────────────────────────────────────────────
# Timeouts and rejection
# ─────────────────────────────────────────────────────


class TestTimeoutsAndRejection:
    @pytest.mark.asyncio
    async def test_timeout_rejects_and_frees_entry(self):
        correlator = RequestCorrelator(timeout_s=0.05)
        pending = correlator.register(ModelType.TRAJECTORY_PREDICTION)

        with pytest.raises(RequestTimeout) as exc_info:
            await pending.future

        assert exc_info.value.request_id == pending.id
        assert exc_info.value.model_type == "trajectory_prediction"
        assert exc_info.value.timeout_s == 0.05
        assert pending.id not in correlator

    @pytest.mark.asyncio
    async def test_response_after_timeout_is_ignored(self):
        correlator = RequestCorrelator(timeout_s=0.05)
        handler = MagicMock()
        correlator.subscribe(ModelType.ANOMALY_DETECTION, handler)
        expired = correlator.register(ModelType.ANOMALY_DETECTION)
        with pytest.raises(RequestTimeout):
            await expired.future
        newer = correlator.register(ModelType.ANOMALY_DETECTION)

        late = make_response(ModelType.ANOMALY_DETECTION, {"for": "expired"}, expired.id)

        assert correlator.handle_response(late) is None
        assert not newer.future.done()
        assert newer.id in correlator
        handler.assert_called_once_with(late)

        correlator.reject_all()
        with pytest.raises(DisconnectedWhilePending):
            await newer.future

    @pytest.mark.asyncio
    async def test_resolved_request_does_not_time_out_later(self):
        correlator = RequestCorrelator(timeout_s=0.02)
        pending = correlator.register(ModelType.SENSOR_FUSION)
        correlator.handle_response(make_response(ModelType.SENSOR_FUSION, {"ok": True}))

        await asyncio.sleep(0.05)
        assert (await pending.future).prediction == {"ok": True}

    @pytest.mark.asyncio
    async def test_reject_all_rejects_every_pending_request(self):
        correlator = RequestCorrelator()
        requests = [correlator.register(model_type) for model_type in ModelType]

        assert correlator.reject_all("socket dropped") == len(requests)
        assert correlator.pending_count == 0
        for pending in requests:
            with pytest.raises(DisconnectedWhilePending) as exc_info:
                await pending.future
            assert exc_info.value.reason == "socket dropped"

    def test_reject_all_with_nothing_pending(self):
        assert RequestCorrelator().reject_all() == 0

    @pytest.mark.asyncio
    async def test_caller_cancel_discards_entry(self):
        correlator = RequestCorrelator()
        pending = correlator.register(ModelType.OBJECT_DETECTION)

        pending.future.cancel()
        await asyncio.sleep(0)

        assert pending.id not in correlator


# ─────────────────────────────────────────────────────
# Server errors and dispatch
# ─────────────────────────────────────────────────────


class TestDispatch:
    @pytest.mark.asyncio
    async def test_error_with_pending_id_rejects_request(self):
        correlator = RequestCorrelator()
        pending = correlator.register(ModelType.ANOMALY_DETECTION)

        handled = correlator.handle_error(ErrorPayload(message="bad input", request_id=pending.id))

        assert handled is True
        with pytest.raises(ServerError) as exc_info:
            await pending.future
        assert exc_info.value.server_message == "bad input"
        assert exc_info.value.request_id == pending.id

    @pytest.mark.asyncio
    async def test_error_without_id_leaves_requests_pending(self):
        correlator = RequestCorrelator()
        pending = correlator.register(ModelType.ANOMALY_DETECTION)

        assert correlator.handle_error(ErrorPayload(message="unknown")) is False
        assert correlator.handle_error(ErrorPayload(message="x", request_id="missing")) is False
        assert not pending.future.done()

        correlator.reject_all()
        with pytest.raises(DisconnectedWhilePending):
            await pending.future

    @pytest.mark.asyncio
    async def test_dispatch_routes_by_message_type(self):
        correlator = RequestCorrelator()
        pending = correlator.register(ModelType.SENSOR_FUSION)

        correlator.dispatch(heartbeat_envelope())
        correlator.dispatch(
            Envelope(
                message_type=MessageType.INFERENCE_REQUEST,
                payload=InferenceRequestPayload(model_type=ModelType.SENSOR_FUSION, data={}),
            )
        )
        assert not pending.future.done()

        correlator.dispatch(
            Envelope(
                message_type=MessageType.INFERENCE_RESPONSE,
                payload=make_response(ModelType.SENSOR_FUSION, {"overall_confidence": 0.5}),
            )
        )
        assert (await pending.future).prediction == {"overall_confidence": 0.5}


# ─────────────────────────────────────────────────────
# Subscriptions
# ─────────────────────────────────────────────────────


class TestSubscriptions:
    def test_subscriber_sees_only_its_model_type(self):
        correlator = RequestCorrelator()
        trajectory_handler = MagicMock()
        fusion_handler = MagicMock()
        correlator.subscribe(ModelType.TRAJECTORY_PREDICTION, trajectory_handler)
        correlator.subscribe(ModelType.SENSOR_FUSION, fusion_handler)

        correlator.handle_response(make_response(ModelType.TRAJECTORY_PREDICTION))

        trajectory_handler.assert_called_once()
        fusion_handler.assert_not_called()

    def test_unsubscribe_removes_only_that_handler(self):
        correlator = RequestCorrelator()
        kept = MagicMock()
        removed = MagicMock()
        correlator.subscribe(ModelType.OBJECT_DETECTION, kept)
        unsubscribe = correlator.subscribe(ModelType.OBJECT_DETECTION, removed)

        unsubscribe()
        unsubscribe()
        correlator.handle_response(make_response(ModelType.OBJECT_DETECTION))

        kept.assert_called_once()
        removed.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_isolated(self):
        correlator = RequestCorrelator()
        pending = correlator.register(ModelType.ANOMALY_DETECTION)
        correlator.subscribe(ModelType.ANOMALY_DETECTION, MagicMock(side_effect=RuntimeError("boom")))
        after = MagicMock()
        correlator.subscribe(ModelType.ANOMALY_DETECTION, after)

        correlator.handle_response(make_response(ModelType.ANOMALY_DETECTION, {"is_anomaly": True}))

        after.assert_called_once()
        assert (await pending.future).prediction == {"is_anomaly": True}

    @pytest.mark.asyncio
    async def test_async_subscriber_is_scheduled(self):
        correlator = RequestCorrelator()
        seen = []

        async def handler(response):
            seen.append(response.model_type)

        correlator.subscribe(ModelType.SENSOR_FUSION, handler)
        correlator.handle_response(make_response(ModelType.SENSOR_FUSION))
        await asyncio.sleep(0)

        assert seen == [ModelType.SENSOR_FUSION]

    @pytest.mark.asyncio
    async def test_failing_async_subscriber_is_logged(self, caplog):
        correlator = RequestCorrelator()
        pending = correlator.register(ModelType.OBJECT_DETECTION)

        async def failing(response):
            raise RuntimeError("async boom")

        correlator.subscribe(ModelType.OBJECT_DETECTION, failing)
        with caplog.at_level(logging.ERROR, logger="router.correlator"):
            correlator.handle_response(make_response(ModelType.OBJECT_DETECTION, {"frame_id": "f"}))
            await asyncio.sleep(0.01)

        failures = [r for r in caplog.records if r.getMessage().startswith("subscriber_failed")]
        assert len(failures) == 1
        assert isinstance(failures[0].exc_info[1], RuntimeError)
        assert not correlator._subscriber_tasks
        assert (await pending.future).prediction == {"frame_id": "f"}
