"""
Unit tests for event processor dispatch, with the store and cache mocked.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from orderbook_service.app.core.database import OrderbookDatabaseManager
from orderbook_service.app.core.exceptions import InsufficientStockError
from orderbook_service.app.events.base import EventBroker, EventEnvelope, EventMetadata
from orderbook_service.app.events.processor import EventProcessor
from orderbook_service.app.events.schemas import RequestEventType, Topic
from orderbook_service.app.services.cache.invalidation import CacheInvalidationService

CUSTOMER_PAYLOAD = {"id": "c1", "name": "Ada", "email": "ada@x.com"}


def request(event_type: str, payload: dict, correlation_id: str = "corr-1") -> EventEnvelope:
    return EventEnvelope(
        event_type=event_type,
        payload=payload,
        metadata=EventMetadata(correlation_id=correlation_id, user_id="u1", tenant_id="t1"),
    )


class TestEventProcessorDispatch:
    @pytest.fixture
    def broker(self):
        return AsyncMock(spec=EventBroker)

    @pytest.fixture
    def database(self):
        return Mock(spec=OrderbookDatabaseManager)

    @pytest.fixture
    def invalidation(self):
        return AsyncMock(spec=CacheInvalidationService)

    @pytest.fixture
    def processor(self, broker, database, invalidation):
        return EventProcessor(broker, database, invalidation)

    def test_every_event_type_has_a_route(self, processor):
        assert set(processor._routes) == set(RequestEventType)

    async def test_start_subscribes_request_topics_once(self, processor, broker):
        await processor.start()
        await processor.start()

        subscribed = [c.args[0] for c in broker.subscribe.await_args_list]
        assert subscribed == [Topic.CUSTOMER_EVENTS, Topic.ITEM_EVENTS, Topic.ORDER_EVENTS]

    async def test_unknown_event_type_is_dropped_without_outcome(self, processor, broker):
        result = await processor.handle_event(request("CUSTOMER_ARCHIVE_REQUESTED", {"id": "c1"}))

        assert result is None
        broker.publish.assert_not_awaited()
        assert processor.stats()["dropped"] == 1
        assert processor.stats()["processed"] == 0

    async def test_success_invalidates_before_publishing(
        self, processor, broker, database, invalidation
    ):
        # Arrange
        order_of_calls = []
        customer = {"id": "c1", "name": "Ada", "email": "ada@x.com"}
        database.run_in_transaction = AsyncMock(return_value=customer)
        invalidation.customer_written.side_effect = lambda data: order_of_calls.append("cache")
        broker.publish.side_effect = lambda *args, **kwargs: order_of_calls.append("publish")
        envelope = request(RequestEventType.CUSTOMER_CREATE_REQUESTED.value, CUSTOMER_PAYLOAD)

        # Act
        outcome = await processor.handle_event(envelope)

        # Assert
        assert order_of_calls == ["cache", "publish"]
        topic, published = broker.publish.await_args.args
        assert topic is Topic.CUSTOMER_UPDATES
        assert broker.publish.await_args.kwargs["key"] == "c1"
        assert published is outcome
        assert outcome.event_type == "CUSTOMER_CREATE_SUCCESS"
        assert outcome.correlation_id == "corr-1"
        assert outcome.metadata.tenant_id == "t1"
        assert outcome.payload["success"] is True
        assert outcome.payload["data"] == customer
        assert outcome.payload["originalEvent"]["eventId"] == envelope.event_id

    async def test_invalid_payload_yields_failed_outcome(self, processor, broker, database):
        database.run_in_transaction = AsyncMock()

        outcome = await processor.handle_event(
            request(RequestEventType.CUSTOMER_CREATE_REQUESTED.value, {"id": "c1"})
        )

        database.run_in_transaction.assert_not_awaited()
        assert outcome.event_type == "CUSTOMER_CREATE_FAILED"
        assert outcome.payload["success"] is False
        assert outcome.payload["error"].startswith("Invalid payload")
        broker.publish.assert_awaited_once()

    async def test_domain_error_yields_failed_outcome_without_cache_effects(
        self, processor, database, invalidation
    ):
        database.run_in_transaction = AsyncMock(
            side_effect=InsufficientStockError("i1", available=1, requested=2)
        )

        outcome = await processor.handle_event(
            request(
                RequestEventType.ORDER_CREATE_REQUESTED.value,
                {"id": "o1", "customerId": "c1", "items": [{"itemId": "i1", "quantity": 2}]},
            )
        )

        assert outcome.event_type == "ORDER_CREATE_FAILED"
        assert "Insufficient quantity" in outcome.payload["error"]
        invalidation.order_written.assert_not_awaited()
        assert processor.stats()["failed"] == 1

    async def test_unexpected_error_yields_failed_outcome(self, processor, database):
        database.run_in_transaction = AsyncMock(side_effect=RuntimeError("disk on fire"))

        outcome = await processor.handle_event(
            request(RequestEventType.ITEM_DELETE_REQUESTED.value, {"id": "i1"})
        )

        assert outcome.event_type == "ITEM_DELETE_FAILED"
        assert outcome.payload["error"] == "disk on fire"

    async def test_cache_failure_after_commit_still_reports_success(
        self, processor, database, invalidation
    ):
        database.run_in_transaction = AsyncMock(
            return_value={"id": "i1", "customerId": "c1", "deleted": True}
        )
        invalidation.item_deleted.side_effect = ConnectionError("redis gone")

        outcome = await processor.handle_event(
            request(RequestEventType.ITEM_DELETE_REQUESTED.value, {"id": "i1"})
        )

        assert outcome.event_type == "ITEM_DELETE_SUCCESS"
        assert processor.stats()["succeeded"] == 1
