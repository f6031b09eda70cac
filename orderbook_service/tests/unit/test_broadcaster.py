"""
Unit tests for the realtime subscription broadcaster.
"""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from orderbook_service.app.events.base import EventBroker, EventEnvelope, EventMetadata
from orderbook_service.app.realtime.broadcaster import (
    CLOSE_GOING_AWAY,
    CLOSE_POLICY_VIOLATION,
    SubscriptionBroadcaster,
)


class FakeWebSocket:
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.accepted = False
        self.sent: List[Dict[str, Any]] = []
        self.closed_with: Optional[int] = None

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = code

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["type"] == message_type]


def outcome(event_type: str = "ORDER_CREATE_SUCCESS", tenant_id: Optional[str] = None):
    return EventEnvelope(
        event_type=event_type,
        payload={"success": True},
        metadata=EventMetadata(correlation_id="corr-9", tenant_id=tenant_id),
    )


@pytest.fixture
def broadcaster():
    return SubscriptionBroadcaster(send_timeout=0.05, connection_timeout=10)


class TestConnections:
    async def test_connect_sends_ack_with_channels(self, broadcaster):
        ws = FakeWebSocket()

        connection = await broadcaster.connect(ws, user_id="u1", tenant_id="t1")

        assert ws.accepted
        ack = ws.of_type("CONNECTION_ACK")[0]
        assert ack["data"]["connectionId"] == connection.connection_id
        assert ack["data"]["availableChannels"] == [
            "customer-updates",
            "item-updates",
            "order-updates",
        ]
        assert "timestamp" in ack

    async def test_disconnect_removes_connection(self, broadcaster):
        ws = FakeWebSocket()
        connection = await broadcaster.connect(ws)

        await broadcaster.disconnect(connection.connection_id)

        assert broadcaster.connections == {}
        assert ws.closed_with == 1000


class TestSubscriptionProtocol:
    async def test_subscribe_is_additive(self, broadcaster):
        ws = FakeWebSocket()
        connection = await broadcaster.connect(ws)

        await broadcaster.handle_message(
            connection.connection_id,
            json.dumps({"type": "SUBSCRIBE", "data": {"channels": ["order-updates"]}}),
        )
        await broadcaster.handle_message(
            connection.connection_id,
            json.dumps({"type": "SUBSCRIBE", "data": {"channels": ["item-updates"]}}),
        )

        assert len(connection.subscriptions) == 2
        assert ws.of_type("SUBSCRIPTION_ACK")[-1]["data"]["subscriptions"] == [
            {"channels": ["order-updates"], "eventTypes": []},
            {"channels": ["item-updates"], "eventTypes": []},
        ]

    async def test_unknown_channel_yields_error(self, broadcaster):
        ws = FakeWebSocket()
        connection = await broadcaster.connect(ws)

        await broadcaster.handle_message(
            connection.connection_id,
            json.dumps({"type": "SUBSCRIBE", "data": {"channels": ["payments"]}}),
        )

        assert "Unknown channels: payments" in ws.of_type("ERROR")[0]["data"]["error"]
        assert connection.subscriptions == []

    async def test_unsubscribe_narrows_then_clears(self, broadcaster):
        ws = FakeWebSocket()
        connection = await broadcaster.connect(ws)
        broadcaster.subscribe(connection.connection_id, ["order-updates", "item-updates"])

        await broadcaster.handle_message(
            connection.connection_id,
            json.dumps({"type": "UNSUBSCRIBE", "data": {"channels": ["item-updates"]}}),
        )
        assert [s.channels for s in connection.subscriptions] == [frozenset({"order-updates"})]

        await broadcaster.handle_message(
            connection.connection_id, json.dumps({"type": "UNSUBSCRIBE"})
        )
        assert connection.subscriptions == []

    async def test_ping_answers_pong(self, broadcaster):
        ws = FakeWebSocket()
        connection = await broadcaster.connect(ws)

        await broadcaster.handle_message(connection.connection_id, '{"type": "PING"}')

        assert len(ws.of_type("PONG")) == 1

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"type": "SHOUT"}'])
    async def test_bad_messages_yield_error(self, broadcaster, raw):
        ws = FakeWebSocket()
        connection = await broadcaster.connect(ws)

        await broadcaster.handle_message(connection.connection_id, raw)

        assert len(ws.of_type("ERROR")) == 1

    async def test_binary_frame_yields_error_and_keeps_connection(self, broadcaster):
        ws = FakeWebSocket()
        connection = await broadcaster.connect(ws)

        await broadcaster.reject_binary(connection.connection_id)

        assert ws.of_type("ERROR")[0]["data"]["error"] == "Binary frames are not supported"
        assert connection.connection_id in broadcaster.connections


class TestBroadcast:
    async def test_delivers_to_matching_subscriptions_only(self, broadcaster):
        orders_ws, items_ws, filtered_ws = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
        orders = await broadcaster.connect(orders_ws)
        items = await broadcaster.connect(items_ws)
        filtered = await broadcaster.connect(filtered_ws)
        broadcaster.subscribe(orders.connection_id, ["order-updates"])
        broadcaster.subscribe(items.connection_id, ["item-updates"])
        broadcaster.subscribe(
            filtered.connection_id, ["order-updates"], event_types=["ORDER_CANCEL_SUCCESS"]
        )

        delivered = await broadcaster.broadcast("order-updates", outcome("ORDER_CREATE_SUCCESS"))

        assert delivered == 1
        update = orders_ws.of_type("EVENT_UPDATE")[0]
        assert update["correlationId"] == "corr-9"
        assert update["data"]["channel"] == "order-updates"
        assert update["data"]["event"]["eventType"] == "ORDER_CREATE_SUCCESS"
        assert items_ws.of_type("EVENT_UPDATE") == []
        assert filtered_ws.of_type("EVENT_UPDATE") == []

    async def test_tenant_isolation(self, broadcaster):
        tenant_a, tenant_b, no_tenant = FakeWebSocket(), FakeWebSocket(), FakeWebSocket()
        for ws, tenant in ((tenant_a, "A"), (tenant_b, "B"), (no_tenant, None)):
            connection = await broadcaster.connect(ws, tenant_id=tenant)
            broadcaster.subscribe(connection.connection_id, ["order-updates"])

        await broadcaster.broadcast("order-updates", outcome(tenant_id="A"))

        assert len(tenant_a.of_type("EVENT_UPDATE")) == 1
        assert tenant_b.of_type("EVENT_UPDATE") == []
        assert len(no_tenant.of_type("EVENT_UPDATE")) == 1

    async def test_failing_connection_is_pruned_others_still_receive(self, broadcaster):
        healthy_ws = FakeWebSocket()
        healthy = await broadcaster.connect(healthy_ws)
        broken_ws = FakeWebSocket()
        broken = await broadcaster.connect(broken_ws)
        slow_ws = FakeWebSocket()
        slow = await broadcaster.connect(slow_ws)
        for connection in (healthy, broken, slow):
            broadcaster.subscribe(connection.connection_id, ["order-updates"])
        broken_ws.fail = True
        slow_ws.delay = 1.0

        delivered = await broadcaster.broadcast("order-updates", outcome())

        assert delivered == 1
        assert len(healthy_ws.of_type("EVENT_UPDATE")) == 1
        assert set(broadcaster.connections) == {healthy.connection_id}
        assert broken_ws.closed_with == CLOSE_GOING_AWAY
        assert broadcaster.get_stats()["deliveryFailures"] == 2

    async def test_outcome_handler_broadcasts_on_its_channel(self, broadcaster):
        ws = FakeWebSocket()
        connection = await broadcaster.connect(ws)
        broadcaster.subscribe(connection.connection_id, ["customer-updates"])

        handler = broadcaster.outcome_handler("customer-updates")
        await handler(outcome("CUSTOMER_CREATE_SUCCESS"))

        assert len(ws.of_type("EVENT_UPDATE")) == 1


class TestLifecycle:
    async def test_liveness_closes_silent_connections(self, broadcaster):
        quiet_ws, chatty_ws = FakeWebSocket(), FakeWebSocket()
        quiet = await broadcaster.connect(quiet_ws)
        await broadcaster.connect(chatty_ws)
        quiet.last_seen = time.monotonic() - 60

        closed = await broadcaster.check_liveness()

        assert closed == 1
        assert quiet.connection_id not in broadcaster.connections
        assert quiet_ws.closed_with == CLOSE_POLICY_VIOLATION
        assert len(chatty_ws.of_type("PING")) == 1

    async def test_start_subscribes_outcome_topics_with_group(self, broadcaster):
        broker = AsyncMock(spec=EventBroker)

        await broadcaster.start(broker, group_id="g-broadcast-node1")

        assert broadcaster.is_running
        topics = [c.args[0] for c in broker.subscribe.await_args_list]
        assert topics == ["customer-updates", "item-updates", "order-updates"]
        assert all(
            c.kwargs["group_id"] == "g-broadcast-node1" for c in broker.subscribe.await_args_list
        )
        await broadcaster.shutdown()
        assert not broadcaster.is_running

    async def test_shutdown_closes_all_connections(self, broadcaster):
        sockets = [FakeWebSocket(), FakeWebSocket()]
        for ws in sockets:
            await broadcaster.connect(ws)

        await broadcaster.shutdown()

        assert broadcaster.connections == {}
        assert [ws.closed_with for ws in sockets] == [CLOSE_GOING_AWAY, CLOSE_GOING_AWAY]

    async def test_stats_by_tenant(self, broadcaster):
        for tenant in ("A", "A", None):
            connection = await broadcaster.connect(FakeWebSocket(), tenant_id=tenant)
            broadcaster.subscribe(connection.connection_id, ["order-updates"])

        stats = broadcaster.get_stats()

        assert stats["totalConnections"] == 3
        assert stats["connectionsByTenant"] == {"A": 2, "default": 1}
        assert stats["totalSubscriptions"] == 3
        assert stats["connectionsByChannel"]["order-updates"] == 3
