"""
Realtime fan-out of outcome events to live WebSocket connections.

Every connection holds zero or more additive subscriptions (channels x
event types). An outcome consumed from an outcome topic is delivered to
every connection with a matching subscription whose tenant, when both
sides carry one, equals the event's tenant.
"""

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from fastapi import WebSocket

from ..events.base import EventBroker, EventEnvelope, EventHandler
from ..events.schemas import OUTCOME_TOPICS
from ..utils.logging import setup_orderbook_logging

logger = setup_orderbook_logging("orderbook_service.realtime")

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_POLICY_VIOLATION = 1008


class MessageType(str, Enum):
    # client -> server
    SUBSCRIBE = "SUBSCRIBE"
    UNSUBSCRIBE = "UNSUBSCRIBE"
    PING = "PING"
    PONG = "PONG"
    # server -> client
    CONNECTION_ACK = "CONNECTION_ACK"
    SUBSCRIPTION_ACK = "SUBSCRIPTION_ACK"
    EVENT_UPDATE = "EVENT_UPDATE"
    ERROR = "ERROR"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_message(
    message_type: MessageType, data: Any, correlation_id: Optional[str] = None
) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "type": message_type.value,
        "data": data,
        "timestamp": _utc_now_iso(),
    }
    if correlation_id:
        message["correlationId"] = correlation_id
    return message


@dataclass(frozen=True)
class Subscription:
    channels: FrozenSet[str]
    event_types: FrozenSet[str] = frozenset()

    def matches(self, channel: str, event_type: str) -> bool:
        return channel in self.channels and (
            not self.event_types or event_type in self.event_types
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"channels": sorted(self.channels), "eventTypes": sorted(self.event_types)}


@dataclass
class ClientConnection:
    """A live WebSocket connection and its subscription filters"""

    websocket: WebSocket
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None
    connection_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    subscriptions: List[Subscription] = field(default_factory=list)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_seen: float = field(default_factory=time.monotonic)

    def touch(self) -> None:
        self.last_seen = time.monotonic()

    def is_alive(self, timeout: float) -> bool:
        return (time.monotonic() - self.last_seen) < timeout

    def add_subscription(self, subscription: Subscription) -> None:
        self.subscriptions.append(subscription)

    def remove_channels(self, channels: Optional[Iterable[str]] = None) -> None:
        """Narrow every subscription by the given channels; None clears them all"""
        if channels is None:
            self.subscriptions.clear()
            return
        removed = frozenset(channels)
        narrowed = []
        for subscription in self.subscriptions:
            remaining = subscription.channels - removed
            if remaining:
                narrowed.append(Subscription(remaining, subscription.event_types))
        self.subscriptions = narrowed

    def should_receive(self, channel: str, envelope: EventEnvelope) -> bool:
        event_tenant = envelope.metadata.tenant_id
        if self.tenant_id and event_tenant and self.tenant_id != event_tenant:
            return False
        return any(s.matches(channel, envelope.event_type) for s in self.subscriptions)


class SubscriptionBroadcaster:
    def __init__(
        self,
        channels: Iterable[Any] = OUTCOME_TOPICS,
        heartbeat_interval: float = 30.0,
        connection_timeout: float = 300.0,
        send_timeout: float = 5.0,
    ):
        self.available_channels: List[str] = [
            c.value if isinstance(c, Enum) else str(c) for c in channels
        ]
        self.heartbeat_interval = heartbeat_interval
        self.connection_timeout = connection_timeout
        self.send_timeout = send_timeout
        self.connections: Dict[str, ClientConnection] = {}
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._events_delivered = 0
        self._delivery_failures = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, broker: EventBroker, group_id: Optional[str] = None) -> None:
        """Consume every outcome topic and start the heartbeat loop"""
        for channel in self.available_channels:
            await broker.subscribe(channel, self.outcome_handler(channel), group_id=group_id)
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(
                self._heartbeat_loop(), name="realtime-heartbeat"
            )
        logger.info(
            "Realtime broadcaster started",
            extra={"channels": self.available_channels, "operation": "broadcaster_start"},
        )

    async def shutdown(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        for connection_id in list(self.connections):
            await self.disconnect(connection_id, CLOSE_GOING_AWAY, "Server shutting down")
        logger.info("Realtime broadcaster stopped", extra={"operation": "broadcaster_stop"})

    @property
    def is_running(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def connect(
        self,
        websocket: WebSocket,
        user_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> ClientConnection:
        await websocket.accept()
        connection = ClientConnection(websocket, user_id=user_id, tenant_id=tenant_id)
        self.connections[connection.connection_id] = connection

        logger.info(
            "WebSocket client connected",
            extra={
                "connection_id": connection.connection_id,
                "user_id": user_id,
                "tenant_id": tenant_id,
                "total_connections": len(self.connections),
                "operation": "ws_connect",
            },
        )

        await self._send(
            connection,
            build_message(
                MessageType.CONNECTION_ACK,
                {
                    "connectionId": connection.connection_id,
                    "userId": user_id,
                    "tenantId": tenant_id,
                    "availableChannels": self.available_channels,
                },
            ),
        )
        return connection

    async def disconnect(
        self, connection_id: str, code: int = CLOSE_NORMAL, reason: str = ""
    ) -> None:
        connection = self.connections.pop(connection_id, None)
        if connection is None:
            return
        try:
            await connection.websocket.close(code=code, reason=reason)
        except Exception as e:
            # Socket already gone
            logger.debug(
                "Error closing WebSocket",
                extra={"connection_id": connection_id, "error": str(e)},
            )
        logger.info(
            "WebSocket client disconnected",
            extra={
                "connection_id": connection_id,
                "code": code,
                "reason": reason,
                "remaining": len(self.connections),
                "operation": "ws_disconnect",
            },
        )

    def forget(self, connection_id: str) -> None:
        """Drop a connection the client already closed"""
        if self.connections.pop(connection_id, None) is not None:
            logger.info(
                "WebSocket client went away",
                extra={
                    "connection_id": connection_id,
                    "remaining": len(self.connections),
                    "operation": "ws_disconnect",
                },
            )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        connection_id: str,
        channels: Iterable[str],
        event_types: Iterable[str] = (),
    ) -> Subscription:
        connection = self.connections[connection_id]
        requested = frozenset(channels)
        if not requested:
            raise ValueError("At least one channel is required")
        unknown = requested - set(self.available_channels)
        if unknown:
            raise ValueError(f"Unknown channels: {', '.join(sorted(unknown))}")

        subscription = Subscription(requested, frozenset(event_types))
        connection.add_subscription(subscription)
        return subscription

    def unsubscribe(
        self, connection_id: str, channels: Optional[Iterable[str]] = None
    ) -> None:
        self.connections[connection_id].remove_channels(channels)

    async def handle_message(self, connection_id: str, raw: str) -> None:
        """Handle one client message; protocol errors are answered with ERROR"""
        connection = self.connections.get(connection_id)
        if connection is None:
            return
        connection.touch()

        try:
            message = json.loads(raw)
            if not isinstance(message, dict):
                raise ValueError("Message must be a JSON object")
        except ValueError as e:
            await self._send_error(connection, f"Invalid message: {e}")
            return

        message_type = message.get("type")
        data = message.get("data") or {}

        if message_type == MessageType.SUBSCRIBE.value:
            try:
                subscription = self.subscribe(
                    connection_id, data.get("channels") or [], data.get("eventTypes") or []
                )
            except (ValueError, TypeError, AttributeError) as e:
                await self._send_error(connection, str(e))
                return
            await self._send(
                connection,
                build_message(
                    MessageType.SUBSCRIPTION_ACK,
                    {
                        "action": "subscribed",
                        **subscription.to_dict(),
                        "subscriptions": [s.to_dict() for s in connection.subscriptions],
                    },
                ),
            )
        elif message_type == MessageType.UNSUBSCRIBE.value:
            channels = data.get("channels") if isinstance(data, dict) else None
            self.unsubscribe(connection_id, channels or None)
            await self._send(
                connection,
                build_message(
                    MessageType.SUBSCRIPTION_ACK,
                    {
                        "action": "unsubscribed",
                        "channels": channels or [],
                        "subscriptions": [s.to_dict() for s in connection.subscriptions],
                    },
                ),
            )
        elif message_type == MessageType.PING.value:
            await self._send(connection, build_message(MessageType.PONG, {}))
        elif message_type == MessageType.PONG.value:
            # Heartbeat reply; touch() above already refreshed liveness
            pass
        else:
            await self._send_error(connection, f"Unknown message type: {message_type}")

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def outcome_handler(self, channel: str) -> EventHandler:
        async def handle(envelope: EventEnvelope) -> int:
            return await self.broadcast(channel, envelope)

        return handle

    async def broadcast(self, channel: str, envelope: EventEnvelope) -> int:
        """Deliver an outcome to every matching connection; returns delivery count"""
        targets = [
            c for c in list(self.connections.values()) if c.should_receive(channel, envelope)
        ]
        if not targets:
            return 0

        message = build_message(
            MessageType.EVENT_UPDATE,
            {"channel": channel, "event": envelope.to_wire()},
            correlation_id=envelope.correlation_id,
        )
        results = await asyncio.gather(*(self._send(c, message) for c in targets))
        delivered = sum(1 for ok in results if ok)
        self._events_delivered += delivered

        logger.debug(
            "Broadcast outcome event",
            extra={
                "channel": channel,
                "event_id": envelope.event_id,
                "event_type": envelope.event_type,
                "matched": len(targets),
                "delivered": delivered,
                "operation": "broadcast",
            },
        )
        return delivered

    async def _send(self, connection: ClientConnection, message: Dict[str, Any]) -> bool:
        """Send with a timeout; a failing connection is pruned"""
        try:
            await asyncio.wait_for(
                connection.websocket.send_text(json.dumps(message, default=str)),
                timeout=self.send_timeout,
            )
            return True
        except Exception as e:
            self._delivery_failures += 1
            logger.warning(
                "Delivery to WebSocket client failed, pruning connection",
                extra={
                    "connection_id": connection.connection_id,
                    "error": str(e) or type(e).__name__,
                    "operation": "ws_send_failed",
                },
            )
            await self.disconnect(connection.connection_id, CLOSE_GOING_AWAY, "Delivery failed")
            return False

    async def _send_error(self, connection: ClientConnection, error: str) -> None:
        await self._send(connection, build_message(MessageType.ERROR, {"error": error}))

    async def reject_binary(self, connection_id: str) -> None:
        """Answer a binary frame with ERROR; the protocol is JSON text only"""
        connection = self.connections.get(connection_id)
        if connection is None:
            return
        connection.touch()
        await self._send_error(connection, "Binary frames are not supported")

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self.check_liveness()

    async def check_liveness(self) -> int:
        """Close silent connections and ping the rest; returns how many were closed"""
        closed = 0
        for connection in list(self.connections.values()):
            if not connection.is_alive(self.connection_timeout):
                closed += 1
                await self.disconnect(
                    connection.connection_id, CLOSE_POLICY_VIOLATION, "Heartbeat timeout"
                )
            else:
                await self._send(connection, build_message(MessageType.PING, {}))
        return closed

    def get_stats(self) -> Dict[str, Any]:
        by_tenant: Dict[str, int] = {}
        by_channel: Dict[str, int] = {c: 0 for c in self.available_channels}
        subscriptions = 0
        for connection in self.connections.values():
            tenant = connection.tenant_id or "default"
            by_tenant[tenant] = by_tenant.get(tenant, 0) + 1
            subscriptions += len(connection.subscriptions)
            for channel in {ch for s in connection.subscriptions for ch in s.channels}:
                by_channel[channel] = by_channel.get(channel, 0) + 1
        return {
            "totalConnections": len(self.connections),
            "connectionsByTenant": by_tenant,
            "connectionsByChannel": by_channel,
            "totalSubscriptions": subscriptions,
            "eventsDelivered": self._events_delivered,
            "deliveryFailures": self._delivery_failures,
            "availableChannels": self.available_channels,
        }
