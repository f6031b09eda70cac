"""
Pytest configuration and fixtures for Orderbook Service tests.

No test needs a running Kafka, Redis or PostgreSQL: the store is a
temporary SQLite file and the broker and Redis are replaced by the
in-memory stand-ins below.
"""

import fnmatch
import os
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

# Set up test environment before any service import reads settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./orderbook_test.db")

from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

from orderbook_service.app.core.container import ServiceContainer
from orderbook_service.app.core.database import OrderbookDatabaseManager
from orderbook_service.app.core.exceptions import BrokerUnavailableError
from orderbook_service.app.core.setting import OrderbookSettings
from orderbook_service.app.events.base import EventBroker, EventEnvelope, EventHandler
from orderbook_service.app.events.schemas import (
    CustomerCreatePayload,
    ItemCreatePayload,
    OrderCreatePayload,
    RequestEventType,
)
from orderbook_service.app.main import create_app
from orderbook_service.app.services.cache.redis_cache import RedisCacheService


def _topic_name(topic: Any) -> str:
    return topic.value if isinstance(topic, Enum) else str(topic)


class FakeRedis:
    """Minimal in-memory stand-in for the redis.asyncio client"""

    def __init__(self) -> None:
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("Connection refused")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def set(
        self, key: str, value: str, ex: Optional[int] = None, nx: bool = False
    ) -> Optional[bool]:
        self._check()
        if nx and key in self.store:
            return None
        self.store[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        deleted = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                deleted += 1
        return deleted

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        self._check()
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self) -> bool:
        self._check()
        return True

    async def info(self, section: Optional[str] = None) -> Dict[str, Any]:
        self._check()
        if section == "memory":
            return {"used_memory_human": "1K", "used_memory_peak_human": "1K"}
        return {"db0": {"keys": len(self.store)}}

    async def dbsize(self) -> int:
        self._check()
        return len(self.store)

    async def aclose(self) -> None:
        self.closed = True


class InMemoryBroker(EventBroker):
    """
    Records every publish and, while consuming, delivers it straight to the
    subscribed handler of that topic. Delivery is sequential, so events of
    one test arrive in publish order.
    """

    def __init__(self, deliver: bool = True) -> None:
        self.deliver = deliver
        self.published: List[Tuple[str, EventEnvelope, Optional[str]]] = []
        self.handlers: Dict[str, EventHandler] = {}
        self.group_ids: Dict[str, Optional[str]] = {}
        self.handler_errors: List[Exception] = []
        self.is_connected = False
        self.fail_publish = False
        self.calls: List[str] = []
        self._consuming = False

    async def connect(self) -> None:
        self.calls.append("connect")
        self.is_connected = True

    async def publish(
        self, topic: Any, envelope: EventEnvelope, key: Optional[str] = None
    ) -> EventEnvelope:
        if self.fail_publish or not self.is_connected:
            raise BrokerUnavailableError("Broker unavailable", {"topic": _topic_name(topic)})
        name = _topic_name(topic)
        self.published.append((name, envelope, key or envelope.event_id))
        handler = self.handlers.get(name)
        if self.deliver and self._consuming and handler is not None:
            await self.deliver_to(name, envelope)
        return envelope

    async def deliver_to(self, topic: Any, envelope: EventEnvelope) -> Any:
        """Hand one envelope to the topic handler the way the consumer loop does"""
        try:
            return await self.handlers[_topic_name(topic)](envelope)
        except Exception as e:
            self.handler_errors.append(e)
            return None

    async def subscribe(
        self, topic: Any, handler: EventHandler, group_id: Optional[str] = None
    ) -> None:
        self.handlers[_topic_name(topic)] = handler
        self.group_ids[_topic_name(topic)] = group_id

    async def start_consuming(self) -> None:
        self.calls.append("start_consuming")
        self._consuming = True

    async def stop_consuming(self, grace_period: float = 10.0) -> None:
        self.calls.append("stop_consuming")
        self._consuming = False

    async def disconnect(self, grace_period: float = 10.0) -> None:
        self.calls.append("disconnect")
        self._consuming = False
        self.is_connected = False

    async def health_check(self) -> bool:
        return self.is_connected

    @property
    def is_consuming(self) -> bool:
        return self._consuming

    def messages(self, topic: Any) -> List[EventEnvelope]:
        name = _topic_name(topic)
        return [envelope for t, envelope, _ in self.published if t == name]

    def keys(self, topic: Any) -> List[Optional[str]]:
        name = _topic_name(topic)
        return [key for t, _, key in self.published if t == name]

    def outcomes_for(self, request: EventEnvelope) -> List[EventEnvelope]:
        outcome_topic = RequestEventType(request.event_type).outcome_topic
        return [
            e
            for e in self.messages(outcome_topic)
            if e.payload["originalEvent"]["eventId"] == request.event_id
        ]


# =====================================================
# SETTINGS, STORE, CACHE AND BROKER
# =====================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'orderbook.db'}"


@pytest.fixture
def test_settings(database_url) -> OrderbookSettings:
    return OrderbookSettings(
        DATABASE_URL=database_url,
        SHUTDOWN_GRACE_PERIOD=1.0,
        WS_HEARTBEAT_INTERVAL=3600.0,
        WS_SEND_TIMEOUT=1.0,
        NODE_ID="test-node",
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def make_container(test_settings, fake_redis, broker) -> Callable[[], ServiceContainer]:
    """Builds the object graph without touching any I/O"""

    def factory() -> ServiceContainer:
        database = OrderbookDatabaseManager(test_settings.DATABASE_URL)
        cache = RedisCacheService(client=fake_redis)
        return ServiceContainer(test_settings, database, cache, broker)

    return factory


@pytest.fixture
async def container(make_container):
    """A started container; shut down after the test"""
    service_container = make_container()
    await service_container.startup()
    yield service_container
    await service_container.shutdown()


@pytest.fixture
def client(make_container):
    """TestClient running the full app lifespan around the test container"""
    app = create_app(make_container())
    with TestClient(app) as test_client:
        yield test_client


# =====================================================
# EVENT HELPERS
# =====================================================


@pytest.fixture
def send(container, broker):
    """Publish a request through the producer and return (request, outcome)"""

    async def _send(
        event_type: RequestEventType,
        payload: Any,
        correlation_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> Tuple[EventEnvelope, EventEnvelope]:
        request = await container.producer.publish_request(
            event_type,
            payload,
            correlation_id or str(uuid.uuid4()),
            tenant_id=tenant_id,
        )
        outcomes = broker.outcomes_for(request)
        assert len(outcomes) == 1
        return request, outcomes[0]

    return _send


@pytest.fixture
def seed(send):
    """Create a customer, one of its items and optionally an order"""

    async def _seed(
        price: str = "10.00", quantity: int = 5, order_quantity: Optional[int] = None
    ) -> Dict[str, Any]:
        customer_id, item_id = str(uuid.uuid4()), str(uuid.uuid4())
        _, customer = await send(
            RequestEventType.CUSTOMER_CREATE_REQUESTED,
            CustomerCreatePayload(
                id=customer_id, name="Ada", email=f"ada-{customer_id[:8]}@x.com"
            ),
        )
        assert customer.payload["success"], customer.payload
        _, item = await send(
            RequestEventType.ITEM_CREATE_REQUESTED,
            ItemCreatePayload(
                id=item_id,
                customer_id=customer_id,
                name="Widget",
                price=Decimal(price),
                quantity=quantity,
            ),
        )
        assert item.payload["success"], item.payload
        seeded: Dict[str, Any] = {"customer_id": customer_id, "item_id": item_id}

        if order_quantity is not None:
            order_id = str(uuid.uuid4())
            _, order = await send(
                RequestEventType.ORDER_CREATE_REQUESTED,
                OrderCreatePayload(
                    id=order_id,
                    customer_id=customer_id,
                    items=[{"item_id": item_id, "quantity": order_quantity}],
                ),
            )
            assert order.payload["success"], order.payload
            seeded["order_id"] = order_id
            seeded["order"] = order.payload["data"]
        return seeded

    return _seed
