"""
Composition root for the Orderbook Service.

Owns every long-lived object of the process and the single ordered
startup and shutdown sequences. Components receive their collaborators
through their constructors, so tests can swap in fakes.
"""

import asyncio
import time
from typing import Any, Dict, Optional

from ..events.base import EventBroker
from ..events.base.kafka_client import KafkaEventBroker
from ..events.processor import EventProcessor
from ..events.producers import RequestEventProducer
from ..events.schemas import ALL_TOPICS
from ..realtime.broadcaster import SubscriptionBroadcaster
from ..services.cache.invalidation import CacheInvalidationService
from ..services.cache.redis_cache import CacheTTLPolicy, RedisCacheService
from ..services.order_service import OrderBusinessRules
from ..services.query_service import QueryService
from ..utils.logging import setup_orderbook_logging
from ..utils.service_health import OrderbookHealthChecker, component_status
from .database import OrderbookDatabaseManager
from .setting import OrderbookSettings, get_settings

logger = setup_orderbook_logging("orderbook_service.container")

READINESS_CHECKS = ("database", "broker", "processor")


class ServiceContainer:
    def __init__(
        self,
        settings: OrderbookSettings,
        database: OrderbookDatabaseManager,
        cache: RedisCacheService,
        broker: EventBroker,
        broadcaster: Optional[SubscriptionBroadcaster] = None,
        business_rules: Optional[OrderBusinessRules] = None,
    ):
        self.settings = settings
        self.database = database
        self.cache = cache
        self.broker = broker
        self.business_rules = business_rules or OrderBusinessRules(
            tax_rate=settings.ORDER_TAX_RATE, currency=settings.ORDER_CURRENCY
        )

        self.invalidation = CacheInvalidationService(cache)
        self.queries = QueryService(database, cache)
        self.producer = RequestEventProducer(broker)
        self.processor = EventProcessor(broker, database, self.invalidation, self.business_rules)
        self.broadcaster = broadcaster or SubscriptionBroadcaster(
            heartbeat_interval=settings.WS_HEARTBEAT_INTERVAL,
            connection_timeout=settings.WS_CONNECTION_TIMEOUT,
            send_timeout=settings.WS_SEND_TIMEOUT,
        )
        self.health = self._build_health_checker()

        self.is_started = False
        self._shutdown_lock = asyncio.Lock()
        self._is_shut_down = False

    @classmethod
    def from_settings(cls, settings: Optional[OrderbookSettings] = None) -> "ServiceContainer":
        """Build the production object graph from configuration"""
        settings = settings or get_settings()
        database = OrderbookDatabaseManager(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
        )
        cache = RedisCacheService(
            redis_url=settings.REDIS_URL, ttl_policy=CacheTTLPolicy.from_settings(settings)
        )
        broker = KafkaEventBroker(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            client_id=settings.KAFKA_CLIENT_ID,
            group_id=settings.KAFKA_GROUP_ID,
            topics=ALL_TOPICS,
            max_retries=settings.KAFKA_MAX_RETRIES,
            retry_delay=settings.KAFKA_RETRY_DELAY,
            connect_timeout=settings.KAFKA_CONNECT_TIMEOUT,
            poll_timeout_ms=settings.KAFKA_POLL_TIMEOUT_MS,
            num_partitions=settings.KAFKA_TOPIC_PARTITIONS,
            replication_factor=settings.KAFKA_TOPIC_REPLICATION_FACTOR,
            retention_ms=settings.KAFKA_TOPIC_RETENTION_MS,
        )
        return cls(settings, database, cache, broker)

    @property
    def broadcast_group_id(self) -> str:
        # Per-node group: every node fans out every outcome to its own sockets
        return f"{self.settings.KAFKA_GROUP_ID}-broadcast-{self.settings.NODE_ID}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self) -> None:
        """Bring the process up; a broker connect failure is fatal"""
        startup_start = time.time()
        await self.database.create_tables()
        await self.cache.initialize()
        await self.broker.connect()
        await self.processor.start()
        await self.broadcaster.start(self.broker, group_id=self.broadcast_group_id)
        await self.broker.start_consuming()
        self.is_started = True

        logger.info(
            "Orderbook service components started",
            extra={
                "startup_duration_ms": int((time.time() - startup_start) * 1000),
                "cache_available": self.cache.is_available,
                "operation": "container_startup",
            },
        )

    async def shutdown(self) -> None:
        """
        Stop consuming and drain in-flight handlers, then release resources.

        Safe to call more than once; only the first call does any work.
        """
        async with self._shutdown_lock:
            if self._is_shut_down:
                return
            self._is_shut_down = True

            shutdown_start = time.time()
            grace_period = self.settings.SHUTDOWN_GRACE_PERIOD
            steps = (
                ("stop_consuming", lambda: self.broker.stop_consuming(grace_period)),
                ("broadcaster", self.broadcaster.shutdown),
                ("database", self.database.close),
                ("cache", self.cache.close),
                ("broker", lambda: self.broker.disconnect(grace_period)),
            )
            for name, step in steps:
                try:
                    await step()
                except Exception as e:
                    logger.error(
                        f"Shutdown step {name} failed",
                        extra={"step": name, "error": str(e), "operation": "container_shutdown"},
                        exc_info=True,
                    )

            self.is_started = False
            logger.info(
                "Orderbook service components stopped",
                extra={
                    "shutdown_duration_ms": int((time.time() - shutdown_start) * 1000),
                    "operation": "container_shutdown",
                },
            )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def _build_health_checker(self) -> OrderbookHealthChecker:
        checker = OrderbookHealthChecker(self.settings.SERVICE_NAME)

        async def database_check() -> Dict[str, Any]:
            return component_status(await self.database.health_check())

        async def cache_check() -> Dict[str, Any]:
            return component_status(await self.cache.ping())

        async def broker_check() -> Dict[str, Any]:
            return component_status(
                await self.broker.health_check(), consuming=self.broker.is_consuming
            )

        async def processor_check() -> Dict[str, Any]:
            return component_status(self.processor.is_started, **self.processor.stats())

        async def broadcaster_check() -> Dict[str, Any]:
            return component_status(
                self.broadcaster.is_running,
                connections=len(self.broadcaster.connections),
            )

        checker.add_check("database", database_check)
        checker.add_check("cache", cache_check)
        checker.add_check("broker", broker_check)
        checker.add_check("processor", processor_check)
        checker.add_check("broadcaster", broadcaster_check)
        return checker

    async def health_report(self) -> Dict[str, Any]:
        return await self.health.run_checks()

    async def readiness_report(self) -> Dict[str, Any]:
        return await self.health.run_checks(READINESS_CHECKS)
