import asyncio
import json
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer  # type: ignore
from aiokafka.admin import AIOKafkaAdminClient, NewTopic  # type: ignore
from aiokafka.errors import (  # type: ignore
    KafkaConnectionError,
    KafkaError,
    TopicAlreadyExistsError,
)
from pydantic import ValidationError

from ...core.exceptions import BrokerConnectionError, BrokerUnavailableError
from ...core.setting import get_settings
from ...utils.logging import setup_orderbook_logging as setup_logging
from . import EventBroker, EventEnvelope, EventHandler

logger = setup_logging(
    "orderbook_service.events.kafka", log_level=get_settings().LOG_LEVEL
)


def topic_name(topic: Any) -> str:
    return topic.value if isinstance(topic, Enum) else str(topic)


class KafkaEventBroker(EventBroker):
    """
    Kafka producer plus one manually committed consumer per subscribed topic.

    Records of a topic are handled one at a time in partition order and the
    offset is committed after the handler returns, whatever its outcome, so
    the loop always advances (at-least-once).
    """

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str,
        group_id: str,
        topics: Iterable[Any] = (),
        max_retries: int = 8,
        retry_delay: float = 1.0,
        connect_timeout: float = 30.0,
        poll_timeout_ms: int = 500,
        num_partitions: int = 3,
        replication_factor: int = 1,
        retention_ms: int = 24 * 60 * 60 * 1000,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self.group_id = group_id
        self.topics: List[str] = [topic_name(t) for t in topics]
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.connect_timeout = connect_timeout
        self.poll_timeout_ms = poll_timeout_ms
        self.num_partitions = num_partitions
        self.replication_factor = replication_factor
        self.retention_ms = retention_ms

        self.producer: Optional[AIOKafkaProducer] = None
        self.is_connected = False
        self._connection_lock = asyncio.Lock()

        self.handlers: Dict[str, EventHandler] = {}
        self._group_overrides: Dict[str, str] = {}
        self.consumers: Dict[str, AIOKafkaConsumer] = {}
        self._consumer_tasks: Dict[str, asyncio.Task] = {}
        self._consuming = False
        self._in_flight = 0

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _create_producer(self) -> AIOKafkaProducer:
        return AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            client_id=self.client_id,
            value_serializer=lambda x: json.dumps(x, default=str).encode("utf-8"),  # type: ignore
            key_serializer=lambda x: x.encode("utf-8") if x else None,  # type: ignore
            acks="all",
            retry_backoff_ms=1000,
            request_timeout_ms=30000,
        )

    async def connect(self) -> None:
        """Start the producer with exponential backoff, then provision topics.

        Raises BrokerConnectionError once every attempt has failed.
        """
        async with self._connection_lock:
            if self.producer and self.is_connected:
                return

            for attempt in range(self.max_retries):
                producer = self._create_producer()
                try:
                    logger.info(
                        "Attempting Kafka connection",
                        extra={
                            "attempt": attempt + 1,
                            "max_retries": self.max_retries,
                            "operation": "kafka_connect",
                        },
                    )
                    await asyncio.wait_for(producer.start(), timeout=self.connect_timeout)  # type: ignore
                except (KafkaConnectionError, KafkaError, asyncio.TimeoutError, OSError) as e:
                    await self._stop_quietly(producer)
                    delay = self.retry_delay * (2**attempt)
                    if attempt < self.max_retries - 1:
                        logger.warning(
                            f"Kafka connection attempt {attempt + 1} failed: {e}. "
                            f"Retrying in {delay} seconds...",
                            extra={"operation": "kafka_connect_retry"},
                        )
                        await asyncio.sleep(delay)
                    continue

                self.producer = producer
                self.is_connected = True
                logger.info(
                    "Successfully connected to Kafka",
                    extra={"operation": "kafka_connect", "attempt": attempt + 1},
                )
                break

        if not self.is_connected:
            logger.error(
                f"Failed to connect to Kafka after {self.max_retries} attempts",
                extra={
                    "bootstrap_servers": self.bootstrap_servers,
                    "operation": "kafka_connect_failed",
                },
            )
            raise BrokerConnectionError(
                f"Could not connect to Kafka at {self.bootstrap_servers}"
            )

        await self.ensure_topics()

    async def _stop_quietly(self, producer: AIOKafkaProducer) -> None:
        try:
            await producer.stop()  # type: ignore
        except Exception as e:
            logger.debug(
                "Error stopping unconnected producer",
                extra={"error": str(e), "operation": "stop_producer"},
            )

    async def ensure_topics(self) -> None:
        """Create every required topic that does not exist yet."""
        if not self.topics:
            return

        admin_client = AIOKafkaAdminClient(
            bootstrap_servers=self.bootstrap_servers,
            client_id=f"{self.client_id}-admin",
        )
        await admin_client.start()  # type: ignore
        try:
            existing = set(await admin_client.list_topics())
            missing = [
                NewTopic(
                    name=name,
                    num_partitions=self.num_partitions,
                    replication_factor=self.replication_factor,
                    topic_configs={"retention.ms": str(self.retention_ms)},
                )
                for name in self.topics
                if name not in existing
            ]
            if missing:
                try:
                    await admin_client.create_topics(missing)
                except TopicAlreadyExistsError:
                    # Another node created them first
                    pass
                logger.info(
                    "Created Kafka topics",
                    extra={
                        "topics": [t.name for t in missing],
                        "operation": "create_topics",
                    },
                )
        except KafkaError as e:
            logger.warning(
                "Error ensuring Kafka topics exist",
                extra={"error": str(e), "operation": "ensure_topics"},
            )
        finally:
            await admin_client.close()  # type: ignore

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(
        self, topic: Any, envelope: EventEnvelope, key: Optional[str] = None
    ) -> EventEnvelope:
        """Publish and wait for the broker ack. Failures raise BrokerUnavailableError."""
        name = topic_name(topic)
        if not self.is_connected or self.producer is None:
            raise BrokerUnavailableError(
                "Kafka producer is not connected",
                {"topic": name, "event_type": envelope.event_type},
            )

        partition_key = key or envelope.event_id
        try:
            await self.producer.send_and_wait(  # type: ignore
                name,
                value=envelope.to_wire(),
                key=partition_key,
                headers=[
                    ("eventType", envelope.event_type.encode("utf-8")),
                    ("correlationId", envelope.correlation_id.encode("utf-8")),
                ],
            )
        except KafkaError as e:
            logger.error(
                "Failed to publish event to Kafka",
                extra={
                    "topic": name,
                    "event_id": envelope.event_id,
                    "event_type": envelope.event_type,
                    "correlation_id": envelope.correlation_id,
                    "error": str(e),
                    "operation": "publish_event_failed",
                },
            )
            raise BrokerUnavailableError(
                f"Failed to publish {envelope.event_type}: {e}", {"topic": name}
            ) from e

        logger.info(
            "Published event to Kafka topic",
            extra={
                "topic": name,
                "event_id": envelope.event_id,
                "event_type": envelope.event_type,
                "correlation_id": envelope.correlation_id,
                "partition_key": partition_key,
                "operation": "publish_event",
            },
        )
        return envelope

    # ------------------------------------------------------------------
    # Consuming
    # ------------------------------------------------------------------

    async def subscribe(
        self, topic: Any, handler: EventHandler, group_id: Optional[str] = None
    ) -> None:
        name = topic_name(topic)
        if name in self.handlers:
            logger.warning(
                "Replacing existing handler for topic",
                extra={"topic": name, "operation": "subscribe"},
            )
        self.handlers[name] = handler
        if group_id:
            self._group_overrides[name] = group_id

        logger.info(
            "Subscribed handler to Kafka topic",
            extra={
                "topic": name,
                "group_id": group_id or self.group_id,
                "operation": "subscribe",
            },
        )

        if self._consuming and name not in self.consumers:
            await self._start_topic_consumer(name)

    async def start_consuming(self) -> None:
        if self._consuming:
            logger.warning(
                "Kafka consumers already running",
                extra={"operation": "start_consuming"},
            )
            return

        self._consuming = True
        for name in list(self.handlers):
            await self._start_topic_consumer(name)

        logger.info(
            "Kafka consumption started",
            extra={"topics": list(self.handlers), "operation": "start_consuming"},
        )

    async def _start_topic_consumer(self, name: str) -> None:
        consumer = AIOKafkaConsumer(
            name,
            bootstrap_servers=self.bootstrap_servers,
            group_id=self._group_overrides.get(name, self.group_id),
            client_id=f"{self.client_id}-{name}",
            enable_auto_commit=False,
            auto_offset_reset="earliest",
        )
        await consumer.start()  # type: ignore
        self.consumers[name] = consumer
        self._consumer_tasks[name] = asyncio.create_task(
            self._consume_messages(name, consumer), name=f"kafka-consume-{name}"
        )

    async def _consume_messages(self, name: str, consumer: AIOKafkaConsumer) -> None:
        """Poll loop for one topic; never ends because of a handler error."""
        while self._consuming:
            try:
                batches = await consumer.getmany(timeout_ms=self.poll_timeout_ms)  # type: ignore
            except KafkaError as e:
                logger.error(
                    "Error polling Kafka topic",
                    extra={"topic": name, "error": str(e), "operation": "poll"},
                )
                await asyncio.sleep(self.retry_delay)
                continue
            except Exception as e:
                logger.error(
                    "Unexpected error polling Kafka topic",
                    extra={"topic": name, "error": str(e), "operation": "poll"},
                    exc_info=True,
                )
                await asyncio.sleep(self.retry_delay)
                continue

            for partition, records in batches.items():
                for record in records:
                    if not self._consuming:
                        # Uncommitted records are redelivered on the next start
                        return
                    await self._process_record(name, record)
                    try:
                        await consumer.commit({partition: record.offset + 1})  # type: ignore
                    except KafkaError as e:
                        logger.error(
                            "Failed to commit Kafka offset",
                            extra={
                                "topic": name,
                                "partition": partition.partition,
                                "offset": record.offset,
                                "error": str(e),
                                "operation": "commit_offset",
                            },
                        )

    async def _process_record(self, name: str, record: Any) -> None:
        handler = self.handlers.get(name)
        if handler is None:
            return

        try:
            envelope = EventEnvelope.from_wire(json.loads(record.value.decode("utf-8")))
        except (ValueError, ValidationError, AttributeError) as e:
            logger.error(
                "Dropping malformed message",
                extra={
                    "topic": name,
                    "offset": getattr(record, "offset", None),
                    "error": str(e),
                    "operation": "decode_message",
                },
            )
            return

        self._in_flight += 1
        try:
            await handler(envelope)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "Event handler raised; continuing with next message",
                extra={
                    "topic": name,
                    "event_id": envelope.event_id,
                    "event_type": envelope.event_type,
                    "correlation_id": envelope.correlation_id,
                    "error": str(e),
                    "operation": "handle_message_failed",
                },
                exc_info=True,
            )
        finally:
            self._in_flight -= 1

    async def stop_consuming(self, grace_period: float = 10.0) -> None:
        """Stop polling, let in-flight handlers finish, then stop the consumers."""
        if not self._consuming and not self._consumer_tasks:
            return

        self._consuming = False
        tasks = list(self._consumer_tasks.values())
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=grace_period)
            if pending:
                logger.warning(
                    "Force-stopping Kafka consumers after grace period",
                    extra={
                        "pending": len(pending),
                        "grace_period": grace_period,
                        "operation": "stop_consuming",
                    },
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        self._consumer_tasks.clear()

        for name, consumer in self.consumers.items():
            try:
                await consumer.stop()  # type: ignore
                logger.info(
                    "Stopped Kafka consumer for topic",
                    extra={"topic": name, "operation": "stop_consumer"},
                )
            except Exception as e:
                logger.warning(
                    "Error stopping Kafka consumer",
                    extra={
                        "topic": name,
                        "error": str(e),
                        "operation": "stop_consumer_error",
                    },
                )
        self.consumers.clear()

    async def disconnect(self, grace_period: float = 10.0) -> None:
        """Drain consumers, then stop the producer."""
        await self.stop_consuming(grace_period)

        async with self._connection_lock:
            if self.producer:
                try:
                    await self.producer.stop()  # type: ignore
                    logger.info("Kafka producer stopped")
                except Exception as e:
                    logger.warning(
                        "Error stopping Kafka producer",
                        extra={"error": str(e), "operation": "stop_producer"},
                    )
                finally:
                    self.producer = None
                    self.is_connected = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_consuming(self) -> bool:
        return self._consuming

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def health_check(self) -> bool:
        """Check if Kafka connection is healthy"""
        try:
            if not self.producer or not self.is_connected:
                return False

            metadata = await self.producer.client.fetch_all_metadata()  # type: ignore
            return len(metadata.brokers()) > 0  # type: ignore

        except Exception as e:
            logger.warning(
                "Kafka health check failed",
                extra={"error": str(e), "operation": "health_check"},
            )
            return False

    def stats(self) -> Dict[str, Any]:
        return {
            "connected": self.is_connected,
            "consuming": self._consuming,
            "subscribed_topics": sorted(self.handlers),
            "in_flight": self._in_flight,
        }
