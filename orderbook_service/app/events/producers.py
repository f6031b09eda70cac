from typing import Optional

from .base import EventEnvelope, EventMetadata, EventPublisher, EventSource
from .schemas import PAYLOAD_MODELS, EntityPayload, RequestEventType, payload_to_wire
from ..utils.logging import setup_orderbook_logging as setup_logging

logger = setup_logging("orderbook_service.events.producer")


class RequestEventProducer:
    """Turns validated API writes into request events on the broker"""

    def __init__(self, event_publisher: EventPublisher):
        self.event_publisher = event_publisher

    async def publish_request(
        self,
        event_type: RequestEventType,
        payload: EntityPayload,
        correlation_id: str,
        user_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
    ) -> EventEnvelope:
        """
        Publish a request event keyed by the entity id.

        Events for one entity land on one partition, so the processor sees
        them in publish order. Broker failures propagate to the caller.
        """
        expected = PAYLOAD_MODELS[event_type]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{event_type.value} expects {expected.__name__}, got {type(payload).__name__}"
            )

        envelope = EventEnvelope(
            event_type=event_type.value,
            payload=payload_to_wire(payload),
            metadata=EventMetadata(
                correlation_id=correlation_id,
                user_id=user_id,
                tenant_id=tenant_id,
                source=EventSource.API,
            ),
        )

        try:
            await self.event_publisher.publish(event_type.topic, envelope, key=payload.id)
        except Exception as e:
            logger.error(
                f"Failed to publish {event_type.value} event: {e}",
                extra={
                    "event_id": envelope.event_id,
                    "correlation_id": correlation_id,
                    "entity_id": payload.id,
                    "operation": "publish_request_failed",
                },
            )
            raise

        logger.info(
            f"Published {event_type.value} event.",
            extra={
                "event_id": envelope.event_id,
                "event_type": event_type.value,
                "correlation_id": correlation_id,
                "entity_id": payload.id,
                "operation": "publish_request",
            },
        )
        return envelope
