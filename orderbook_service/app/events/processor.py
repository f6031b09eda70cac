"""
Event processor: the single writer behind the request topics.

For every recognised request event the processor
  1. runs exactly one domain operation inside one store transaction,
  2. on success, refreshes or invalidates the affected cache entries,
  3. publishes exactly one outcome event on the paired outcome topic.
Unknown event types are logged and dropped without an outcome.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import OrderbookDatabaseManager
from ..core.exceptions import OrderbookError
from ..core.setting import get_settings
from ..models.order import OrderStatus
from ..services.cache.invalidation import CacheInvalidationService
from ..services.customer_service import CustomerService
from ..services.item_service import ItemService
from ..services.order_service import OrderBusinessRules, OrderService
from ..utils.logging import setup_orderbook_logging as setup_logging
from .base import EventBroker, EventEnvelope, EventMetadata, EventSource
from .schemas import (
    PAYLOAD_MODELS,
    REQUEST_TOPICS,
    OriginalEventRef,
    OutcomePayload,
    RequestEventType,
    parse_request_type,
)

logger = setup_logging(
    "orderbook_service.events.processor", log_level=get_settings().LOG_LEVEL
)


@dataclass(frozen=True)
class EventRoute:
    """Domain operation and post-commit cache effect for one request type"""

    execute: Callable[[AsyncSession, Any], Awaitable[Dict[str, Any]]]
    after_commit: Callable[[Dict[str, Any]], Awaitable[None]]


def _validation_message(error: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(part) for part in e['loc']) or 'payload'}: {e['msg']}"
        for e in error.errors()
    )
    return f"Invalid payload: {details}"


class EventProcessor:
    def __init__(
        self,
        broker: EventBroker,
        database: OrderbookDatabaseManager,
        invalidation: CacheInvalidationService,
        business_rules: Optional[OrderBusinessRules] = None,
    ):
        self.broker = broker
        self.database = database
        self.invalidation = invalidation
        self.business_rules = business_rules or OrderBusinessRules()

        self._routes = self._build_routes()
        missing = set(RequestEventType) - set(self._routes)
        if missing:
            raise RuntimeError(
                f"No processor route for event types: {sorted(t.value for t in missing)}"
            )

        self.is_started = False
        self._processed = 0
        self._succeeded = 0
        self._failed = 0
        self._dropped = 0
        self._last_event_at: Optional[datetime] = None

    def _build_routes(self) -> Dict[RequestEventType, EventRoute]:
        invalidation = self.invalidation
        rules = self.business_rules

        def orders(session: AsyncSession) -> OrderService:
            return OrderService(session, rules)

        return {
            RequestEventType.CUSTOMER_CREATE_REQUESTED: EventRoute(
                lambda s, p: CustomerService(s).create_customer(p),
                invalidation.customer_written,
            ),
            RequestEventType.CUSTOMER_UPDATE_REQUESTED: EventRoute(
                lambda s, p: CustomerService(s).update_customer(p),
                invalidation.customer_written,
            ),
            RequestEventType.CUSTOMER_DELETE_REQUESTED: EventRoute(
                lambda s, p: CustomerService(s).delete_customer(p.id),
                lambda r: invalidation.customer_deleted(r["id"], r["itemIds"], r["orderIds"]),
            ),
            RequestEventType.ITEM_CREATE_REQUESTED: EventRoute(
                lambda s, p: ItemService(s).create_item(p),
                invalidation.item_written,
            ),
            RequestEventType.ITEM_UPDATE_REQUESTED: EventRoute(
                lambda s, p: ItemService(s).update_item(p),
                invalidation.item_written,
            ),
            RequestEventType.ITEM_QUANTITY_UPDATE_REQUESTED: EventRoute(
                lambda s, p: ItemService(s).update_quantity(p.id, p.quantity, p.operation),
                invalidation.item_written,
            ),
            RequestEventType.ITEM_DELETE_REQUESTED: EventRoute(
                lambda s, p: ItemService(s).delete_item(p.id),
                lambda r: invalidation.item_deleted(r["id"], r["customerId"]),
            ),
            RequestEventType.ORDER_CREATE_REQUESTED: EventRoute(
                lambda s, p: orders(s).create_order(p),
                lambda r: invalidation.order_written(r, stock_changed=True),
            ),
            RequestEventType.ORDER_UPDATE_REQUESTED: EventRoute(
                lambda s, p: orders(s).update_order(p),
                lambda r: invalidation.order_written(
                    r, stock_changed=r["status"] == OrderStatus.CANCELLED.value
                ),
            ),
            RequestEventType.ORDER_CANCEL_REQUESTED: EventRoute(
                lambda s, p: orders(s).cancel_order(p.id, p.reason),
                lambda r: invalidation.order_written(r, stock_changed=True),
            ),
            RequestEventType.ORDER_DELETE_REQUESTED: EventRoute(
                lambda s, p: orders(s).delete_order(p.id),
                lambda r: invalidation.order_deleted(r["id"], r["customerId"]),
            ),
        }

    async def start(self) -> None:
        """Subscribe to every request topic. Consumption is started by the caller."""
        if self.is_started:
            logger.warning("Event processor already started")
            return
        for topic in REQUEST_TOPICS:
            await self.broker.subscribe(topic, self.handle_event)
        self.is_started = True
        logger.info(
            "Event processor subscribed to request topics",
            extra={
                "topics": [t.value for t in REQUEST_TOPICS],
                "operation": "processor_start",
            },
        )

    async def handle_event(self, envelope: EventEnvelope) -> Optional[EventEnvelope]:
        """Process one request event and return the outcome that was published"""
        log_context = {
            "event_id": envelope.event_id,
            "event_type": envelope.event_type,
            "correlation_id": envelope.correlation_id,
        }

        event_type = parse_request_type(envelope.event_type)
        if event_type is None:
            self._dropped += 1
            logger.warning(
                "Dropping event with unknown type",
                extra={**log_context, "operation": "dispatch_unknown"},
            )
            return None

        self._processed += 1
        self._last_event_at = datetime.now(timezone.utc)
        route = self._routes[event_type]
        raw_id = envelope.payload.get("id")
        entity_id = str(raw_id) if raw_id is not None else None

        data: Optional[Dict[str, Any]] = None
        error: Optional[str] = None
        try:
            payload = envelope.payload_as(PAYLOAD_MODELS[event_type])
            data = await self.database.run_in_transaction(
                lambda session: route.execute(session, payload)
            )
        except ValidationError as e:
            error = _validation_message(e)
            logger.warning(
                "Request payload failed validation",
                extra={**log_context, "error": error, "operation": "dispatch_invalid"},
            )
        except OrderbookError as e:
            error = e.message
            logger.warning(
                "Domain operation rejected request",
                extra={
                    **log_context,
                    "error": error,
                    "error_code": e.error_code,
                    "operation": "dispatch_rejected",
                },
            )
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(
                "Unexpected error processing event",
                extra={**log_context, "error": error, "operation": "dispatch_error"},
                exc_info=True,
            )
        else:
            await self._apply_cache_effects(route, data, log_context)

        success = error is None
        if success:
            self._succeeded += 1
        else:
            self._failed += 1

        return await self._publish_outcome(event_type, envelope, success, data, error, entity_id)

    async def _apply_cache_effects(
        self, route: EventRoute, data: Dict[str, Any], log_context: Dict[str, Any]
    ) -> None:
        try:
            await route.after_commit(data)
        except Exception as e:
            logger.error(
                "Cache update after commit failed",
                extra={**log_context, "error": str(e), "operation": "cache_effects"},
                exc_info=True,
            )

    async def _publish_outcome(
        self,
        event_type: RequestEventType,
        request: EventEnvelope,
        success: bool,
        data: Optional[Dict[str, Any]],
        error: Optional[str],
        entity_id: Optional[str],
    ) -> EventEnvelope:
        outcome = OutcomePayload(
            success=success,
            data=data,
            error=error,
            original_event=OriginalEventRef(
                event_id=request.event_id,
                event_type=request.event_type,
                correlation_id=request.correlation_id,
            ),
        )
        envelope = EventEnvelope(
            event_type=event_type.outcome_type(success),
            payload=outcome.to_wire(),
            metadata=EventMetadata(
                correlation_id=request.correlation_id,
                user_id=request.metadata.user_id,
                tenant_id=request.metadata.tenant_id,
                source=EventSource.PROCESSOR,
            ),
        )
        await self.broker.publish(
            event_type.outcome_topic, envelope, key=entity_id or request.event_id
        )
        logger.info(
            "Published outcome event",
            extra={
                "event_id": envelope.event_id,
                "event_type": envelope.event_type,
                "original_event_id": request.event_id,
                "correlation_id": request.correlation_id,
                "success": success,
                "operation": "publish_outcome",
            },
        )
        return envelope

    def stats(self) -> Dict[str, Any]:
        return {
            "started": self.is_started,
            "processed": self._processed,
            "succeeded": self._succeeded,
            "failed": self._failed,
            "dropped": self._dropped,
            "last_event_at": self._last_event_at.isoformat() if self._last_event_at else None,
        }
