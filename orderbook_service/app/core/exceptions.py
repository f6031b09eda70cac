"""
Domain and infrastructure exceptions for the Orderbook Service.

Domain errors are raised by the services and turned into ``*_FAILED``
outcome events by the event processor. The HTTP error handler maps the
same classes onto status codes for the synchronous read path.
"""

from typing import Any, Dict, Optional


class OrderbookError(Exception):
    """Base class for every error the service raises on purpose."""

    error_code = "orderbook_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class EntityNotFoundError(OrderbookError):
    error_code = "not_found"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} with id {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class DuplicateEntityError(OrderbookError):
    error_code = "already_exists"


class OwnershipError(OrderbookError):
    error_code = "ownership_mismatch"


class InvalidQuantityError(OrderbookError):
    error_code = "invalid_quantity"


class InsufficientStockError(OrderbookError):
    error_code = "insufficient_stock"

    def __init__(self, item_id: str, available: int, requested: int):
        super().__init__(
            f"Insufficient quantity for item {item_id}: "
            f"available {available}, requested {requested}",
            {"item_id": item_id, "available": available, "requested": requested},
        )
        self.item_id = item_id
        self.available = available
        self.requested = requested


class InvalidStatusTransitionError(OrderbookError):
    error_code = "invalid_status_transition"

    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            f"Invalid status transition from {from_status} to {to_status}",
            {"from_status": from_status, "to_status": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class OrderCancellationError(OrderbookError):
    error_code = "order_not_cancellable"


class BrokerConnectionError(OrderbookError):
    """Raised when the broker cannot be reached after every connect attempt."""

    error_code = "broker_connection_failed"


class BrokerUnavailableError(OrderbookError):
    """Raised when a publish is not acknowledged by the broker."""

    error_code = "broker_unavailable"
