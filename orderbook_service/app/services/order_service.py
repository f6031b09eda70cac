"""
Order service with the order state machine, stock reservation and
cancellation compensation.

Every method runs inside the caller's transaction. Creating an order
decrements stock and cancelling restores it in the same transaction as
the order write, so a failure anywhere leaves no partial effect.
"""

import secrets
import string
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidStatusTransitionError,
    OrderCancellationError,
    OwnershipError,
)
from ..events.schemas import OrderCreatePayload, OrderUpdatePayload
from ..models.order import Order, OrderStatus, PaymentStatus
from ..repository.customer_repository import CustomerRepository
from ..repository.item_repository import ItemRepository
from ..repository.order_repository import OrderRepository
from ..schemas.common import build_page, normalize_pagination
from ..schemas.order import OrderResponse
from ..utils.logging import setup_orderbook_logging
from .item_service import ItemService
from .utils import column_changes

logger = setup_orderbook_logging("orderbook_service.services.order")

CENT = Decimal("0.01")
ORDER_NUMBER_ATTEMPTS = 5

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.DRAFT: frozenset({OrderStatus.PENDING, OrderStatus.CANCELLED}),
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.PACKED, OrderStatus.CANCELLED}),
    OrderStatus.PACKED: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED, OrderStatus.FAILED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.RETURNED}),
    OrderStatus.RETURNED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.FAILED: frozenset({OrderStatus.CANCELLED, OrderStatus.PENDING}),
    OrderStatus.CANCELLED: frozenset(),  # Final state
    OrderStatus.REFUNDED: frozenset(),  # Final state
}

CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {
        OrderStatus.DRAFT,
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
    }
)


def is_transition_allowed(current: str, target: str) -> bool:
    try:
        return OrderStatus(target) in ALLOWED_TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class OrderBusinessRules:
    """Pricing rules applied when an order is created"""

    free_shipping_threshold = Decimal("100.00")
    reduced_shipping_threshold = Decimal("50.00")
    reduced_shipping_cost = Decimal("5.00")
    standard_shipping_cost = Decimal("10.00")

    def __init__(self, tax_rate: Decimal = Decimal("0.10"), currency: str = "USD"):
        self.tax_rate = Decimal(tax_rate)
        self.currency = currency

    def calculate_tax(self, subtotal: Decimal) -> Decimal:
        return money(subtotal * self.tax_rate)

    def calculate_shipping(self, subtotal: Decimal) -> Decimal:
        """Banded: free from 100, flat 5 from 50, flat 10 below"""
        if subtotal >= self.free_shipping_threshold:
            return Decimal("0.00")
        if subtotal >= self.reduced_shipping_threshold:
            return self.reduced_shipping_cost
        return self.standard_shipping_cost


class OrderService:
    def __init__(
        self,
        session: AsyncSession,
        business_rules: Optional[OrderBusinessRules] = None,
    ):
        self.session = session
        self.order_repository = OrderRepository(session)
        self.item_repository = ItemRepository(session)
        self.customer_repository = CustomerRepository(session)
        self.item_service = ItemService(session)
        self.business_rules = business_rules or OrderBusinessRules()

    @staticmethod
    def _to_dict(order: Order) -> Dict[str, Any]:
        return OrderResponse.model_validate(order).to_wire()

    @staticmethod
    def _generate_order_number() -> str:
        timestamp = str(int(time.time() * 1000))[-8:]
        suffix = "".join(
            secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6)
        )
        return f"ORD-{timestamp}-{suffix}"

    async def _allocate_order_number(self) -> str:
        """Generate an order number not already taken"""
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            order_number = self._generate_order_number()
            if await self.order_repository.get_order_by_number(order_number) is None:
                return order_number
            logger.warning(
                "Order number collision, regenerating",
                extra={"order_number": order_number, "operation": "create_order"},
            )
        raise DuplicateEntityError(
            f"Could not allocate a unique order number after {ORDER_NUMBER_ATTEMPTS} attempts"
        )

    def _validate_status_transition(self, current_status: str, new_status: str) -> None:
        if not is_transition_allowed(current_status, new_status):
            raise InvalidStatusTransitionError(current_status, new_status)

    async def create_order(self, payload: OrderCreatePayload) -> Dict[str, Any]:
        """
        Create an order from the request lines and server-computed totals.

        Every line must reference an item owned by the ordering customer with
        enough stock. Stock is decremented in the same transaction as the
        order insert.
        """
        if await self.order_repository.get_order_by_id(payload.id):
            raise DuplicateEntityError(
                f"Order with id {payload.id} already exists", {"id": payload.id}
            )
        if await self.customer_repository.get_customer_by_id(payload.customer_id) is None:
            raise EntityNotFoundError("Customer", payload.customer_id)

        items = await self.item_repository.get_items_by_ids(
            [line.item_id for line in payload.items], for_update=True
        )

        lines: List[Dict[str, Any]] = []
        subtotal = Decimal("0.00")
        tax_amount = Decimal("0.00")
        for line in payload.items:
            item = items.get(line.item_id)
            if item is None:
                raise EntityNotFoundError("Item", line.item_id)
            if item.customer_id != payload.customer_id:
                raise OwnershipError(
                    f"Item {item.id} does not belong to customer {payload.customer_id}",
                    {"item_id": item.id, "customer_id": payload.customer_id},
                )
            self.item_service.reserve_stock(item, line.quantity)

            line_subtotal = money(item.price * line.quantity)
            line_tax = self.business_rules.calculate_tax(line_subtotal)
            subtotal += line_subtotal
            tax_amount += line_tax
            lines.append(
                {
                    "item_id": item.id,
                    "name": item.name,
                    "description": item.description,
                    "sku": item.sku,
                    "price": money(item.price),
                    "quantity": line.quantity,
                    "subtotal": line_subtotal,
                    "tax_amount": line_tax,
                    "discount_amount": Decimal("0.00"),
                }
            )

        shipping_cost = self.business_rules.calculate_shipping(subtotal)
        discount_amount = Decimal("0.00")
        total_amount = money(subtotal + tax_amount + shipping_cost - discount_amount)
        order_number = await self._allocate_order_number()

        order = await self.order_repository.create_order(
            lines,
            id=payload.id,
            order_number=order_number,
            customer_id=payload.customer_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            priority=payload.priority.value,
            subtotal=money(subtotal),
            tax_amount=money(tax_amount),
            shipping_cost=shipping_cost,
            discount_amount=discount_amount,
            total_amount=total_amount,
            currency=self.business_rules.currency,
            shipping_address=payload.shipping_address,
            notes=payload.notes,
            delivery_date=payload.delivery_date,
        )

        logger.info(
            "Order created successfully.",
            extra={
                "order_id": order.id,
                "order_number": order_number,
                "customer_id": payload.customer_id,
                "item_count": len(lines),
                "subtotal": str(subtotal),
                "tax_amount": str(tax_amount),
                "shipping_cost": str(shipping_cost),
                "total_amount": str(total_amount),
                "operation": "create_order",
            },
        )
        return self._to_dict(order)

    async def update_order(self, payload: OrderUpdatePayload) -> Dict[str, Any]:
        """Apply only the provided fields; a status change must follow the transition table"""
        order = await self._require_order(payload.id)
        changes = column_changes(payload, exclude={"id"})

        new_status = changes.get("status")
        if new_status is not None:
            self._validate_status_transition(order.status, new_status)
            if new_status == OrderStatus.CANCELLED.value and order.status in {
                s.value for s in CANCELLABLE_STATUSES
            }:
                await self._restore_order_stock(order)

        old_status = order.status
        order = await self.order_repository.update_order(order, changes)
        logger.info(
            "Order updated successfully.",
            extra={
                "order_id": order.id,
                "old_status": old_status,
                "new_status": order.status,
                "updated_fields": sorted(changes),
                "operation": "update_order",
            },
        )
        return self._to_dict(order)

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
        """Cancel an order and give every line's quantity back to its item"""
        order = await self._require_order(order_id)
        if order.status not in {s.value for s in CANCELLABLE_STATUSES}:
            raise OrderCancellationError(
                f"Order with status {order.status} cannot be cancelled",
                {"order_id": order_id, "status": order.status},
            )

        await self._restore_order_stock(order)

        note = f"Cancelled: {reason or 'No reason provided'}"
        notes = f"{order.notes} | {note}" if order.notes else note
        old_status = order.status
        order = await self.order_repository.update_order(
            order, {"status": OrderStatus.CANCELLED.value, "notes": notes}
        )

        logger.info(
            "Order cancelled successfully.",
            extra={
                "order_id": order_id,
                "old_status": old_status,
                "reason": reason or "No reason provided",
                "operation": "cancel_order",
            },
        )
        return self._to_dict(order)

    async def _restore_order_stock(self, order: Order) -> None:
        for line in order.items:
            await self.item_service.restore_stock(line.item_id, line.quantity)

    async def delete_order(self, order_id: str) -> Dict[str, Any]:
        order = await self._require_order(order_id)
        customer_id = order.customer_id
        await self.order_repository.delete_order(order)
        logger.info(
            "Order deleted",
            extra={"order_id": order_id, "operation": "delete_order"},
        )
        return {"id": order_id, "customerId": customer_id, "deleted": True}

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        order = await self.order_repository.get_order_by_id(order_id)
        return self._to_dict(order) if order else None

    async def list_orders(
        self,
        page: int = 1,
        limit: int = 10,
        customer_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        page, limit = normalize_pagination(page, limit)
        orders, total = await self.order_repository.list_orders(
            offset=(page - 1) * limit,
            limit=limit,
            customer_id=customer_id,
            status_filter=status,
        )
        return build_page([self._to_dict(o) for o in orders], total, page, limit)

    async def list_customer_orders(
        self,
        customer_id: str,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.list_orders(page, limit, customer_id, status)

    async def _require_order(self, order_id: str) -> Order:
        order = await self.order_repository.get_order_by_id(order_id)
        if order is None:
            raise EntityNotFoundError("Order", order_id)
        return order
