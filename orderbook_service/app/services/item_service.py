"""
Item service: inventory lines owned by customers.

Quantity never goes below zero; subtractions that would do so raise
InsufficientStockError and leave the row untouched.
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import (
    DuplicateEntityError,
    EntityNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
)
from ..events.schemas import ItemCreatePayload, ItemUpdatePayload
from ..models.item import CustomerItem, ItemStatus
from ..repository.customer_repository import CustomerRepository
from ..repository.item_repository import ItemRepository
from ..schemas.common import build_page, normalize_pagination
from ..schemas.item import ItemResponse, QuantityOperation
from ..utils.logging import setup_orderbook_logging
from .utils import column_changes

logger = setup_orderbook_logging("orderbook_service.services.item")


class ItemService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.item_repository = ItemRepository(session)
        self.customer_repository = CustomerRepository(session)

    @staticmethod
    def to_dict(item: CustomerItem) -> Dict[str, Any]:
        return ItemResponse.model_validate(item).to_wire()

    async def create_item(self, payload: ItemCreatePayload) -> Dict[str, Any]:
        if await self.item_repository.get_item_by_id(payload.id):
            raise DuplicateEntityError(
                f"Item with id {payload.id} already exists", {"id": payload.id}
            )
        if await self.customer_repository.get_customer_by_id(payload.customer_id) is None:
            raise EntityNotFoundError("Customer", payload.customer_id)

        item = await self.item_repository.create_item(
            id=payload.id,
            customer_id=payload.customer_id,
            name=payload.name,
            description=payload.description,
            sku=payload.sku,
            price=payload.price,
            quantity=payload.quantity,
            category=payload.category,
            min_stock_level=payload.min_stock_level,
            status=ItemStatus.ACTIVE.value,
        )
        logger.info(
            "Item created",
            extra={
                "item_id": item.id,
                "customer_id": item.customer_id,
                "operation": "create_item",
            },
        )
        return self.to_dict(item)

    async def update_item(self, payload: ItemUpdatePayload) -> Dict[str, Any]:
        item = await self._require_item(payload.id)
        changes = column_changes(payload, exclude={"id"})
        item = await self.item_repository.update_item(item, changes)
        logger.info(
            "Item updated",
            extra={
                "item_id": item.id,
                "updated_fields": sorted(changes),
                "operation": "update_item",
            },
        )
        return self.to_dict(item)

    async def update_quantity(
        self, item_id: str, quantity: int, operation: QuantityOperation
    ) -> Dict[str, Any]:
        """Set, add to or subtract from an item's stock"""
        if quantity < 0:
            raise InvalidQuantityError(
                "Quantity must not be negative", {"quantity": quantity}
            )

        item = await self._require_item(item_id, for_update=True)
        previous = item.quantity

        if operation == QuantityOperation.SET:
            new_quantity = quantity
        elif operation == QuantityOperation.ADD:
            new_quantity = previous + quantity
        else:
            if quantity > previous:
                raise InsufficientStockError(item_id, previous, quantity)
            new_quantity = previous - quantity

        item = await self.item_repository.update_item(item, {"quantity": new_quantity})
        logger.info(
            "Item quantity updated",
            extra={
                "item_id": item_id,
                "quantity_operation": operation.value,
                "previous_quantity": previous,
                "new_quantity": new_quantity,
                "operation": "update_item_quantity",
            },
        )
        return self.to_dict(item)

    def reserve_stock(self, item: CustomerItem, quantity: int) -> None:
        """Decrement stock of an item already locked by the caller's transaction"""
        if item.quantity < quantity:
            raise InsufficientStockError(item.id, item.quantity, quantity)
        item.quantity -= quantity

    async def restore_stock(self, item_id: str, quantity: int) -> bool:
        """Give stock back; returns False when the item no longer exists"""
        item = await self.item_repository.get_item_by_id(item_id, for_update=True)
        if item is None:
            logger.warning(
                "Cannot restore stock for deleted item",
                extra={"item_id": item_id, "quantity": quantity, "operation": "restore_stock"},
            )
            return False
        await self.item_repository.update_item(item, {"quantity": item.quantity + quantity})
        return True

    async def delete_item(self, item_id: str) -> Dict[str, Any]:
        item = await self._require_item(item_id)
        customer_id = item.customer_id
        await self.item_repository.delete_item(item)
        logger.info(
            "Item deleted",
            extra={"item_id": item_id, "customer_id": customer_id, "operation": "delete_item"},
        )
        return {"id": item_id, "customerId": customer_id, "deleted": True}

    async def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        item = await self.item_repository.get_item_by_id(item_id)
        return self.to_dict(item) if item else None

    async def list_items(
        self,
        page: int = 1,
        limit: int = 10,
        customer_id: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        page, limit = normalize_pagination(page, limit)
        items, total = await self.item_repository.list_items(
            offset=(page - 1) * limit,
            limit=limit,
            customer_id=customer_id,
            category=category,
            search=search,
        )
        return build_page([self.to_dict(i) for i in items], total, page, limit)

    async def list_customer_items(
        self,
        customer_id: str,
        page: int = 1,
        limit: int = 10,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.list_items(page, limit, customer_id, category, search)

    async def _require_item(self, item_id: str, for_update: bool = False) -> CustomerItem:
        item = await self.item_repository.get_item_by_id(item_id, for_update=for_update)
        if item is None:
            raise EntityNotFoundError("Item", item_id)
        return item
