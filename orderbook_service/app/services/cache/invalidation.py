"""
Cache invalidation for the write path.

Called by the event processor after a domain transaction commits and
before the outcome event is published, so a reader that sees the outcome
can no longer be served the pre-mutation value.
"""

from typing import Any, Dict, Iterable, Optional

from ...utils.logging import setup_orderbook_logging
from .redis_cache import (
    CacheEntity,
    RedisCacheService,
    customer_scope_pattern,
    list_pattern,
)

logger = setup_orderbook_logging("orderbook_service.cache.invalidation")


class CacheInvalidationService:
    """Service for cache invalidation"""

    def __init__(self, cache: RedisCacheService):
        self.cache = cache

    async def _drop_patterns(self, *patterns: str) -> int:
        total_invalidated = 0
        for pattern in patterns:
            total_invalidated += await self.cache.delete_pattern(pattern)
        return total_invalidated

    async def customer_written(self, customer: Dict[str, Any]) -> None:
        """Refresh the customer entry and drop every customer list page"""
        await self.cache.set_entity(CacheEntity.CUSTOMER, customer["id"], customer)
        count = await self._drop_patterns(list_pattern(CacheEntity.CUSTOMER))
        logger.info(
            f"Invalidated {count} customer list cache entries",
            extra={"customer_id": customer["id"], "operation": "invalidate_customer"},
        )

    async def customer_deleted(
        self,
        customer_id: str,
        item_ids: Iterable[str] = (),
        order_ids: Iterable[str] = (),
    ) -> None:
        """Drop the customer and everything that was removed with it"""
        await self.cache.delete_entity(CacheEntity.CUSTOMER, customer_id)
        for item_id in item_ids:
            await self.cache.delete_entity(CacheEntity.ITEM, item_id)
        for order_id in order_ids:
            await self.cache.delete_entity(CacheEntity.ORDER, order_id)

        count = await self._drop_patterns(
            list_pattern(CacheEntity.CUSTOMER),
            list_pattern(CacheEntity.ITEM),
            list_pattern(CacheEntity.ORDER),
            customer_scope_pattern(CacheEntity.ITEM, customer_id),
            customer_scope_pattern(CacheEntity.ORDER, customer_id),
        )
        logger.info(
            f"Invalidated {count} list cache entries for deleted customer",
            extra={"customer_id": customer_id, "operation": "invalidate_customer_delete"},
        )

    async def item_written(self, item: Dict[str, Any]) -> None:
        await self.cache.set_entity(CacheEntity.ITEM, item["id"], item)
        await self._drop_item_lists(item["customerId"])

    async def item_deleted(self, item_id: str, customer_id: str) -> None:
        await self.cache.delete_entity(CacheEntity.ITEM, item_id)
        await self._drop_item_lists(customer_id)

    async def items_stock_changed(self, customer_id: str, item_ids: Iterable[str]) -> None:
        """Drop items whose quantity moved as a side effect of an order write"""
        for item_id in item_ids:
            await self.cache.delete_entity(CacheEntity.ITEM, item_id)
        await self._drop_item_lists(customer_id)

    async def _drop_item_lists(self, customer_id: str) -> None:
        count = await self._drop_patterns(
            list_pattern(CacheEntity.ITEM),
            customer_scope_pattern(CacheEntity.ITEM, customer_id),
        )
        logger.info(
            f"Invalidated {count} item list cache entries",
            extra={"customer_id": customer_id, "operation": "invalidate_items"},
        )

    async def order_written(
        self, order: Dict[str, Any], stock_changed: bool = False
    ) -> None:
        await self.cache.set_entity(CacheEntity.ORDER, order["id"], order)
        await self._drop_order_lists(order["customerId"])
        if stock_changed:
            await self.items_stock_changed(
                order["customerId"], [line["itemId"] for line in order.get("items", [])]
            )

    async def order_deleted(self, order_id: str, customer_id: str) -> None:
        await self.cache.delete_entity(CacheEntity.ORDER, order_id)
        await self._drop_order_lists(customer_id)

    async def _drop_order_lists(self, customer_id: str) -> None:
        count = await self._drop_patterns(
            list_pattern(CacheEntity.ORDER),
            customer_scope_pattern(CacheEntity.ORDER, customer_id),
        )
        logger.info(
            f"Invalidated {count} order list cache entries",
            extra={"customer_id": customer_id, "operation": "invalidate_orders"},
        )

    async def clear_pattern(self, pattern: Optional[str] = None) -> int:
        """Manual invalidation; no pattern clears every orderbook key"""
        patterns = (
            [pattern]
            if pattern
            else [f"{kind.value}*" for kind in CacheEntity]
        )
        count = await self._drop_patterns(*patterns)
        logger.info(
            f"Manually invalidated {count} cache entries",
            extra={"patterns": patterns, "operation": "clear_cache"},
        )
        return count
