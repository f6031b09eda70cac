"""
Cache-first read path used by the synchronous GET endpoints.

A hit is returned as-is; a miss is loaded from the store, written to the
cache with the type-specific TTL and returned. Absent entities are not
cached.
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import OrderbookDatabaseManager
from ..schemas.common import normalize_pagination
from .cache.redis_cache import CacheEntity, RedisCacheService
from .customer_service import CustomerService
from .item_service import ItemService
from .order_service import OrderService

SOURCE_CACHE = "cache"
SOURCE_DATABASE = "database"


@dataclass
class QueryResult:
    data: Optional[Any]
    cache_hit: bool
    started_at: float

    @property
    def found(self) -> bool:
        return self.data is not None

    def metadata(self) -> Dict[str, Any]:
        return {
            "responseTime": round((time.perf_counter() - self.started_at) * 1000, 2),
            "cacheHit": self.cache_hit,
            "source": SOURCE_CACHE if self.cache_hit else SOURCE_DATABASE,
        }


class QueryService:
    def __init__(self, database: OrderbookDatabaseManager, cache: RedisCacheService):
        self.database = database
        self.cache = cache

    async def _load(self, loader: Callable[[AsyncSession], Awaitable[Any]]) -> Any:
        async with self.database.session() as session:
            return await loader(session)

    async def _entity(
        self,
        kind: CacheEntity,
        entity_id: str,
        loader: Callable[[AsyncSession], Awaitable[Optional[Dict[str, Any]]]],
    ) -> QueryResult:
        started_at = time.perf_counter()
        cached = await self.cache.get_entity(kind, entity_id)
        if cached is not None:
            return QueryResult(cached, True, started_at)

        data = await self._load(loader)
        if data is not None:
            # A write-through that landed after the load wins
            await self.cache.set_entity(kind, entity_id, data, only_if_absent=True)
        return QueryResult(data, False, started_at)

    async def _list(
        self,
        kind: CacheEntity,
        filters: Dict[str, Any],
        loader: Callable[[AsyncSession], Awaitable[Dict[str, Any]]],
        customer_id: Optional[str] = None,
    ) -> QueryResult:
        started_at = time.perf_counter()
        cached = await self.cache.get_list(kind, filters, customer_id)
        if cached is not None:
            return QueryResult(cached, True, started_at)

        data = await self._load(loader)
        await self.cache.set_list(kind, filters, data, customer_id, only_if_absent=True)
        return QueryResult(data, False, started_at)

    async def get_customer(self, customer_id: str) -> QueryResult:
        return await self._entity(
            CacheEntity.CUSTOMER,
            customer_id,
            lambda s: CustomerService(s).get_customer(customer_id),
        )

    async def list_customers(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> QueryResult:
        page, limit = normalize_pagination(page, limit)
        filters = {"page": page, "limit": limit, "search": search}
        return await self._list(
            CacheEntity.CUSTOMER,
            filters,
            lambda s: CustomerService(s).list_customers(page, limit, search),
        )

    async def get_item(self, item_id: str) -> QueryResult:
        return await self._entity(
            CacheEntity.ITEM, item_id, lambda s: ItemService(s).get_item(item_id)
        )

    async def list_items(
        self,
        page: int,
        limit: int,
        customer_id: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> QueryResult:
        page, limit = normalize_pagination(page, limit)
        filters = {"page": page, "limit": limit, "category": category, "search": search}
        return await self._list(
            CacheEntity.ITEM,
            filters,
            lambda s: ItemService(s).list_items(page, limit, customer_id, category, search),
            customer_id=customer_id,
        )

    async def list_customer_items(
        self,
        customer_id: str,
        page: int,
        limit: int,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> QueryResult:
        page, limit = normalize_pagination(page, limit)
        filters = {"page": page, "limit": limit, "category": category, "search": search}
        return await self._list(
            CacheEntity.ITEM,
            filters,
            lambda s: ItemService(s).list_customer_items(
                customer_id, page, limit, category, search
            ),
            customer_id=customer_id,
        )

    async def get_order(self, order_id: str) -> QueryResult:
        return await self._entity(
            CacheEntity.ORDER, order_id, lambda s: OrderService(s).get_order(order_id)
        )

    async def list_orders(
        self,
        page: int,
        limit: int,
        customer_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> QueryResult:
        page, limit = normalize_pagination(page, limit)
        filters = {"page": page, "limit": limit, "status": status}
        return await self._list(
            CacheEntity.ORDER,
            filters,
            lambda s: OrderService(s).list_orders(page, limit, customer_id, status),
            customer_id=customer_id,
        )

    async def list_customer_orders(
        self,
        customer_id: str,
        page: int,
        limit: int,
        status: Optional[str] = None,
    ) -> QueryResult:
        page, limit = normalize_pagination(page, limit)
        filters = {"page": page, "limit": limit, "status": status}
        return await self._list(
            CacheEntity.ORDER,
            filters,
            lambda s: OrderService(s).list_customer_orders(customer_id, page, limit, status),
            customer_id=customer_id,
        )
