"""
Redis cache for the Orderbook Service.

The cache is a non-authoritative accelerator: every operation absorbs
Redis and serialization errors (get -> miss, set -> no-op) so the durable
store stays the correctness fallback.
"""

import hashlib
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ...core.setting import OrderbookSettings
from ...utils.logging import setup_orderbook_logging

logger = setup_orderbook_logging("orderbook_service.cache")

_CACHE_ERRORS = (RedisError, OSError, TypeError, ValueError)
_DELETE_BATCH_SIZE = 500


class CacheEntity(str, Enum):
    CUSTOMER = "customer"
    ITEM = "item"
    ORDER = "order"

    @property
    def plural(self) -> str:
        return f"{self.value}s"


@dataclass(frozen=True)
class CacheTTLPolicy:
    """Per-type TTLs in seconds. List TTLs are shorter than entity TTLs."""

    customer: int = 3600
    customer_list: int = 600
    item: int = 1800
    item_list: int = 600
    order: int = 900
    order_list: int = 300

    @classmethod
    def from_settings(cls, settings: OrderbookSettings) -> "CacheTTLPolicy":
        return cls(
            customer=settings.CACHE_TTL_CUSTOMER,
            customer_list=settings.CACHE_TTL_CUSTOMER_LIST,
            item=settings.CACHE_TTL_ITEM,
            item_list=settings.CACHE_TTL_ITEM_LIST,
            order=settings.CACHE_TTL_ORDER,
            order_list=settings.CACHE_TTL_ORDER_LIST,
        )

    def entity_ttl(self, kind: CacheEntity) -> int:
        return getattr(self, kind.value)

    def list_ttl(self, kind: CacheEntity) -> int:
        return getattr(self, f"{kind.value}_list")


def filter_hash(filters: Dict[str, Any]) -> str:
    """Deterministic digest of the full filter tuple of a list query."""
    canonical = json.dumps(filters, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def entity_key(kind: CacheEntity, entity_id: str) -> str:
    return f"{kind.value}:{entity_id}"


def list_key(
    kind: CacheEntity, filters: Dict[str, Any], customer_id: Optional[str] = None
) -> str:
    if customer_id:
        return f"{kind.plural}:customer:{customer_id}:{filter_hash(filters)}"
    return f"{kind.plural}:list:{filter_hash(filters)}"


def list_pattern(kind: CacheEntity) -> str:
    return f"{kind.plural}:list:*"


def customer_scope_pattern(kind: CacheEntity, customer_id: str) -> str:
    return f"{kind.plural}:customer:{customer_id}:*"


class RedisCacheService:
    """Redis-backed cache with graceful degradation"""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_policy: Optional[CacheTTLPolicy] = None,
        client: Optional[Any] = None,
    ):
        if client is None and redis_url is None:
            raise ValueError("Either redis_url or client is required")
        self.redis_url = redis_url
        self.ttl_policy = ttl_policy or CacheTTLPolicy()
        self.redis_client = client
        self.is_available = False

    async def initialize(self) -> None:
        """Create the client and test it. Failure leaves the cache degraded."""
        if self.redis_client is None:
            self.redis_client = aioredis.from_url(
                self.redis_url, encoding="utf-8", decode_responses=True
            )
        self.is_available = await self.ping()
        if self.is_available:
            logger.info("Redis cache connection established")
        else:
            logger.warning(
                "Redis unreachable, cache running in degraded mode",
                extra={"operation": "cache_initialize"},
            )

    async def close(self) -> None:
        if self.redis_client is not None:
            try:
                await self.redis_client.aclose()
            except _CACHE_ERRORS as e:
                logger.warning(
                    "Error closing Redis connection",
                    extra={"error": str(e), "operation": "cache_close"},
                )
            finally:
                self.redis_client = None
                self.is_available = False

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[Any]:
        if self.redis_client is None:
            return None
        try:
            raw = await self.redis_client.get(key)
            return json.loads(raw) if raw is not None else None
        except _CACHE_ERRORS as e:
            logger.warning(
                "Cache get failed, treating as miss",
                extra={"key": key, "error": str(e), "operation": "cache_get"},
            )
            return None

    async def set(self, key: str, value: Any, ttl: int, only_if_absent: bool = False) -> bool:
        """Store a JSON value with a TTL.

        With only_if_absent the write is SET NX, so an entry written
        concurrently by the write path is never replaced. Returns False
        when nothing was written.
        """
        if self.redis_client is None:
            return False
        payload = json.dumps(value, default=str)
        try:
            if only_if_absent:
                return bool(await self.redis_client.set(key, payload, ex=ttl, nx=True))
            await self.redis_client.setex(key, ttl, payload)
            return True
        except _CACHE_ERRORS as e:
            logger.warning(
                "Cache set failed, skipping",
                extra={"key": key, "error": str(e), "operation": "cache_set"},
            )
            return False

    async def delete(self, key: str) -> int:
        if self.redis_client is None:
            return 0
        try:
            return int(await self.redis_client.delete(key))
        except _CACHE_ERRORS as e:
            logger.warning(
                "Cache delete failed",
                extra={"key": key, "error": str(e), "operation": "cache_delete"},
            )
            return 0

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern, scanning in batches."""
        if self.redis_client is None:
            return 0
        deleted = 0
        batch = []
        try:
            async for key in self.redis_client.scan_iter(match=pattern, count=_DELETE_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= _DELETE_BATCH_SIZE:
                    deleted += int(await self.redis_client.delete(*batch))
                    batch.clear()
            if batch:
                deleted += int(await self.redis_client.delete(*batch))
        except _CACHE_ERRORS as e:
            logger.warning(
                "Cache pattern delete failed",
                extra={"pattern": pattern, "error": str(e), "operation": "cache_delete_pattern"},
            )
        return deleted

    async def ping(self) -> bool:
        if self.redis_client is None:
            return False
        try:
            return bool(await self.redis_client.ping())
        except _CACHE_ERRORS as e:
            logger.warning(
                "Redis ping failed",
                extra={"error": str(e), "operation": "cache_ping"},
            )
            return False

    async def get_stats(self) -> Dict[str, Any]:
        if self.redis_client is None:
            return {"connected": False}
        try:
            memory = await self.redis_client.info("memory")
            keyspace = await self.redis_client.info("keyspace")
            return {
                "connected": True,
                "used_memory": memory.get("used_memory_human"),
                "peak_memory": memory.get("used_memory_peak_human"),
                "keyspace": keyspace,
                "total_keys": int(await self.redis_client.dbsize()),
            }
        except _CACHE_ERRORS as e:
            logger.warning(
                "Failed to read Redis stats",
                extra={"error": str(e), "operation": "cache_stats"},
            )
            return {"connected": False, "error": str(e)}

    # ------------------------------------------------------------------
    # Entity helpers
    # ------------------------------------------------------------------

    async def get_entity(self, kind: CacheEntity, entity_id: str) -> Optional[Any]:
        return await self.get(entity_key(kind, entity_id))

    async def set_entity(
        self, kind: CacheEntity, entity_id: str, value: Any, only_if_absent: bool = False
    ) -> bool:
        return await self.set(
            entity_key(kind, entity_id),
            value,
            self.ttl_policy.entity_ttl(kind),
            only_if_absent=only_if_absent,
        )

    async def delete_entity(self, kind: CacheEntity, entity_id: str) -> int:
        return await self.delete(entity_key(kind, entity_id))

    async def get_list(
        self, kind: CacheEntity, filters: Dict[str, Any], customer_id: Optional[str] = None
    ) -> Optional[Any]:
        return await self.get(list_key(kind, filters, customer_id))

    async def set_list(
        self,
        kind: CacheEntity,
        filters: Dict[str, Any],
        value: Any,
        customer_id: Optional[str] = None,
        only_if_absent: bool = False,
    ) -> bool:
        return await self.set(
            list_key(kind, filters, customer_id),
            value,
            self.ttl_policy.list_ttl(kind),
            only_if_absent=only_if_absent,
        )
