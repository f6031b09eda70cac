"""Cache administration endpoints"""

from typing import Optional

from fastapi import APIRouter
from pydantic import Field

from ...schemas.common import CamelModel, utc_now_iso
from ...services.cache.invalidation import CacheInvalidationService
from ...services.cache.redis_cache import RedisCacheService
from ..dependencies import CacheDep, CacheInvalidationDep

router = APIRouter(prefix="/cache")


class CacheInvalidateRequest(CamelModel):
    pattern: Optional[str] = Field(None, min_length=1, max_length=200, examples=["customer:*"])


@router.get("/stats")
async def cache_stats(cache: RedisCacheService = CacheDep):
    return {
        "success": True,
        "data": {"available": cache.is_available, **(await cache.get_stats())},
        "timestamp": utc_now_iso(),
    }


@router.post("/invalidate")
async def invalidate_cache(
    request_data: Optional[CacheInvalidateRequest] = None,
    invalidation: CacheInvalidationService = CacheInvalidationDep,
):
    """Drop keys matching a glob pattern; no pattern drops every orderbook key"""
    pattern = request_data.pattern if request_data else None
    deleted = await invalidation.clear_pattern(pattern)
    return {
        "success": True,
        "data": {"pattern": pattern, "deleted": deleted},
        "message": f"Invalidated {deleted} cache entries",
        "timestamp": utc_now_iso(),
    }
