from .invalidation import CacheInvalidationService
from .redis_cache import CacheEntity, CacheTTLPolicy, RedisCacheService

__all__ = [
    "CacheEntity",
    "CacheInvalidationService",
    "CacheTTLPolicy",
    "RedisCacheService",
]
