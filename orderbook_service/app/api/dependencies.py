"""
FastAPI dependency injection for Orderbook Service

Every long-lived object is owned by the ``ServiceContainer`` stored on
``app.state.container``; routes reach it through these dependencies.
"""

import uuid
from typing import Optional

from fastapi import Depends, Request

from ..core.container import ServiceContainer
from ..events.producers import RequestEventProducer
from ..realtime.broadcaster import SubscriptionBroadcaster
from ..services.cache.invalidation import CacheInvalidationService
from ..services.cache.redis_cache import RedisCacheService
from ..services.query_service import QueryService

# =====================================================
# CONTAINER DEPENDENCIES
# =====================================================


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_event_producer(
    container: ServiceContainer = Depends(get_container),
) -> RequestEventProducer:
    return container.producer


def get_query_service(container: ServiceContainer = Depends(get_container)) -> QueryService:
    return container.queries


def get_cache(container: ServiceContainer = Depends(get_container)) -> RedisCacheService:
    return container.cache


def get_cache_invalidation(
    container: ServiceContainer = Depends(get_container),
) -> CacheInvalidationService:
    return container.invalidation


def get_broadcaster(
    container: ServiceContainer = Depends(get_container),
) -> SubscriptionBroadcaster:
    return container.broadcaster


# =====================================================
# REQUEST CONTEXT DEPENDENCIES
# =====================================================


def get_correlation_id(request: Request) -> str:
    """Correlation ID from headers, then request state, else a new one"""
    return (
        request.headers.get("X-Correlation-ID")
        or getattr(request.state, "correlation_id", None)
        or str(uuid.uuid4())
    )


def get_user_id(request: Request) -> Optional[str]:
    return request.headers.get("x-user-id")


def get_tenant_id(request: Request) -> Optional[str]:
    return request.headers.get("x-tenant-id")


# =====================================================
# COMMON DEPENDENCY ALIASES
# =====================================================

CorrelationIdDep = Depends(get_correlation_id)
UserIdDep = Depends(get_user_id)
TenantIdDep = Depends(get_tenant_id)
ContainerDep = Depends(get_container)
ProducerDep = Depends(get_event_producer)
QueryServiceDep = Depends(get_query_service)
CacheDep = Depends(get_cache)
CacheInvalidationDep = Depends(get_cache_invalidation)
BroadcasterDep = Depends(get_broadcaster)
