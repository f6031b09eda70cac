"""
Orderbook Service FastAPI Application
=====================================

Main application entry point for the Orderbook Service.
Accepts customer, item and order writes as request events, serves
cache-first reads, and fans outcome events out to WebSocket clients.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1.cache import router as cache_router
from .api.v1.customers import router as customers_router
from .api.v1.health import router as health_router
from .api.v1.items import router as items_router
from .api.v1.orders import router as orders_router
from .api.v1.realtime import router as realtime_router
from .api.v1.realtime import ws_router
from .core.container import ServiceContainer
from .core.setting import get_settings
from .middleware.error.error_handler import setup_orderbook_error_handling
from .middleware.logging.request_logging import setup_request_logging
from .utils.logging import setup_orderbook_logging

settings = get_settings()
enable_file_logging = settings.ENVIRONMENT.lower() in ["production", "staging"]

logger = setup_orderbook_logging(
    "orderbook_service",
    log_level=settings.LOG_LEVEL,
    enable_file_logging=enable_file_logging,
)


# Lifespan management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the container's components and shut them down in order on exit."""
    startup_start = time.time()
    if getattr(app.state, "container", None) is None:
        app.state.container = ServiceContainer.from_settings(settings)
    container: ServiceContainer = app.state.container

    logger.info(
        "Starting orderbook service",
        extra={
            "environment": settings.ENVIRONMENT,
            "debug_mode": settings.DEBUG,
            "node_id": settings.NODE_ID,
            "service_version": settings.APP_VERSION,
        },
    )

    try:
        await container.startup()
    except Exception as e:
        logger.error(
            "Failed to start orderbook service",
            exc_info=True,
            extra={
                "startup_duration_ms": int((time.time() - startup_start) * 1000),
                "error_type": type(e).__name__,
            },
        )
        await container.shutdown()
        raise

    logger.info(
        "Orderbook service started successfully",
        extra={"total_startup_duration_ms": int((time.time() - startup_start) * 1000)},
    )

    yield

    await container.shutdown()


# Application factory
def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Create the application; without a container one is built at startup."""
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )
    app.state.container = container

    _setup_middleware(app)
    _setup_cors(app)
    _setup_routers(app)

    return app


def _setup_middleware(app: FastAPI) -> None:
    setup_orderbook_error_handling(app)
    setup_request_logging(app)


def _setup_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_CREDENTIALS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )


def _setup_routers(app: FastAPI) -> None:
    routers_info: List[dict[str, Any]] = []

    app.include_router(health_router, tags=["Health"])
    routers_info.append({"router": "health", "prefix": ""})

    app.include_router(ws_router, tags=["Realtime"])
    routers_info.append({"router": "websocket", "prefix": ""})

    for name, router, tag in (
        ("customers", customers_router, "Customer Management"),
        ("items", items_router, "Item Management"),
        ("orders", orders_router, "Order Management"),
        ("cache", cache_router, "Cache Administration"),
        ("realtime", realtime_router, "Realtime"),
    ):
        app.include_router(router, prefix="/api/v1", tags=[tag])
        routers_info.append({"router": name, "prefix": "/api/v1"})

    logger.info(
        "API routes configured",
        extra={"total_routers": len(routers_info), "routers": routers_info},
    )


app = create_app()
