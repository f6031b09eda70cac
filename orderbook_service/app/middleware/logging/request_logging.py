"""
HTTP request logging middleware for the Orderbook Service.

Assigns a request id, adopts the caller's X-Correlation-ID (or creates
one) and logs the start and completion of every request with its
duration. Both ids are stored on ``request.state`` for the handlers and
echoed back as response headers.
"""

import time
import uuid
from typing import TYPE_CHECKING, Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ...utils.logging import setup_orderbook_logging

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = setup_orderbook_logging("orderbook_service.request_logging")

CORRELATION_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"
TENANT_HEADER = "x-tenant-id"
USER_HEADER = "x-user-id"
SLOW_REQUEST_MS = 1000


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = str(uuid.uuid4())
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        tenant_id = request.headers.get(TENANT_HEADER)
        start_time = time.time()

        request.state.request_id = request_id
        request.state.correlation_id = correlation_id

        logger.info(
            "HTTP request started",
            extra={
                "request_id": request_id,
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "query_params": dict(request.query_params),
                "tenant_id": tenant_id,
                "user_id": request.headers.get(USER_HEADER),
                "client_ip": self._get_client_ip(request),
                "operation": "http_request_start",
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"HTTP request failed: {e}",
                extra={
                    "request_id": request_id,
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                    "error_type": type(e).__name__,
                    "operation": "http_request_error",
                },
                exc_info=True,
            )
            raise

        duration_ms = round((time.time() - start_time) * 1000, 2)
        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400 or duration_ms > SLOW_REQUEST_MS:
            log = logger.warning
        else:
            log = logger.info

        log(
            "HTTP request completed",
            extra={
                "request_id": request_id,
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "tenant_id": tenant_id,
                "duration_ms": duration_ms,
                "slow_request": duration_ms > SLOW_REQUEST_MS,
                "operation": "http_request_complete",
            },
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[CORRELATION_HEADER] = correlation_id
        return response

    def _get_client_ip(self, request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host
        return "unknown"


def setup_request_logging(app: "FastAPI") -> None:
    app.add_middleware(RequestLoggingMiddleware)
    logger.info(
        "Request logging middleware configured",
        extra={"operation": "middleware_setup", "middleware": "request_logging"},
    )
