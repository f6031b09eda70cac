"""
Error handling middleware for Orderbook Service.
Provides centralized exception handling and standardized error responses.
"""

import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ...core.exceptions import (
    BrokerConnectionError,
    BrokerUnavailableError,
    EntityNotFoundError,
    InvalidQuantityError,
    OrderbookError,
)
from ...schemas.common import utc_now_iso
from ...utils.logging import setup_orderbook_logging

logger = setup_orderbook_logging("orderbook_service.error_handler")


def format_validation_errors(errors: List[Dict[str, Any]]) -> List[str]:
    """One "location: message" string per field error"""
    messages = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return messages


def status_code_for(exc: OrderbookError) -> int:
    if isinstance(exc, EntityNotFoundError):
        return 404
    if isinstance(exc, (BrokerUnavailableError, BrokerConnectionError)):
        return 503
    if isinstance(exc, InvalidQuantityError):
        return 400
    return 409


class OrderbookErrorHandler:
    """
    Centralized error handling for Orderbook Service.

    Every handler builds its body through ``_create_error_response`` so
    clients always see ``{"success": false, "message", "error": {...}}``.
    """

    @staticmethod
    def setup_error_handlers(app: FastAPI) -> None:
        @app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(
            request: Request, exc: StarletteHTTPException
        ) -> JSONResponse:
            return OrderbookErrorHandler._create_error_response(
                request=request,
                status_code=exc.status_code,
                error_type="http_error",
                message=str(exc.detail),
            )

        @app.exception_handler(RequestValidationError)
        async def validation_exception_handler(
            request: Request, exc: RequestValidationError
        ) -> JSONResponse:
            return OrderbookErrorHandler._create_error_response(
                request=request,
                status_code=400,
                error_type="validation_error",
                message="Request validation failed",
                errors=format_validation_errors(exc.errors()),
            )

        @app.exception_handler(ValidationError)
        async def pydantic_validation_exception_handler(
            request: Request, exc: ValidationError
        ) -> JSONResponse:
            """Handle Pydantic validation errors raised while building payloads"""
            return OrderbookErrorHandler._create_error_response(
                request=request,
                status_code=400,
                error_type="data_validation_error",
                message="Data validation failed",
                errors=format_validation_errors(exc.errors()),
            )

        @app.exception_handler(OrderbookError)
        async def orderbook_exception_handler(
            request: Request, exc: OrderbookError
        ) -> JSONResponse:
            return OrderbookErrorHandler._create_error_response(
                request=request,
                status_code=status_code_for(exc),
                error_type=exc.error_code,
                message=exc.message,
                details=exc.details or None,
            )

        @app.exception_handler(Exception)
        async def general_exception_handler(
            request: Request, exc: Exception
        ) -> JSONResponse:
            logger.error(
                "Unhandled exception occurred",
                extra={
                    "correlation_id": getattr(request.state, "correlation_id", "unknown"),
                    "path": request.url.path,
                    "method": request.method,
                    "exception_type": type(exc).__name__,
                    "exception_message": str(exc),
                    "traceback": traceback.format_exc(),
                    "operation": "unhandled_exception",
                },
                exc_info=True,
            )
            return OrderbookErrorHandler._create_error_response(
                request=request,
                status_code=500,
                error_type="internal_server_error",
                message="An internal server error occurred",
                details={"exception_type": type(exc).__name__},
            )

    @staticmethod
    def _create_error_response(
        request: Request,
        status_code: int,
        error_type: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        errors: Optional[List[str]] = None,
    ) -> JSONResponse:
        """
        Create a standardized error response.

        Args:
            request: The FastAPI request object
            status_code: HTTP status code
            error_type: Type of error for categorization
            message: Human-readable error message
            details: Additional error details
            errors: Field-level validation messages

        Returns:
            JSONResponse with standardized error format
        """
        correlation_id = getattr(request.state, "correlation_id", "unknown")

        content: Dict[str, Any] = {
            "success": False,
            "message": message,
            "error": {
                "type": error_type,
                "correlationId": correlation_id,
                "timestamp": utc_now_iso(),
                "path": request.url.path,
                "method": request.method,
            },
        }
        if details:
            content["error"]["details"] = details
        if errors is not None:
            content["errors"] = errors

        if status_code < 500:
            logger.warning(
                f"Client error: {error_type}",
                extra={
                    "correlation_id": correlation_id,
                    "status_code": status_code,
                    "error_type": error_type,
                    "path": request.url.path,
                    "method": request.method,
                    "operation": "client_error",
                },
            )
        elif status_code == 503:
            logger.error(
                f"Dependency unavailable: {message}",
                extra={
                    "correlation_id": correlation_id,
                    "status_code": status_code,
                    "path": request.url.path,
                    "operation": "dependency_unavailable",
                },
            )

        return JSONResponse(status_code=status_code, content=content)


def setup_orderbook_error_handling(app: FastAPI) -> None:
    """
    Convenience function to setup error handling for Orderbook Service.

    Args:
        app: FastAPI application instance
    """
    OrderbookErrorHandler.setup_error_handlers(app)
    logger.info(
        "Orderbook Service error handling configured",
        extra={"operation": "error_handler_setup"},
    )
