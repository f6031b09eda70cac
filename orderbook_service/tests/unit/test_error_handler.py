"""
Unit tests for Orderbook Service Error Handler.
"""

import json
from unittest.mock import Mock

import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from orderbook_service.app.core.exceptions import (
    BrokerUnavailableError,
    EntityNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidStatusTransitionError,
    OrderbookError,
)
from orderbook_service.app.middleware.error.error_handler import (
    OrderbookErrorHandler,
    format_validation_errors,
)


@pytest.fixture
def app():
    app = FastAPI()
    OrderbookErrorHandler.setup_error_handlers(app)
    return app


@pytest.fixture
def mock_request():
    mock_req = Mock(spec=Request)
    mock_req.url.path = "/api/v1/orders"
    mock_req.method = "POST"
    mock_req.state.correlation_id = "test-correlation-id"
    return mock_req


class TestOrderbookErrorHandler:
    def test_setup_error_handlers(self, app):
        assert StarletteHTTPException in app.exception_handlers
        assert RequestValidationError in app.exception_handlers
        assert OrderbookError in app.exception_handlers
        assert Exception in app.exception_handlers

    async def test_request_validation_error_is_400_with_errors(self, app, mock_request):
        exc = RequestValidationError(
            [
                {"loc": ("body", "email"), "msg": "value is not a valid email address", "type": "value_error"},
                {"loc": ("body", "name"), "msg": "Field required", "type": "missing"},
            ]
        )

        response = await app.exception_handlers[RequestValidationError](mock_request, exc)

        assert response.status_code == 400
        body = json.loads(response.body)
        assert body["success"] is False
        assert body["errors"] == [
            "email: value is not a valid email address",
            "name: Field required",
        ]
        assert body["error"]["type"] == "validation_error"
        assert body["error"]["correlationId"] == "test-correlation-id"
        assert body["error"]["path"] == "/api/v1/orders"

    @pytest.mark.parametrize(
        "exc, status_code",
        [
            (EntityNotFoundError("Customer", "c1"), 404),
            (BrokerUnavailableError("Kafka producer is not connected"), 503),
            (InvalidQuantityError("Quantity must be positive"), 400),
            (InsufficientStockError("i1", 1, 2), 409),
            (InvalidStatusTransitionError("DELIVERED", "PENDING"), 409),
        ],
    )
    async def test_domain_errors_map_to_status(self, app, mock_request, exc, status_code):
        response = await app.exception_handlers[OrderbookError](mock_request, exc)

        assert response.status_code == status_code
        body = json.loads(response.body)
        assert body["success"] is False
        assert body["message"] == exc.message
        assert body["error"]["type"] == exc.error_code

    async def test_http_exception(self, app, mock_request):
        exc = StarletteHTTPException(status_code=405, detail="Method Not Allowed")

        response = await app.exception_handlers[StarletteHTTPException](mock_request, exc)

        assert response.status_code == 405
        assert json.loads(response.body)["message"] == "Method Not Allowed"

    async def test_unexpected_error_is_500(self, app, mock_request):
        response = await app.exception_handlers[Exception](mock_request, KeyError("boom"))

        assert response.status_code == 500
        body = json.loads(response.body)
        assert body["message"] == "An internal server error occurred"
        assert body["error"]["details"] == {"exception_type": "KeyError"}


def test_format_validation_errors_without_location():
    assert format_validation_errors([{"loc": (), "msg": "bad"}]) == ["bad"]
