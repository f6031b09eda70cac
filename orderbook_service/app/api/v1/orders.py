"""Order API endpoints"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from ...events.producers import RequestEventProducer
from ...events.schemas import (
    OrderCancelPayload,
    OrderCreatePayload,
    OrderDeletePayload,
    OrderUpdatePayload,
    RequestEventType,
)
from ...models.order import OrderStatus
from ...schemas.common import accepted_response, not_found_response, read_response
from ...schemas.order import OrderCancelRequest, OrderCreateRequest, OrderUpdateRequest
from ...services.query_service import QueryService
from ..dependencies import (
    CorrelationIdDep,
    ProducerDep,
    QueryServiceDep,
    TenantIdDep,
    UserIdDep,
)

router = APIRouter(prefix="/orders")


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def create_order(
    order_data: OrderCreateRequest,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    """
    Accept an order for asynchronous creation.

    Only customer, lines and delivery details are taken from the client.
    Prices, tax, shipping and totals are computed by the processor.
    """
    order_id = str(uuid.uuid4())
    await producer.publish_request(
        RequestEventType.ORDER_CREATE_REQUESTED,
        OrderCreatePayload(id=order_id, **order_data.model_dump(exclude_unset=True)),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(order_id, correlation_id, "Order creation request accepted")


@router.get("")
async def list_orders(
    page: int = Query(1),
    limit: int = Query(10),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    queries: QueryService = QueryServiceDep,
):
    result = await queries.list_orders(
        page, limit, status=order_status.value if order_status else None
    )
    return read_response(result.data, result.metadata())


@router.get("/customer/{customer_id}")
async def list_customer_orders(
    customer_id: uuid.UUID,
    page: int = Query(1),
    limit: int = Query(10),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    queries: QueryService = QueryServiceDep,
):
    result = await queries.list_customer_orders(
        str(customer_id),
        page,
        limit,
        status=order_status.value if order_status else None,
    )
    return read_response(result.data, result.metadata())


@router.get("/{order_id}")
async def get_order(order_id: uuid.UUID, queries: QueryService = QueryServiceDep):
    result = await queries.get_order(str(order_id))
    if not result.found:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=not_found_response(f"Order with id {order_id} not found", result.metadata()),
        )
    return read_response(result.data, result.metadata())


@router.put("/{order_id}", status_code=status.HTTP_202_ACCEPTED)
async def update_order(
    order_id: uuid.UUID,
    order_data: OrderUpdateRequest,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    """Partial update; a status change is checked against the transition table"""
    await producer.publish_request(
        RequestEventType.ORDER_UPDATE_REQUESTED,
        OrderUpdatePayload(id=str(order_id), **order_data.model_dump(exclude_unset=True)),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(str(order_id), correlation_id, "Order update request accepted")


@router.post("/{order_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_order(
    order_id: uuid.UUID,
    cancel_data: Optional[OrderCancelRequest] = None,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    reason = cancel_data.reason if cancel_data else None
    await producer.publish_request(
        RequestEventType.ORDER_CANCEL_REQUESTED,
        OrderCancelPayload(id=str(order_id), reason=reason),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(
        str(order_id), correlation_id, "Order cancellation request accepted"
    )


@router.delete("/{order_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_order(
    order_id: uuid.UUID,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    await producer.publish_request(
        RequestEventType.ORDER_DELETE_REQUESTED,
        OrderDeletePayload(id=str(order_id)),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(str(order_id), correlation_id, "Order deletion request accepted")
