"""Item API endpoints"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from ...events.producers import RequestEventProducer
from ...events.schemas import (
    ItemCreatePayload,
    ItemDeletePayload,
    ItemQuantityUpdatePayload,
    ItemUpdatePayload,
    RequestEventType,
)
from ...schemas.common import accepted_response, not_found_response, read_response
from ...schemas.item import ItemCreateRequest, ItemQuantityRequest, ItemUpdateRequest
from ...services.query_service import QueryService
from ..dependencies import (
    CorrelationIdDep,
    ProducerDep,
    QueryServiceDep,
    TenantIdDep,
    UserIdDep,
)

router = APIRouter(prefix="/items")


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def create_item(
    item_data: ItemCreateRequest,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    """Accept an item for asynchronous creation under its owning customer"""
    item_id = str(uuid.uuid4())
    await producer.publish_request(
        RequestEventType.ITEM_CREATE_REQUESTED,
        ItemCreatePayload(id=item_id, **item_data.model_dump(exclude_unset=True)),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(item_id, correlation_id, "Item creation request accepted")


@router.get("")
async def list_items(
    page: int = Query(1),
    limit: int = Query(10),
    category: Optional[str] = Query(None, max_length=100),
    search: Optional[str] = Query(None, max_length=100),
    queries: QueryService = QueryServiceDep,
):
    result = await queries.list_items(page, limit, category=category, search=search)
    return read_response(result.data, result.metadata())


@router.get("/customer/{customer_id}")
async def list_customer_items(
    customer_id: uuid.UUID,
    page: int = Query(1),
    limit: int = Query(10),
    category: Optional[str] = Query(None, max_length=100),
    search: Optional[str] = Query(None, max_length=100),
    queries: QueryService = QueryServiceDep,
):
    result = await queries.list_customer_items(
        str(customer_id), page, limit, category=category, search=search
    )
    return read_response(result.data, result.metadata())


@router.get("/{item_id}")
async def get_item(item_id: uuid.UUID, queries: QueryService = QueryServiceDep):
    result = await queries.get_item(str(item_id))
    if not result.found:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=not_found_response(f"Item with id {item_id} not found", result.metadata()),
        )
    return read_response(result.data, result.metadata())


@router.put("/{item_id}", status_code=status.HTTP_202_ACCEPTED)
async def update_item(
    item_id: uuid.UUID,
    item_data: ItemUpdateRequest,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    await producer.publish_request(
        RequestEventType.ITEM_UPDATE_REQUESTED,
        ItemUpdatePayload(id=str(item_id), **item_data.model_dump(exclude_unset=True)),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(str(item_id), correlation_id, "Item update request accepted")


@router.patch("/{item_id}/quantity", status_code=status.HTTP_202_ACCEPTED)
async def update_item_quantity(
    item_id: uuid.UUID,
    quantity_data: ItemQuantityRequest,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    """Set, add to or subtract from the stock of an item"""
    await producer.publish_request(
        RequestEventType.ITEM_QUANTITY_UPDATE_REQUESTED,
        ItemQuantityUpdatePayload(
            id=str(item_id),
            quantity=quantity_data.quantity,
            operation=quantity_data.operation,
        ),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(
        str(item_id), correlation_id, "Item quantity update request accepted"
    )


@router.delete("/{item_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_item(
    item_id: uuid.UUID,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    await producer.publish_request(
        RequestEventType.ITEM_DELETE_REQUESTED,
        ItemDeletePayload(id=str(item_id)),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(str(item_id), correlation_id, "Item deletion request accepted")
