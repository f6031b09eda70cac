"""Customer API endpoints"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from ...events.producers import RequestEventProducer
from ...events.schemas import (
    CustomerCreatePayload,
    CustomerDeletePayload,
    CustomerUpdatePayload,
    RequestEventType,
)
from ...schemas.common import accepted_response, not_found_response, read_response
from ...schemas.customer import CustomerCreateRequest, CustomerUpdateRequest
from ...services.query_service import QueryService
from ..dependencies import (
    CorrelationIdDep,
    ProducerDep,
    QueryServiceDep,
    TenantIdDep,
    UserIdDep,
)

router = APIRouter(prefix="/customers")


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def create_customer(
    customer_data: CustomerCreateRequest,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    """Accept a customer for asynchronous creation"""
    customer_id = str(uuid.uuid4())
    payload = CustomerCreatePayload(
        id=customer_id, **customer_data.model_dump(exclude_unset=True)
    )
    await producer.publish_request(
        RequestEventType.CUSTOMER_CREATE_REQUESTED,
        payload,
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(customer_id, correlation_id, "Customer creation request accepted")


@router.get("")
async def list_customers(
    page: int = Query(1),
    limit: int = Query(10),
    search: Optional[str] = Query(None, max_length=100),
    queries: QueryService = QueryServiceDep,
):
    result = await queries.list_customers(page, limit, search)
    return read_response(result.data, result.metadata())


@router.get("/{customer_id}")
async def get_customer(customer_id: uuid.UUID, queries: QueryService = QueryServiceDep):
    result = await queries.get_customer(str(customer_id))
    if not result.found:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=not_found_response(
                f"Customer with id {customer_id} not found", result.metadata()
            ),
        )
    return read_response(result.data, result.metadata())


@router.put("/{customer_id}", status_code=status.HTTP_202_ACCEPTED)
async def update_customer(
    customer_id: uuid.UUID,
    customer_data: CustomerUpdateRequest,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    payload = CustomerUpdatePayload(
        id=str(customer_id), **customer_data.model_dump(exclude_unset=True)
    )
    await producer.publish_request(
        RequestEventType.CUSTOMER_UPDATE_REQUESTED,
        payload,
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(
        str(customer_id), correlation_id, "Customer update request accepted"
    )


@router.delete("/{customer_id}", status_code=status.HTTP_202_ACCEPTED)
async def delete_customer(
    customer_id: uuid.UUID,
    correlation_id: str = CorrelationIdDep,
    user_id: Optional[str] = UserIdDep,
    tenant_id: Optional[str] = TenantIdDep,
    producer: RequestEventProducer = ProducerDep,
):
    """Delete a customer together with its items and orders"""
    await producer.publish_request(
        RequestEventType.CUSTOMER_DELETE_REQUESTED,
        CustomerDeletePayload(id=str(customer_id)),
        correlation_id,
        user_id=user_id,
        tenant_id=tenant_id,
    )
    return accepted_response(
        str(customer_id), correlation_id, "Customer deletion request accepted"
    )
