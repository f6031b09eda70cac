"""
Typed payloads for every request event and the shared outcome payload.

Create payloads carry the entity id assigned by the API layer, so a
redelivered create is recognised as a duplicate instead of inserting a
second row.
"""

from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, Field

from ...schemas.common import CamelModel
from ...schemas.customer import CustomerCreateRequest, CustomerUpdateRequest
from ...schemas.item import ItemCreateRequest, ItemQuantityRequest, ItemUpdateRequest
from ...schemas.order import OrderCancelRequest, OrderCreateRequest, OrderUpdateRequest
from .topics import RequestEventType


class EntityPayload(CamelModel):
    id: str = Field(..., min_length=1)


class CustomerCreatePayload(CustomerCreateRequest, EntityPayload):
    pass


class CustomerUpdatePayload(CustomerUpdateRequest, EntityPayload):
    pass


class CustomerDeletePayload(EntityPayload):
    pass


class ItemCreatePayload(ItemCreateRequest, EntityPayload):
    pass


class ItemUpdatePayload(ItemUpdateRequest, EntityPayload):
    pass


class ItemQuantityUpdatePayload(ItemQuantityRequest, EntityPayload):
    pass


class ItemDeletePayload(EntityPayload):
    pass


class OrderCreatePayload(OrderCreateRequest, EntityPayload):
    pass


class OrderUpdatePayload(OrderUpdateRequest, EntityPayload):
    pass


class OrderCancelPayload(OrderCancelRequest, EntityPayload):
    pass


class OrderDeletePayload(EntityPayload):
    pass


PAYLOAD_MODELS: Dict[RequestEventType, Type[EntityPayload]] = {
    RequestEventType.CUSTOMER_CREATE_REQUESTED: CustomerCreatePayload,
    RequestEventType.CUSTOMER_UPDATE_REQUESTED: CustomerUpdatePayload,
    RequestEventType.CUSTOMER_DELETE_REQUESTED: CustomerDeletePayload,
    RequestEventType.ITEM_CREATE_REQUESTED: ItemCreatePayload,
    RequestEventType.ITEM_UPDATE_REQUESTED: ItemUpdatePayload,
    RequestEventType.ITEM_QUANTITY_UPDATE_REQUESTED: ItemQuantityUpdatePayload,
    RequestEventType.ITEM_DELETE_REQUESTED: ItemDeletePayload,
    RequestEventType.ORDER_CREATE_REQUESTED: OrderCreatePayload,
    RequestEventType.ORDER_UPDATE_REQUESTED: OrderUpdatePayload,
    RequestEventType.ORDER_CANCEL_REQUESTED: OrderCancelPayload,
    RequestEventType.ORDER_DELETE_REQUESTED: OrderDeletePayload,
}


def payload_to_wire(payload: BaseModel) -> Dict[str, Any]:
    """Only explicitly provided fields go on the wire, so partial updates stay partial."""
    return payload.model_dump(mode="json", by_alias=True, exclude_unset=True)


class OriginalEventRef(CamelModel):
    event_id: str
    event_type: str
    correlation_id: str


class OutcomePayload(CamelModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    original_event: OriginalEventRef
