from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from ..models.order import OrderPriority, OrderStatus, PaymentStatus
from .common import CamelModel


class OrderLineRequest(CamelModel):
    item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class OrderCreateRequest(CamelModel):
    customer_id: str = Field(..., min_length=1)
    items: List[OrderLineRequest] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=1000)
    shipping_address: Optional[Dict[str, Any]] = None
    delivery_date: Optional[datetime] = None
    priority: OrderPriority = OrderPriority.NORMAL

    @field_validator("items")
    @classmethod
    def reject_duplicate_items(cls, items: List[OrderLineRequest]) -> List[OrderLineRequest]:
        item_ids = [line.item_id for line in items]
        if len(item_ids) != len(set(item_ids)):
            raise ValueError("Each item may appear only once per order")
        return items


class OrderUpdateRequest(CamelModel):
    status: Optional[OrderStatus] = None
    notes: Optional[str] = Field(None, max_length=1000)
    shipping_address: Optional[Dict[str, Any]] = None
    delivery_date: Optional[datetime] = None
    payment_status: Optional[PaymentStatus] = None
    priority: Optional[OrderPriority] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "OrderUpdateRequest":
        if not self.model_fields_set - {"id"}:
            raise ValueError("At least one field must be provided for update")
        return self


class OrderCancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class OrderItemResponse(CamelModel):
    id: str
    item_id: str
    name: str
    description: Optional[str] = None
    sku: Optional[str] = None
    price: Decimal
    quantity: int
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal


class OrderResponse(CamelModel):
    id: str
    order_number: str
    customer_id: str
    status: str
    payment_status: str
    priority: str
    subtotal: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    shipping_address: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    order_date: datetime
    delivery_date: Optional[datetime] = None
    items: List[OrderItemResponse]
    created_at: datetime
    updated_at: datetime
