from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from ..models.item import ItemStatus
from .common import CamelModel


class QuantityOperation(str, Enum):
    SET = "set"
    ADD = "add"
    SUBTRACT = "subtract"


class ItemCreateRequest(CamelModel):
    customer_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    sku: Optional[str] = Field(None, max_length=100)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    quantity: int = Field(..., ge=0)
    category: Optional[str] = Field(None, max_length=100)
    min_stock_level: int = Field(0, ge=0)


class ItemUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    sku: Optional[str] = Field(None, max_length=100)
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    quantity: Optional[int] = Field(None, ge=0)
    category: Optional[str] = Field(None, max_length=100)
    min_stock_level: Optional[int] = Field(None, ge=0)
    status: Optional[ItemStatus] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "ItemUpdateRequest":
        if not self.model_fields_set - {"id"}:
            raise ValueError("At least one field must be provided for update")
        return self


class ItemQuantityRequest(CamelModel):
    quantity: int = Field(..., ge=0)
    operation: QuantityOperation = QuantityOperation.SET


class ItemResponse(CamelModel):
    id: str
    customer_id: str
    name: str
    description: Optional[str] = None
    sku: Optional[str] = None
    price: Decimal
    quantity: int
    category: Optional[str] = None
    min_stock_level: int
    status: str
    created_at: datetime
    updated_at: datetime
