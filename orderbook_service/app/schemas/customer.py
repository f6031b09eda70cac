from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field, model_validator

from .common import CamelModel

PHONE_PATTERN = r"^\+?[1-9]\d{0,15}$"


class CustomerCreateRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=100, examples=["Ada Lovelace"])
    email: EmailStr = Field(..., examples=["ada@example.com"])
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, examples=["+15551234567"])
    address: Optional[str] = Field(None, max_length=500)


class CustomerUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def require_one_field(self) -> "CustomerUpdateRequest":
        if not self.model_fields_set - {"id"}:
            raise ValueError("At least one field must be provided for update")
        return self


class CustomerResponse(CamelModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime
    updated_at: datetime
