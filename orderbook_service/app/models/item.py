from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DECIMAL, TEXT, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import OrderbookBaseModel

if TYPE_CHECKING:
    from .customer import Customer


class ItemStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DISCONTINUED = "DISCONTINUED"


class CustomerItem(OrderbookBaseModel):
    """Inventory line owned by a customer."""

    __tablename__ = "customer_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_customer_items_quantity_non_negative"),
        Index("ix_customer_items_customer_category", "customer_id", "category"),
    )

    customer_id: Mapped[str] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(TEXT, nullable=True)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    min_stock_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ItemStatus.ACTIVE.value, nullable=False
    )

    customer: Mapped["Customer"] = relationship("Customer", back_populates="items")
