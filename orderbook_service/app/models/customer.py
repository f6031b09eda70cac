from typing import TYPE_CHECKING

from sqlalchemy import TEXT, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import OrderbookBaseModel

if TYPE_CHECKING:
    from .item import CustomerItem
    from .order import Order


class Customer(OrderbookBaseModel):
    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address: Mapped[str | None] = mapped_column(TEXT, nullable=True)

    items: Mapped[list["CustomerItem"]] = relationship(
        "CustomerItem", back_populates="customer", cascade="all, delete-orphan"
    )
    orders: Mapped[list["Order"]] = relationship(
        "Order", back_populates="customer", cascade="all, delete-orphan"
    )
