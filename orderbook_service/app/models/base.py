import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderbookBase(DeclarativeBase):
    """Base class for all Orderbook Service database models."""

    pass


class OrderbookBaseModel(OrderbookBase):
    """Base model with common fields for Orderbook Service.

    Ids are string UUIDs so that the API layer can pre-assign them before
    the create event is published.
    """

    __abstract__ = True
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )
