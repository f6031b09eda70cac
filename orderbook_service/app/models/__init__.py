from .base import OrderbookBase, OrderbookBaseModel
from .customer import Customer
from .item import CustomerItem, ItemStatus
from .order import Order, OrderItem, OrderPriority, OrderStatus, PaymentStatus

__all__ = [
    "OrderbookBase",
    "OrderbookBaseModel",
    "Customer",
    "CustomerItem",
    "ItemStatus",
    "Order",
    "OrderItem",
    "OrderPriority",
    "OrderStatus",
    "PaymentStatus",
]
