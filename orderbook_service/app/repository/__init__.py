from .customer_repository import CustomerRepository
from .item_repository import ItemRepository
from .order_repository import OrderRepository

__all__ = ["CustomerRepository", "ItemRepository", "OrderRepository"]
