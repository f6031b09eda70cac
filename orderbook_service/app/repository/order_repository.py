from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models.order import Order, OrderItem


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_order(
        self, lines: List[Dict[str, Any]], **fields: Any
    ) -> Order:
        """Create a new order together with its line snapshots"""
        order = Order(**fields)
        order.items = [OrderItem(**line) for line in lines]
        self.session.add(order)
        await self.session.flush()
        return order

    async def get_order_by_id(self, order_id: str) -> Optional[Order]:
        """Get order by ID with items"""
        query = (
            select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def get_order_by_number(self, order_number: str) -> Optional[Order]:
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.order_number == order_number)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def list_orders(
        self,
        offset: int,
        limit: int,
        customer_id: Optional[str] = None,
        status_filter: Optional[str] = None,
    ) -> Tuple[List[Order], int]:
        """Get a page of orders with optional owner and status filter and the total count"""
        filters = []
        if customer_id:
            filters.append(Order.customer_id == customer_id)
        if status_filter:
            filters.append(Order.status == status_filter)

        count_result = await self.session.execute(
            select(func.count(Order.id)).where(*filters)
        )
        total_count = count_result.scalar() or 0

        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(*filters)
            .order_by(Order.created_at.desc(), Order.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total_count

    async def update_order(self, order: Order, changes: Dict[str, Any]) -> Order:
        for field, value in changes.items():
            setattr(order, field, value)
        await self.session.flush()
        return order

    async def delete_order(self, order: Order) -> None:
        await self.session.delete(order)
        await self.session.flush()
