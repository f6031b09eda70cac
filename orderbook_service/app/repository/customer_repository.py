from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models.customer import Customer
from ..models.order import Order


class CustomerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_customer(self, **fields: Any) -> Customer:
        customer = Customer(**fields)
        self.session.add(customer)
        await self.session.flush()
        return customer

    async def get_customer_by_id(self, customer_id: str) -> Optional[Customer]:
        result = await self.session.execute(
            select(Customer).where(Customer.id == customer_id)
        )
        return result.scalars().first()

    async def get_customer_by_email(self, email: str) -> Optional[Customer]:
        result = await self.session.execute(
            select(Customer).where(func.lower(Customer.email) == email.lower())
        )
        return result.scalars().first()

    async def get_customer_with_children(self, customer_id: str) -> Optional[Customer]:
        """Customer with items and orders (and order lines) eagerly loaded."""
        query = (
            select(Customer)
            .options(
                selectinload(Customer.items),
                selectinload(Customer.orders).selectinload(Order.items),
            )
            .where(Customer.id == customer_id)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def list_customers(
        self, offset: int, limit: int, search: Optional[str] = None
    ) -> Tuple[List[Customer], int]:
        """Get a page of customers and the total count for the same filter"""
        filters = []
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(
                or_(
                    func.lower(Customer.name).like(pattern),
                    func.lower(Customer.email).like(pattern),
                )
            )

        count_result = await self.session.execute(
            select(func.count(Customer.id)).where(*filters)
        )
        total_count = count_result.scalar() or 0

        query = (
            select(Customer)
            .where(*filters)
            .order_by(Customer.created_at.desc(), Customer.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total_count

    async def update_customer(self, customer: Customer, changes: Dict[str, Any]) -> Customer:
        for field, value in changes.items():
            setattr(customer, field, value)
        await self.session.flush()
        return customer

    async def delete_customer(self, customer: Customer) -> None:
        await self.session.delete(customer)
        await self.session.flush()
