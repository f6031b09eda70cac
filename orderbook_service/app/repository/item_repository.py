from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.item import CustomerItem


class ItemRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_item(self, **fields: Any) -> CustomerItem:
        item = CustomerItem(**fields)
        self.session.add(item)
        await self.session.flush()
        return item

    async def get_item_by_id(
        self, item_id: str, for_update: bool = False
    ) -> Optional[CustomerItem]:
        """Get item by ID, optionally locking the row for the transaction"""
        query = select(CustomerItem).where(CustomerItem.id == item_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalars().first()

    async def get_items_by_ids(
        self, item_ids: Sequence[str], for_update: bool = False
    ) -> Dict[str, CustomerItem]:
        if not item_ids:
            return {}
        # Stable lock order across concurrent transactions
        query = (
            select(CustomerItem)
            .where(CustomerItem.id.in_(list(item_ids)))
            .order_by(CustomerItem.id)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return {item.id: item for item in result.scalars().all()}

    async def list_items(
        self,
        offset: int,
        limit: int,
        customer_id: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[CustomerItem], int]:
        """Get a page of items with optional owner, category and text filters"""
        filters = []
        if customer_id:
            filters.append(CustomerItem.customer_id == customer_id)
        if category:
            filters.append(CustomerItem.category == category)
        if search:
            pattern = f"%{search.lower()}%"
            filters.append(
                or_(
                    func.lower(CustomerItem.name).like(pattern),
                    func.lower(CustomerItem.description).like(pattern),
                )
            )

        count_result = await self.session.execute(
            select(func.count(CustomerItem.id)).where(*filters)
        )
        total_count = count_result.scalar() or 0

        query = (
            select(CustomerItem)
            .where(*filters)
            .order_by(CustomerItem.created_at.desc(), CustomerItem.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total_count

    async def update_item(self, item: CustomerItem, changes: Dict[str, Any]) -> CustomerItem:
        for field, value in changes.items():
            setattr(item, field, value)
        await self.session.flush()
        return item

    async def delete_item(self, item: CustomerItem) -> None:
        await self.session.delete(item)
        await self.session.flush()
