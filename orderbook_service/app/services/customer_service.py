"""
Customer service: creation with duplicate detection, partial updates,
cascading deletes and paginated search.
"""

from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import DuplicateEntityError, EntityNotFoundError
from ..events.schemas import CustomerCreatePayload, CustomerUpdatePayload
from ..repository.customer_repository import CustomerRepository
from ..schemas.common import build_page, normalize_pagination
from ..schemas.customer import CustomerResponse
from ..utils.logging import setup_orderbook_logging
from .utils import column_changes

logger = setup_orderbook_logging("orderbook_service.services.customer")


class CustomerService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.customer_repository = CustomerRepository(session)

    @staticmethod
    def _to_dict(customer: Any) -> Dict[str, Any]:
        return CustomerResponse.model_validate(customer).to_wire()

    async def create_customer(self, payload: CustomerCreatePayload) -> Dict[str, Any]:
        if await self.customer_repository.get_customer_by_id(payload.id):
            raise DuplicateEntityError(
                f"Customer with id {payload.id} already exists", {"id": payload.id}
            )
        if await self.customer_repository.get_customer_by_email(payload.email):
            raise DuplicateEntityError(
                f"Customer with email {payload.email} already exists",
                {"email": payload.email},
            )

        try:
            customer = await self.customer_repository.create_customer(
                id=payload.id,
                name=payload.name,
                email=payload.email,
                phone=payload.phone,
                address=payload.address,
            )
        except IntegrityError as e:
            raise DuplicateEntityError(
                f"Customer {payload.id} conflicts with an existing customer",
                {"id": payload.id},
            ) from e

        logger.info(
            "Customer created",
            extra={"customer_id": customer.id, "operation": "create_customer"},
        )
        return self._to_dict(customer)

    async def update_customer(self, payload: CustomerUpdatePayload) -> Dict[str, Any]:
        customer = await self.customer_repository.get_customer_by_id(payload.id)
        if customer is None:
            raise EntityNotFoundError("Customer", payload.id)

        changes = column_changes(payload, exclude={"id"})
        new_email = changes.get("email")
        if new_email and new_email.lower() != customer.email.lower():
            existing = await self.customer_repository.get_customer_by_email(new_email)
            if existing is not None and existing.id != customer.id:
                raise DuplicateEntityError(
                    f"Customer with email {new_email} already exists",
                    {"email": new_email},
                )

        customer = await self.customer_repository.update_customer(customer, changes)
        logger.info(
            "Customer updated",
            extra={
                "customer_id": customer.id,
                "updated_fields": sorted(changes),
                "operation": "update_customer",
            },
        )
        return self._to_dict(customer)

    async def delete_customer(self, customer_id: str) -> Dict[str, Any]:
        """Delete a customer with its items and orders.

        Returns the removed item and order ids so their cache entries can be
        dropped too.
        """
        customer = await self.customer_repository.get_customer_with_children(customer_id)
        if customer is None:
            raise EntityNotFoundError("Customer", customer_id)

        item_ids = [item.id for item in customer.items]
        order_ids = [order.id for order in customer.orders]
        await self.customer_repository.delete_customer(customer)

        logger.info(
            "Customer deleted",
            extra={
                "customer_id": customer_id,
                "items_removed": len(item_ids),
                "orders_removed": len(order_ids),
                "operation": "delete_customer",
            },
        )
        return {
            "id": customer_id,
            "deleted": True,
            "itemIds": item_ids,
            "orderIds": order_ids,
        }

    async def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        customer = await self.customer_repository.get_customer_by_id(customer_id)
        return self._to_dict(customer) if customer else None

    async def list_customers(
        self, page: int = 1, limit: int = 10, search: Optional[str] = None
    ) -> Dict[str, Any]:
        page, limit = normalize_pagination(page, limit)
        customers, total = await self.customer_repository.list_customers(
            offset=(page - 1) * limit, limit=limit, search=search
        )
        return build_page([self._to_dict(c) for c in customers], total, page, limit)
