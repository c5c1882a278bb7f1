"""Owning-entity lookups for report requests."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stemcare.app.core.exceptions import CustomerInactiveError, UnknownCustomerError
from stemcare.app.models.customer import Customer, CustomerStatus

logger = logging.getLogger(__name__)


class CustomerDirectory:
    """Read-only access to customer records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, customer_id: str) -> Customer | None:
        result = await self.db.execute(
            select(Customer).where(Customer.id == customer_id)
        )
        return result.scalar_one_or_none()

    async def customer_exists(self, customer_id: str) -> bool:
        return await self.get(customer_id) is not None

    async def require_active(self, customer_id: str) -> Customer:
        """
        Return the customer or raise.

        Raises:
            UnknownCustomerError: If no customer has this id
            CustomerInactiveError: If the customer record is deactivated
        """
        customer = await self.get(customer_id)
        if customer is None:
            raise UnknownCustomerError(customer_id)
        if customer.status == CustomerStatus.INACTIVE.value:
            raise CustomerInactiveError(customer_id)
        logger.debug(f"[CUSTOMER] Validated customer {customer.name} ({customer_id})")
        return customer
