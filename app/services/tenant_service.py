"""
QLedger - Tenant Service

Minimal tenant registry. Codes come from the global TEN sequence.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import unit_of_work
from app.models.tenant import Tenant
from app.schemas.accounting import TenantCreate
from app.services.sequence_service import SequenceService
from app.utils.error_handling import NotFoundException

logger = logging.getLogger(__name__)


class TenantService:
    """Service for tenant registration."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.sequences = SequenceService(db)

    async def create_tenant(self, data: TenantCreate) -> Tenant:
        async with unit_of_work(self.db):
            code = await self.sequences.next_tenant_code()
            tenant = Tenant(
                id=uuid.uuid4(),
                code=code,
                name_en=data.name_en,
                name_ar=data.name_ar,
                base_currency=data.base_currency.upper(),
                status=data.status,
            )
            self.db.add(tenant)

        logger.info("Registered tenant %s (%s)", tenant.code, tenant.name_en)
        return tenant

    async def get_tenant(self, tenant_id: uuid.UUID) -> Tenant:
        result = await self.db.execute(select(Tenant).where(Tenant.id == tenant_id))
        tenant = result.scalar_one_or_none()
        if not tenant:
            raise NotFoundException("Tenant", tenant_id)
        return tenant
