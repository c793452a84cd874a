"""
QLedger - Fiscal Period Service

Fiscal years, monthly periods and the period lock gate consulted by journals.
"""

import logging
import uuid
from calendar import monthrange
from datetime import date
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import unit_of_work
from app.models.accounting import FiscalPeriod, FiscalYear
from app.models.base import utcnow
from app.schemas.accounting import FiscalYearCreate
from app.utils.error_handling import (
    BusinessRuleException,
    DuplicateEntryException,
    FiscalPeriodNotFoundException,
    NotFoundException,
)

logger = logging.getLogger(__name__)


def build_monthly_periods(start_date: date, end_date: date) -> List[dict]:
    """
    Contiguous calendar-month periods covering [start_date, end_date].

    The first period starts on start_date, each later one the day after the
    previous end; the last one is clipped to end_date. At most 12 periods.
    """
    periods = []
    current_date = start_date

    for period_num in range(1, 13):
        _, last_day = monthrange(current_date.year, current_date.month)
        period_end = date(current_date.year, current_date.month, last_day)

        # Don't exceed fiscal year end
        if period_end > end_date:
            period_end = end_date

        periods.append({
            "period_number": period_num,
            "name_en": current_date.strftime("%B %Y"),
            "start_date": current_date,
            "end_date": period_end,
        })

        # Move to next month
        current_date = period_end + relativedelta(days=1)
        if current_date > end_date:
            break

    return periods


class FiscalPeriodService:
    """Service for the fiscal calendar."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # FISCAL YEARS
    # =========================================================================

    async def get_fiscal_years(self, tenant_id: uuid.UUID) -> List[FiscalYear]:
        result = await self.db.execute(
            select(FiscalYear)
            .options(selectinload(FiscalYear.periods))
            .where(FiscalYear.tenant_id == tenant_id)
            .order_by(FiscalYear.start_date.desc())
        )
        return list(result.scalars().all())

    async def create_fiscal_year(
        self,
        tenant_id: uuid.UUID,
        data: FiscalYearCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> FiscalYear:
        """Create a fiscal year and, by default, its monthly periods."""
        duplicate = await self.db.execute(
            select(FiscalYear.id).where(
                FiscalYear.tenant_id == tenant_id,
                FiscalYear.name == data.name,
            )
        )
        if duplicate.scalar_one_or_none():
            raise DuplicateEntryException("FiscalYear", "name", data.name)

        # Two inclusive ranges overlap when each starts before the other ends
        overlapping = await self.db.execute(
            select(FiscalYear.name).where(
                and_(
                    FiscalYear.tenant_id == tenant_id,
                    FiscalYear.start_date <= data.end_date,
                    FiscalYear.end_date >= data.start_date,
                )
            )
        )
        clash = overlapping.scalars().first()
        if clash:
            raise BusinessRuleException(
                message=f"Fiscal year overlaps with existing year {clash}",
                rule="NON_OVERLAPPING_FISCAL_YEARS",
                details={"overlaps": clash},
            )

        async with unit_of_work(self.db):
            fiscal_year = FiscalYear(
                tenant_id=tenant_id,
                name=data.name,
                name_ar=data.name_ar,
                start_date=data.start_date,
                end_date=data.end_date,
                is_closed=False,
                created_by_id=user_id,
            )
            self.db.add(fiscal_year)
            await self.db.flush()

            if data.auto_create_periods:
                for period_data in build_monthly_periods(data.start_date, data.end_date):
                    self.db.add(FiscalPeriod(
                        tenant_id=tenant_id,
                        fiscal_year_id=fiscal_year.id,
                        **period_data,
                    ))

        logger.info(
            "Created fiscal year %s for tenant %s (%s to %s)",
            data.name, tenant_id, data.start_date, data.end_date,
        )
        return await self.get_fiscal_year(tenant_id, fiscal_year.id)

    async def get_fiscal_year(self, tenant_id: uuid.UUID, fiscal_year_id: uuid.UUID) -> FiscalYear:
        result = await self.db.execute(
            select(FiscalYear)
            .options(selectinload(FiscalYear.periods))
            .where(FiscalYear.id == fiscal_year_id, FiscalYear.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        fiscal_year = result.scalar_one_or_none()
        if not fiscal_year:
            raise NotFoundException("FiscalYear", fiscal_year_id)
        return fiscal_year

    # =========================================================================
    # FISCAL PERIODS
    # =========================================================================

    async def list_periods(self, tenant_id: uuid.UUID) -> List[FiscalPeriod]:
        result = await self.db.execute(
            select(FiscalPeriod)
            .where(FiscalPeriod.tenant_id == tenant_id)
            .order_by(FiscalPeriod.start_date)
        )
        return list(result.scalars().all())

    async def get_period(self, tenant_id: uuid.UUID, period_id: uuid.UUID) -> FiscalPeriod:
        result = await self.db.execute(
            select(FiscalPeriod)
            .where(FiscalPeriod.id == period_id, FiscalPeriod.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        )
        period = result.scalar_one_or_none()
        if not period:
            raise FiscalPeriodNotFoundException(period_id)
        return period

    async def find_period_for_date(
        self,
        tenant_id: uuid.UUID,
        on_date: date,
    ) -> Optional[FiscalPeriod]:
        """Get the fiscal period containing a specific date, or None."""
        result = await self.db.execute(
            select(FiscalPeriod)
            .where(
                and_(
                    FiscalPeriod.tenant_id == tenant_id,
                    FiscalPeriod.start_date <= on_date,
                    FiscalPeriod.end_date >= on_date,
                )
            )
            .order_by(FiscalPeriod.start_date)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def resolve_period(self, tenant_id: uuid.UUID, on_date: date) -> FiscalPeriod:
        """The period whose inclusive date range contains on_date."""
        period = await self.find_period_for_date(tenant_id, on_date)
        if not period:
            raise FiscalPeriodNotFoundException(
                message=f"No fiscal period found for date {on_date.isoformat()}",
            )
        return period

    @staticmethod
    def is_locked(period: FiscalPeriod) -> bool:
        return bool(period.is_locked)

    async def lock(
        self,
        tenant_id: uuid.UUID,
        period_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> FiscalPeriod:
        """Lock a period. Journals already dated inside it are untouched."""
        await self._set_locked(tenant_id, period_id, True, user_id)
        logger.info("Locked fiscal period %s for tenant %s", period_id, tenant_id)
        return await self.get_period(tenant_id, period_id)

    async def unlock(self, tenant_id: uuid.UUID, period_id: uuid.UUID) -> FiscalPeriod:
        await self._set_locked(tenant_id, period_id, False, None)
        logger.info("Unlocked fiscal period %s for tenant %s", period_id, tenant_id)
        return await self.get_period(tenant_id, period_id)

    async def _set_locked(
        self,
        tenant_id: uuid.UUID,
        period_id: uuid.UUID,
        locked: bool,
        user_id: Optional[uuid.UUID],
    ) -> None:
        async with unit_of_work(self.db):
            result = await self.db.execute(
                update(FiscalPeriod)
                .where(FiscalPeriod.id == period_id, FiscalPeriod.tenant_id == tenant_id)
                .values(
                    is_locked=locked,
                    locked_at=utcnow() if locked else None,
                    locked_by_id=user_id if locked else None,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise FiscalPeriodNotFoundException(period_id)
