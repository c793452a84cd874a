"""
QLedger - Fiscal Calendar Tests

Fiscal years, monthly period generation and period locking.
"""

import pytest
from datetime import date
from uuid import uuid4

from pydantic import ValidationError

from app.schemas.accounting import FiscalYearCreate
from app.services.fiscal_period_service import FiscalPeriodService, build_monthly_periods
from app.utils.error_handling import (
    BusinessRuleException,
    DuplicateEntryException,
    FiscalPeriodNotFoundException,
    NotFoundException,
)


class TestBuildMonthlyPeriods:
    """Period generation is a pure function of the year bounds."""

    def test_calendar_year(self):
        periods = build_monthly_periods(date(2024, 1, 1), date(2024, 12, 31))

        assert len(periods) == 12
        assert periods[0]["start_date"] == date(2024, 1, 1)
        assert periods[0]["end_date"] == date(2024, 1, 31)
        assert periods[1]["end_date"] == date(2024, 2, 29)
        assert periods[11]["end_date"] == date(2024, 12, 31)
        assert periods[0]["name_en"] == "January 2024"

    def test_periods_are_contiguous(self):
        periods = build_monthly_periods(date(2024, 4, 1), date(2025, 3, 31))

        for previous, current in zip(periods, periods[1:]):
            assert (current["start_date"] - previous["end_date"]).days == 1
        assert [p["period_number"] for p in periods] == list(range(1, 13))

    def test_short_year_clipped(self):
        periods = build_monthly_periods(date(2024, 1, 15), date(2024, 3, 10))

        assert len(periods) == 3
        assert periods[0]["start_date"] == date(2024, 1, 15)
        assert periods[-1]["end_date"] == date(2024, 3, 10)


class TestFiscalPeriodService:
    """Test cases for FiscalPeriodService."""

    @pytest.mark.asyncio
    async def test_create_fiscal_year_with_periods(self, db_session, test_tenant, test_fiscal_year):
        assert test_fiscal_year.name == "FY2024"
        assert len(test_fiscal_year.periods) == 12
        assert all(not p.is_locked for p in test_fiscal_year.periods)

    @pytest.mark.asyncio
    async def test_create_without_periods(self, db_session, test_tenant):
        service = FiscalPeriodService(db_session)

        fiscal_year = await service.create_fiscal_year(
            test_tenant.id,
            FiscalYearCreate(
                name="FY2030", start_date=date(2030, 1, 1), end_date=date(2030, 12, 31),
                auto_create_periods=False,
            ),
        )

        assert fiscal_year.periods == []

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            FiscalYearCreate(name="Bad", start_date=date(2024, 12, 31), end_date=date(2024, 1, 1))

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, db_session, test_tenant, test_fiscal_year):
        service = FiscalPeriodService(db_session)

        with pytest.raises(DuplicateEntryException):
            await service.create_fiscal_year(
                test_tenant.id,
                FiscalYearCreate(name="FY2024", start_date=date(2025, 1, 1), end_date=date(2025, 12, 31)),
            )

    @pytest.mark.asyncio
    async def test_overlapping_year_rejected(self, db_session, test_tenant, test_fiscal_year):
        service = FiscalPeriodService(db_session)

        with pytest.raises(BusinessRuleException) as exc_info:
            await service.create_fiscal_year(
                test_tenant.id,
                FiscalYearCreate(name="FY2024-25", start_date=date(2024, 7, 1), end_date=date(2025, 6, 30)),
            )
        assert exc_info.value.details["violated_rule"] == "NON_OVERLAPPING_FISCAL_YEARS"

    @pytest.mark.asyncio
    async def test_other_tenant_may_reuse_dates(self, db_session, other_tenant, test_fiscal_year):
        service = FiscalPeriodService(db_session)

        fiscal_year = await service.create_fiscal_year(
            other_tenant.id,
            FiscalYearCreate(name="FY2024", start_date=date(2024, 1, 1), end_date=date(2024, 12, 31)),
        )
        assert fiscal_year.tenant_id == other_tenant.id

    @pytest.mark.asyncio
    async def test_get_unknown_fiscal_year(self, db_session, test_tenant):
        service = FiscalPeriodService(db_session)
        with pytest.raises(NotFoundException):
            await service.get_fiscal_year(test_tenant.id, uuid4())

    @pytest.mark.asyncio
    async def test_find_period_for_date(self, db_session, test_tenant, test_fiscal_year):
        service = FiscalPeriodService(db_session)

        period = await service.find_period_for_date(test_tenant.id, date(2024, 3, 15))
        assert period.period_number == 3

        # Both bounds are inclusive
        assert (await service.find_period_for_date(test_tenant.id, date(2024, 3, 1))).period_number == 3
        assert (await service.find_period_for_date(test_tenant.id, date(2024, 3, 31))).period_number == 3

    @pytest.mark.asyncio
    async def test_no_period_for_date(self, db_session, test_tenant, test_fiscal_year):
        service = FiscalPeriodService(db_session)

        assert await service.find_period_for_date(test_tenant.id, date(2023, 12, 31)) is None
        with pytest.raises(FiscalPeriodNotFoundException):
            await service.resolve_period(test_tenant.id, date(2023, 12, 31))

    @pytest.mark.asyncio
    async def test_periods_are_tenant_scoped(self, db_session, other_tenant, test_fiscal_year):
        service = FiscalPeriodService(db_session)
        assert await service.find_period_for_date(other_tenant.id, date(2024, 3, 15)) is None

    @pytest.mark.asyncio
    async def test_lock_and_unlock(self, db_session, test_tenant, test_fiscal_year, user_id):
        service = FiscalPeriodService(db_session)
        march = test_fiscal_year.periods[2]

        locked = await service.lock(test_tenant.id, march.id, user_id)
        assert locked.is_locked is True
        assert locked.locked_by_id == user_id
        assert locked.locked_at is not None
        assert FiscalPeriodService.is_locked(locked)

        unlocked = await service.unlock(test_tenant.id, march.id)
        assert unlocked.is_locked is False
        assert unlocked.locked_by_id is None

    @pytest.mark.asyncio
    async def test_lock_other_tenants_period(self, db_session, other_tenant, test_fiscal_year):
        service = FiscalPeriodService(db_session)
        with pytest.raises(FiscalPeriodNotFoundException):
            await service.lock(other_tenant.id, test_fiscal_year.periods[0].id)

    @pytest.mark.asyncio
    async def test_list_periods_in_date_order(self, db_session, test_tenant, test_fiscal_year):
        service = FiscalPeriodService(db_session)

        periods = await service.list_periods(test_tenant.id)

        assert [p.period_number for p in periods] == list(range(1, 13))
