"""
QLedger - Balance Service Tests

Balances are computed from posted journals only.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from app.models.accounting import BalanceType
from app.schemas.accounting import JournalCreate, JournalLineCreate
from app.services.balance_service import BalanceService, classify_balance
from app.services.journal_service import JournalService
from app.utils.error_handling import BusinessRuleException


async def post(service, tenant_id, user_id, data):
    journal = await service.create(tenant_id, user_id, data)
    await service.submit(tenant_id, user_id, journal.id)
    await service.approve(tenant_id, user_id, journal.id)
    return await service.post(tenant_id, user_id, journal.id)


class TestClassifyBalance:

    def test_debit_account(self):
        summary = classify_balance(Decimal("150"), Decimal("30"), BalanceType.DEBIT)
        assert summary["balance"] == Decimal("120.00")
        assert summary["net_debit"] == Decimal("120.00")
        assert summary["net_credit"] == Decimal("0.00")

    def test_credit_account(self):
        summary = classify_balance(Decimal("10"), Decimal("250"), BalanceType.CREDIT)
        assert summary["balance"] == Decimal("240.00")
        assert summary["net_debit"] == Decimal("0.00")
        assert summary["net_credit"] == Decimal("240.00")

    def test_overdrawn_debit_account_goes_negative(self):
        summary = classify_balance(Decimal("10"), Decimal("25"), BalanceType.DEBIT)
        assert summary["balance"] == Decimal("-15.00")


class TestBalanceService:
    """Test cases for BalanceService."""

    @pytest.mark.asyncio
    async def test_balance_from_posted_journals(
        self, db_session, test_tenant, test_accounts, test_fiscal_year, test_cost_center, user_id, journal_factory,
    ):
        """Cash receives 150, pays 30 of rent, ends at 120."""
        journals = JournalService(db_session)
        cash = test_accounts["cash"]

        await post(journals, test_tenant.id, user_id, journal_factory(cash, test_accounts["revenue"]))
        await post(journals, test_tenant.id, user_id, JournalCreate(
            description_ar="إيجار",
            transaction_date=date(2024, 3, 20),
            lines=[
                JournalLineCreate(account_id=test_accounts["rent"].id, debit=Decimal("30"),
                                  cost_center_id=test_cost_center.id),
                JournalLineCreate(account_id=cash.id, credit=Decimal("30")),
            ],
        ))

        balance = await BalanceService(db_session).get_balance(test_tenant.id, cash.id)

        assert balance["debit"] == Decimal("150.00")
        assert balance["credit"] == Decimal("30.00")
        assert balance["balance"] == Decimal("120.00")
        assert balance["net_debit"] == Decimal("120.00")
        assert balance["balance_type"] == BalanceType.DEBIT
        assert balance["account_id"] == cash.id

        revenue = await BalanceService(db_session).get_balance(test_tenant.id, test_accounts["revenue"].id)
        assert revenue["balance"] == Decimal("150.00")
        assert revenue["net_credit"] == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_unposted_journals_ignored(
        self, db_session, test_tenant, test_accounts, test_fiscal_year, user_id, journal_factory,
    ):
        journals = JournalService(db_session)
        cash, revenue = test_accounts["cash"], test_accounts["revenue"]

        draft = await journals.create(test_tenant.id, user_id, journal_factory(cash, revenue, amount="10"))
        submitted = await journals.create(test_tenant.id, user_id, journal_factory(cash, revenue, amount="20"))
        await journals.submit(test_tenant.id, user_id, submitted.id)
        await post(journals, test_tenant.id, user_id, journal_factory(cash, revenue, amount="40"))

        balance = await BalanceService(db_session).get_balance(test_tenant.id, cash.id)

        assert draft.status.value == "draft"
        assert balance["debit"] == Decimal("40.00")
        assert balance["balance"] == Decimal("40.00")

    @pytest.mark.asyncio
    async def test_as_of_date(
        self, db_session, test_tenant, test_accounts, test_fiscal_year, user_id, journal_factory,
    ):
        journals = JournalService(db_session)
        cash, revenue = test_accounts["cash"], test_accounts["revenue"]
        await post(journals, test_tenant.id, user_id, journal_factory(cash, revenue, amount="100"))
        await post(journals, test_tenant.id, user_id,
                   journal_factory(cash, revenue, amount="50", transaction_date=date(2024, 6, 1)))

        service = BalanceService(db_session)
        march = await service.get_balance(test_tenant.id, cash.id, as_of_date=date(2024, 3, 31))
        june = await service.get_balance(test_tenant.id, cash.id, as_of_date=date(2024, 6, 1))

        assert march["balance"] == Decimal("100.00")
        assert march["as_of_date"] == date(2024, 3, 31)
        assert june["balance"] == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_reversal_nets_to_zero(
        self, db_session, test_tenant, test_accounts, test_fiscal_year, user_id, journal_factory,
    ):
        journals = JournalService(db_session)
        cash, revenue = test_accounts["cash"], test_accounts["revenue"]
        original = await post(journals, test_tenant.id, user_id, journal_factory(cash, revenue))

        await journals.reverse(test_tenant.id, user_id, original.id, date(2024, 4, 1), "Wrong customer")

        service = BalanceService(db_session)
        after = await service.get_balance(test_tenant.id, cash.id)
        before_reversal = await service.get_balance(test_tenant.id, cash.id, as_of_date=date(2024, 3, 31))

        assert after["debit"] == Decimal("150.00")
        assert after["credit"] == Decimal("150.00")
        assert after["balance"] == Decimal("0.00")
        assert before_reversal["balance"] == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_account_without_activity(self, db_session, test_tenant, test_accounts):
        balance = await BalanceService(db_session).get_balance(test_tenant.id, test_accounts["cash"].id)

        assert balance["debit"] == Decimal("0.00")
        assert balance["credit"] == Decimal("0.00")
        assert balance["balance"] == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_unknown_account(self, db_session, test_tenant):
        with pytest.raises(BusinessRuleException) as exc_info:
            await BalanceService(db_session).get_balance(test_tenant.id, uuid4())
        assert exc_info.value.message == "Account not found"

    @pytest.mark.asyncio
    async def test_other_tenants_account(self, db_session, other_tenant, test_accounts):
        with pytest.raises(BusinessRuleException):
            await BalanceService(db_session).get_balance(other_tenant.id, test_accounts["cash"].id)

    @pytest.mark.asyncio
    async def test_repeated_reads_agree(
        self, db_session, test_tenant, test_accounts, test_fiscal_year, user_id, journal_factory,
    ):
        journals = JournalService(db_session)
        cash = test_accounts["cash"]
        await post(journals, test_tenant.id, user_id, journal_factory(cash, test_accounts["revenue"]))

        service = BalanceService(db_session)
        first = await service.get_balance(test_tenant.id, cash.id, as_of_date=date(2024, 12, 31))
        second = await service.get_balance(test_tenant.id, cash.id, as_of_date=date(2024, 12, 31))

        assert first == second
        assert first["balance"] == Decimal("150.00")
