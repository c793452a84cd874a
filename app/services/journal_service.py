"""
QLedger - Journal Service

Journal lifecycle engine:
- Creation with double-entry, fiscal period and account validation
- Draft header and line updates
- Workflow transitions: draft -> submitted -> approved -> posted -> reversed
- Reversal through a posted mirror journal
- Workflow history

Every transition is a conditional UPDATE on the expected current status.
When no row matches, the journal either does not exist for the tenant
(NotFound) or is in another status (InvalidStateTransition); concurrent
callers racing on the same journal can therefore never both succeed.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, delete, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.database import unit_of_work
from app.models.accounting import (
    ChartOfAccounts,
    CostCenter,
    FiscalPeriod,
    Journal,
    JournalLine,
    JournalStatus,
    JournalType,
    JournalWorkflow,
    WorkflowAction,
)
from app.models.base import utcnow
from app.schemas.accounting import JournalCreate, JournalLineCreate, JournalUpdate
from app.services.fiscal_period_service import FiscalPeriodService
from app.services.sequence_service import SequenceService
from app.utils.error_handling import (
    BusinessRuleException,
    DuplicateEntryException,
    FiscalPeriodLockedException,
    InvalidDateRangeException,
    InvalidStateTransitionException,
    JournalNotFoundException,
    UnbalancedJournalException,
)

logger = logging.getLogger(__name__)


CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def check_double_entry(lines: Sequence[JournalLineCreate]) -> Tuple[Decimal, Decimal]:
    """
    Validate a line set and return (total_debit, total_credit).

    Totals must agree within the configured tolerance and be non-zero, and
    every line must carry exactly one positive side.
    """
    total_debit = sum((to_money(line.debit) for line in lines), Decimal("0.00"))
    total_credit = sum((to_money(line.credit) for line in lines), Decimal("0.00"))

    if abs(total_debit - total_credit) > settings.balance_tolerance:
        raise UnbalancedJournalException(total_debit, total_credit)

    if total_debit == 0:
        raise BusinessRuleException(
            message="Journal must have non-zero amounts",
            rule="NON_ZERO_JOURNAL",
        )

    for index, line in enumerate(lines, 1):
        debit, credit = to_money(line.debit), to_money(line.credit)
        if (debit > 0) == (credit > 0):
            raise BusinessRuleException(
                message="Each line must have either a debit or credit amount (not both, not neither)",
                rule="ONE_SIDED_LINE",
                details={"line_number": index, "debit": str(debit), "credit": str(credit)},
            )

    return total_debit, total_credit


class JournalService:
    """Service for journal lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.periods = FiscalPeriodService(db)
        self.sequences = SequenceService(db)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _with_lines(self, query):
        return query.options(
            selectinload(Journal.lines).selectinload(JournalLine.account),
            selectinload(Journal.lines).selectinload(JournalLine.cost_center),
        ).execution_options(populate_existing=True)

    async def get_journal(self, tenant_id: uuid.UUID, journal_id: uuid.UUID) -> Journal:
        """Journal with lines and their account/cost-center summaries."""
        result = await self.db.execute(
            self._with_lines(
                select(Journal).where(
                    and_(Journal.id == journal_id, Journal.tenant_id == tenant_id)
                )
            )
        )
        journal = result.scalar_one_or_none()
        if not journal:
            raise JournalNotFoundException(journal_id)
        return journal

    async def find_all(
        self,
        tenant_id: uuid.UUID,
        status: Optional[JournalStatus] = None,
        journal_type: Optional[JournalType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Journal]:
        """
        Journals newest first. The date range only applies when both bounds
        are given.
        """
        query = select(Journal).where(Journal.tenant_id == tenant_id)

        if status:
            query = query.where(Journal.status == status)
        if journal_type:
            query = query.where(Journal.journal_type == journal_type)
        if start_date and end_date:
            if start_date > end_date:
                raise InvalidDateRangeException(start_date.isoformat(), end_date.isoformat())
            query = query.where(
                Journal.transaction_date >= start_date,
                Journal.transaction_date <= end_date,
            )

        query = query.order_by(Journal.transaction_date.desc(), Journal.journal_number)
        result = await self.db.execute(self._with_lines(query))
        return list(result.scalars().all())

    async def get_history(self, tenant_id: uuid.UUID, journal_id: uuid.UUID) -> List[JournalWorkflow]:
        exists = await self.db.scalar(
            select(Journal.id).where(Journal.id == journal_id, Journal.tenant_id == tenant_id)
        )
        if not exists:
            raise JournalNotFoundException(journal_id)

        result = await self.db.execute(
            select(JournalWorkflow)
            .where(
                JournalWorkflow.journal_id == journal_id,
                JournalWorkflow.tenant_id == tenant_id,
            )
            .order_by(JournalWorkflow.actioned_at)
        )
        return list(result.scalars().all())

    # =========================================================================
    # VALIDATION
    # =========================================================================

    async def _open_period_for(self, tenant_id: uuid.UUID, on_date: date) -> FiscalPeriod:
        period = await self.periods.find_period_for_date(tenant_id, on_date)
        if not period:
            raise BusinessRuleException(
                message="No fiscal period found for transaction date",
                rule="FISCAL_PERIOD_EXISTS",
                details={"transaction_date": on_date.isoformat()},
            )
        if self.periods.is_locked(period):
            raise FiscalPeriodLockedException(period.name_en, period.id)
        return period

    async def _validate_references(
        self,
        tenant_id: uuid.UUID,
        lines: Sequence[JournalLineCreate],
    ) -> None:
        """Accounts must exist, be active and accept postings; cost centers likewise."""
        account_ids = {line.account_id for line in lines}
        result = await self.db.execute(
            select(ChartOfAccounts).where(
                ChartOfAccounts.tenant_id == tenant_id,
                ChartOfAccounts.id.in_(account_ids),
            )
        )
        accounts = {account.id: account for account in result.scalars().all()}

        missing = account_ids - set(accounts)
        if missing:
            raise BusinessRuleException(
                message="One or more accounts not found",
                rule="ACCOUNT_EXISTS",
                details={"account_ids": sorted(str(account_id) for account_id in missing)},
            )

        blocked = [a for a in accounts.values() if not a.is_active or not a.is_posting_allowed]
        if blocked:
            raise BusinessRuleException(
                message="Cannot post to inactive or non-posting accounts",
                rule="POSTABLE_ACCOUNT",
                details={"account_codes": sorted(a.code for a in blocked)},
            )

        for index, line in enumerate(lines, 1):
            if accounts[line.account_id].cost_center_required and not line.cost_center_id:
                raise BusinessRuleException(
                    message=f"Account {accounts[line.account_id].code} requires a cost center",
                    rule="COST_CENTER_REQUIRED",
                    details={"line_number": index},
                )

        cost_center_ids = {line.cost_center_id for line in lines if line.cost_center_id}
        if cost_center_ids:
            result = await self.db.execute(
                select(CostCenter.id).where(
                    CostCenter.tenant_id == tenant_id,
                    CostCenter.id.in_(cost_center_ids),
                    CostCenter.is_active == True,  # noqa: E712
                )
            )
            unknown = cost_center_ids - set(result.scalars().all())
            if unknown:
                raise BusinessRuleException(
                    message="One or more cost centers not found or inactive",
                    rule="COST_CENTER_EXISTS",
                    details={"cost_center_ids": sorted(str(cc) for cc in unknown)},
                )

    # =========================================================================
    # WRITE HELPERS
    # =========================================================================

    @staticmethod
    def _build_lines(
        tenant_id: uuid.UUID,
        journal_id: uuid.UUID,
        lines: Iterable[JournalLineCreate],
    ) -> List[JournalLine]:
        return [
            JournalLine(
                tenant_id=tenant_id,
                journal_id=journal_id,
                line_number=index,
                account_id=line.account_id,
                cost_center_id=line.cost_center_id,
                description_en=line.description_en,
                description_ar=line.description_ar,
                debit=to_money(line.debit),
                credit=to_money(line.credit),
                currency=line.currency,
                exchange_rate=line.exchange_rate,
                reference=line.reference,
                reference_type=line.reference_type,
                reference_id=line.reference_id,
            )
            for index, line in enumerate(lines, 1)
        ]

    def _record(
        self,
        tenant_id: uuid.UUID,
        journal_id: uuid.UUID,
        action: WorkflowAction,
        from_status: Optional[JournalStatus],
        to_status: JournalStatus,
        user_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> None:
        self.db.add(JournalWorkflow(
            tenant_id=tenant_id,
            journal_id=journal_id,
            action=action,
            from_status=from_status,
            to_status=to_status,
            actioned_by_id=user_id,
            actioned_at=utcnow(),
            notes=notes,
        ))

    async def _transition(
        self,
        tenant_id: uuid.UUID,
        journal_id: uuid.UUID,
        expected: JournalStatus,
        values: Dict[str, Any],
        action: str,
    ) -> None:
        """Apply values only if the journal is still in the expected status."""
        result = await self.db.execute(
            update(Journal)
            .where(
                Journal.id == journal_id,
                Journal.tenant_id == tenant_id,
                Journal.status == expected,
            )
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self._raise_transition_failure(tenant_id, journal_id, expected, action)

    async def _raise_transition_failure(
        self,
        tenant_id: uuid.UUID,
        journal_id: uuid.UUID,
        expected: JournalStatus,
        action: str,
    ) -> None:
        result = await self.db.execute(
            select(Journal.journal_number, Journal.status).where(
                Journal.id == journal_id,
                Journal.tenant_id == tenant_id,
            )
        )
        row = result.first()
        if row is None:
            raise JournalNotFoundException(journal_id)

        logger.warning(
            "Rejected %s on journal %s: status is %s, expected %s",
            action, row.journal_number, row.status.value, expected.value,
        )
        raise InvalidStateTransitionException(
            journal_number=row.journal_number,
            expected_status=expected.value,
            current_status=row.status.value,
            action=action,
        )

    def _require_status(self, journal: Journal, expected: JournalStatus, action: str) -> None:
        if journal.status != expected:
            logger.warning(
                "Rejected %s on journal %s: status is %s, expected %s",
                action, journal.journal_number, journal.status.value, expected.value,
            )
            raise InvalidStateTransitionException(
                journal_number=journal.journal_number,
                expected_status=expected.value,
                current_status=journal.status.value,
                action=action,
            )

    # =========================================================================
    # CREATE / UPDATE / DELETE
    # =========================================================================

    async def create(
        self,
        tenant_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        data: JournalCreate,
        branch_id: Optional[uuid.UUID] = None,
    ) -> Journal:
        """Validate and store a draft journal with its lines in one transaction."""
        total_debit, total_credit = check_double_entry(data.lines)
        period = await self._open_period_for(tenant_id, data.transaction_date)
        await self._validate_references(tenant_id, data.lines)

        if data.journal_number:
            taken = await self.db.scalar(
                select(Journal.id).where(
                    Journal.tenant_id == tenant_id,
                    Journal.journal_number == data.journal_number,
                )
            )
            if taken:
                raise DuplicateEntryException("Journal", "journal_number", data.journal_number)

        journal_id = uuid.uuid4()
        async with unit_of_work(self.db):
            if data.journal_number:
                journal_number = data.journal_number
                await self.sequences.reserve_journal_number(tenant_id, journal_number)
            else:
                journal_number = await self.sequences.next_journal_number(tenant_id, data.journal_type)

            journal = Journal(
                id=journal_id,
                tenant_id=tenant_id,
                branch_id=branch_id,
                fiscal_period_id=period.id,
                journal_number=journal_number,
                journal_type=data.journal_type,
                reference_number=data.reference_number,
                description_en=data.description_en,
                description_ar=data.description_ar,
                transaction_date=data.transaction_date,
                posting_date=data.posting_date,
                currency=data.currency or settings.default_currency,
                exchange_rate=data.exchange_rate,
                total_debit=total_debit,
                total_credit=total_credit,
                status=JournalStatus.DRAFT,
                notes=data.notes,
                attachment_url=data.attachment_url,
                source_module=data.source_module,
                source_id=data.source_id,
                created_by_id=user_id,
            )
            self.db.add(journal)
            await self.db.flush()

            self.db.add_all(self._build_lines(tenant_id, journal_id, data.lines))
            self._record(tenant_id, journal_id, WorkflowAction.CREATED, None, JournalStatus.DRAFT, user_id)

        logger.info(
            "Created journal %s for tenant %s (debit %s, credit %s)",
            journal_number, tenant_id, total_debit, total_credit,
        )
        return await self.get_journal(tenant_id, journal_id)

    async def update(
        self,
        tenant_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        journal_id: uuid.UUID,
        data: JournalUpdate,
    ) -> Journal:
        """Partial update of a draft journal header."""
        journal = await self.get_journal(tenant_id, journal_id)
        self._require_status(journal, JournalStatus.DRAFT, "update")

        values = data.model_dump(exclude_unset=True)
        if "transaction_date" in values:
            period = await self._open_period_for(tenant_id, values["transaction_date"])
            values["fiscal_period_id"] = period.id

        async with unit_of_work(self.db):
            await self._transition(tenant_id, journal_id, JournalStatus.DRAFT, values, "update")
            self._record(
                tenant_id, journal_id, WorkflowAction.UPDATED,
                JournalStatus.DRAFT, JournalStatus.DRAFT, user_id,
                notes=f"Header fields changed: {', '.join(sorted(values)) or 'none'}",
            )

        logger.info("Updated journal %s header", journal.journal_number)
        return await self.get_journal(tenant_id, journal_id)

    async def update_lines(
        self,
        tenant_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        journal_id: uuid.UUID,
        lines: List[JournalLineCreate],
    ) -> Journal:
        """Replace every line of a draft journal and recompute its totals."""
        total_debit, total_credit = check_double_entry(lines)

        journal = await self.get_journal(tenant_id, journal_id)
        self._require_status(journal, JournalStatus.DRAFT, "update_lines")

        period = await self._open_period_for(tenant_id, journal.transaction_date)
        await self._validate_references(tenant_id, lines)

        async with unit_of_work(self.db):
            await self._transition(
                tenant_id, journal_id, JournalStatus.DRAFT,
                {
                    "total_debit": total_debit,
                    "total_credit": total_credit,
                    "fiscal_period_id": period.id,
                },
                "update_lines",
            )
            await self.db.execute(
                delete(JournalLine)
                .where(JournalLine.journal_id == journal_id)
                .execution_options(synchronize_session=False)
            )
            self.db.add_all(self._build_lines(tenant_id, journal_id, lines))
            self._record(
                tenant_id, journal_id, WorkflowAction.UPDATED,
                JournalStatus.DRAFT, JournalStatus.DRAFT, user_id,
                notes=f"Lines replaced ({len(lines)} lines)",
            )

        logger.info(
            "Replaced lines of journal %s (debit %s, credit %s)",
            journal.journal_number, total_debit, total_credit,
        )
        return await self.get_journal(tenant_id, journal_id)

    async def remove(self, tenant_id: uuid.UUID, journal_id: uuid.UUID) -> None:
        """Delete a draft journal with its lines and history."""
        async with unit_of_work(self.db):
            result = await self.db.execute(
                delete(Journal)
                .where(
                    Journal.id == journal_id,
                    Journal.tenant_id == tenant_id,
                    Journal.status == JournalStatus.DRAFT,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self._raise_transition_failure(tenant_id, journal_id, JournalStatus.DRAFT, "delete")

            await self.db.execute(
                delete(JournalLine)
                .where(JournalLine.journal_id == journal_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(JournalWorkflow)
                .where(JournalWorkflow.journal_id == journal_id)
                .execution_options(synchronize_session=False)
            )

        logger.info("Deleted draft journal %s for tenant %s", journal_id, tenant_id)

    # =========================================================================
    # WORKFLOW
    # =========================================================================

    async def submit(self, tenant_id: uuid.UUID, user_id: Optional[uuid.UUID], journal_id: uuid.UUID) -> Journal:
        async with unit_of_work(self.db):
            await self._transition(
                tenant_id, journal_id, JournalStatus.DRAFT,
                {
                    "status": JournalStatus.SUBMITTED,
                    "submitted_by_id": user_id,
                    "submitted_at": utcnow(),
                },
                "submit",
            )
            self._record(
                tenant_id, journal_id, WorkflowAction.SUBMITTED,
                JournalStatus.DRAFT, JournalStatus.SUBMITTED, user_id,
            )

        logger.info("Submitted journal %s", journal_id)
        return await self.get_journal(tenant_id, journal_id)

    async def approve(self, tenant_id: uuid.UUID, user_id: Optional[uuid.UUID], journal_id: uuid.UUID) -> Journal:
        async with unit_of_work(self.db):
            await self._transition(
                tenant_id, journal_id, JournalStatus.SUBMITTED,
                {
                    "status": JournalStatus.APPROVED,
                    "approved_by_id": user_id,
                    "approved_at": utcnow(),
                },
                "approve",
            )
            self._record(
                tenant_id, journal_id, WorkflowAction.APPROVED,
                JournalStatus.SUBMITTED, JournalStatus.APPROVED, user_id,
            )

        logger.info("Approved journal %s", journal_id)
        return await self.get_journal(tenant_id, journal_id)

    async def post(self, tenant_id: uuid.UUID, user_id: Optional[uuid.UUID], journal_id: uuid.UUID) -> Journal:
        """
        Post an approved journal to the ledger.

        The fiscal period of the transaction date must still exist and be
        open at posting time.
        """
        journal = await self.get_journal(tenant_id, journal_id)
        self._require_status(journal, JournalStatus.APPROVED, "post")
        period = await self._open_period_for(tenant_id, journal.transaction_date)

        async with unit_of_work(self.db):
            await self._transition(
                tenant_id, journal_id, JournalStatus.APPROVED,
                {
                    "status": JournalStatus.POSTED,
                    "posted_by_id": user_id,
                    "posted_at": utcnow(),
                    "posting_date": func.coalesce(Journal.posting_date, date.today()),
                    "fiscal_period_id": period.id,
                },
                "post",
            )
            self._record(
                tenant_id, journal_id, WorkflowAction.POSTED,
                JournalStatus.APPROVED, JournalStatus.POSTED, user_id,
            )

        logger.info("Posted journal %s in period %s", journal.journal_number, period.name_en)
        return await self.get_journal(tenant_id, journal_id)

    async def reverse(
        self,
        tenant_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        journal_id: uuid.UUID,
        reversal_date: date,
        reason: str,
    ) -> Journal:
        """
        Reverse a posted journal.

        A posted mirror journal with debits and credits swapped is created on
        reversal_date and the original moves to reversed. Returns the mirror.
        """
        original = await self.get_journal(tenant_id, journal_id)
        self._require_status(original, JournalStatus.POSTED, "reverse")
        period = await self._open_period_for(tenant_id, reversal_date)

        reversal_id = uuid.uuid4()
        now = utcnow()
        async with unit_of_work(self.db):
            reversal_number = await self.sequences.next_journal_number(tenant_id, original.journal_type)

            reversal = Journal(
                id=reversal_id,
                tenant_id=tenant_id,
                branch_id=original.branch_id,
                fiscal_period_id=period.id,
                journal_number=reversal_number,
                journal_type=original.journal_type,
                reference_number=original.journal_number,
                description_en=f"Reversal of {original.journal_number}: {reason}",
                description_ar=f"عكس القيد {original.journal_number}: {reason}",
                transaction_date=reversal_date,
                posting_date=reversal_date,
                currency=original.currency,
                exchange_rate=original.exchange_rate,
                total_debit=original.total_credit,
                total_credit=original.total_debit,
                status=JournalStatus.POSTED,
                notes=reason,
                source_module=original.source_module,
                source_id=original.source_id,
                created_by_id=user_id,
                submitted_by_id=user_id,
                submitted_at=now,
                approved_by_id=user_id,
                approved_at=now,
                posted_by_id=user_id,
                posted_at=now,
            )
            self.db.add(reversal)
            await self.db.flush()

            # Swap debits and credits
            self.db.add_all([
                JournalLine(
                    tenant_id=tenant_id,
                    journal_id=reversal_id,
                    line_number=line.line_number,
                    account_id=line.account_id,
                    cost_center_id=line.cost_center_id,
                    description_en=f"Reversal: {line.description_en or ''}".strip(),
                    description_ar=line.description_ar,
                    debit=line.credit,
                    credit=line.debit,
                    currency=line.currency,
                    exchange_rate=line.exchange_rate,
                    reference=line.reference,
                    reference_type=line.reference_type,
                    reference_id=line.reference_id,
                )
                for line in original.lines
            ])
            self._record(
                tenant_id, reversal_id, WorkflowAction.POSTED,
                None, JournalStatus.POSTED, user_id,
                notes=f"Reversal of {original.journal_number}",
            )

            await self._transition(
                tenant_id, journal_id, JournalStatus.POSTED,
                {
                    "status": JournalStatus.REVERSED,
                    "reversed_by_id": user_id,
                    "reversed_at": now,
                    "reversal_journal_id": reversal_id,
                    "reversal_reason": reason,
                },
                "reverse",
            )
            self._record(
                tenant_id, journal_id, WorkflowAction.REVERSED,
                JournalStatus.POSTED, JournalStatus.REVERSED, user_id,
                notes=reason,
            )

        logger.info("Reversed journal %s with %s", original.journal_number, reversal_number)
        return await self.get_journal(tenant_id, reversal_id)
