"""
QLedger - Sequence Service

Generates tenant codes and journal numbers.

Each (scope, prefix) pair owns one row in document_sequences. Allocation is a
single INSERT ... ON CONFLICT DO UPDATE ... RETURNING statement, so the
database serializes concurrent callers on the counter row and no two callers
can ever receive the same value. The counter row stays locked until the
caller's transaction ends, which means a rolled-back document also gives its
number back.

The first allocation for a pair seeds the counter from the highest numeric
suffix already in use, so numbering continues from data that predates the
counter table. Journals stored with a caller-supplied number in the generated
format push the counter past that number.
"""

import logging
import re
import uuid
from typing import Iterable, Optional, Tuple

from sqlalchemy import case, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.accounting import DocumentSequence, Journal, JournalType
from app.models.base import utcnow
from app.models.tenant import Tenant
from app.utils.error_handling import DatabaseException

logger = logging.getLogger(__name__)


GLOBAL_SCOPE = "global"

JOURNAL_TYPE_PREFIXES = {
    JournalType.GENERAL: "GN",
    JournalType.SALES: "SL",
    JournalType.PURCHASE: "PU",
    JournalType.RECEIPT: "RC",
    JournalType.PAYMENT: "PM",
    JournalType.EXPENSE: "EX",
    JournalType.DEPRECIATION: "DP",
    JournalType.ADJUSTMENT: "AD",
    JournalType.OPENING: "OP",
    JournalType.CLOSING: "CL",
}
DEFAULT_JOURNAL_PREFIX = "JR"
JOURNAL_PREFIXES = frozenset(JOURNAL_TYPE_PREFIXES.values()) | {DEFAULT_JOURNAL_PREFIX}

GENERATED_NUMBER = re.compile(r"^([A-Z]+)(\d+)$")


def journal_prefix(journal_type) -> str:
    """Two-letter prefix for a journal type, JR when the type is unknown."""
    try:
        return JOURNAL_TYPE_PREFIXES.get(JournalType(journal_type), DEFAULT_JOURNAL_PREFIX)
    except ValueError:
        return DEFAULT_JOURNAL_PREFIX


def format_code(prefix: str, value: int, width: int) -> str:
    return f"{prefix}{str(value).zfill(width)}"


def max_numeric_suffix(codes: Iterable[Optional[str]], prefix: str) -> int:
    """Highest integer found after `prefix` in codes, 0 when none parse."""
    highest = 0
    for code in codes:
        if not code or not code.startswith(prefix):
            continue
        suffix = code[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


def parse_journal_number(journal_number: Optional[str]) -> Optional[Tuple[str, int]]:
    """(prefix, value) when the number looks generated, e.g. GN000042 -> (GN, 42)."""
    match = GENERATED_NUMBER.match(journal_number or "")
    if not match or match.group(1) not in JOURNAL_PREFIXES:
        return None
    return match.group(1), int(match.group(2))


class SequenceService:
    """Service for document numbering."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def next_tenant_code(
        self,
        prefix: Optional[str] = None,
        width: Optional[int] = None,
    ) -> str:
        """Next tenant code, e.g. TEN000001. Tenant codes share one global namespace."""
        prefix = prefix or settings.tenant_code_prefix
        width = width or settings.tenant_code_width

        value = await self._allocate(
            GLOBAL_SCOPE,
            prefix,
            seed_query=select(Tenant.code).where(Tenant.code.like(f"{prefix}%")),
        )
        return format_code(prefix, value, width)

    async def next_journal_number(
        self,
        tenant_id: uuid.UUID,
        journal_type: JournalType,
        width: Optional[int] = None,
    ) -> str:
        """Next journal number for a tenant and journal type, e.g. GN000001."""
        prefix = journal_prefix(journal_type)
        width = width or settings.journal_number_width

        value = await self._allocate(
            tenant_id.hex,
            prefix,
            seed_query=self._journal_seed_query(tenant_id, prefix),
        )
        return format_code(prefix, value, width)

    async def reserve_journal_number(self, tenant_id: uuid.UUID, journal_number: str) -> None:
        """
        Move the counter past a caller-supplied number in the generated format.

        Free-form numbers are left alone. Must run in the transaction that
        stores the journal so the reservation rolls back with it.
        """
        parsed = parse_journal_number(journal_number)
        if parsed is None:
            return
        prefix, value = parsed
        await self._allocate(
            tenant_id.hex,
            prefix,
            seed_query=self._journal_seed_query(tenant_id, prefix),
            at_least=value,
        )

    async def current_value(self, scope: str, prefix: str) -> Optional[int]:
        """Last value handed out for (scope, prefix), None before the first allocation."""
        result = await self.db.execute(
            select(DocumentSequence.last_value).where(
                DocumentSequence.scope == scope,
                DocumentSequence.prefix == prefix,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _journal_seed_query(tenant_id: uuid.UUID, prefix: str):
        # Journal numbers are unique per tenant, whatever the journal type.
        return select(Journal.journal_number).where(
            Journal.tenant_id == tenant_id,
            Journal.journal_number.like(f"{prefix}%"),
        )

    async def _allocate(self, scope: str, prefix: str, seed_query, at_least: Optional[int] = None) -> int:
        """
        Increment the counter, or with at_least raise it to that value
        without ever lowering it.
        """
        seed = 0
        if await self.current_value(scope, prefix) is None:
            result = await self.db.execute(seed_query)
            seed = max_numeric_suffix(result.scalars().all(), prefix)

        if at_least is None:
            initial = seed + 1
            next_value = DocumentSequence.last_value + 1
        else:
            initial = max(seed, at_least)
            next_value = case(
                (DocumentSequence.last_value < at_least, at_least),
                else_=DocumentSequence.last_value,
            )

        insert = self._dialect_insert()
        now = utcnow()
        stmt = insert(DocumentSequence).values(
            scope=scope,
            prefix=prefix,
            last_value=initial,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DocumentSequence.scope, DocumentSequence.prefix],
            set_={
                "last_value": next_value,
                "updated_at": now,
            },
        ).returning(DocumentSequence.last_value)

        result = await self.db.execute(stmt)
        value = result.scalar_one()
        logger.debug("Counter %s in scope %s now at %s", prefix, scope, value)
        return value

    def _dialect_insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise DatabaseException(f"Sequence allocation is not supported on {dialect}")
