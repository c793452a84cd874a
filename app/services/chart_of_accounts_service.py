"""
QLedger - Chart of Accounts Service

Service layer for the account hierarchy and cost centers:
- Account CRUD with hierarchy levels and balance-type defaults
- Tree view of a tenant's chart
- Default chart seeding
- Cost centers
"""

import logging
import uuid
from typing import Dict, List, Optional

from sqlalchemy import select, and_, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.database import unit_of_work
from app.models.accounting import (
    AccountType,
    BalanceType,
    ChartOfAccounts,
    CostCenter,
    JournalLine,
    default_balance_type,
)
from app.schemas.accounting import (
    AccountCreate,
    AccountResponse,
    AccountTreeNode,
    AccountUpdate,
    CostCenterCreate,
)
from app.utils.error_handling import (
    AccountNotFoundException,
    BusinessRuleException,
    ConflictException,
    DuplicateEntryException,
    ErrorCode,
)

logger = logging.getLogger(__name__)


# Standard five-class chart. Headers group accounts and never take postings.
DEFAULT_CHART_OF_ACCOUNTS = [
    # ASSETS
    {"code": "1000", "name_en": "Assets", "name_ar": "الأصول", "type": AccountType.ASSET, "is_header": True},
    {"code": "1100", "name_en": "Current Assets", "name_ar": "الأصول المتداولة", "type": AccountType.ASSET, "is_header": True, "parent": "1000"},
    {"code": "1110", "name_en": "Cash on Hand", "name_ar": "النقدية بالصندوق", "type": AccountType.ASSET, "subtype": "cash", "parent": "1100"},
    {"code": "1120", "name_en": "Bank Accounts", "name_ar": "الحسابات البنكية", "type": AccountType.ASSET, "subtype": "bank", "parent": "1100"},
    {"code": "1130", "name_en": "Accounts Receivable", "name_ar": "الذمم المدينة", "type": AccountType.ASSET, "subtype": "accounts_receivable", "parent": "1100", "control": True},
    {"code": "1140", "name_en": "Inventory", "name_ar": "المخزون", "type": AccountType.ASSET, "subtype": "inventory", "parent": "1100"},
    {"code": "1150", "name_en": "Prepaid Expenses", "name_ar": "المصروفات المدفوعة مقدماً", "type": AccountType.ASSET, "subtype": "prepaid_expense", "parent": "1100"},
    {"code": "1200", "name_en": "Non-Current Assets", "name_ar": "الأصول غير المتداولة", "type": AccountType.ASSET, "is_header": True, "parent": "1000"},
    {"code": "1210", "name_en": "Property, Plant & Equipment", "name_ar": "الممتلكات والآلات والمعدات", "type": AccountType.ASSET, "subtype": "fixed_asset", "parent": "1200"},
    {"code": "1220", "name_en": "Accumulated Depreciation", "name_ar": "مجمع الإهلاك", "type": AccountType.ASSET, "subtype": "accumulated_depreciation", "parent": "1200", "balance": BalanceType.CREDIT},

    # LIABILITIES
    {"code": "2000", "name_en": "Liabilities", "name_ar": "الالتزامات", "type": AccountType.LIABILITY, "is_header": True},
    {"code": "2100", "name_en": "Current Liabilities", "name_ar": "الالتزامات المتداولة", "type": AccountType.LIABILITY, "is_header": True, "parent": "2000"},
    {"code": "2110", "name_en": "Accounts Payable", "name_ar": "الذمم الدائنة", "type": AccountType.LIABILITY, "subtype": "accounts_payable", "parent": "2100", "control": True},
    {"code": "2120", "name_en": "Accrued Expenses", "name_ar": "المصروفات المستحقة", "type": AccountType.LIABILITY, "subtype": "accrued_expense", "parent": "2100"},
    {"code": "2130", "name_en": "Salaries Payable", "name_ar": "الرواتب المستحقة", "type": AccountType.LIABILITY, "subtype": "accrued_expense", "parent": "2100"},
    {"code": "2200", "name_en": "Non-Current Liabilities", "name_ar": "الالتزامات غير المتداولة", "type": AccountType.LIABILITY, "is_header": True, "parent": "2000"},
    {"code": "2210", "name_en": "Long-term Loans", "name_ar": "القروض طويلة الأجل", "type": AccountType.LIABILITY, "subtype": "loan", "parent": "2200"},
    {"code": "2220", "name_en": "End of Service Benefits", "name_ar": "مكافأة نهاية الخدمة", "type": AccountType.LIABILITY, "subtype": "provision", "parent": "2200"},

    # EQUITY
    {"code": "3000", "name_en": "Equity", "name_ar": "حقوق الملكية", "type": AccountType.EQUITY, "is_header": True},
    {"code": "3100", "name_en": "Share Capital", "name_ar": "رأس المال", "type": AccountType.EQUITY, "subtype": "share_capital", "parent": "3000"},
    {"code": "3200", "name_en": "Retained Earnings", "name_ar": "الأرباح المحتجزة", "type": AccountType.EQUITY, "subtype": "retained_earnings", "parent": "3000"},
    {"code": "3300", "name_en": "Drawings", "name_ar": "المسحوبات", "type": AccountType.EQUITY, "subtype": "drawings", "parent": "3000", "balance": BalanceType.DEBIT},

    # REVENUE
    {"code": "4000", "name_en": "Revenue", "name_ar": "الإيرادات", "type": AccountType.REVENUE, "is_header": True},
    {"code": "4100", "name_en": "Sales Revenue", "name_ar": "إيرادات المبيعات", "type": AccountType.REVENUE, "subtype": "sales_revenue", "parent": "4000"},
    {"code": "4200", "name_en": "Service Revenue", "name_ar": "إيرادات الخدمات", "type": AccountType.REVENUE, "subtype": "service_revenue", "parent": "4000"},
    {"code": "4900", "name_en": "Other Income", "name_ar": "إيرادات أخرى", "type": AccountType.REVENUE, "subtype": "other_income", "parent": "4000"},

    # EXPENSES
    {"code": "5000", "name_en": "Expenses", "name_ar": "المصروفات", "type": AccountType.EXPENSE, "is_header": True},
    {"code": "5100", "name_en": "Cost of Goods Sold", "name_ar": "تكلفة البضاعة المباعة", "type": AccountType.EXPENSE, "subtype": "cost_of_goods_sold", "parent": "5000"},
    {"code": "5200", "name_en": "Salaries & Wages", "name_ar": "الرواتب والأجور", "type": AccountType.EXPENSE, "subtype": "salary_expense", "parent": "5000"},
    {"code": "5300", "name_en": "Rent Expense", "name_ar": "مصروف الإيجار", "type": AccountType.EXPENSE, "subtype": "rent_expense", "parent": "5000"},
    {"code": "5400", "name_en": "Utilities Expense", "name_ar": "مصروف المرافق", "type": AccountType.EXPENSE, "subtype": "utilities_expense", "parent": "5000"},
    {"code": "5500", "name_en": "Depreciation Expense", "name_ar": "مصروف الإهلاك", "type": AccountType.EXPENSE, "subtype": "depreciation_expense", "parent": "5000"},
    {"code": "5600", "name_en": "Bank Charges", "name_ar": "الرسوم البنكية", "type": AccountType.EXPENSE, "subtype": "bank_charges", "parent": "5000"},
    {"code": "5900", "name_en": "Other Expenses", "name_ar": "مصروفات أخرى", "type": AccountType.EXPENSE, "subtype": "other_expense", "parent": "5000"},
]


def build_account_tree(accounts: List[ChartOfAccounts]) -> List[AccountTreeNode]:
    """
    Re-nest a code-ordered flat list into a forest.

    First pass maps id -> node with empty children; second pass appends each
    node to its parent, or to the roots when it has no parent or the parent
    is outside the list.
    """
    nodes: Dict[uuid.UUID, AccountTreeNode] = {}
    for account in accounts:
        data = AccountResponse.model_validate(account).model_dump()
        nodes[account.id] = AccountTreeNode(**data, children=[])

    roots: List[AccountTreeNode] = []
    for account in accounts:
        node = nodes[account.id]
        parent = nodes.get(account.parent_id) if account.parent_id else None
        if parent is not None:
            parent.children.append(node)
        else:
            roots.append(node)
    return roots


class ChartOfAccountsService:
    """Service for the chart of accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def list_accounts(
        self,
        tenant_id: uuid.UUID,
        include_inactive: bool = False,
    ) -> List[ChartOfAccounts]:
        """Flat chart ordered by code."""
        query = select(ChartOfAccounts).where(ChartOfAccounts.tenant_id == tenant_id)
        if not include_inactive:
            query = query.where(ChartOfAccounts.is_active == True)  # noqa: E712
        query = query.order_by(ChartOfAccounts.code)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_account_tree(
        self,
        tenant_id: uuid.UUID,
        include_inactive: bool = False,
    ) -> List[AccountTreeNode]:
        accounts = await self.list_accounts(tenant_id, include_inactive)
        return build_account_tree(accounts)

    async def get_account(self, tenant_id: uuid.UUID, account_id: uuid.UUID) -> ChartOfAccounts:
        """Account with its parent and direct children loaded."""
        result = await self.db.execute(
            select(ChartOfAccounts)
            .options(
                selectinload(ChartOfAccounts.parent),
                selectinload(ChartOfAccounts.children),
            )
            .where(
                and_(
                    ChartOfAccounts.id == account_id,
                    ChartOfAccounts.tenant_id == tenant_id,
                )
            )
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if not account:
            raise AccountNotFoundException(account_id)
        return account

    async def find_by_code(self, tenant_id: uuid.UUID, code: str) -> Optional[ChartOfAccounts]:
        result = await self.db.execute(
            select(ChartOfAccounts).where(
                and_(
                    ChartOfAccounts.tenant_id == tenant_id,
                    ChartOfAccounts.code == code,
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_account_by_code(self, tenant_id: uuid.UUID, code: str) -> ChartOfAccounts:
        account = await self.find_by_code(tenant_id, code)
        if not account:
            raise AccountNotFoundException(code_value=code)
        return account

    async def get_accounts_by_type(
        self,
        tenant_id: uuid.UUID,
        account_type: AccountType,
    ) -> List[ChartOfAccounts]:
        """Active accounts of one type that accept postings."""
        result = await self.db.execute(
            select(ChartOfAccounts)
            .where(
                and_(
                    ChartOfAccounts.tenant_id == tenant_id,
                    ChartOfAccounts.type == account_type,
                    ChartOfAccounts.is_active == True,  # noqa: E712
                    ChartOfAccounts.is_posting_allowed == True,  # noqa: E712
                )
            )
            .order_by(ChartOfAccounts.code)
        )
        return list(result.scalars().all())

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create_account(
        self,
        tenant_id: uuid.UUID,
        data: AccountCreate,
        user_id: Optional[uuid.UUID] = None,
    ) -> ChartOfAccounts:
        """Create a new account in the chart of accounts."""
        # Check for duplicate code
        if await self.find_by_code(tenant_id, data.code):
            raise DuplicateEntryException("Account", "code", data.code)

        # Level follows the parent; a root is always level 1
        level = 1
        if data.parent_id:
            parent_result = await self.db.execute(
                select(ChartOfAccounts.level).where(
                    ChartOfAccounts.id == data.parent_id,
                    ChartOfAccounts.tenant_id == tenant_id,
                )
            )
            parent_level = parent_result.scalar_one_or_none()
            if parent_level is None:
                raise BusinessRuleException(
                    message="Parent account not found",
                    rule="PARENT_IN_SAME_TENANT",
                    details={"parent_id": str(data.parent_id)},
                )
            level = parent_level + 1

        balance_type = data.balance_type or default_balance_type(data.type)

        async with unit_of_work(self.db):
            account = ChartOfAccounts(
                tenant_id=tenant_id,
                code=data.code,
                name_en=data.name_en,
                name_ar=data.name_ar,
                description=data.description,
                type=data.type,
                subtype=data.subtype,
                parent_id=data.parent_id,
                level=level,
                is_control_account=data.is_control_account,
                is_posting_allowed=data.is_posting_allowed,
                is_active=data.is_active,
                balance_type=balance_type,
                cost_center_required=data.cost_center_required,
                currency=data.currency,
                created_by_id=user_id,
            )
            self.db.add(account)

        logger.info("Created account %s (%s) for tenant %s", account.code, account.type.value, tenant_id)
        return account

    async def update_account(
        self,
        tenant_id: uuid.UUID,
        account_id: uuid.UUID,
        data: AccountUpdate,
    ) -> ChartOfAccounts:
        """Change only the fields the caller actually sent."""
        account = await self.get_account(tenant_id, account_id)

        update_data = data.model_dump(exclude_unset=True)
        async with unit_of_work(self.db):
            for field, value in update_data.items():
                setattr(account, field, value)

        logger.info("Updated account %s fields %s", account.code, sorted(update_data))
        return await self.get_account(tenant_id, account_id)

    async def delete_account(self, tenant_id: uuid.UUID, account_id: uuid.UUID) -> None:
        account = await self.get_account(tenant_id, account_id)

        child_count = await self.db.scalar(
            select(func.count(ChartOfAccounts.id)).where(ChartOfAccounts.parent_id == account.id)
        )
        if child_count:
            raise BusinessRuleException(
                message="Cannot delete account with child accounts",
                rule="NO_CHILD_ACCOUNTS",
                code=ErrorCode.CANNOT_DELETE,
                details={"account_id": str(account.id), "child_count": child_count},
            )

        line_count = await self.db.scalar(
            select(func.count(JournalLine.id)).where(JournalLine.account_id == account.id)
        )
        if line_count:
            raise BusinessRuleException(
                message="Cannot delete account with posted transactions",
                rule="NO_JOURNAL_LINES",
                code=ErrorCode.CANNOT_DELETE,
                details={"account_id": str(account.id), "line_count": line_count},
            )

        async with unit_of_work(self.db):
            await self.db.delete(account)

        logger.info("Deleted account %s for tenant %s", account.code, tenant_id)

    async def seed_default_chart(
        self,
        tenant_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> List[ChartOfAccounts]:
        """Create the default chart for a tenant whose chart is still empty."""
        existing = await self.db.scalar(
            select(func.count(ChartOfAccounts.id)).where(ChartOfAccounts.tenant_id == tenant_id)
        )
        if existing:
            raise ConflictException(
                message="Tenant already has a chart of accounts",
                resource_type="ChartOfAccounts",
                details={"existing_accounts": existing},
            )

        # Create accounts in order (parents first)
        created_accounts = []
        code_to_account: Dict[str, ChartOfAccounts] = {}

        async with unit_of_work(self.db):
            for acc_data in DEFAULT_CHART_OF_ACCOUNTS:
                parent = code_to_account.get(acc_data.get("parent"))
                is_header = acc_data.get("is_header", False)

                account = ChartOfAccounts(
                    id=uuid.uuid4(),
                    tenant_id=tenant_id,
                    code=acc_data["code"],
                    name_en=acc_data["name_en"],
                    name_ar=acc_data["name_ar"],
                    type=acc_data["type"],
                    subtype=acc_data.get("subtype"),
                    parent_id=parent.id if parent else None,
                    level=parent.level + 1 if parent else 1,
                    balance_type=acc_data.get("balance") or default_balance_type(acc_data["type"]),
                    is_control_account=acc_data.get("control", False),
                    is_posting_allowed=not is_header,
                    is_active=True,
                    cost_center_required=False,
                    created_by_id=user_id,
                )
                self.db.add(account)
                code_to_account[account.code] = account
                created_accounts.append(account)

        logger.info("Seeded %d default accounts for tenant %s", len(created_accounts), tenant_id)
        return created_accounts

    # =========================================================================
    # COST CENTERS
    # =========================================================================

    async def list_cost_centers(
        self,
        tenant_id: uuid.UUID,
        include_inactive: bool = False,
    ) -> List[CostCenter]:
        query = select(CostCenter).where(CostCenter.tenant_id == tenant_id)
        if not include_inactive:
            query = query.where(CostCenter.is_active == True)  # noqa: E712
        result = await self.db.execute(query.order_by(CostCenter.code))
        return list(result.scalars().all())

    async def create_cost_center(
        self,
        tenant_id: uuid.UUID,
        data: CostCenterCreate,
    ) -> CostCenter:
        duplicate = await self.db.scalar(
            select(CostCenter.id).where(
                CostCenter.tenant_id == tenant_id,
                CostCenter.code == data.code,
            )
        )
        if duplicate:
            raise DuplicateEntryException("CostCenter", "code", data.code)

        async with unit_of_work(self.db):
            cost_center = CostCenter(tenant_id=tenant_id, **data.model_dump())
            self.db.add(cost_center)

        logger.info("Created cost center %s for tenant %s", cost_center.code, tenant_id)
        return cost_center
