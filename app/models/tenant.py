"""
QLedger - Tenant Model

A tenant is one company keeping its own books. Every ledger row is scoped
to exactly one tenant.
"""

from enum import Enum

from sqlalchemy import String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class TenantStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TRIAL = "trial"


class Tenant(BaseModel):
    """Tenant (company) registry row."""

    __tablename__ = "tenants"

    code: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True,
        comment="Sequential tenant code (e.g., TEN000001)",
    )
    name_en: Mapped[str] = mapped_column(String(255), nullable=False)
    name_ar: Mapped[str] = mapped_column(String(255), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(3), default="QAR", nullable=False)
    status: Mapped[TenantStatus] = mapped_column(
        SQLEnum(TenantStatus),
        default=TenantStatus.TRIAL,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Tenant({self.code}: {self.name_en})>"
