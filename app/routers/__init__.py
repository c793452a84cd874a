"""
QLedger - Routers Package

FastAPI route handlers.

Routers:
- accounting: Chart of accounts, fiscal calendar, journals and balances
"""

from app.routers import accounting

__all__ = ["accounting"]
