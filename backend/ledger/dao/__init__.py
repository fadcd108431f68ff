"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and the
ledger rules, making the codebase more testable and maintainable.
"""

from ledger.dao.base import BaseDAO
from ledger.dao.invoice import InvoiceDAO

__all__ = [
    "BaseDAO",
    "InvoiceDAO",
]
