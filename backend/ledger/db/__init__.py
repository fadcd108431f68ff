"""Database package"""

from ledger.db.session import AsyncSessionLocal, engine, get_db
from ledger.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
