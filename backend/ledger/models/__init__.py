"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from ledger.models.base import Base, TimestampMixin
from ledger.models.enums import (
    InvoiceStage,
    InvoiceStatus,
    LifecycleAction,
    PaymentMethod,
    ReminderType,
)
from ledger.models.invoice import (
    Invoice,
    InvoiceLineItem,
    InvoicePayment,
    InvoiceReminder,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "Invoice",
    "InvoiceLineItem",
    "InvoicePayment",
    "InvoiceReminder",
    "InvoiceStage",
    "InvoiceStatus",
    "LifecycleAction",
    "PaymentMethod",
    "ReminderType",
]
