"""
Invoice ledger enumerations.

WHAT: String enums shared by the ORM models, the ledger engine and the API.

WHY: Keeping them in one module lets the pure engine functions
(totals, status resolution, reminder scheduling) use the same values as
the models without importing the ORM layer.

HOW: str-based enums so values serialize cleanly to JSON and are stored
as their lowercase value in the database.
"""

from enum import Enum


class InvoiceStatus(str, Enum):
    """
    Derived invoice status.

    WHAT: The status reported to readers, recomputed on every mutation.

    WHY: Tracks the invoice through its payment lifecycle:
    - DRAFT: Created, not yet sent
    - SENT: Sent to the client
    - VIEWED: Client opened the invoice
    - PARTIALLY_PAID: Some payment received, balance remains
    - PAID: Total fully satisfied
    - OVERDUE: Past due date with a balance and no payment
    - CANCELLED: Voided; terminal
    """

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class InvoiceStage(str, Enum):
    """
    Last explicit lifecycle stage.

    WHAT: The stage set by explicit actions (send, view, cancel).

    WHY: Payment and time rules override the reported status, but when
    they stop applying (e.g. the due date is extended) the invoice falls
    back to the last stage a user or client action put it in.
    """

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """
    How a payment was received.

    - STRIPE: card processor
    - RAZORPAY: alternate processor
    - BANK_TRANSFER, CASH, OTHER: recorded manually
    """

    STRIPE = "stripe"
    RAZORPAY = "razorpay"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    OTHER = "other"


class ReminderType(str, Enum):
    """Reminder cadence points relative to the due date."""

    PRE_DUE = "pre_due"
    ON_DUE = "on_due"
    POST_DUE = "post_due"


class LifecycleAction(str, Enum):
    """Explicit actions that move the lifecycle stage."""

    SEND = "send"
    VIEW = "view"
    CANCEL = "cancel"
