"""
Invoice schemas for API request/response validation.

WHAT: Pydantic schemas for invoice, line item, payment and reminder data.

WHY: Schemas provide:
1. Type-safe request/response handling
2. Automatic validation with clear error messages
3. OpenAPI documentation generation

HOW: Uses Pydantic v2 with Field constraints and model_config. Money is
Decimal end to end; JSON responses carry it as a string so no amount is
ever rounded through a float.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ledger.models.enums import InvoiceStatus, PaymentMethod, ReminderType


# ============================================================================
# Shared pieces
# ============================================================================


class LineItemInput(BaseModel):
    """One billable line as submitted by the owner."""

    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., ge=0, description="Non-negative quantity")
    rate: Decimal = Field(..., ge=0, description="Non-negative unit rate")


class ClientSnapshot(BaseModel):
    """Client details captured on the invoice at creation time."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = Field(default=None, ge=1, description="Client record id")
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    company: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = Field(default=None, max_length=1000)


class ProjectSnapshot(BaseModel):
    """Optional project reference (id and title at invoice time)."""

    id: Optional[int] = None
    title: Optional[str] = Field(default=None, max_length=255)


class ReminderSettingsInput(BaseModel):
    """Reminder cadence; omitted fields keep their current or default value."""

    before_due_days: Optional[int] = Field(default=None, ge=0)
    on_due_date: Optional[bool] = None
    after_due_days: Optional[List[int]] = Field(
        default=None,
        description="Days after the due date to send post-due reminders",
    )


# ============================================================================
# Request Schemas
# ============================================================================


class InvoiceCreate(BaseModel):
    """
    Schema for creating an invoice.

    Note: The invoice starts in draft; due_date defaults to net-30.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=255)
    client: ClientSnapshot
    line_items: List[LineItemInput] = Field(default_factory=list)
    project: Optional[ProjectSnapshot] = None
    issue_date: Optional[date] = Field(default=None, description="Defaults to today")
    due_date: Optional[date] = Field(default=None, description="Defaults to issue date + 30 days")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100, description="Tax percentage")
    discount: Decimal = Field(default=Decimal("0"), ge=0, description="Absolute discount")
    reminder_settings: Optional[ReminderSettingsInput] = None
    notes: Optional[str] = Field(default=None, max_length=5000)
    terms: Optional[str] = Field(default=None, max_length=5000)
    branding: Optional[Dict[str, Any]] = None


class InvoiceUpdate(BaseModel):
    """
    Schema for updating invoice fields.

    WHY: Only the fields actually sent are applied (exclude_unset).
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client: Optional[ClientSnapshot] = None
    project: Optional[ProjectSnapshot] = None
    due_date: Optional[date] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    discount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=5000)
    terms: Optional[str] = Field(default=None, max_length=5000)
    expected_version: Optional[int] = Field(
        default=None,
        description="Reject with 409 unless the invoice is still at this version",
    )


class LineItemsUpdate(BaseModel):
    """Full replacement of an invoice's line items."""

    items: List[LineItemInput]
    expected_version: Optional[int] = None


class ReminderSettingsUpdate(ReminderSettingsInput):
    expected_version: Optional[int] = None


class LifecycleRequest(BaseModel):
    """Body for explicit lifecycle actions (send, view)."""

    expected_version: Optional[int] = None


class SendRequest(LifecycleRequest):
    notify_client: bool = Field(default=False, description="Email the invoice to the client")


class CancelRequest(LifecycleRequest):
    reason: Optional[str] = Field(default=None, max_length=1000)


class PaymentCreate(BaseModel):
    """
    Schema for recording a payment.

    WHY: transaction_reference makes re-delivered payment events
    idempotent.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(..., gt=0, description="Payment amount received")
    payment_date: Optional[datetime] = Field(default=None, description="Defaults to now")
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    transaction_reference: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=2000)


class ReminderRecordCreate(BaseModel):
    """Record a reminder that was dispatched outside the sweep."""

    reminder_type: ReminderType
    offset_days: int = Field(default=0, ge=0)
    sent_by: Optional[str] = Field(default=None, max_length=255)


# ============================================================================
# Response Schemas
# ============================================================================


class LineItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    position: int
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    payment_date: datetime
    payment_method: PaymentMethod
    transaction_reference: Optional[str]
    notes: Optional[str]


class ReminderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reminder_type: ReminderType
    offset_days: int
    sent_at: datetime
    sent_by: Optional[str]


class ReminderSettingsResponse(BaseModel):
    before_due_days: int
    on_due_date: bool
    after_due_days: List[int]


class InvoiceResponse(BaseModel):
    """
    Schema for invoice response data.

    WHY: Complete read model: every derived money field, the status as of
    the request time, child records, and non-fatal warnings.
    """

    id: int
    invoice_number: str
    owner_id: int
    title: str
    status: InvoiceStatus

    client: Dict[str, Any]
    project: Optional[Dict[str, Any]]
    branding: Optional[Dict[str, Any]]

    issue_date: date
    due_date: date
    currency: str

    tax_rate: Decimal
    discount: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal

    line_items: List[LineItemResponse]
    payments: List[PaymentResponse]
    reminders: List[ReminderResponse]
    reminder_settings: ReminderSettingsResponse

    notes: Optional[str]
    terms: Optional[str]

    sent_at: Optional[datetime]
    viewed_at: Optional[datetime]
    paid_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    last_reminder_error: Optional[str]
    last_reminder_error_at: Optional[datetime]

    created_at: datetime
    updated_at: datetime

    # Computed
    is_mutable: bool
    warnings: List[str]
    version: int


class InvoiceSummaryResponse(BaseModel):
    total_invoices: int
    total_amount: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    overdue_count: int


class InvoiceListResponse(BaseModel):
    """
    Paginated list response for invoices.

    WHY: The summary covers every invoice matching the filters, not just
    the returned page.
    """

    items: List[InvoiceResponse]
    total: int
    skip: int
    limit: int
    summary: InvoiceSummaryResponse


class StatusBreakdownResponse(BaseModel):
    count: int
    amount: Decimal


class InvoiceStatsResponse(BaseModel):
    """Invoice statistics for a trailing period."""

    period_days: int
    total_invoices: int
    total_amount: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    average_amount: Decimal
    status_breakdown: Dict[str, StatusBreakdownResponse]


class PaymentResultResponse(BaseModel):
    invoice: InvoiceResponse
    payment: PaymentResponse
    duplicate: bool


class ReminderCandidateResponse(BaseModel):
    reminder_type: ReminderType
    offset_days: int
    scheduled_for: date


class ReminderRecordResponse(BaseModel):
    invoice: InvoiceResponse
    reminder: ReminderResponse
    created: bool


class ReminderFailureResponse(ReminderCandidateResponse):
    error: str


class ReminderDispatchResponse(BaseModel):
    invoice: InvoiceResponse
    sent: List[ReminderCandidateResponse]
    failed: List[ReminderFailureResponse]
