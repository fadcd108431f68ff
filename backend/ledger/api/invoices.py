"""
Invoice ledger API endpoints.

WHAT: RESTful API for invoice CRUD, payments, lifecycle actions and
reminder bookkeeping.

WHY: Invoices are critical for:
1. Billing clients for delivered work
2. Tracking what has been paid and what is still owed
3. Chasing late payments with scheduled reminders

HOW: FastAPI router with:
- Owner-scoped access (X-Owner-Id, see core/deps.py)
- Thin handlers delegating to InvoiceLedgerService
- Status in every response computed for the request time, so an invoice
  past its due date reads as overdue even before the sweep stores it
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ledger.core.deps import get_current_owner_id, get_ledger_service
from ledger.models.enums import InvoiceStatus
from ledger.models.invoice import Invoice
from ledger.schemas.invoice import (
    CancelRequest,
    InvoiceCreate,
    InvoiceListResponse,
    InvoiceResponse,
    InvoiceStatsResponse,
    InvoiceSummaryResponse,
    InvoiceUpdate,
    LifecycleRequest,
    LineItemResponse,
    LineItemsUpdate,
    PaymentCreate,
    PaymentResponse,
    PaymentResultResponse,
    ReminderCandidateResponse,
    ReminderDispatchResponse,
    ReminderFailureResponse,
    ReminderRecordCreate,
    ReminderRecordResponse,
    ReminderResponse,
    ReminderSettingsResponse,
    ReminderSettingsUpdate,
    SendRequest,
    StatusBreakdownResponse,
)
from ledger.services.invoice_service import InvoiceLedgerService
from ledger.services.reminder_scheduler import ReminderCandidate


router = APIRouter(prefix="/invoices", tags=["invoices"])


def _invoice_to_response(invoice: Invoice, now: datetime) -> InvoiceResponse:
    """
    Convert Invoice model to InvoiceResponse schema.

    WHY: Centralized conversion ensures consistent response format and
    derives the status for `now` instead of echoing the stored value.

    Args:
        invoice: Invoice model instance
        now: Time the status is evaluated at

    Returns:
        InvoiceResponse schema instance
    """
    return InvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        owner_id=invoice.owner_id,
        title=invoice.title,
        status=invoice.status_at(now),
        client=invoice.client,
        project=invoice.project,
        branding=invoice.branding,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        currency=invoice.currency,
        tax_rate=invoice.tax_rate,
        discount=invoice.discount,
        subtotal=invoice.subtotal,
        tax_amount=invoice.tax_amount,
        total_amount=invoice.total_amount,
        amount_paid=invoice.amount_paid,
        amount_due=invoice.amount_due,
        line_items=[LineItemResponse.model_validate(item) for item in invoice.line_items],
        payments=[PaymentResponse.model_validate(payment) for payment in invoice.payments],
        reminders=[ReminderResponse.model_validate(reminder) for reminder in invoice.reminders],
        reminder_settings=ReminderSettingsResponse(**invoice.settings_snapshot.to_dict()),
        notes=invoice.notes,
        terms=invoice.terms,
        sent_at=invoice.sent_at,
        viewed_at=invoice.viewed_at,
        paid_at=invoice.paid_at,
        cancelled_at=invoice.cancelled_at,
        cancellation_reason=invoice.cancellation_reason,
        last_reminder_error=invoice.last_reminder_error,
        last_reminder_error_at=invoice.last_reminder_error_at,
        created_at=invoice.created_at,
        updated_at=invoice.updated_at,
        is_mutable=invoice.is_mutable_at(now),
        warnings=invoice.warnings,
        version=invoice.version,
    )


def _candidate_to_response(candidate: ReminderCandidate) -> ReminderCandidateResponse:
    return ReminderCandidateResponse(
        reminder_type=candidate.reminder_type,
        offset_days=candidate.offset_days,
        scheduled_for=candidate.scheduled_for,
    )


# ============================================================================
# Invoice CRUD Endpoints
# ============================================================================


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create invoice",
    description="Create a draft invoice with line items and reminder cadence",
)
async def create_invoice(
    data: InvoiceCreate,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceResponse:
    """
    Create a new invoice.

    WHAT: Creates an invoice in DRAFT status with totals already computed.

    Raises:
        ValidationError (400): Invalid fields or due date before issue date
        LineItemValidationError (400): Blank description, negative quantity/rate
    """
    invoice = await service.create_invoice(
        owner_id=owner_id,
        title=data.title,
        client=data.client.model_dump(),
        line_items=[item.model_dump() for item in data.line_items],
        project=data.project.model_dump() if data.project else None,
        issue_date=data.issue_date,
        due_date=data.due_date,
        currency=data.currency,
        tax_rate=data.tax_rate,
        discount=data.discount,
        reminder_settings=(
            data.reminder_settings.model_dump(exclude_none=True)
            if data.reminder_settings
            else None
        ),
        notes=data.notes,
        terms=data.terms,
        branding=data.branding,
    )
    return _invoice_to_response(invoice, service.now())


@router.get(
    "",
    response_model=InvoiceListResponse,
    status_code=status.HTTP_200_OK,
    summary="List invoices",
    description="Get a filtered, paginated list of invoices with a summary",
)
async def list_invoices(
    skip: int = Query(default=0, ge=0, description="Number of items to skip"),
    limit: int = Query(default=20, ge=1, le=100, description="Maximum items to return"),
    status_filter: Optional[InvoiceStatus] = Query(
        default=None,
        alias="status",
        description="Filter by invoice status",
    ),
    from_date: Optional[date] = Query(default=None, description="Issued on or after"),
    to_date: Optional[date] = Query(default=None, description="Issued on or before"),
    overdue_only: bool = Query(default=False, description="Only return overdue invoices"),
    client_id: Optional[int] = Query(default=None, ge=1, description="Filter by client id"),
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceListResponse:
    """
    List invoices for the current owner.

    WHY: The summary (totals, outstanding, overdue count) covers every
    invoice matching the filters, so dashboards don't need a second call.
    """
    result = await service.list_invoices(
        owner_id,
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        overdue_only=overdue_only,
        client_id=client_id,
        skip=skip,
        limit=limit,
    )
    now = service.now()
    summary = result.summary

    return InvoiceListResponse(
        items=[_invoice_to_response(invoice, now) for invoice in result.invoices],
        total=result.total,
        skip=skip,
        limit=limit,
        summary=InvoiceSummaryResponse(
            total_invoices=summary.total_invoices,
            total_amount=summary.total_amount,
            total_paid=summary.total_paid,
            total_outstanding=summary.total_outstanding,
            overdue_count=summary.overdue_count,
        ),
    )


@router.get(
    "/stats",
    response_model=InvoiceStatsResponse,
    status_code=status.HTTP_200_OK,
    summary="Get invoice statistics",
    description="Aggregated invoice statistics for a trailing period",
)
async def get_invoice_stats(
    period_days: int = Query(default=30, ge=1, le=3650, description="Trailing period in days"),
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceStatsResponse:
    """Get invoice statistics for dashboard widgets."""
    stats = await service.get_stats(owner_id, period_days=period_days)

    return InvoiceStatsResponse(
        period_days=stats.period_days,
        total_invoices=stats.total_invoices,
        total_amount=stats.total_amount,
        total_paid=stats.total_paid,
        total_outstanding=stats.total_outstanding,
        average_amount=stats.average_amount,
        status_breakdown={
            name: StatusBreakdownResponse(count=bucket.count, amount=bucket.amount)
            for name, bucket in stats.status_breakdown.items()
        },
    )


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Get invoice",
    description="Get invoice details by ID",
)
async def get_invoice(
    invoice_id: int,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceResponse:
    """
    Get invoice by ID.

    Raises:
        InvoiceNotFoundError (404): Missing or owned by someone else
    """
    invoice = await service.get_invoice(owner_id, invoice_id)
    return _invoice_to_response(invoice, service.now())


@router.patch(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Update invoice",
    description="Update invoice fields; amount fields only while editable",
)
async def update_invoice(
    invoice_id: int,
    data: InvoiceUpdate,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceResponse:
    """
    Update invoice details.

    Raises:
        InvoiceNotMutableError (400): Amount field on a non-editable invoice
        ConcurrentModificationError (409): expected_version is stale
    """
    changes = data.model_dump(exclude_unset=True)
    expected_version = changes.pop("expected_version", None)

    invoice = await service.update_invoice(
        owner_id, invoice_id, changes, expected_version=expected_version
    )
    return _invoice_to_response(invoice, service.now())


@router.delete(
    "/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete invoice",
    description="Delete a draft invoice without payments",
)
async def delete_invoice(
    invoice_id: int,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> None:
    """
    Delete an invoice.

    Constraint: Only drafts can be deleted. Sent invoices must be cancelled
    instead.

    Raises:
        InvalidStateTransitionError (400): Invoice is not a draft
    """
    await service.delete_invoice(owner_id, invoice_id)


@router.put(
    "/{invoice_id}/line-items",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Replace line items",
    description="Replace every line item and recompute totals",
)
async def replace_line_items(
    invoice_id: int,
    data: LineItemsUpdate,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceResponse:
    """
    Replace an invoice's line items.

    WHY: All items are validated first, so a bad entry leaves the invoice
    untouched.

    Raises:
        InvoiceNotMutableError (400): Invoice viewed, paid into or cancelled
        LineItemValidationError (400): Invalid item
    """
    invoice = await service.update_line_items(
        owner_id,
        invoice_id,
        [item.model_dump() for item in data.items],
        expected_version=data.expected_version,
    )
    return _invoice_to_response(invoice, service.now())


@router.put(
    "/{invoice_id}/reminder-settings",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Update reminder settings",
)
async def update_reminder_settings(
    invoice_id: int,
    data: ReminderSettingsUpdate,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceResponse:
    invoice = await service.update_reminder_settings(
        owner_id,
        invoice_id,
        data.model_dump(exclude_none=True, exclude={"expected_version"}),
        expected_version=data.expected_version,
    )
    return _invoice_to_response(invoice, service.now())


# ============================================================================
# Invoice Workflow Endpoints
# ============================================================================


@router.post(
    "/{invoice_id}/send",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Send invoice",
    description="Mark the invoice as sent, optionally emailing the client",
)
async def send_invoice(
    invoice_id: int,
    data: Optional[SendRequest] = None,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceResponse:
    """
    Send an invoice.

    WHAT: draft -> sent. Re-sending a sent or viewed invoice keeps its
    stage and refreshes sent_at.

    Raises:
        InvalidStateTransitionError (400): Invoice is cancelled
    """
    data = data or SendRequest()
    invoice = await service.mark_sent(
        owner_id,
        invoice_id,
        expected_version=data.expected_version,
        notify_client=data.notify_client,
    )
    return _invoice_to_response(invoice, service.now())


@router.post(
    "/{invoice_id}/view",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark invoice viewed",
    description="Record that the client opened the invoice",
)
async def view_invoice(
    invoice_id: int,
    data: Optional[LifecycleRequest] = None,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceResponse:
    data = data or LifecycleRequest()
    invoice = await service.mark_viewed(
        owner_id, invoice_id, expected_version=data.expected_version
    )
    return _invoice_to_response(invoice, service.now())


@router.post(
    "/{invoice_id}/cancel",
    response_model=InvoiceResponse,
    status_code=status.HTTP_200_OK,
    summary="Cancel invoice",
    description="Cancel an unpaid invoice",
)
async def cancel_invoice(
    invoice_id: int,
    data: Optional[CancelRequest] = None,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> InvoiceResponse:
    """
    Cancel an invoice.

    Raises:
        InvalidStateTransitionError (400): Invoice is paid or already cancelled
    """
    data = data or CancelRequest()
    invoice = await service.cancel(
        owner_id,
        invoice_id,
        reason=data.reason,
        expected_version=data.expected_version,
    )
    return _invoice_to_response(invoice, service.now())


# ============================================================================
# Payment Endpoints
# ============================================================================


@router.post(
    "/{invoice_id}/payments",
    response_model=PaymentResultResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record payment",
    description="Record a payment; a repeated transaction reference is acknowledged, not re-applied",
)
async def record_payment(
    invoice_id: int,
    data: PaymentCreate,
    response: Response,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> PaymentResultResponse:
    """
    Record a payment against an invoice.

    WHAT: Appends to the payment ledger and recomputes amount paid, amount
    due and status. Answers 200 instead of 201 for a duplicate reference.

    Raises:
        PaymentRejectedError (400): Non-positive amount or cancelled invoice
    """
    result = await service.record_payment(
        owner_id,
        invoice_id,
        amount=data.amount,
        payment_date=data.payment_date,
        payment_method=data.payment_method,
        transaction_reference=data.transaction_reference,
        notes=data.notes,
    )
    if result.duplicate:
        response.status_code = status.HTTP_200_OK

    return PaymentResultResponse(
        invoice=_invoice_to_response(result.invoice, service.now()),
        payment=PaymentResponse.model_validate(result.payment),
        duplicate=result.duplicate,
    )


# ============================================================================
# Reminder Endpoints
# ============================================================================


@router.get(
    "/{invoice_id}/reminders/due",
    response_model=list[ReminderCandidateResponse],
    status_code=status.HTTP_200_OK,
    summary="List due reminders",
    description="Reminders the invoice is owed right now and that haven't been sent",
)
async def list_due_reminders(
    invoice_id: int,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> list[ReminderCandidateResponse]:
    candidates = await service.compute_due_reminders(owner_id, invoice_id)
    return [_candidate_to_response(candidate) for candidate in candidates]


@router.post(
    "/{invoice_id}/reminders",
    response_model=ReminderRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record reminder",
    description="Record a reminder dispatched outside the built-in sweep",
)
async def record_reminder(
    invoice_id: int,
    data: ReminderRecordCreate,
    response: Response,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> ReminderRecordResponse:
    """
    Record a sent reminder.

    WHY: Lets an external dispatcher share the sent log with the sweep, so
    neither sends a reminder the other already sent. Re-recording returns
    the existing record with 200.
    """
    invoice, reminder, created = await service.record_reminder_sent(
        owner_id,
        invoice_id,
        data.reminder_type,
        offset_days=data.offset_days,
        sent_by=data.sent_by or f"owner:{owner_id}",
    )
    if not created:
        response.status_code = status.HTTP_200_OK

    return ReminderRecordResponse(
        invoice=_invoice_to_response(invoice, service.now()),
        reminder=ReminderResponse.model_validate(reminder),
        created=created,
    )


@router.post(
    "/{invoice_id}/reminders/dispatch",
    response_model=ReminderDispatchResponse,
    status_code=status.HTTP_200_OK,
    summary="Dispatch due reminders",
    description="Send every reminder the invoice is owed now and record the outcome",
)
async def dispatch_reminders(
    invoice_id: int,
    owner_id: int = Depends(get_current_owner_id),
    service: InvoiceLedgerService = Depends(get_ledger_service),
) -> ReminderDispatchResponse:
    """
    Dispatch due reminders for one invoice immediately.

    WHY: Same path the background sweep takes, for owners who don't want
    to wait for the next sweep. Failed reminders are reported, not raised,
    and stay due for the next attempt.
    """
    report = await service.dispatch_due_reminders(owner_id, invoice_id)

    return ReminderDispatchResponse(
        invoice=_invoice_to_response(report.invoice, service.now()),
        sent=[_candidate_to_response(candidate) for candidate in report.sent],
        failed=[
            ReminderFailureResponse(
                reminder_type=candidate.reminder_type,
                offset_days=candidate.offset_days,
                scheduled_for=candidate.scheduled_for,
                error=error,
            )
            for candidate, error in report.failed
        ],
    )
