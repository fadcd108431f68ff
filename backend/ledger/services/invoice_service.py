"""
Invoice Ledger Service.

WHAT: The operations that create and change invoices: line-item edits,
payments, lifecycle actions, reminder bookkeeping, listing and stats.

WHY: The service layer:
1. Serializes every mutation of one invoice behind a per-invoice lock
2. Runs the aggregate's consistency pass right before each write
3. Turns optimistic-locking conflicts into a bounded retry against a
   freshly loaded invoice, then into ConcurrentModificationError
4. Keeps route handlers thin

HOW: Every mutation is expressed as a small function applied to a loaded
Invoice. _apply_with_retry() loads, applies, recomputes and flushes;
on StaleDataError or IntegrityError it rolls back, reloads and applies
the same function again.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ledger.core.config import settings
from ledger.core.exceptions import (
    ConcurrentModificationError,
    InvalidStateTransitionError,
    InvoiceNotFoundError,
    InvoiceNotMutableError,
    ValidationError,
)
from ledger.dao.invoice import InvoiceDAO
from ledger.models.enums import (
    InvoiceStage,
    InvoiceStatus,
    LifecycleAction,
    PaymentMethod,
    ReminderType,
)
from ledger.models.invoice import Invoice, InvoicePayment, InvoiceReminder
from ledger.services.email import ReminderNotifier
from ledger.services.reminder_scheduler import ReminderCandidate, ReminderSettings
from ledger.services.totals import (
    CENT,
    ZERO,
    compute_totals,
    parse_money,
    parse_tax_rate,
)


logger = logging.getLogger(__name__)

Mutation = Callable[[Invoice, datetime], Tuple[Any, bool]]

UPDATABLE_FIELDS = {
    "title",
    "due_date",
    "tax_rate",
    "discount",
    "currency",
    "notes",
    "terms",
    "client",
    "project",
}
# Fields that change what the client owes; same editability rule as line items
AMOUNT_FIELDS = {"tax_rate", "discount", "currency", "client", "project"}
CLIENT_FIELDS = ("id", "name", "email", "company", "address")
REMINDER_SETTING_FIELDS = {"before_due_days", "on_due_date", "after_due_days"}


# ============================================================================
# Per-invoice locks
# ============================================================================

_invoice_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def get_invoice_lock(invoice_id: int) -> asyncio.Lock:
    """
    Get the in-process lock for an invoice.

    WHY: Weak values drop a lock as soon as nobody holds or waits on it,
    so the registry doesn't grow with every invoice ever touched.
    """
    lock = _invoice_locks.get(invoice_id)
    if lock is None:
        lock = asyncio.Lock()
        _invoice_locks[invoice_id] = lock
    return lock


# ============================================================================
# Result types
# ============================================================================


@dataclass
class PaymentResult:
    """Outcome of record_payment; duplicate=True means nothing changed."""

    invoice: Invoice
    payment: InvoicePayment
    duplicate: bool = False


@dataclass
class ReminderDispatchReport:
    """Reminders delivered and failed during one dispatch pass."""

    invoice: Invoice
    sent: List[ReminderCandidate] = field(default_factory=list)
    failed: List[Tuple[ReminderCandidate, str]] = field(default_factory=list)


@dataclass
class InvoiceSummary:
    """Totals across a filtered invoice list."""

    total_invoices: int = 0
    total_amount: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    overdue_count: int = 0


@dataclass
class InvoiceListResult:
    invoices: List[Invoice]
    summary: InvoiceSummary
    total: int


@dataclass
class StatusBreakdown:
    count: int = 0
    amount: Decimal = ZERO


@dataclass
class InvoiceStats:
    """Invoice statistics for a trailing period."""

    period_days: int
    total_invoices: int = 0
    total_amount: Decimal = ZERO
    total_paid: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    average_amount: Decimal = ZERO
    status_breakdown: Dict[str, StatusBreakdown] = field(default_factory=dict)


# ============================================================================
# Helpers
# ============================================================================


def _require_text(value: Optional[str], field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(message=f"{field_name} is required", field=field_name)
    return cleaned


def _client_snapshot(client: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Validate and copy the client details captured on the invoice."""
    if not client:
        raise ValidationError(message="Client details are required", field="client")
    snapshot = {key: client.get(key) for key in CLIENT_FIELDS if client.get(key) is not None}
    snapshot["name"] = _require_text(client.get("name"), "client.name")
    if "id" in snapshot:
        try:
            snapshot["id"] = int(snapshot["id"])
        except (TypeError, ValueError):
            raise ValidationError(message="client.id must be an integer", field="client.id")
        if snapshot["id"] < 1:
            raise ValidationError(message="client.id must be positive", field="client.id")
    return snapshot


def _branding_snapshot(branding: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    snapshot = {
        "company_name": settings.COMPANY_NAME,
        "company_email": settings.COMPANY_EMAIL,
    }
    snapshot.update({k: v for k, v in (branding or {}).items() if v is not None})
    return snapshot


def _summarize(invoices: Iterable[Invoice], now: datetime) -> InvoiceSummary:
    summary = InvoiceSummary()
    for invoice in invoices:
        status = invoice.status_at(now)
        summary.total_invoices += 1
        summary.total_amount += invoice.total_amount
        summary.total_paid += invoice.amount_paid
        if status != InvoiceStatus.CANCELLED and invoice.amount_due > 0:
            summary.total_outstanding += invoice.amount_due
        if status == InvoiceStatus.OVERDUE:
            summary.overdue_count += 1
    return summary


class InvoiceLedgerService:
    """
    Service for invoice ledger operations.

    WHAT: Owner-scoped operations on the Invoice aggregate.

    WHY: Invoices receive edits from their owner, payment events from
    processors and reminder bookkeeping from the scheduler, possibly at
    the same time. Funnelling all of them through one service gives one
    place to serialize, recompute and retry.

    HOW: Coordinates InvoiceDAO and the aggregate's own methods. The
    clock is injectable so overdue and reminder behaviour can be tested
    at fixed points in time.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[ReminderNotifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize InvoiceLedgerService.

        Args:
            session: Async database session
            notifier: Reminder notifier (created on first dispatch if omitted)
            clock: Returns the current UTC time (defaults to datetime.utcnow)
        """
        self.session = session
        self.invoice_dao = InvoiceDAO(session)
        self._notifier = notifier
        self._clock = clock or datetime.utcnow

    def now(self) -> datetime:
        return self._clock()

    @property
    def notifier(self) -> ReminderNotifier:
        if self._notifier is None:
            self._notifier = ReminderNotifier()
        return self._notifier

    # ------------------------------------------------------------------
    # Load / save
    # ------------------------------------------------------------------

    async def _get_owned(self, owner_id: int, invoice_id: int, refresh: bool = False) -> Invoice:
        invoice = await self.invoice_dao.get_by_id_and_owner(invoice_id, owner_id, refresh=refresh)
        if not invoice:
            raise InvoiceNotFoundError(invoice_id=invoice_id)
        return invoice

    async def _save(self, invoice: Invoice, now: datetime) -> None:
        """Consistency pass, then write."""
        invoice.recompute(now)
        # Touch the row so child-only changes still bump the version
        invoice.updated_at = now
        flag_modified(invoice, "updated_at")
        await self.session.flush()

    async def _apply_with_retry(
        self,
        owner_id: int,
        invoice_id: int,
        mutation: Mutation,
        operation: str,
        expected_version: Optional[int] = None,
        invoice: Optional[Invoice] = None,
    ) -> Tuple[Invoice, Any]:
        """
        Apply a mutation and persist it, retrying on write conflicts.

        WHAT: load -> version check -> mutate -> recompute -> flush.

        WHY: A StaleDataError means another process wrote the invoice after
        we loaded it; an IntegrityError means it inserted a payment reference
        or reminder record we were about to insert. In both cases the right
        move is to apply the same change to the latest state.

        Args:
            owner_id: Owner of the invoice
            invoice_id: Invoice to change
            mutation: fn(invoice, now) -> (result, changed)
            operation: Name used in logs
            expected_version: Reject with 409 unless the stored version matches
            invoice: Already loaded invoice to use for the first attempt

        Returns:
            (invoice, result)

        Raises:
            ConcurrentModificationError: Version mismatch or retries exhausted
        """
        attempt = 0
        while True:
            if invoice is None:
                invoice = await self._get_owned(owner_id, invoice_id, refresh=attempt > 0)

            if expected_version is not None and invoice.version != expected_version:
                raise ConcurrentModificationError(
                    invoice_id=invoice_id,
                    expected_version=expected_version,
                    current_version=invoice.version,
                )

            now = self.now()
            result, changed = mutation(invoice, now)
            if not changed:
                return invoice, result

            try:
                await self._save(invoice, now)
                return invoice, result
            except (StaleDataError, IntegrityError) as e:
                await self.session.rollback()
                invoice = None
                attempt += 1
                if attempt > settings.MAX_CONFLICT_RETRIES:
                    logger.error(
                        f"Giving up on {operation} for invoice {invoice_id} after {attempt} conflicts",
                        extra={"invoice_id": invoice_id, "operation": operation},
                    )
                    raise ConcurrentModificationError(
                        invoice_id=invoice_id,
                        operation=operation,
                        attempts=attempt,
                    ) from e
                logger.warning(
                    f"Write conflict on invoice {invoice_id} during {operation}, "
                    f"retrying ({attempt}/{settings.MAX_CONFLICT_RETRIES})",
                    extra={
                        "invoice_id": invoice_id,
                        "operation": operation,
                        "error": e.__class__.__name__,
                    },
                )

    async def _mutate(
        self,
        owner_id: int,
        invoice_id: int,
        mutation: Mutation,
        operation: str,
        expected_version: Optional[int] = None,
    ) -> Tuple[Invoice, Any]:
        async with get_invoice_lock(invoice_id):
            return await self._apply_with_retry(
                owner_id,
                invoice_id,
                mutation,
                operation=operation,
                expected_version=expected_version,
            )

    # ------------------------------------------------------------------
    # Create / read / delete
    # ------------------------------------------------------------------

    async def create_invoice(
        self,
        owner_id: int,
        title: str,
        client: Mapping[str, Any],
        line_items: Optional[Iterable[Mapping[str, Any]]] = None,
        due_date: Optional[date] = None,
        issue_date: Optional[date] = None,
        tax_rate: Any = 0,
        discount: Any = 0,
        currency: Optional[str] = None,
        reminder_settings: Optional[Mapping[str, Any]] = None,
        project: Optional[Mapping[str, Any]] = None,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
        branding: Optional[Mapping[str, Any]] = None,
    ) -> Invoice:
        """
        Create a draft invoice.

        WHAT: Builds the aggregate in memory, validates it, recomputes and
        persists it with the next INV-YYYY-NNNN number.

        Args:
            owner_id: Invoice owner
            title: Invoice title
            client: Client snapshot (name required; email, company, address)
            line_items: Iterable of {description, quantity, rate}
            due_date: Defaults to issue_date + DEFAULT_PAYMENT_TERMS_DAYS
            issue_date: Defaults to today
            tax_rate: Percentage, 0-100
            discount: Absolute amount, >= 0
            currency: Defaults to DEFAULT_CURRENCY
            reminder_settings: Defaults to the configured cadence
            project: Optional project snapshot {id, title}
            notes: Free text
            terms: Free text
            branding: Branding snapshot merged over company defaults

        Returns:
            The created Invoice in draft

        Raises:
            ValidationError: Invalid field
            LineItemValidationError: Invalid line item
            ConcurrentModificationError: Invoice number taken concurrently
        """
        now = self.now()
        issue = issue_date or now.date()
        due = due_date or issue + timedelta(days=settings.DEFAULT_PAYMENT_TERMS_DAYS)
        if due < issue:
            raise ValidationError(
                message="Due date cannot be before the issue date",
                field="due_date",
            )

        cadence = ReminderSettings.from_dict(
            {**settings.default_reminder_settings, **dict(reminder_settings or {})}
        )
        sequence = await self.invoice_dao.get_next_invoice_number_sequence(
            issue.year, settings.INVOICE_NUMBER_PREFIX
        )

        invoice = Invoice(
            invoice_number=Invoice.generate_invoice_number(
                issue.year, sequence, settings.INVOICE_NUMBER_PREFIX
            ),
            owner_id=owner_id,
            title=_require_text(title, "title"),
            client=_client_snapshot(client),
            project=dict(project) if project else None,
            branding=_branding_snapshot(branding),
            issue_date=issue,
            due_date=due,
            currency=(currency or settings.DEFAULT_CURRENCY).upper(),
            tax_rate=parse_tax_rate(tax_rate),
            discount=parse_money(discount, "discount"),
            stage=InvoiceStage.DRAFT,
            status=InvoiceStatus.DRAFT,
            discount_clamped=False,
            reminder_settings=cadence.to_dict(),
            notes=notes,
            terms=terms,
            created_at=now,
            updated_at=now,
        )
        invoice.replace_line_items(line_items or [], now=now)
        invoice.recompute(now)

        try:
            await self.invoice_dao.add(invoice)
        except IntegrityError as e:
            raise ConcurrentModificationError(
                message="Invoice number was taken concurrently, retry",
                invoice_number=invoice.invoice_number,
            ) from e

        logger.info(
            f"Invoice {invoice.invoice_number} created for owner {owner_id}",
            extra={
                "invoice_id": invoice.id,
                "owner_id": owner_id,
                "total_amount": str(invoice.total_amount),
            },
        )
        return invoice

    async def get_invoice(self, owner_id: int, invoice_id: int) -> Invoice:
        """
        Get an invoice.

        Raises:
            InvoiceNotFoundError: Missing or owned by someone else
        """
        return await self._get_owned(owner_id, invoice_id)

    async def delete_invoice(self, owner_id: int, invoice_id: int) -> None:
        """
        Delete a draft invoice.

        WHY: Anything the client has seen, or any invoice with money against
        it, is a financial record; those are cancelled, not deleted.

        Raises:
            InvalidStateTransitionError: Invoice is not a draft without payments
        """
        async with get_invoice_lock(invoice_id):
            invoice = await self._get_owned(owner_id, invoice_id)
            if invoice.current_stage != InvoiceStage.DRAFT or invoice.payments:
                raise InvalidStateTransitionError(
                    message="Only draft invoices without payments can be deleted; cancel it instead",
                    current_state=invoice.current_status.value,
                    requested_action="delete",
                )
            await self.invoice_dao.delete(invoice)

        logger.info(
            f"Invoice {invoice.invoice_number} deleted",
            extra={"invoice_id": invoice_id, "owner_id": owner_id},
        )

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    async def update_line_items(
        self,
        owner_id: int,
        invoice_id: int,
        items: Iterable[Mapping[str, Any]],
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """
        Replace an invoice's line items.

        Raises:
            InvoiceNotMutableError: Not in draft/sent, or payments recorded
            LineItemValidationError: Invalid item (nothing is applied)
        """
        items = [dict(item) for item in items]

        def apply(invoice: Invoice, now: datetime):
            invoice.replace_line_items(items, now=now)
            return None, True

        invoice, _ = await self._mutate(
            owner_id, invoice_id, apply, "update_line_items", expected_version
        )
        return invoice

    async def update_invoice(
        self,
        owner_id: int,
        invoice_id: int,
        changes: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """
        Update invoice fields.

        WHAT: title, due_date, notes and terms change on any invoice that
        isn't cancelled. tax_rate, discount, client and project follow the
        line-item editability rule; currency changes only on drafts.

        Raises:
            ValidationError: Unknown field or invalid value
            InvoiceNotMutableError: Field can no longer change
        """
        changes = dict(changes)
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                message=f"Fields cannot be updated: {', '.join(sorted(unknown))}",
                field="fields",
            )

        def apply(invoice: Invoice, now: datetime):
            if not changes:
                return None, False
            if invoice.current_stage == InvoiceStage.CANCELLED:
                raise InvoiceNotMutableError(
                    invoice_id=invoice.id,
                    current_state=InvoiceStatus.CANCELLED.value,
                )
            current = invoice.status_at(now)
            if AMOUNT_FIELDS & set(changes) and not invoice.is_mutable_at(now):
                raise InvoiceNotMutableError(
                    invoice_id=invoice.id,
                    current_state=current.value,
                    has_payments=bool(invoice.payments),
                )
            if "currency" in changes and current != InvoiceStatus.DRAFT:
                raise InvoiceNotMutableError(
                    message="Currency can only change while the invoice is a draft",
                    invoice_id=invoice.id,
                    current_state=current.value,
                )

            values = dict(changes)
            if "title" in values:
                values["title"] = _require_text(values["title"], "title")
            if "currency" in values:
                values["currency"] = _require_text(values["currency"], "currency").upper()
            if "client" in values:
                values["client"] = _client_snapshot(values["client"])
            if "project" in values:
                values["project"] = dict(values["project"]) if values["project"] else None
            if "due_date" in values:
                if values["due_date"] is None or values["due_date"] < invoice.issue_date:
                    raise ValidationError(
                        message="Due date cannot be before the issue date",
                        field="due_date",
                    )
            if "tax_rate" in values:
                values["tax_rate"] = parse_tax_rate(values["tax_rate"])
            if "discount" in values:
                values["discount"] = parse_money(values["discount"], "discount")

            # Validate the new tax/discount pair before touching the invoice
            compute_totals(
                invoice.subtotal,
                values.get("tax_rate", invoice.tax_rate),
                values.get("discount", invoice.discount),
            )

            for name, value in values.items():
                setattr(invoice, name, value)
            return None, True

        invoice, _ = await self._mutate(
            owner_id, invoice_id, apply, "update_invoice", expected_version
        )
        return invoice

    async def update_reminder_settings(
        self,
        owner_id: int,
        invoice_id: int,
        reminder_settings: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """
        Change the reminder cadence of a non-cancelled invoice.

        WHY: Omitted keys keep their current value. Already-sent reminders
        stay in the log, so shrinking and re-growing the offsets never
        re-sends a reminder.
        """
        provided = {k: v for k, v in dict(reminder_settings).items() if v is not None}
        unknown = set(provided) - REMINDER_SETTING_FIELDS
        if unknown:
            raise ValidationError(
                message=f"Unknown reminder settings: {', '.join(sorted(unknown))}",
                field="reminder_settings",
            )

        def apply(invoice: Invoice, now: datetime):
            if invoice.current_stage == InvoiceStage.CANCELLED:
                raise InvoiceNotMutableError(
                    message="Cancelled invoices don't send reminders",
                    invoice_id=invoice.id,
                    current_state=InvoiceStatus.CANCELLED.value,
                )
            merged = ReminderSettings.from_dict({**invoice.settings_snapshot.to_dict(), **provided})
            invoice.reminder_settings = merged.to_dict()
            return None, True

        invoice, _ = await self._mutate(
            owner_id, invoice_id, apply, "update_reminder_settings", expected_version
        )
        return invoice

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def record_payment(
        self,
        owner_id: int,
        invoice_id: int,
        amount: Any,
        payment_date: Optional[datetime] = None,
        payment_method: Any = PaymentMethod.BANK_TRANSFER,
        transaction_reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PaymentResult:
        """
        Record a payment against an invoice.

        WHAT: Appends to the payment ledger and recomputes balances/status.

        WHY: Payment events can be re-delivered. A transaction reference
        that was already recorded is acknowledged with duplicate=True and
        nothing changes.

        Returns:
            PaymentResult(invoice, payment, duplicate)

        Raises:
            PaymentRejectedError: Non-positive amount or cancelled invoice
        """

        def apply(invoice: Invoice, now: datetime):
            payment, duplicate = invoice.record_payment(
                amount=amount,
                payment_date=payment_date,
                payment_method=payment_method,
                transaction_reference=transaction_reference,
                notes=notes,
                now=now,
            )
            return (payment, duplicate), not duplicate

        invoice, (payment, duplicate) = await self._mutate(
            owner_id, invoice_id, apply, "record_payment"
        )

        if duplicate:
            logger.info(
                f"Duplicate payment ignored on invoice {invoice.invoice_number}",
                extra={
                    "invoice_id": invoice.id,
                    "payment_id": payment.id,
                    "transaction_reference": payment.transaction_reference,
                },
            )
        else:
            logger.info(
                f"Payment of {payment.amount} recorded on invoice {invoice.invoice_number}",
                extra={
                    "invoice_id": invoice.id,
                    "payment_id": payment.id,
                    "amount": str(payment.amount),
                    "payment_method": PaymentMethod(payment.payment_method).value,
                    "transaction_reference": payment.transaction_reference,
                    "amount_due": str(invoice.amount_due),
                    "status": invoice.current_status.value,
                },
            )

        return PaymentResult(invoice=invoice, payment=payment, duplicate=duplicate)

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    async def _apply_action(
        self,
        owner_id: int,
        invoice_id: int,
        action: LifecycleAction,
        expected_version: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Invoice:
        def apply(invoice: Invoice, now: datetime):
            invoice.apply_action(action, now=now, reason=reason)
            return None, True

        invoice, _ = await self._mutate(
            owner_id, invoice_id, apply, action.value, expected_version
        )
        logger.info(
            f"Invoice {invoice.invoice_number}: {action.value} -> {invoice.current_status.value}",
            extra={
                "invoice_id": invoice.id,
                "action": action.value,
                "status": invoice.current_status.value,
            },
        )
        return invoice

    async def mark_sent(
        self,
        owner_id: int,
        invoice_id: int,
        expected_version: Optional[int] = None,
        notify_client: bool = False,
    ) -> Invoice:
        """
        Mark an invoice as sent.

        WHY: Re-sending keeps the stage and refreshes sent_at. When
        notify_client is set the invoice email goes out after the state
        change; a delivery failure is logged and does not undo the send.

        Raises:
            InvalidStateTransitionError: Invoice is cancelled
        """
        invoice = await self._apply_action(owner_id, invoice_id, LifecycleAction.SEND, expected_version)
        if notify_client:
            result = await self.notifier.notify_sent(invoice)
            if not result.success:
                logger.warning(
                    f"Invoice {invoice.invoice_number} marked sent but email failed: {result.error}",
                    extra={"invoice_id": invoice.id, "error": result.error},
                )
        return invoice

    async def mark_viewed(
        self,
        owner_id: int,
        invoice_id: int,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """Record that the client opened the invoice (viewed_at is set once)."""
        return await self._apply_action(owner_id, invoice_id, LifecycleAction.VIEW, expected_version)

    async def cancel(
        self,
        owner_id: int,
        invoice_id: int,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Invoice:
        """
        Cancel an invoice.

        Raises:
            InvalidStateTransitionError: Invoice is paid or already cancelled
        """
        return await self._apply_action(
            owner_id, invoice_id, LifecycleAction.CANCEL, expected_version, reason=reason
        )

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def compute_due_reminders(
        self,
        owner_id: int,
        invoice_id: int,
        now: Optional[datetime] = None,
    ) -> List[ReminderCandidate]:
        """List reminders the invoice is owed at `now` (defaults to the service clock)."""
        invoice = await self._get_owned(owner_id, invoice_id)
        return invoice.due_reminders(now or self.now())

    async def record_reminder_sent(
        self,
        owner_id: int,
        invoice_id: int,
        reminder_type: Any,
        offset_days: int = 0,
        sent_by: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> Tuple[Invoice, InvoiceReminder, bool]:
        """
        Record that a reminder was dispatched.

        WHY: Idempotent: recording the same (type, offset) twice returns the
        existing record with created=False.

        Returns:
            (invoice, reminder, created)

        Raises:
            InvalidStateTransitionError: Invoice is cancelled
        """

        def apply(invoice: Invoice, now: datetime):
            if invoice.current_stage == InvoiceStage.CANCELLED:
                raise InvalidStateTransitionError(
                    message="Cannot record a reminder on a cancelled invoice",
                    current_state=InvoiceStatus.CANCELLED.value,
                    requested_action="record_reminder",
                )
            reminder, created = invoice.record_reminder(
                reminder_type,
                offset_days=offset_days,
                sent_by=sent_by,
                sent_at=sent_at or now,
            )
            return (reminder, created), created

        invoice, (reminder, created) = await self._mutate(
            owner_id, invoice_id, apply, "record_reminder"
        )
        if created:
            logger.info(
                f"Reminder {ReminderType(reminder.reminder_type).value}/{reminder.offset_days} "
                f"recorded on invoice {invoice.invoice_number}",
                extra={"invoice_id": invoice.id, "sent_by": sent_by},
            )
        return invoice, reminder, created

    async def dispatch_due_reminders(
        self,
        owner_id: int,
        invoice_id: int,
        sent_by: Optional[str] = None,
    ) -> ReminderDispatchReport:
        """
        Deliver every reminder the invoice is owed and record the outcome.

        WHAT: Under the invoice lock: compute candidates from the stored
        sent log, hand each to the notifier, then record the delivered ones
        (and the last failure) in a single write.

        WHY: Delivery happens once. If the write conflicts, only the
        recording is re-applied to the fresh invoice; nothing is re-sent.
        Failed reminders aren't recorded, so the next sweep picks them up.

        Returns:
            ReminderDispatchReport with sent and failed candidates
        """
        sent_by = sent_by or settings.REMINDER_SENDER

        async with get_invoice_lock(invoice_id):
            invoice = await self._get_owned(owner_id, invoice_id)
            report = ReminderDispatchReport(invoice=invoice)

            for candidate in invoice.due_reminders(self.now()):
                result = await self.notifier.notify(invoice, candidate)
                if result.success:
                    report.sent.append(candidate)
                    logger.info(
                        f"Reminder {candidate.reminder_type.value}/{candidate.offset_days} "
                        f"sent for invoice {invoice.invoice_number}",
                        extra={
                            "invoice_id": invoice.id,
                            "reminder_type": candidate.reminder_type.value,
                            "offset_days": candidate.offset_days,
                            "message_id": result.message_id,
                        },
                    )
                else:
                    report.failed.append((candidate, result.error or "unknown error"))
                    logger.error(
                        f"Reminder {candidate.reminder_type.value}/{candidate.offset_days} "
                        f"failed for invoice {invoice.invoice_number}: {result.error}",
                        extra={
                            "invoice_id": invoice.id,
                            "reminder_type": candidate.reminder_type.value,
                            "offset_days": candidate.offset_days,
                            "error": result.error,
                        },
                    )

            def apply(invoice: Invoice, now: datetime):
                for candidate in report.sent:
                    invoice.record_reminder(
                        candidate.reminder_type,
                        offset_days=candidate.offset_days,
                        sent_by=sent_by,
                        sent_at=now,
                    )
                if report.failed:
                    candidate, error = report.failed[-1]
                    invoice.record_reminder_failure(
                        f"{candidate.reminder_type.value}/{candidate.offset_days}: {error}",
                        now=now,
                    )
                status_moved = invoice.status_at(now) != invoice.current_status
                return None, bool(report.sent or report.failed or status_moved)

            report.invoice, _ = await self._apply_with_retry(
                owner_id,
                invoice_id,
                apply,
                operation="dispatch_reminders",
                invoice=invoice,
            )

        return report

    # ------------------------------------------------------------------
    # Listing and stats
    # ------------------------------------------------------------------

    async def list_invoices(
        self,
        owner_id: int,
        status: Optional[Any] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        overdue_only: bool = False,
        client_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> InvoiceListResult:
        """
        List invoices with a summary.

        WHAT: Filters by derived status (as of now), issue_date range,
        client id and overdue-only. The summary covers every matching invoice, not just
        the returned page.

        Returns:
            InvoiceListResult(invoices, summary, total)
        """
        if from_date and to_date and from_date > to_date:
            raise ValidationError(message="from_date must be on or before to_date", field="from_date")

        wanted: Optional[InvoiceStatus] = None
        if status:
            try:
                wanted = InvoiceStatus(status)
            except ValueError:
                raise ValidationError(message=f"Unknown status: {status}", field="status")

        now = self.now()
        invoices = await self.invoice_dao.list_for_owner(
            owner_id, from_date=from_date, to_date=to_date, client_id=client_id
        )

        selected = []
        for invoice in invoices:
            current = invoice.status_at(now)
            if wanted is not None and current != wanted:
                continue
            if overdue_only and current != InvoiceStatus.OVERDUE:
                continue
            selected.append(invoice)

        return InvoiceListResult(
            invoices=selected[skip:skip + limit],
            summary=_summarize(selected, now),
            total=len(selected),
        )

    async def get_stats(self, owner_id: int, period_days: int = 30) -> InvoiceStats:
        """
        Invoice statistics for invoices created in the trailing period.

        Returns:
            InvoiceStats with totals, average amount and per-status breakdown
        """
        if period_days < 1:
            raise ValidationError(message="period_days must be at least 1", field="period_days")

        now = self.now()
        invoices = await self.invoice_dao.list_for_owner(
            owner_id, created_since=now - timedelta(days=period_days)
        )

        summary = _summarize(invoices, now)
        stats = InvoiceStats(
            period_days=period_days,
            total_invoices=summary.total_invoices,
            total_amount=summary.total_amount,
            total_paid=summary.total_paid,
            total_outstanding=summary.total_outstanding,
        )
        if summary.total_invoices:
            stats.average_amount = (summary.total_amount / summary.total_invoices).quantize(
                CENT, rounding=ROUND_HALF_UP
            )

        for invoice in invoices:
            bucket = stats.status_breakdown.setdefault(
                invoice.status_at(now).value, StatusBreakdown()
            )
            bucket.count += 1
            bucket.amount += invoice.total_amount

        return stats
