"""
Invoice aggregate for billing, payment tracking and reminders.

WHAT: SQLAlchemy models for an invoice and the records it owns: line
items, payments and sent reminders.

WHY: The invoice is the unit of consistency. Its derived fields
(subtotal, tax, total, amount paid, amount due, status) must agree with
its line items and payments after every mutation, no matter how many
edits or payment events arrive and in what order.

HOW: Uses SQLAlchemy 2.0 with:
- Child tables for line items, payments and reminders (selectin loaded,
  owned via delete-orphan cascade)
- JSON snapshots for client, project, branding and reminder settings
- A version counter (version_id_col) for optimistic concurrency
- recompute(now), called by the service layer right before every write,
  which re-derives every money field and the status from scratch
"""

import logging
from datetime import datetime, date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, relationship

from ledger.core.exceptions import (
    InvoiceNotMutableError,
    LineItemValidationError,
    PaymentRejectedError,
    ValidationError,
)
from ledger.models.base import Base, TimestampMixin
from ledger.models.enums import (
    InvoiceStage,
    InvoiceStatus,
    LifecycleAction,
    PaymentMethod,
    ReminderType,
)
from ledger.services.reminder_scheduler import (
    ReminderCandidate,
    ReminderSettings,
    compute_due_reminders,
)
from ledger.services.status_resolver import next_stage, resolve_status
from ledger.services.totals import (
    compute_subtotal,
    compute_totals,
    line_item_amount,
    summarize_payments,
    parse_money,
    validate_line_item,
)


logger = logging.getLogger(__name__)

MUTABLE_STATUSES = {InvoiceStatus.DRAFT, InvoiceStatus.SENT}
LINE_ITEM_FIELDS = {"description", "quantity", "rate"}

WARNING_DISCOUNT_EXCEEDS_TOTAL = "discount_exceeds_total"
WARNING_OVERPAID = "overpaid"


def _enum_column(enum_cls, name: str) -> SQLEnum:
    # WHY: native_enum=False stores the lowercase value as VARCHAR so the
    # same schema works on SQLite and PostgreSQL without CREATE TYPE
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda enum: [e.value for e in enum],
    )


class InvoiceLineItem(Base):
    """
    Billable line on an invoice.

    WHAT: description, quantity and rate with a derived amount.

    WHY: amount is stored (not computed on read) so the stored subtotal can
    always be checked against the stored items.
    """

    __tablename__ = "invoice_line_items"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    invoice_id: Mapped[int] = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Zero-based order of the item on the invoice",
    )
    description: Mapped[str] = Column(String(500), nullable=False)
    quantity: Mapped[Decimal] = Column(Numeric(12, 3), nullable=False, default=0)
    rate: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False, default=0)
    amount: Mapped[Decimal] = Column(
        Numeric(12, 2),
        nullable=False,
        default=0,
        comment="quantity x rate, rounded half up to cents",
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="line_items")

    def __repr__(self) -> str:
        return f"<InvoiceLineItem(position={self.position}, amount={self.amount})>"


class InvoicePayment(Base):
    """
    Payment recorded against an invoice.

    WHAT: One entry of the append-only payment ledger.

    WHY: Payments are immutable once recorded; amount_paid is always the sum
    of these rows. The (invoice_id, transaction_reference) unique constraint
    backs reference idempotency at the storage level.
    """

    __tablename__ = "invoice_payments"
    __table_args__ = (
        UniqueConstraint(
            "invoice_id",
            "transaction_reference",
            name="uq_invoice_payments_invoice_reference",
        ),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    invoice_id: Mapped[int] = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False)
    payment_date: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)
    payment_method: Mapped[PaymentMethod] = Column(
        _enum_column(PaymentMethod, "paymentmethod"),
        nullable=False,
        default=PaymentMethod.BANK_TRANSFER,
    )
    transaction_reference: Mapped[Optional[str]] = Column(
        String(255),
        nullable=True,
        comment="Processor/bank reference used for idempotency",
    )
    notes: Mapped[Optional[str]] = Column(Text, nullable=True)
    created_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="payments")

    def __repr__(self) -> str:
        return f"<InvoicePayment(id={self.id}, amount={self.amount}, ref={self.transaction_reference})>"


class InvoiceReminder(Base):
    """
    Record of a reminder that was actually dispatched.

    WHY: The sent log is the reminder scheduler's only memory. The unique
    (invoice_id, reminder_type, offset_days) constraint rejects a second
    record for the same cadence point even across processes.
    """

    __tablename__ = "invoice_reminders"
    __table_args__ = (
        UniqueConstraint(
            "invoice_id",
            "reminder_type",
            "offset_days",
            name="uq_invoice_reminders_invoice_type_offset",
        ),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    invoice_id: Mapped[int] = Column(
        Integer,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    reminder_type: Mapped[ReminderType] = Column(
        _enum_column(ReminderType, "remindertype"),
        nullable=False,
    )
    offset_days: Mapped[int] = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Post-due offset in days; 0 for pre_due and on_due",
    )
    sent_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)
    sent_by: Mapped[Optional[str]] = Column(String(255), nullable=True)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="reminders")

    @property
    def key(self) -> Tuple[ReminderType, int]:
        return (ReminderType(self.reminder_type), int(self.offset_days or 0))

    def __repr__(self) -> str:
        return f"<InvoiceReminder(type={self.reminder_type}, offset={self.offset_days})>"


class Invoice(Base, TimestampMixin):
    """
    Invoice aggregate root.

    WHAT: Represents an invoice with its line items, payments, sent
    reminders and reminder cadence.

    WHY: Every mutation goes through methods on this class so the invoice
    can enforce its own rules (editability, payment acceptance, lifecycle
    transitions) before anything is persisted.

    HOW: Money fields are Numeric columns holding Decimal values. Client,
    project and branding are JSON snapshots captured at invoice time, so a
    later edit to the client record doesn't rewrite history.

    Attributes:
        stage: Last explicit lifecycle stage (draft/sent/viewed/cancelled)
        status: Derived status, recomputed on every mutation
        discount_clamped: True when the discount exceeded subtotal + tax
        version: Optimistic concurrency counter
    """

    __tablename__ = "invoices"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)

    invoice_number: Mapped[str] = Column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique invoice number (e.g., INV-2024-0001)",
    )
    owner_id: Mapped[int] = Column(
        Integer,
        nullable=False,
        index=True,
        comment="Owner (freelancer) for access control",
    )
    title: Mapped[str] = Column(String(255), nullable=False)

    # Snapshots
    client: Mapped[Dict[str, Any]] = Column(
        JSON,
        nullable=False,
        comment="Client name/email/company/address at invoice time",
    )
    project: Mapped[Optional[Dict[str, Any]]] = Column(
        JSON,
        nullable=True,
        comment="Project id and title at invoice time",
    )
    branding: Mapped[Optional[Dict[str, Any]]] = Column(JSON, nullable=True)

    # Dates
    issue_date: Mapped[date] = Column(Date, nullable=False, default=date.today)
    due_date: Mapped[date] = Column(Date, nullable=False, index=True)

    # Money inputs
    currency: Mapped[str] = Column(String(3), nullable=False, default="USD")
    tax_rate: Mapped[Decimal] = Column(
        Numeric(7, 4),
        nullable=False,
        default=0,
        comment="Tax percentage, 0-100, kept to four decimal places",
    )
    discount: Mapped[Decimal] = Column(
        Numeric(12, 2),
        nullable=False,
        default=0,
        comment="Absolute discount amount",
    )

    # Derived money fields
    subtotal: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False, default=0)
    amount_due: Mapped[Decimal] = Column(
        Numeric(12, 2),
        nullable=False,
        default=0,
        comment="Negative when overpaid (credit owed to the client)",
    )
    discount_clamped: Mapped[bool] = Column(Boolean, nullable=False, default=False)

    # Lifecycle
    stage: Mapped[InvoiceStage] = Column(
        _enum_column(InvoiceStage, "invoicestage"),
        nullable=False,
        default=InvoiceStage.DRAFT,
    )
    status: Mapped[InvoiceStatus] = Column(
        _enum_column(InvoiceStatus, "invoicestatus"),
        nullable=False,
        default=InvoiceStatus.DRAFT,
        index=True,
        comment="Derived status",
    )
    sent_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    viewed_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = Column(
        DateTime,
        nullable=True,
        comment="Set once when payments first cover the total",
    )
    cancelled_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = Column(Text, nullable=True)

    # Reminders
    reminder_settings: Mapped[Dict[str, Any]] = Column(JSON, nullable=False)
    last_reminder_error: Mapped[Optional[str]] = Column(Text, nullable=True)
    last_reminder_error_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)

    # Free text
    notes: Mapped[Optional[str]] = Column(Text, nullable=True)
    terms: Mapped[Optional[str]] = Column(Text, nullable=True)

    version: Mapped[int] = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    line_items: Mapped[List[InvoiceLineItem]] = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position",
        lazy="selectin",
    )
    payments: Mapped[List[InvoicePayment]] = relationship(
        "InvoicePayment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoicePayment.id",
        lazy="selectin",
    )
    reminders: Mapped[List[InvoiceReminder]] = relationship(
        "InvoiceReminder",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceReminder.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status})>"

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    @property
    def current_status(self) -> InvoiceStatus:
        return InvoiceStatus(self.status) if self.status else InvoiceStatus.DRAFT

    @property
    def current_stage(self) -> InvoiceStage:
        return InvoiceStage(self.stage) if self.stage else InvoiceStage.DRAFT

    def status_at(self, now: Optional[datetime] = None) -> InvoiceStatus:
        """
        Status as of `now`, without modifying the invoice.

        WHY: Overdue depends on the clock. Readers get the status for the
        current time even when the stored value predates the due date.
        """
        return resolve_status(
            stage=self.current_stage,
            amount_paid=self.amount_paid,
            total_amount=self.total_amount,
            due_date=self.due_date,
            now=now or datetime.utcnow(),
        )

    @property
    def is_mutable(self) -> bool:
        """
        Check if line items and money inputs can still be edited.

        WHY: Once the client has viewed the invoice, money has been paid
        into it, or it was cancelled, the amounts are a financial record.

        Returns:
            True if the stored status is draft or sent and no payment is recorded
        """
        return self.current_status in MUTABLE_STATUSES and not self.payments

    def is_mutable_at(self, now: datetime) -> bool:
        """
        Same check as is_mutable, against the status as of `now`.

        WHY: A sent invoice becomes overdue when its due date passes, even
        if nothing has been written since. Writers must not see it as sent.
        """
        return self.status_at(now) in MUTABLE_STATUSES and not self.payments

    @property
    def warnings(self) -> List[str]:
        """Non-fatal conditions surfaced to readers."""
        result = []
        if self.discount_clamped:
            result.append(WARNING_DISCOUNT_EXCEEDS_TOTAL)
        if self.amount_due is not None and self.amount_due < 0:
            result.append(WARNING_OVERPAID)
        return result

    @property
    def settings_snapshot(self) -> ReminderSettings:
        return ReminderSettings.from_dict(self.reminder_settings)

    @property
    def sent_reminder_keys(self) -> List[Tuple[ReminderType, int]]:
        return [reminder.key for reminder in self.reminders]

    @classmethod
    def generate_invoice_number(cls, year: int, sequence: int, prefix: str = "INV") -> str:
        """
        Generate a human-readable invoice number.

        HOW: Format: INV-YYYY-NNNN where YYYY is the issue year and NNNN
        is the zero-padded sequence for that year.
        """
        return f"{prefix}-{year}-{sequence:04d}"

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def _ensure_mutable(self, now: Optional[datetime] = None) -> None:
        mutable = self.is_mutable if now is None else self.is_mutable_at(now)
        if not mutable:
            status = self.current_status if now is None else self.status_at(now)
            raise InvoiceNotMutableError(
                invoice_id=self.id,
                current_state=status.value,
                has_payments=bool(self.payments),
            )

    def _check_index(self, index: int) -> None:
        if not isinstance(index, int) or index < 0 or index >= len(self.line_items):
            raise LineItemValidationError(
                message=f"Line item index {index} is out of range",
                field="index",
                value=index,
            )

    def _refresh_subtotal(self) -> None:
        for position, item in enumerate(self.line_items):
            item.position = position
        self.subtotal = compute_subtotal(item.amount for item in self.line_items)

    def add_line_item(
        self,
        description: str,
        quantity: Any,
        rate: Any,
        now: Optional[datetime] = None,
    ) -> InvoiceLineItem:
        """
        Append a line item.

        Raises:
            InvoiceNotMutableError: Invoice can no longer be edited
            LineItemValidationError: Blank description or negative quantity/rate
        """
        self._ensure_mutable(now)
        description, quantity, rate = validate_line_item(description, quantity, rate)
        item = InvoiceLineItem(
            position=len(self.line_items),
            description=description,
            quantity=quantity,
            rate=rate,
            amount=line_item_amount(quantity, rate),
        )
        self.line_items.append(item)
        self._refresh_subtotal()
        return item

    def update_line_item(self, index: int, now: Optional[datetime] = None, **fields: Any) -> InvoiceLineItem:
        """
        Update description, quantity or rate of the item at `index`.

        Raises:
            LineItemValidationError: Bad index, unknown field or invalid value
        """
        self._ensure_mutable(now)
        self._check_index(index)

        unknown = set(fields) - LINE_ITEM_FIELDS
        if unknown:
            raise LineItemValidationError(
                message=f"Unknown line item fields: {', '.join(sorted(unknown))}",
                field="fields",
            )

        item = self.line_items[index]
        description, quantity, rate = validate_line_item(
            fields.get("description", item.description),
            fields.get("quantity", item.quantity),
            fields.get("rate", item.rate),
        )
        item.description = description
        item.quantity = quantity
        item.rate = rate
        item.amount = line_item_amount(quantity, rate)
        self._refresh_subtotal()
        return item

    def remove_line_item(self, index: int, now: Optional[datetime] = None) -> None:
        """Remove the item at `index` and renumber the rest."""
        self._ensure_mutable(now)
        self._check_index(index)
        self.line_items.pop(index)
        self._refresh_subtotal()

    def replace_line_items(
        self,
        items: Iterable[Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> None:
        """
        Replace every line item at once.

        WHY: All items are validated before any is applied, so a bad entry
        leaves the existing items untouched.
        """
        self._ensure_mutable(now)
        validated = [
            validate_line_item(item.get("description"), item.get("quantity"), item.get("rate"))
            for item in items
        ]
        self.line_items = [
            InvoiceLineItem(
                position=position,
                description=description,
                quantity=quantity,
                rate=rate,
                amount=line_item_amount(quantity, rate),
            )
            for position, (description, quantity, rate) in enumerate(validated)
        ]
        self._refresh_subtotal()

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def find_payment_by_reference(self, reference: Optional[str]) -> Optional[InvoicePayment]:
        if not reference:
            return None
        for payment in self.payments:
            if payment.transaction_reference == reference:
                return payment
        return None

    def record_payment(
        self,
        amount: Any,
        payment_date: Optional[datetime] = None,
        payment_method: Any = PaymentMethod.BANK_TRANSFER,
        transaction_reference: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[InvoicePayment, bool]:
        """
        Append a payment to the ledger.

        WHY: Payment events may be delivered more than once (webhook retries,
        double submits). A reference that was already recorded returns the
        existing payment with duplicate=True and changes nothing.

        Returns:
            (payment, duplicate)

        Raises:
            PaymentRejectedError: Non-positive amount or cancelled invoice
            ValidationError: Unknown payment method
        """
        reference = (transaction_reference or "").strip() or None
        existing = self.find_payment_by_reference(reference)
        if existing is not None:
            return existing, True

        if self.current_stage == InvoiceStage.CANCELLED:
            raise PaymentRejectedError(
                message="Cannot record a payment on a cancelled invoice",
                invoice_id=self.id,
            )

        value = parse_money(amount, "amount", PaymentRejectedError)
        if value <= 0:
            raise PaymentRejectedError(
                message="Payment amount must be greater than zero",
                field="amount",
                value=str(value),
            )

        try:
            method = PaymentMethod(payment_method or PaymentMethod.BANK_TRANSFER)
        except ValueError:
            raise ValidationError(
                message=f"Unknown payment method: {payment_method}",
                field="payment_method",
            )

        payment = InvoicePayment(
            amount=value,
            payment_date=payment_date or now or datetime.utcnow(),
            payment_method=method,
            transaction_reference=reference,
            notes=notes,
            created_at=now or datetime.utcnow(),
        )
        self.payments.append(payment)
        return payment, False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def apply_action(self, action: LifecycleAction, now: Optional[datetime] = None, reason: Optional[str] = None) -> None:
        """
        Apply an explicit lifecycle action (send, view, cancel).

        Raises:
            InvalidStateTransitionError: Action not allowed from the current state
        """
        now = now or datetime.utcnow()
        action = LifecycleAction(action)
        self.stage = next_stage(action, self.current_stage, self.status_at(now))

        if action == LifecycleAction.SEND:
            self.sent_at = now
        elif action == LifecycleAction.VIEW:
            if self.viewed_at is None and self.stage != InvoiceStage.CANCELLED:
                self.viewed_at = now
        elif action == LifecycleAction.CANCEL:
            self.cancelled_at = now
            self.cancellation_reason = reason

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def due_reminders(self, now: Optional[datetime] = None) -> List[ReminderCandidate]:
        """Reminders owed at `now` given the recorded sent log."""
        now = now or datetime.utcnow()
        return compute_due_reminders(
            settings=self.settings_snapshot,
            due_date=self.due_date,
            now=now,
            sent=self.sent_reminder_keys,
            status=self.status_at(now),
            amount_due=self.amount_due if self.amount_due is not None else Decimal("0"),
        )

    def record_reminder(
        self,
        reminder_type: Any,
        offset_days: int = 0,
        sent_by: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> Tuple[InvoiceReminder, bool]:
        """
        Record a dispatched reminder.

        Returns:
            (reminder, created); created is False when the same type and
            offset was already recorded
        """
        try:
            kind = ReminderType(reminder_type)
        except ValueError:
            raise ValidationError(
                message=f"Unknown reminder type: {reminder_type}",
                field="reminder_type",
            )
        offset = int(offset_days or 0) if kind == ReminderType.POST_DUE else 0
        if offset < 0:
            raise ValidationError(message="offset_days cannot be negative", field="offset_days")

        for reminder in self.reminders:
            if reminder.key == (kind, offset):
                return reminder, False

        reminder = InvoiceReminder(
            reminder_type=kind,
            offset_days=offset,
            sent_at=sent_at or datetime.utcnow(),
            sent_by=sent_by,
        )
        self.reminders.append(reminder)
        self.last_reminder_error = None
        self.last_reminder_error_at = None
        return reminder, True

    def record_reminder_failure(self, error: str, now: Optional[datetime] = None) -> None:
        self.last_reminder_error = error
        self.last_reminder_error_at = now or datetime.utcnow()

    # ------------------------------------------------------------------
    # Consistency pass
    # ------------------------------------------------------------------

    def recompute(self, now: Optional[datetime] = None) -> "Invoice":
        """
        Re-derive every computed field from line items and payments.

        WHAT: subtotal -> totals -> payment summary -> status, in that order.

        WHY: Recomputing from scratch (never incrementally) makes the pass
        idempotent and independent of the order payments arrived in.

        HOW: Called by the service layer immediately before each write.
        paid_at is set the first time payments cover the total and is never
        cleared afterwards.

        Args:
            now: Current time used for overdue detection and paid_at

        Returns:
            self, for chaining
        """
        now = now or datetime.utcnow()

        for item in self.line_items:
            item.amount = line_item_amount(item.quantity, item.rate)
        self._refresh_subtotal()

        totals = compute_totals(self.subtotal, self.tax_rate, self.discount)
        if totals.discount_clamped and not self.discount_clamped:
            logger.warning(
                f"Discount exceeds subtotal plus tax on invoice {self.invoice_number}; total clamped to 0",
                extra={
                    "invoice_id": self.id,
                    "discount": str(self.discount),
                    "subtotal": str(totals.subtotal),
                    "tax_amount": str(totals.tax_amount),
                },
            )
        self.tax_amount = totals.tax_amount
        self.total_amount = totals.total_amount
        self.discount_clamped = totals.discount_clamped

        summary = summarize_payments(self.total_amount, (p.amount for p in self.payments))
        self.amount_paid = summary.amount_paid
        self.amount_due = summary.amount_due

        previous = self.status
        status = resolve_status(
            stage=self.current_stage,
            amount_paid=self.amount_paid,
            total_amount=self.total_amount,
            due_date=self.due_date,
            now=now,
        )
        if status == InvoiceStatus.PAID and self.paid_at is None:
            self.paid_at = now

        if previous is not None and InvoiceStatus(previous) != status:
            logger.info(
                f"Invoice {self.invoice_number} status changed: {InvoiceStatus(previous).value} -> {status.value}",
                extra={
                    "invoice_id": self.id,
                    "from_status": InvoiceStatus(previous).value,
                    "to_status": status.value,
                },
            )
        self.status = status
        return self
