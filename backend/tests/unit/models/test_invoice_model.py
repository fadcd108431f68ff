"""
Unit tests for the Invoice aggregate.

WHAT: Tests for line-item edits, payments, lifecycle actions, reminder
records and the recompute pass, on in-memory invoices.

WHY: Verifies that:
1. Derived money fields and status always agree with items and payments
2. Editability, payment acceptance and transitions are enforced by the
   aggregate itself, before anything reaches the database
3. Recompute is idempotent and independent of payment order
"""

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from ledger.core.exceptions import (
    InvalidStateTransitionError,
    InvoiceNotMutableError,
    LineItemValidationError,
    PaymentRejectedError,
    ValidationError,
)
from ledger.models.enums import (
    InvoiceStage,
    InvoiceStatus,
    LifecycleAction,
    PaymentMethod,
    ReminderType,
)
from ledger.models.invoice import Invoice
from ledger.services.reminder_scheduler import ReminderSettings
from tests.factories import SCENARIO_A_ITEMS


NOW = datetime(2024, 3, 1, 9, 0)


def _make_invoice(items=None, tax_rate="8.5", discount="10", due_date=date(2024, 3, 31)) -> Invoice:
    invoice = Invoice(
        invoice_number="INV-2024-0001",
        owner_id=1,
        title="Website redesign",
        client={"name": "Acme Corp", "email": "billing@acme.test"},
        issue_date=date(2024, 3, 1),
        due_date=due_date,
        currency="USD",
        tax_rate=Decimal(tax_rate),
        discount=Decimal(discount),
        stage=InvoiceStage.DRAFT,
        status=InvoiceStatus.DRAFT,
        discount_clamped=False,
        reminder_settings=ReminderSettings().to_dict(),
    )
    invoice.replace_line_items(SCENARIO_A_ITEMS if items is None else items)
    invoice.recompute(NOW)
    return invoice


def _sent_invoice(**kwargs) -> Invoice:
    invoice = _make_invoice(**kwargs)
    invoice.apply_action(LifecycleAction.SEND, now=NOW)
    invoice.recompute(NOW)
    return invoice


def _pay(invoice: Invoice, amount: str, reference=None, now=NOW):
    payment, duplicate = invoice.record_payment(
        amount=Decimal(amount),
        transaction_reference=reference,
        now=now,
    )
    invoice.recompute(now)
    return payment, duplicate


class TestScenarios:
    """End-to-end scenarios on a single invoice."""

    def test_scenario_a_totals(self):
        invoice = _make_invoice()

        assert invoice.subtotal == Decimal("700.00")
        assert invoice.tax_amount == Decimal("59.50")
        assert invoice.total_amount == Decimal("749.50")
        assert invoice.amount_paid == Decimal("0.00")
        assert invoice.amount_due == Decimal("749.50")
        assert invoice.status == InvoiceStatus.DRAFT
        assert [item.amount for item in invoice.line_items] == [Decimal("500.00"), Decimal("200.00")]

    def test_scenario_b_partial_payment(self):
        invoice = _sent_invoice()

        _pay(invoice, "400")

        assert invoice.amount_paid == Decimal("400.00")
        assert invoice.amount_due == Decimal("349.50")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert invoice.paid_at is None

    def test_scenario_c_paid_in_full(self):
        invoice = _sent_invoice()
        _pay(invoice, "400")

        paid_time = NOW + timedelta(days=3)
        _pay(invoice, "349.50", now=paid_time)

        assert invoice.amount_due == Decimal("0.00")
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.paid_at == paid_time

    def test_scenario_d_overdue_with_post_due_reminders(self):
        invoice = _sent_invoice(due_date=date(2024, 2, 20))
        now = datetime(2024, 3, 1, 12, 0)

        assert invoice.status_at(now) == InvoiceStatus.OVERDUE
        candidates = invoice.due_reminders(now)
        assert [c.key for c in candidates] == [
            (ReminderType.POST_DUE, 1),
            (ReminderType.POST_DUE, 7),
        ]

    def test_scenario_e_cancel_partially_paid(self):
        invoice = _sent_invoice()
        _pay(invoice, "400")

        invoice.apply_action(LifecycleAction.CANCEL, now=NOW, reason="Project dropped")
        invoice.recompute(NOW)

        assert invoice.status == InvoiceStatus.CANCELLED
        assert invoice.cancellation_reason == "Project dropped"
        with pytest.raises(PaymentRejectedError):
            invoice.record_payment(amount=Decimal("349.50"), now=NOW)


class TestLineItems:
    """Tests for line item editing."""

    def test_add_line_item_updates_subtotal(self):
        invoice = _make_invoice()

        item = invoice.add_line_item("Extra page", "2", "25")
        invoice.recompute(NOW)

        assert item.position == 2
        assert item.amount == Decimal("50.00")
        assert invoice.subtotal == Decimal("750.00")

    def test_update_line_item(self):
        invoice = _make_invoice()

        invoice.update_line_item(0, quantity="12")
        invoice.recompute(NOW)

        assert invoice.line_items[0].amount == Decimal("600.00")
        assert invoice.subtotal == Decimal("800.00")

    def test_update_unknown_field_rejected(self):
        invoice = _make_invoice()
        with pytest.raises(LineItemValidationError):
            invoice.update_line_item(0, price="12")

    def test_remove_line_item_renumbers(self):
        invoice = _make_invoice()

        invoice.remove_line_item(0)
        invoice.recompute(NOW)

        assert len(invoice.line_items) == 1
        assert invoice.line_items[0].position == 0
        assert invoice.subtotal == Decimal("200.00")

    @pytest.mark.parametrize("index", [-1, 2, 99])
    def test_index_out_of_range(self, index):
        invoice = _make_invoice()
        with pytest.raises(LineItemValidationError):
            invoice.remove_line_item(index)

    def test_replace_with_bad_item_leaves_items_untouched(self):
        invoice = _make_invoice()

        with pytest.raises(LineItemValidationError):
            invoice.replace_line_items([
                {"description": "Fine", "quantity": "1", "rate": "10"},
                {"description": "Broken", "quantity": "-1", "rate": "10"},
            ])

        assert len(invoice.line_items) == 2
        assert invoice.subtotal == Decimal("700.00")

    def test_sent_invoice_is_still_editable(self):
        invoice = _sent_invoice()
        assert invoice.is_mutable is True
        invoice.add_line_item("Late addition", "1", "10")

    def test_sent_invoice_not_editable_once_past_due(self):
        invoice = _sent_invoice()
        later = NOW + timedelta(days=40)

        assert invoice.is_mutable is True
        assert invoice.is_mutable_at(later) is False
        with pytest.raises(InvoiceNotMutableError) as exc_info:
            invoice.add_line_item("Late addition", "1", "10", now=later)
        assert exc_info.value.context["current_state"] == "overdue"
        assert len(invoice.line_items) == 2

    def test_viewed_invoice_not_editable(self):
        invoice = _sent_invoice()
        invoice.apply_action(LifecycleAction.VIEW, now=NOW)
        invoice.recompute(NOW)

        assert invoice.is_mutable is False
        with pytest.raises(InvoiceNotMutableError):
            invoice.add_line_item("Nope", "1", "10")

    def test_paid_into_invoice_not_editable(self):
        invoice = _sent_invoice()
        _pay(invoice, "100")

        with pytest.raises(InvoiceNotMutableError) as exc_info:
            invoice.replace_line_items([])
        assert exc_info.value.context["has_payments"] is True


class TestPayments:
    """Tests for the payment ledger."""

    def test_zero_amount_rejected(self):
        invoice = _sent_invoice()
        with pytest.raises(PaymentRejectedError):
            invoice.record_payment(amount=Decimal("0"), now=NOW)

    def test_negative_amount_rejected(self):
        invoice = _sent_invoice()
        with pytest.raises(PaymentRejectedError):
            invoice.record_payment(amount=Decimal("-5"), now=NOW)

    def test_unknown_method_rejected(self):
        invoice = _sent_invoice()
        with pytest.raises(ValidationError):
            invoice.record_payment(amount=Decimal("5"), payment_method="barter", now=NOW)

    def test_default_method_and_date(self):
        invoice = _sent_invoice()
        payment, _ = _pay(invoice, "5")

        assert payment.payment_method == PaymentMethod.BANK_TRANSFER
        assert payment.payment_date == NOW

    def test_duplicate_reference_is_acknowledged(self):
        invoice = _sent_invoice()
        first, duplicate = _pay(invoice, "400", reference="txn_1")
        assert duplicate is False

        again, duplicate = _pay(invoice, "400", reference="txn_1")

        assert duplicate is True
        assert again is first
        assert len(invoice.payments) == 1
        assert invoice.amount_paid == Decimal("400.00")

    def test_duplicate_reference_acknowledged_after_cancel(self):
        invoice = _sent_invoice()
        _pay(invoice, "400", reference="txn_1")
        invoice.apply_action(LifecycleAction.CANCEL, now=NOW)
        invoice.recompute(NOW)

        _, duplicate = invoice.record_payment(amount=Decimal("400"), transaction_reference="txn_1", now=NOW)
        assert duplicate is True

    def test_overpayment_warns(self):
        invoice = _sent_invoice()
        _pay(invoice, "800")

        assert invoice.status == InvoiceStatus.PAID
        assert invoice.amount_due == Decimal("-50.50")
        assert "overpaid" in invoice.warnings

    def test_paid_at_set_once(self):
        invoice = _sent_invoice()
        _pay(invoice, "749.50")
        first_paid_at = invoice.paid_at

        _pay(invoice, "1", now=NOW + timedelta(days=5))

        assert invoice.paid_at == first_paid_at

    def test_payment_order_does_not_matter(self):
        amounts = ["0.10", "300.05", "449.35"]
        forward = _sent_invoice()
        backward = _sent_invoice()

        for amount in amounts:
            _pay(forward, amount)
        for amount in reversed(amounts):
            _pay(backward, amount)

        assert forward.amount_paid == backward.amount_paid == Decimal("749.50")
        assert forward.amount_due == backward.amount_due == Decimal("0.00")
        assert forward.status == backward.status == InvoiceStatus.PAID


class TestLifecycle:
    """Tests for explicit lifecycle actions."""

    def test_send_sets_sent_at(self):
        invoice = _sent_invoice()
        assert invoice.stage == InvoiceStage.SENT
        assert invoice.sent_at == NOW

    def test_viewed_at_set_once(self):
        invoice = _sent_invoice()
        invoice.apply_action(LifecycleAction.VIEW, now=NOW)
        invoice.apply_action(LifecycleAction.VIEW, now=NOW + timedelta(days=1))

        assert invoice.viewed_at == NOW

    def test_cannot_cancel_paid(self):
        invoice = _sent_invoice()
        _pay(invoice, "749.50")

        with pytest.raises(InvalidStateTransitionError):
            invoice.apply_action(LifecycleAction.CANCEL, now=NOW)

    def test_cannot_send_cancelled(self):
        invoice = _make_invoice()
        invoice.apply_action(LifecycleAction.CANCEL, now=NOW)
        invoice.recompute(NOW)

        with pytest.raises(InvalidStateTransitionError):
            invoice.apply_action(LifecycleAction.SEND, now=NOW)


class TestRecompute:
    """Tests for the consistency pass."""

    def test_idempotent(self):
        invoice = _sent_invoice()
        _pay(invoice, "400")
        snapshot = (
            invoice.subtotal,
            invoice.tax_amount,
            invoice.total_amount,
            invoice.amount_paid,
            invoice.amount_due,
            invoice.status,
        )

        invoice.recompute(NOW)
        invoice.recompute(NOW)

        assert snapshot == (
            invoice.subtotal,
            invoice.tax_amount,
            invoice.total_amount,
            invoice.amount_paid,
            invoice.amount_due,
            invoice.status,
        )

    def test_discount_clamp_flagged(self):
        invoice = _make_invoice(discount="1000")

        assert invoice.total_amount == Decimal("0.00")
        assert invoice.discount_clamped is True
        assert "discount_exceeds_total" in invoice.warnings

    def test_clamp_cleared_when_discount_fits_again(self):
        invoice = _make_invoice(discount="1000")
        invoice.discount = Decimal("10")
        invoice.recompute(NOW)

        assert invoice.discount_clamped is False
        assert invoice.warnings == []

    def test_overdue_persisted_by_recompute(self):
        invoice = _sent_invoice()
        invoice.recompute(datetime(2024, 4, 1, 0, 1))
        assert invoice.status == InvoiceStatus.OVERDUE

    def test_status_at_does_not_mutate(self):
        invoice = _sent_invoice()
        assert invoice.status_at(datetime(2024, 4, 5)) == InvoiceStatus.OVERDUE
        assert invoice.status == InvoiceStatus.SENT


class TestReminderRecords:
    """Tests for the sent-reminder log on the aggregate."""

    def test_record_reminder(self):
        invoice = _sent_invoice()

        reminder, created = invoice.record_reminder(ReminderType.PRE_DUE, sent_by="tester", sent_at=NOW)

        assert created is True
        assert reminder.key == (ReminderType.PRE_DUE, 0)
        assert invoice.sent_reminder_keys == [(ReminderType.PRE_DUE, 0)]

    def test_record_twice_returns_existing(self):
        invoice = _sent_invoice()
        first, _ = invoice.record_reminder("post_due", offset_days=7, sent_at=NOW)

        again, created = invoice.record_reminder(ReminderType.POST_DUE, offset_days=7, sent_at=NOW)

        assert created is False
        assert again is first
        assert len(invoice.reminders) == 1

    def test_offset_ignored_for_on_due(self):
        invoice = _sent_invoice()
        reminder, _ = invoice.record_reminder(ReminderType.ON_DUE, offset_days=5, sent_at=NOW)
        assert reminder.offset_days == 0

    def test_unknown_type_rejected(self):
        invoice = _sent_invoice()
        with pytest.raises(ValidationError):
            invoice.record_reminder("carrier_pigeon")

    def test_recorded_reminder_no_longer_due(self):
        invoice = _sent_invoice(due_date=date(2024, 2, 20))
        now = datetime(2024, 3, 1, 12, 0)
        invoice.record_reminder(ReminderType.POST_DUE, offset_days=1, sent_at=now)

        assert [c.key for c in invoice.due_reminders(now)] == [(ReminderType.POST_DUE, 7)]

    def test_failure_recorded_then_cleared(self):
        invoice = _sent_invoice()
        invoice.record_reminder_failure("smtp down", now=NOW)
        assert invoice.last_reminder_error == "smtp down"

        invoice.record_reminder(ReminderType.PRE_DUE, sent_at=NOW)
        assert invoice.last_reminder_error is None


def test_generate_invoice_number():
    assert Invoice.generate_invoice_number(2024, 7) == "INV-2024-0007"
    assert Invoice.generate_invoice_number(2024, 12345, prefix="AC") == "AC-2024-12345"
