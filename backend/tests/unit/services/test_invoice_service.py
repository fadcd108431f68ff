"""
Unit tests for InvoiceLedgerService.

WHAT: Tests for invoice creation, edits, payments, lifecycle actions,
reminder bookkeeping, listing and stats against a real (SQLite) session.

WHY: Verifies that:
1. Every mutation persists a consistent aggregate with a bumped version
2. Owner scoping hides other owners' invoices
3. Write conflicts are retried against fresh state, then surfaced as 409
4. Reminders are dispatched once and failures are recorded, not raised
"""

import asyncio

import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm.exc import StaleDataError

from ledger.core.config import settings
from ledger.core.exceptions import (
    ConcurrentModificationError,
    InvalidStateTransitionError,
    InvoiceNotFoundError,
    InvoiceNotMutableError,
    LineItemValidationError,
    PaymentRejectedError,
    ValidationError,
)
from ledger.models.enums import InvoiceStage, InvoiceStatus, PaymentMethod, ReminderType
from ledger.services.email import MockEmailProvider
from ledger.services.invoice_service import InvoiceLedgerService, get_invoice_lock
from tests.factories import SCENARIO_A_ITEMS, InvoiceFactory


@pytest.fixture
def service(db_session, clock):
    return InvoiceLedgerService(db_session, clock=clock)


class TestCreateInvoice:
    """Tests for invoice creation."""

    @pytest.mark.asyncio
    async def test_create_scenario_a(self, service):
        invoice = await service.create_invoice(
            owner_id=1,
            title="Website redesign",
            client={"name": "Acme Corp", "email": "billing@acme.test"},
            line_items=SCENARIO_A_ITEMS,
            tax_rate="8.5",
            discount="10",
        )

        assert invoice.id is not None
        assert invoice.invoice_number == "INV-2024-0001"
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.subtotal == Decimal("700.00")
        assert invoice.tax_amount == Decimal("59.50")
        assert invoice.total_amount == Decimal("749.50")
        assert invoice.amount_due == Decimal("749.50")
        assert invoice.version == 1

    @pytest.mark.asyncio
    async def test_defaults(self, service, clock):
        invoice = await service.create_invoice(
            owner_id=1,
            title="Retainer",
            client={"name": "Acme Corp"},
            currency="eur",
        )

        assert invoice.issue_date == clock.now.date()
        assert invoice.due_date == clock.now.date() + timedelta(days=settings.DEFAULT_PAYMENT_TERMS_DAYS)
        assert invoice.currency == "EUR"
        assert invoice.line_items == []
        assert invoice.total_amount == Decimal("0.00")
        assert invoice.reminder_settings == settings.default_reminder_settings
        assert invoice.branding["company_name"] == settings.COMPANY_NAME

    @pytest.mark.asyncio
    async def test_numbers_are_sequential_per_year(self, db_session, clock):
        first = await InvoiceFactory.create(db_session, clock)
        second = await InvoiceFactory.create(db_session, clock)
        other_year = await InvoiceFactory.create(
            db_session, clock, issue_date=date(2023, 12, 1), due_date=date(2023, 12, 31)
        )

        assert first.invoice_number == "INV-2024-0001"
        assert second.invoice_number == "INV-2024-0002"
        assert other_year.invoice_number == "INV-2023-0001"

    @pytest.mark.asyncio
    async def test_due_before_issue_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_invoice(
                owner_id=1,
                title="Backdated",
                client={"name": "Acme Corp"},
                issue_date=date(2024, 3, 1),
                due_date=date(2024, 2, 1),
            )
        assert exc_info.value.context["field"] == "due_date"

    @pytest.mark.asyncio
    async def test_client_name_required(self, service):
        with pytest.raises(ValidationError):
            await service.create_invoice(owner_id=1, title="Nameless", client={"email": "x@y.test"})

    @pytest.mark.asyncio
    async def test_invalid_line_item_rejected(self, service):
        with pytest.raises(LineItemValidationError):
            await service.create_invoice(
                owner_id=1,
                title="Broken",
                client={"name": "Acme Corp"},
                line_items=[{"description": "", "quantity": "1", "rate": "1"}],
            )

    @pytest.mark.asyncio
    async def test_fractional_tax_rate_stored_exactly(self, db_session, service):
        invoice = await service.create_invoice(
            owner_id=1,
            title="Consulting",
            client={"name": "Acme Corp"},
            line_items=[{"description": "Advisory", "quantity": "1", "rate": "1000"}],
            tax_rate="8.125",
        )
        await db_session.commit()

        stored = await service.invoice_dao.get_by_id_and_owner(invoice.id, 1, refresh=True)
        assert stored.tax_rate == Decimal("8.125")
        assert stored.tax_amount == Decimal("81.25")
        assert stored.total_amount == Decimal("1081.25")

    @pytest.mark.asyncio
    async def test_over_precise_inputs_rejected(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_invoice(
                owner_id=1, title="Consulting", client={"name": "Acme Corp"}, tax_rate="8.12345"
            )
        assert exc_info.value.context["field"] == "tax_rate"

        with pytest.raises(LineItemValidationError) as exc_info:
            await service.create_invoice(
                owner_id=1,
                title="Consulting",
                client={"name": "Acme Corp"},
                line_items=[{"description": "Advisory", "quantity": "1.2345", "rate": "10"}],
            )
        assert exc_info.value.context["field"] == "quantity"


class TestReadAndDelete:
    """Tests for owner-scoped reads and draft deletion."""

    @pytest.mark.asyncio
    async def test_other_owner_cannot_see_invoice(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, owner_id=1)

        with pytest.raises(InvoiceNotFoundError):
            await service.get_invoice(owner_id=2, invoice_id=invoice.id)

    @pytest.mark.asyncio
    async def test_delete_draft(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)

        await service.delete_invoice(1, invoice.id)

        with pytest.raises(InvoiceNotFoundError):
            await service.get_invoice(1, invoice.id)

    @pytest.mark.asyncio
    async def test_delete_sent_rejected(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)

        with pytest.raises(InvalidStateTransitionError):
            await service.delete_invoice(1, invoice.id)


class TestEdits:
    """Tests for line item, field and reminder setting edits."""

    @pytest.mark.asyncio
    async def test_replace_line_items_bumps_version(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        version = invoice.version

        updated = await service.update_line_items(
            1, invoice.id, [{"description": "Flat fee", "quantity": "1", "rate": "100"}]
        )

        assert updated.subtotal == Decimal("100.00")
        assert updated.tax_amount == Decimal("8.50")
        assert updated.total_amount == Decimal("98.50")
        assert updated.version == version + 1

    @pytest.mark.asyncio
    async def test_line_items_locked_after_payment(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, payments=["100"])

        with pytest.raises(InvoiceNotMutableError):
            await service.update_line_items(1, invoice.id, [])

    @pytest.mark.asyncio
    async def test_line_items_locked_once_overdue(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        clock.advance(days=40)

        with pytest.raises(InvoiceNotMutableError) as exc_info:
            await service.update_line_items(
                1, invoice.id, [{"description": "Flat fee", "quantity": "1", "rate": "100"}]
            )

        assert exc_info.value.context["current_state"] == "overdue"
        assert invoice.total_amount == Decimal("749.50")

    @pytest.mark.asyncio
    async def test_amount_fields_locked_once_overdue(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        clock.advance(days=40)

        with pytest.raises(InvoiceNotMutableError):
            await service.update_invoice(1, invoice.id, {"tax_rate": "0"})

        updated = await service.update_invoice(1, invoice.id, {"title": "Chasing payment"})
        assert updated.title == "Chasing payment"
        assert updated.status == InvoiceStatus.OVERDUE

    @pytest.mark.asyncio
    async def test_title_editable_after_view(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        await service.mark_viewed(1, invoice.id)

        updated = await service.update_invoice(1, invoice.id, {"title": "Renamed", "notes": "Thanks"})

        assert updated.title == "Renamed"
        assert updated.notes == "Thanks"

    @pytest.mark.asyncio
    async def test_amount_fields_locked_after_view(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        await service.mark_viewed(1, invoice.id)

        with pytest.raises(InvoiceNotMutableError):
            await service.update_invoice(1, invoice.id, {"discount": "50"})

    @pytest.mark.asyncio
    async def test_currency_only_on_drafts(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)

        with pytest.raises(InvoiceNotMutableError):
            await service.update_invoice(1, invoice.id, {"currency": "EUR"})

    @pytest.mark.asyncio
    async def test_discount_change_recomputes_total(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)

        updated = await service.update_invoice(1, invoice.id, {"discount": "59.50"})

        assert updated.total_amount == Decimal("700.00")

    @pytest.mark.asyncio
    async def test_invalid_tax_rate_leaves_invoice_unchanged(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)

        with pytest.raises(ValidationError):
            await service.update_invoice(1, invoice.id, {"tax_rate": "150"})

        assert invoice.tax_rate == Decimal("8.50")

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)

        with pytest.raises(ValidationError):
            await service.update_invoice(1, invoice.id, {"amount_paid": "1000"})

    @pytest.mark.asyncio
    async def test_stale_expected_version_rejected(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)
        stale_version = invoice.version
        await service.mark_sent(1, invoice.id)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await service.update_invoice(1, invoice.id, {"title": "Late edit"}, expected_version=stale_version)

        assert exc_info.value.status_code == 409
        assert exc_info.value.context["current_version"] == stale_version + 1

    @pytest.mark.asyncio
    async def test_matching_expected_version_accepted(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)

        updated = await service.update_invoice(
            1, invoice.id, {"title": "On time"}, expected_version=invoice.version
        )

        assert updated.title == "On time"

    @pytest.mark.asyncio
    async def test_reminder_settings_merge(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)

        updated = await service.update_reminder_settings(1, invoice.id, {"after_due_days": [3, 1]})

        assert updated.reminder_settings == {
            "before_due_days": 3,
            "on_due_date": True,
            "after_due_days": [1, 3],
        }

    @pytest.mark.asyncio
    async def test_reminder_settings_rejected_when_cancelled(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)
        await service.cancel(1, invoice.id)

        with pytest.raises(InvoiceNotMutableError):
            await service.update_reminder_settings(1, invoice.id, {"before_due_days": 1})


class TestPayments:
    """Tests for payment recording through the service."""

    @pytest.mark.asyncio
    async def test_scenarios_b_and_c(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)

        result = await service.record_payment(1, invoice.id, amount=Decimal("400"))
        assert result.duplicate is False
        assert result.invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert result.invoice.amount_due == Decimal("349.50")

        result = await service.record_payment(
            1, invoice.id, amount=Decimal("349.50"), payment_method=PaymentMethod.STRIPE
        )
        assert result.invoice.status == InvoiceStatus.PAID
        assert result.invoice.amount_due == Decimal("0.00")
        assert result.invoice.paid_at == clock.now
        assert result.payment.payment_method == PaymentMethod.STRIPE

    @pytest.mark.asyncio
    async def test_duplicate_reference(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        first = await service.record_payment(1, invoice.id, amount="400", transaction_reference="pi_123")
        version = first.invoice.version

        again = await service.record_payment(1, invoice.id, amount="400", transaction_reference="pi_123")

        assert again.duplicate is True
        assert again.payment.id == first.payment.id
        assert again.invoice.amount_paid == Decimal("400.00")
        assert again.invoice.version == version

    @pytest.mark.asyncio
    async def test_scenario_e_payment_after_cancel(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, payments=["400"])

        cancelled = await service.cancel(1, invoice.id, reason="Client went bust")
        assert cancelled.status == InvoiceStatus.CANCELLED

        with pytest.raises(PaymentRejectedError):
            await service.record_payment(1, invoice.id, amount="349.50")

    @pytest.mark.asyncio
    async def test_sub_cent_payment_rejected(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)

        with pytest.raises(PaymentRejectedError) as exc_info:
            await service.record_payment(1, invoice.id, amount="100.005")

        assert exc_info.value.context["field"] == "amount"
        assert invoice.payments == []

    @pytest.mark.asyncio
    async def test_concurrent_payments_all_applied(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)

        await asyncio.gather(*[
            service.record_payment(1, invoice.id, amount="100", transaction_reference=f"txn_{i}")
            for i in range(3)
        ])

        refreshed = await service.get_invoice(1, invoice.id)
        assert len(refreshed.payments) == 3
        assert refreshed.amount_paid == Decimal("300.00")
        assert refreshed.amount_due == Decimal("449.50")

    @pytest.mark.asyncio
    async def test_conflict_is_retried_on_fresh_state(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        original_save = service._save
        attempts = []

        async def flaky_save(target, now):
            attempts.append(now)
            if len(attempts) == 1:
                raise StaleDataError("row was updated by another process")
            await original_save(target, now)

        service._save = flaky_save

        result = await service.record_payment(1, invoice.id, amount="400")

        assert len(attempts) == 2
        assert len(result.invoice.payments) == 1
        assert result.invoice.amount_paid == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_conflict_retries_exhausted(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        attempts = []

        async def always_stale(target, now):
            attempts.append(now)
            raise StaleDataError("row was updated by another process")

        service._save = always_stale

        with pytest.raises(ConcurrentModificationError):
            await service.record_payment(1, invoice.id, amount="400")

        assert len(attempts) == settings.MAX_CONFLICT_RETRIES + 1


class TestLifecycle:
    """Tests for send, view and cancel."""

    @pytest.mark.asyncio
    async def test_send_with_email(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock)

        sent = await service.mark_sent(1, invoice.id, notify_client=True)

        assert sent.stage == InvoiceStage.SENT
        assert sent.sent_at == clock.now
        assert len(MockEmailProvider.sent_emails) == 1
        assert MockEmailProvider.sent_emails[0].to_email == "billing@acme.test"

    @pytest.mark.asyncio
    async def test_send_without_client_email_still_sends(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, client={"name": "Offline Ltd"})

        sent = await service.mark_sent(1, invoice.id, notify_client=True)

        assert sent.status == InvoiceStatus.SENT
        assert MockEmailProvider.sent_emails == []

    @pytest.mark.asyncio
    async def test_view_then_resend_keeps_viewed(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        await service.mark_viewed(1, invoice.id)

        clock.advance(days=1)
        resent = await service.mark_sent(1, invoice.id)

        assert resent.status == InvoiceStatus.VIEWED
        assert resent.sent_at == clock.now

    @pytest.mark.asyncio
    async def test_cannot_cancel_paid(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, payments=["749.50"])

        with pytest.raises(InvalidStateTransitionError):
            await service.cancel(1, invoice.id)


class TestReminders:
    """Tests for reminder computation, recording and dispatch."""

    async def _overdue_invoice(self, db_session, clock, **kwargs):
        # Due ten days before the clock's 2024-03-01
        return await InvoiceFactory.create(
            db_session,
            clock,
            issue_date=date(2024, 2, 1),
            due_date=date(2024, 2, 20),
            send=True,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_compute_due_reminders(self, db_session, service, clock):
        invoice = await self._overdue_invoice(db_session, clock)

        candidates = await service.compute_due_reminders(1, invoice.id)

        assert [c.key for c in candidates] == [(ReminderType.POST_DUE, 1), (ReminderType.POST_DUE, 7)]

    @pytest.mark.asyncio
    async def test_compute_at_explicit_time(self, db_session, service, clock):
        invoice = await self._overdue_invoice(db_session, clock)

        candidates = await service.compute_due_reminders(1, invoice.id, now=datetime(2024, 2, 18))

        assert [c.key for c in candidates] == [(ReminderType.PRE_DUE, 0)]

    @pytest.mark.asyncio
    async def test_record_reminder_idempotent(self, db_session, service, clock):
        invoice = await self._overdue_invoice(db_session, clock)

        _, first, created = await service.record_reminder_sent(1, invoice.id, ReminderType.POST_DUE, 1)
        _, again, created_again = await service.record_reminder_sent(1, invoice.id, "post_due", 1)

        assert created is True
        assert created_again is False
        assert again.id == first.id
        remaining = await service.compute_due_reminders(1, invoice.id)
        assert [c.key for c in remaining] == [(ReminderType.POST_DUE, 7)]

    @pytest.mark.asyncio
    async def test_record_reminder_on_cancelled_rejected(self, db_session, service, clock):
        invoice = await self._overdue_invoice(db_session, clock)
        await service.cancel(1, invoice.id)

        with pytest.raises(InvalidStateTransitionError):
            await service.record_reminder_sent(1, invoice.id, ReminderType.POST_DUE, 1)

    @pytest.mark.asyncio
    async def test_dispatch_sends_and_records_once(self, db_session, service, clock):
        invoice = await self._overdue_invoice(db_session, clock)

        report = await service.dispatch_due_reminders(1, invoice.id)

        assert [c.key for c in report.sent] == [(ReminderType.POST_DUE, 1), (ReminderType.POST_DUE, 7)]
        assert report.failed == []
        assert len(MockEmailProvider.sent_emails) == 2
        assert report.invoice.status == InvoiceStatus.OVERDUE
        assert {r.sent_by for r in report.invoice.reminders} == {settings.REMINDER_SENDER}

        again = await service.dispatch_due_reminders(1, invoice.id)

        assert again.sent == []
        assert len(MockEmailProvider.sent_emails) == 2

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_recorded_not_raised(self, db_session, service, clock):
        invoice = await self._overdue_invoice(db_session, clock, client={"name": "Offline Ltd"})

        report = await service.dispatch_due_reminders(1, invoice.id)

        assert report.sent == []
        assert len(report.failed) == 2
        assert report.invoice.reminders == []
        assert report.invoice.last_reminder_error.startswith("post_due/7")
        assert report.invoice.last_reminder_error_at == clock.now

    @pytest.mark.asyncio
    async def test_dispatch_nothing_due_leaves_version(self, db_session, service, clock):
        invoice = await InvoiceFactory.create(db_session, clock, send=True)
        version = invoice.version

        report = await service.dispatch_due_reminders(1, invoice.id)

        assert report.sent == []
        assert report.invoice.version == version


class TestListingAndStats:
    """Tests for filtered listing, summary and stats."""

    async def _three_invoices(self, db_session, clock):
        draft = await InvoiceFactory.create(db_session, clock, title="Draft")
        overdue = await InvoiceFactory.create(
            db_session,
            clock,
            title="Overdue",
            issue_date=date(2024, 2, 1),
            due_date=date(2024, 2, 20),
            send=True,
        )
        paid = await InvoiceFactory.create(db_session, clock, title="Paid", payments=["749.50"])
        await InvoiceFactory.create(db_session, clock, owner_id=2, title="Someone else's")
        return draft, overdue, paid

    @pytest.mark.asyncio
    async def test_summary_covers_all_matches(self, db_session, service, clock):
        await self._three_invoices(db_session, clock)

        result = await service.list_invoices(1)

        assert result.total == 3
        assert result.summary.total_invoices == 3
        assert result.summary.total_amount == Decimal("2248.50")
        assert result.summary.total_paid == Decimal("749.50")
        assert result.summary.total_outstanding == Decimal("1499.00")
        assert result.summary.overdue_count == 1

    @pytest.mark.asyncio
    async def test_filter_by_derived_status(self, db_session, service, clock):
        _, overdue, _ = await self._three_invoices(db_session, clock)

        by_status = await service.list_invoices(1, status="overdue")
        only_overdue = await service.list_invoices(1, overdue_only=True)

        assert [i.id for i in by_status.invoices] == [overdue.id]
        assert [i.id for i in only_overdue.invoices] == [overdue.id]

    @pytest.mark.asyncio
    async def test_filter_by_issue_date(self, db_session, service, clock):
        _, overdue, _ = await self._three_invoices(db_session, clock)

        result = await service.list_invoices(1, from_date=date(2024, 2, 15))

        assert result.total == 2
        assert overdue.id not in [i.id for i in result.invoices]

    @pytest.mark.asyncio
    async def test_filter_by_client(self, db_session, service, clock):
        acme = await InvoiceFactory.create(db_session, clock, client={"id": 7, "name": "Acme Corp"})
        await InvoiceFactory.create(db_session, clock, client={"id": 8, "name": "Globex"})

        result = await service.list_invoices(1, client_id=7)

        assert [i.id for i in result.invoices] == [acme.id]
        assert result.summary.total_amount == Decimal("749.50")
        assert acme.client == {"id": 7, "name": "Acme Corp"}

    @pytest.mark.asyncio
    async def test_client_id_must_be_an_integer(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_invoice(
                owner_id=1, title="Retainer", client={"id": "acme", "name": "Acme Corp"}
            )
        assert exc_info.value.context["field"] == "client.id"

    @pytest.mark.asyncio
    async def test_pagination(self, db_session, service, clock):
        await self._three_invoices(db_session, clock)

        result = await service.list_invoices(1, skip=1, limit=1)

        assert len(result.invoices) == 1
        assert result.total == 3

    @pytest.mark.asyncio
    async def test_bad_filters_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.list_invoices(1, from_date=date(2024, 3, 1), to_date=date(2024, 2, 1))
        with pytest.raises(ValidationError):
            await service.list_invoices(1, status="lost")

    @pytest.mark.asyncio
    async def test_stats(self, db_session, service, clock):
        await self._three_invoices(db_session, clock)

        stats = await service.get_stats(1, period_days=30)

        assert stats.total_invoices == 3
        assert stats.average_amount == Decimal("749.50")
        assert stats.status_breakdown["draft"].count == 1
        assert stats.status_breakdown["overdue"].count == 1
        assert stats.status_breakdown["paid"].amount == Decimal("749.50")

    @pytest.mark.asyncio
    async def test_stats_period_validated(self, service):
        with pytest.raises(ValidationError):
            await service.get_stats(1, period_days=0)


@pytest.mark.asyncio
async def test_invoice_lock_is_shared_while_held():
    lock = get_invoice_lock(42)
    async with lock:
        assert get_invoice_lock(42) is lock
