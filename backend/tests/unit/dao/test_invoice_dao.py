"""
Unit tests for InvoiceDAO.

WHAT: Tests for owner-scoped lookups, listing filters, the reminder sweep
query and invoice numbering.

WHY: Verifies that:
1. Invoices of other owners are never returned
2. Listing filters on issue date, creation time and client id
3. Only sent/viewed invoices with a balance are offered to the sweep
4. Numbering continues from the highest suffix of the year
"""

import pytest
from datetime import date, datetime

from ledger.dao.invoice import InvoiceDAO
from ledger.models.invoice import Invoice
from tests.factories import InvoiceFactory


class TestOwnerScoping:
    """Tests for owner-scoped lookups."""

    @pytest.mark.asyncio
    async def test_get_by_id_and_owner(self, db_session, clock):
        invoice = await InvoiceFactory.create(db_session, clock, owner_id=1)
        dao = InvoiceDAO(db_session)

        assert (await dao.get_by_id_and_owner(invoice.id, 1)).id == invoice.id
        assert await dao.get_by_id_and_owner(invoice.id, 2) is None

    @pytest.mark.asyncio
    async def test_get_by_invoice_number(self, db_session, clock):
        invoice = await InvoiceFactory.create(db_session, clock, owner_id=1)
        dao = InvoiceDAO(db_session)

        found = await dao.get_by_invoice_number(invoice.invoice_number, owner_id=1)

        assert found.id == invoice.id
        assert await dao.get_by_invoice_number(invoice.invoice_number, owner_id=2) is None

    @pytest.mark.asyncio
    async def test_loaded_invoice_has_children(self, db_session, clock):
        invoice = await InvoiceFactory.create(db_session, clock, payments=["100"])
        db_session.expunge_all()

        loaded = await InvoiceDAO(db_session).get_by_id_and_owner(invoice.id, 1)

        assert len(loaded.line_items) == 2
        assert len(loaded.payments) == 1
        assert loaded.reminders == []

    @pytest.mark.asyncio
    async def test_not_owner_scoped_model_raises(self, db_session):
        class Unscoped:
            pass

        dao = InvoiceDAO(db_session)
        dao.model = Unscoped

        with pytest.raises(AttributeError):
            await dao.get_by_id_and_owner(1, 1)


class TestListForOwner:
    """Tests for the owner listing query."""

    @pytest.mark.asyncio
    async def test_lists_only_owner_newest_first(self, db_session, clock):
        first = await InvoiceFactory.create(db_session, clock, owner_id=1)
        clock.advance(minutes=5)
        second = await InvoiceFactory.create(db_session, clock, owner_id=1)
        await InvoiceFactory.create(db_session, clock, owner_id=2)

        invoices = await InvoiceDAO(db_session).list_for_owner(1)

        assert [i.id for i in invoices] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_issue_date_range(self, db_session, clock):
        await InvoiceFactory.create(
            db_session, clock, issue_date=date(2024, 1, 10), due_date=date(2024, 2, 10)
        )
        february = await InvoiceFactory.create(
            db_session, clock, issue_date=date(2024, 2, 10), due_date=date(2024, 3, 10)
        )

        invoices = await InvoiceDAO(db_session).list_for_owner(
            1, from_date=date(2024, 2, 1), to_date=date(2024, 2, 29)
        )

        assert [i.id for i in invoices] == [february.id]

    @pytest.mark.asyncio
    async def test_created_since(self, db_session, clock):
        await InvoiceFactory.create(db_session, clock)
        clock.advance(days=40)
        recent = await InvoiceFactory.create(db_session, clock)

        invoices = await InvoiceDAO(db_session).list_for_owner(
            1, created_since=datetime(2024, 3, 15)
        )

        assert [i.id for i in invoices] == [recent.id]

    @pytest.mark.asyncio
    async def test_filter_by_client_id(self, db_session, clock):
        acme = await InvoiceFactory.create(db_session, clock, client={"id": 7, "name": "Acme Corp"})
        await InvoiceFactory.create(db_session, clock, client={"id": 8, "name": "Globex"})
        await InvoiceFactory.create(db_session, clock, client={"name": "Walk-in"})

        invoices = await InvoiceDAO(db_session).list_for_owner(1, client_id=7)

        assert [i.id for i in invoices] == [acme.id]


class TestGetOpenForReminders:
    """Tests for the reminder sweep query."""

    @pytest.mark.asyncio
    async def test_only_open_invoices_with_balance(self, db_session, clock):
        await InvoiceFactory.create(db_session, clock, title="Draft")
        sent = await InvoiceFactory.create(db_session, clock, title="Sent", send=True)
        partial = await InvoiceFactory.create(db_session, clock, title="Partial", payments=["100"])
        await InvoiceFactory.create(db_session, clock, title="Paid", payments=["749.50"])
        await InvoiceFactory.create(db_session, clock, title="Zero", line_items=[], send=True)

        invoices = await InvoiceDAO(db_session).get_open_for_reminders()

        assert {i.id for i in invoices} == {sent.id, partial.id}

    @pytest.mark.asyncio
    async def test_ordered_by_due_date(self, db_session, clock):
        later = await InvoiceFactory.create(db_session, clock, due_date=date(2024, 4, 30), send=True)
        sooner = await InvoiceFactory.create(db_session, clock, due_date=date(2024, 3, 15), send=True)

        invoices = await InvoiceDAO(db_session).get_open_for_reminders()

        assert [i.id for i in invoices] == [sooner.id, later.id]

    @pytest.mark.asyncio
    async def test_limit(self, db_session, clock):
        for _ in range(3):
            await InvoiceFactory.create(db_session, clock, send=True)

        invoices = await InvoiceDAO(db_session).get_open_for_reminders(limit=2)

        assert len(invoices) == 2

    @pytest.mark.asyncio
    async def test_pages_after_cursor(self, db_session, clock):
        first = await InvoiceFactory.create(db_session, clock, due_date=date(2024, 3, 15), send=True)
        second = await InvoiceFactory.create(db_session, clock, due_date=date(2024, 3, 15), send=True)
        third = await InvoiceFactory.create(db_session, clock, due_date=date(2024, 4, 30), send=True)
        dao = InvoiceDAO(db_session)

        page = await dao.get_open_for_reminders(limit=1, after=(first.due_date, first.id))
        assert [i.id for i in page] == [second.id]

        page = await dao.get_open_for_reminders(limit=5, after=(second.due_date, second.id))
        assert [i.id for i in page] == [third.id]

        assert await dao.get_open_for_reminders(after=(third.due_date, third.id)) == []


class TestInvoiceNumberSequence:
    """Tests for invoice numbering."""

    @pytest.mark.asyncio
    async def test_first_number_of_year(self, db_session):
        assert await InvoiceDAO(db_session).get_next_invoice_number_sequence(2024) == 1

    @pytest.mark.asyncio
    async def test_continues_after_highest(self, db_session, clock):
        await InvoiceFactory.create(db_session, clock)
        await InvoiceFactory.create(db_session, clock)

        assert await InvoiceDAO(db_session).get_next_invoice_number_sequence(2024) == 3
        assert await InvoiceDAO(db_session).get_next_invoice_number_sequence(2025) == 1

    @pytest.mark.asyncio
    async def test_gap_after_delete_is_not_reused(self, db_session, clock):
        first = await InvoiceFactory.create(db_session, clock)
        second = await InvoiceFactory.create(db_session, clock)
        dao = InvoiceDAO(db_session)

        await dao.delete(first)

        assert second.invoice_number == "INV-2024-0002"
        assert await dao.get_next_invoice_number_sequence(2024) == 3

    def test_generate_invoice_number_format(self):
        assert Invoice.generate_invoice_number(2024, 7) == "INV-2024-0007"
