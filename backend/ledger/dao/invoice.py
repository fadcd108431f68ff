"""
Invoice Data Access Object (DAO).

WHAT: Database operations for the Invoice aggregate.

WHY: The DAO pattern:
1. Separates data access from the ledger rules
2. Enforces owner-scoping on every lookup
3. Encapsulates the queries behind listing, stats, numbering and the
   reminder sweep

HOW: Extends BaseDAO. Child collections load through the model's
selectin relationships, so every returned invoice is complete.
"""

from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.dao.base import BaseDAO
from ledger.models.enums import InvoiceStage
from ledger.models.invoice import Invoice


class InvoiceDAO(BaseDAO[Invoice]):
    """
    Data Access Object for the Invoice aggregate.

    WHAT: Provides lookup and query operations for invoices.

    WHY: Centralizes all invoice database access:
    - Enforces owner_id scoping for security
    - Provides the filtered listing used by the API
    - Finds invoices the reminder sweep has to look at
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize InvoiceDAO.

        Args:
            session: Async database session
        """
        super().__init__(Invoice, session)

    async def get_by_invoice_number(
        self,
        invoice_number: str,
        owner_id: int,
    ) -> Optional[Invoice]:
        """
        Get an invoice by its invoice number.

        Args:
            invoice_number: The invoice number (e.g., INV-2024-0001)
            owner_id: Owner for security

        Returns:
            Invoice if found and owned, None otherwise
        """
        result = await self.session.execute(
            select(Invoice).where(
                Invoice.invoice_number == invoice_number,
                Invoice.owner_id == owner_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_owner(
        self,
        owner_id: int,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        created_since: Optional[datetime] = None,
        client_id: Optional[int] = None,
    ) -> List[Invoice]:
        """
        List an owner's invoices, newest first.

        WHAT: Filters on issue_date range, creation time and the client id
        captured in the client snapshot.

        WHY: Status filters are applied by the service after the status is
        re-derived for the current time; the stored status of an unpaid
        invoice can lag behind its due date until the next sweep.

        Args:
            owner_id: Owner ID
            from_date: Earliest issue_date (inclusive)
            to_date: Latest issue_date (inclusive)
            created_since: Only invoices created at or after this time
            client_id: Only invoices whose client snapshot carries this id

        Returns:
            List of invoices
        """
        query = select(Invoice).where(Invoice.owner_id == owner_id)

        if from_date:
            query = query.where(Invoice.issue_date >= from_date)
        if to_date:
            query = query.where(Invoice.issue_date <= to_date)
        if created_since:
            query = query.where(Invoice.created_at >= created_since)
        if client_id is not None:
            query = query.where(Invoice.client["id"].as_integer() == client_id)

        query = query.order_by(Invoice.created_at.desc(), Invoice.id.desc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_open_for_reminders(
        self,
        limit: int = 500,
        after: Optional[Tuple[date, int]] = None,
    ) -> List[Invoice]:
        """
        Get one page of invoices that might owe a reminder.

        WHAT: Sent or viewed invoices with a positive balance, ordered by
        (due_date, id).

        WHY: Drafts, cancelled invoices and settled balances never get
        reminders, so the sweep skips them at the query level. Paging by
        key rather than offset lets the sweep walk every open invoice even
        while earlier pages are being written.

        Args:
            limit: Page size
            after: (due_date, id) of the last invoice of the previous page

        Returns:
            List of invoices ordered by due date, then id
        """
        query = select(Invoice).where(
            Invoice.stage.in_([InvoiceStage.SENT, InvoiceStage.VIEWED]),
            Invoice.amount_due > 0,
        )
        if after is not None:
            due_date, invoice_id = after
            query = query.where(
                or_(
                    Invoice.due_date > due_date,
                    and_(Invoice.due_date == due_date, Invoice.id > invoice_id),
                )
            )

        result = await self.session.execute(
            query.order_by(Invoice.due_date.asc(), Invoice.id.asc()).limit(limit)
        )
        return list(result.scalars().all())

    async def get_next_invoice_number_sequence(self, year: int, prefix: str = "INV") -> int:
        """
        Get the next sequence number for invoice numbering.

        WHAT: Highest existing sequence for the year, plus one.

        WHY: Using the highest suffix (rather than a count) keeps numbers
        unique after a draft invoice is deleted.

        Args:
            year: Issue year
            prefix: Invoice number prefix

        Returns:
            Next sequence number (starting from 1)
        """
        year_prefix = f"{prefix}-{year}-"
        result = await self.session.execute(
            select(Invoice.invoice_number).where(Invoice.invoice_number.like(f"{year_prefix}%"))
        )

        highest = 0
        for (number,) in result.all():
            suffix = number[len(year_prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest + 1
