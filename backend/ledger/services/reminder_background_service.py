"""
Invoice Reminder Background Service.

WHAT: Background job that periodically finds invoices owed a payment
reminder, delivers the reminders and records them.

WHY: Reminders and overdue transitions depend on the clock, not on user
actions. Running them on a schedule ensures:
1. Clients get pre-due, on-due and post-due reminders on time
2. Stored statuses move to overdue even if nobody opens the invoice
3. No reminder is sent twice (the sent log is checked under the
   invoice lock right before each dispatch)
4. One failing invoice doesn't stop the sweep

HOW: Scheduled by APScheduler (see scheduler.py):
1. Page through sent/viewed invoices with a positive balance, keyed on
   (due_date, id) so every open invoice is reached on every sweep
2. For each, run InvoiceLedgerService.dispatch_due_reminders
3. Commit per invoice so a later failure can't roll back earlier sends
4. Log and count failures, then move on
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.config import settings
from ledger.dao.invoice import InvoiceDAO
from ledger.db.session import AsyncSessionLocal
from ledger.services.email import ReminderNotifier
from ledger.services.invoice_service import InvoiceLedgerService


logger = logging.getLogger(__name__)


class ReminderBackgroundService:
    """
    Background service for invoice reminders.

    WHAT: Sweeps open invoices and dispatches the reminders they are owed.

    WHY: Keeps reminder cadence and overdue status current without any
    request traffic.

    Example:
        service = ReminderBackgroundService()
        stats = await service.run_reminder_sweep()
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        notifier: Optional[ReminderNotifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
        batch_size: int = 500,
    ):
        """
        Initialize reminder background service.

        Args:
            session_factory: Factory for database sessions (defaults to AsyncSessionLocal)
            notifier: Reminder notifier (defaults to one over the global email service)
            clock: Returns the current UTC time
            batch_size: Invoices loaded per page of the sweep
        """
        self._session_factory = session_factory or AsyncSessionLocal
        self._notifier = notifier
        self._clock = clock
        self._batch_size = batch_size

    def _get_notifier(self) -> ReminderNotifier:
        if self._notifier is None:
            self._notifier = ReminderNotifier()
        return self._notifier

    async def run_reminder_sweep(self) -> Dict[str, int]:
        """
        Main job function: dispatch due reminders for all open invoices.

        Returns:
            Dict with counts of invoices checked, reminders sent and failed,
            and invoices that raised errors
        """
        logger.info("Starting invoice reminder sweep")
        start_time = datetime.utcnow()

        stats = {
            "invoices_checked": 0,
            "reminders_sent": 0,
            "reminders_failed": 0,
            "errors": 0,
        }

        async with self._session_factory() as session:
            dao = InvoiceDAO(session)
            service = InvoiceLedgerService(
                session,
                notifier=self._get_notifier(),
                clock=self._clock,
            )

            cursor = None
            while True:
                invoices = await dao.get_open_for_reminders(limit=self._batch_size, after=cursor)
                if not invoices:
                    break
                targets = [
                    (invoice.id, invoice.owner_id, invoice.invoice_number) for invoice in invoices
                ]
                cursor = (invoices[-1].due_date, invoices[-1].id)
                logger.info(f"Checking reminders for {len(targets)} open invoices")

                for invoice_id, owner_id, invoice_number in targets:
                    stats["invoices_checked"] += 1
                    try:
                        report = await service.dispatch_due_reminders(
                            owner_id=owner_id,
                            invoice_id=invoice_id,
                            sent_by=settings.REMINDER_SENDER,
                        )
                        await session.commit()
                        stats["reminders_sent"] += len(report.sent)
                        stats["reminders_failed"] += len(report.failed)
                    except Exception as e:
                        logger.error(f"Error processing reminders for invoice {invoice_number}: {e}")
                        await session.rollback()
                        stats["errors"] += 1

                if len(invoices) < self._batch_size:
                    break

        elapsed = (datetime.utcnow() - start_time).total_seconds()
        logger.info(
            f"Invoice reminder sweep completed in {elapsed:.2f}s. "
            f"Checked: {stats['invoices_checked']}, "
            f"Sent: {stats['reminders_sent']}, "
            f"Failed: {stats['reminders_failed']}, "
            f"Errors: {stats['errors']}"
        )

        return stats


# Global instance
_reminder_service: Optional[ReminderBackgroundService] = None


def get_reminder_service() -> ReminderBackgroundService:
    """Get or create the global reminder background service."""
    global _reminder_service

    if _reminder_service is None:
        _reminder_service = ReminderBackgroundService()

    return _reminder_service
