"""
Email service for invoice notifications.

WHAT: This service provides a unified interface for sending invoice
emails (invoice sent, payment reminders) through a pluggable provider.

WHY: The ledger decides *when* a client is owed a reminder; delivering it
is an external concern. Keeping delivery behind a provider interface
means:
1. The reminder sweep can be exercised without sending real email
2. A failed send comes back as a result the ledger can record, instead
   of an exception thrown from deep inside a provider SDK

HOW: Uses the Resend API over httpx when an API key is configured,
otherwise a mock provider that logs and keeps sent messages in memory.
ReminderNotifier adapts a reminder candidate for an invoice into an
email.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from ledger.core.config import settings
from ledger.models.enums import ReminderType

logger = logging.getLogger(__name__)


# ============================================================================
# Email Types
# ============================================================================


class EmailType(str, Enum):
    """Types of invoice emails, used for tracking and logging."""

    INVOICE_SENT = "invoice_sent"
    """Invoice delivered to the client."""

    INVOICE_REMINDER = "invoice_reminder"
    """Payment reminder (pre-due, on-due or post-due)."""


@dataclass
class EmailMessage:
    """
    Represents an email to be sent.

    WHAT: Data container for email content and metadata.
    """

    to_email: str
    """Recipient email address."""

    subject: str
    """Email subject line."""

    html_content: str
    """HTML email body."""

    text_content: Optional[str] = None
    """Plain text fallback."""

    from_email: Optional[str] = None
    """Sender email (defaults to configured sender)."""

    reply_to: Optional[str] = None
    """Reply-to address."""

    email_type: EmailType = EmailType.INVOICE_REMINDER
    """Type of email for tracking/logging."""

    metadata: Optional[Dict[str, Any]] = None
    """Additional metadata for tracking."""


@dataclass
class EmailResult:
    """
    Result of an email send operation.

    WHY: A failed send is data, not an exception: the reminder sweep
    records the error on the invoice and moves on to the next one.
    """

    success: bool
    """Whether email was sent successfully."""

    message_id: Optional[str] = None
    """Provider message ID for tracking."""

    error: Optional[str] = None
    """Error message if send failed."""

    provider: Optional[str] = None
    """Which provider was used."""


# ============================================================================
# Email Provider Interface
# ============================================================================


class EmailProvider(ABC):
    """
    Abstract base class for email providers.

    WHY: Provider abstraction allows switching providers and testing with
    mock providers.
    """

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Send an email message.

        Args:
            message: The email message to send

        Returns:
            EmailResult with success status and provider details
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if this provider has the credentials it needs."""
        pass


class ResendProvider(EmailProvider):
    """Resend email provider implementation."""

    API_URL = "https://api.resend.com/emails"

    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize Resend provider.

        Args:
            api_key: Resend API key (defaults to settings)
        """
        self._api_key = api_key or settings.RESEND_API_KEY
        self._default_from = f"{settings.COMPANY_NAME} <billing@{self._get_domain()}>"

    def _get_domain(self) -> str:
        """Get domain from FRONTEND_URL for default sender."""
        parsed = urlparse(settings.FRONTEND_URL)
        return parsed.hostname or "localhost"

    def is_configured(self) -> bool:
        """Check if Resend API key is configured."""
        return bool(self._api_key)

    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Send email via Resend API.

        HOW: Uses httpx for async HTTP requests to Resend API. Transport
        errors are returned as a failed EmailResult.

        Args:
            message: Email message to send

        Returns:
            EmailResult with send status
        """
        if not self.is_configured():
            return EmailResult(
                success=False,
                error="Resend API key not configured",
                provider="resend",
            )

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    self.API_URL,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": message.from_email or self._default_from,
                        "to": [message.to_email],
                        "subject": message.subject,
                        "html": message.html_content,
                        "text": message.text_content,
                        "reply_to": message.reply_to,
                    },
                    timeout=30.0,
                )
        except httpx.HTTPError as e:
            logger.error(f"Resend send error: {e}")
            return EmailResult(success=False, error=str(e), provider="resend")

        if response.status_code in (200, 201):
            data = response.json()
            return EmailResult(
                success=True,
                message_id=data.get("id"),
                provider="resend",
            )

        return EmailResult(
            success=False,
            error=f"Resend API error: {response.status_code} - {response.text}",
            provider="resend",
        )


class MockEmailProvider(EmailProvider):
    """
    Mock email provider for testing and development.

    WHY: Allows exercising reminder flows without sending real emails.
    Logs emails instead of sending them.
    """

    sent_emails: List[EmailMessage] = []
    """Class-level list to track sent emails for testing."""

    def is_configured(self) -> bool:
        """Mock provider is always configured."""
        return True

    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Mock send - logs email instead of sending.

        Returns:
            Always returns success
        """
        logger.info(
            f"[MOCK EMAIL] To: {message.to_email}, "
            f"Subject: {message.subject}, "
            f"Type: {message.email_type.value}"
        )

        MockEmailProvider.sent_emails.append(message)

        return EmailResult(
            success=True,
            message_id=f"mock-{datetime.utcnow().timestamp()}",
            provider="mock",
        )

    @classmethod
    def clear_sent_emails(cls):
        """Clear sent emails list (for test cleanup)."""
        cls.sent_emails = []


# ============================================================================
# Email Templates
# ============================================================================


REMINDER_SUBJECTS = {
    ReminderType.PRE_DUE: "Upcoming payment: invoice {number} is due on {due_date}",
    ReminderType.ON_DUE: "Payment due today: invoice {number}",
    ReminderType.POST_DUE: "Overdue: invoice {number} was due on {due_date}",
}


class EmailTemplates:
    """
    Email templates for invoice emails.

    WHY: Centralized templates keep branding consistent and separate
    content from sending logic.
    """

    @staticmethod
    def _base_template(content: str, title: str, company_name: str) -> str:
        """Base HTML wrapper shared by every invoice email."""
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <title>{title}</title>
        </head>
        <body style="font-family: Arial, sans-serif; color: #333; background-color: #f5f5f5;">
            <div style="max-width: 600px; margin: 40px auto; background-color: #ffffff; padding: 32px;">
                <h1 style="font-size: 22px;">{company_name}</h1>
                {content}
                <p style="font-size: 13px; color: #6b7280;">
                    You are receiving this email because {company_name} issued you an invoice.
                </p>
            </div>
        </body>
        </html>
        """

    @staticmethod
    def invoice_sent_email(
        client_name: str,
        invoice_number: str,
        total_amount: str,
        currency: str,
        due_date: str,
        invoice_url: str,
        company_name: str,
    ) -> tuple[str, str, str]:
        """
        Invoice delivery email.

        Returns:
            (subject, html_content, text_content)
        """
        subject = f"Invoice {invoice_number} from {company_name}"
        content = f"""
            <p>Hi {client_name},</p>
            <p>Please find invoice <strong>{invoice_number}</strong> for
            <strong>{currency} {total_amount}</strong>, due on {due_date}.</p>
            <p><a href="{invoice_url}">View invoice</a></p>
        """
        text = (
            f"Hi {client_name},\n\n"
            f"Invoice {invoice_number} for {currency} {total_amount} is due on {due_date}.\n"
            f"View it at {invoice_url}\n"
        )
        return subject, EmailTemplates._base_template(content, subject, company_name), text

    @staticmethod
    def invoice_reminder_email(
        reminder_type: ReminderType,
        offset_days: int,
        client_name: str,
        invoice_number: str,
        amount_due: str,
        currency: str,
        due_date: str,
        invoice_url: str,
        company_name: str,
    ) -> tuple[str, str, str]:
        """
        Payment reminder email.

        WHY: Wording changes with the cadence point: a friendly heads-up
        before the due date, a firmer note once it has passed.

        Returns:
            (subject, html_content, text_content)
        """
        subject = REMINDER_SUBJECTS[reminder_type].format(number=invoice_number, due_date=due_date)

        if reminder_type == ReminderType.PRE_DUE:
            lead = f"This is a friendly reminder that invoice {invoice_number} is due on {due_date}."
        elif reminder_type == ReminderType.ON_DUE:
            lead = f"Invoice {invoice_number} is due today."
        else:
            day_word = "day" if offset_days == 1 else "days"
            lead = f"Invoice {invoice_number} is now {offset_days} {day_word} past its due date of {due_date}."

        content = f"""
            <p>Hi {client_name},</p>
            <p>{lead}</p>
            <p>Outstanding balance: <strong>{currency} {amount_due}</strong></p>
            <p><a href="{invoice_url}">View and pay invoice</a></p>
        """
        text = (
            f"Hi {client_name},\n\n"
            f"{lead}\n"
            f"Outstanding balance: {currency} {amount_due}\n"
            f"View and pay: {invoice_url}\n"
        )
        return subject, EmailTemplates._base_template(content, subject, company_name), text


# ============================================================================
# Email Service
# ============================================================================


class EmailService:
    """
    High-level email service for invoice emails.

    WHAT: Renders invoice emails and sends them through a provider.

    HOW: Uses the Resend provider when configured, the mock provider
    otherwise.
    """

    def __init__(self, provider: Optional[EmailProvider] = None):
        """
        Initialize email service.

        Args:
            provider: Email provider to use (auto-detected if not provided)
        """
        if provider:
            self._provider = provider
        elif settings.RESEND_API_KEY:
            self._provider = ResendProvider()
        else:
            logger.warning("No email provider configured, using mock provider")
            self._provider = MockEmailProvider()

    @property
    def provider(self) -> EmailProvider:
        return self._provider

    async def send_email(self, message: EmailMessage) -> EmailResult:
        """
        Send an email message.

        WHAT: Sends an email using the configured provider and logs the
        outcome.

        Args:
            message: Email message to send

        Returns:
            EmailResult with send status
        """
        logger.info(
            f"Sending {message.email_type.value} email to {message.to_email}",
            extra={
                "email_type": message.email_type.value,
                "to": message.to_email,
            },
        )

        result = await self._provider.send(message)

        if result.success:
            logger.info(
                f"Email sent successfully: {result.message_id}",
                extra={
                    "message_id": result.message_id,
                    "provider": result.provider,
                },
            )
        else:
            logger.error(
                f"Email send failed: {result.error}",
                extra={
                    "email_type": message.email_type.value,
                    "to": message.to_email,
                    "error": result.error,
                },
            )

        return result

    async def send_invoice_sent_email(
        self,
        to_email: str,
        client_name: str,
        invoice_id: int,
        invoice_number: str,
        total_amount: str,
        currency: str,
        due_date: str,
        company_name: Optional[str] = None,
    ) -> EmailResult:
        """
        Send the invoice to the client.

        Returns:
            EmailResult with send status
        """
        subject, html_content, text_content = EmailTemplates.invoice_sent_email(
            client_name=client_name,
            invoice_number=invoice_number,
            total_amount=total_amount,
            currency=currency,
            due_date=due_date,
            invoice_url=f"{settings.FRONTEND_URL}/invoices/{invoice_id}",
            company_name=company_name or settings.COMPANY_NAME,
        )

        message = EmailMessage(
            to_email=to_email,
            subject=subject,
            html_content=html_content,
            text_content=text_content,
            reply_to=settings.COMPANY_EMAIL,
            email_type=EmailType.INVOICE_SENT,
            metadata={
                "invoice_id": invoice_id,
                "invoice_number": invoice_number,
                "action": "sent",
            },
        )

        return await self.send_email(message)

    async def send_invoice_reminder_email(
        self,
        to_email: str,
        client_name: str,
        invoice_id: int,
        invoice_number: str,
        amount_due: str,
        currency: str,
        due_date: str,
        reminder_type: ReminderType,
        offset_days: int = 0,
        company_name: Optional[str] = None,
    ) -> EmailResult:
        """
        Send a payment reminder to the client.

        Args:
            reminder_type: pre_due, on_due or post_due
            offset_days: Days past due (post_due only)

        Returns:
            EmailResult with send status
        """
        subject, html_content, text_content = EmailTemplates.invoice_reminder_email(
            reminder_type=reminder_type,
            offset_days=offset_days,
            client_name=client_name,
            invoice_number=invoice_number,
            amount_due=amount_due,
            currency=currency,
            due_date=due_date,
            invoice_url=f"{settings.FRONTEND_URL}/invoices/{invoice_id}",
            company_name=company_name or settings.COMPANY_NAME,
        )

        message = EmailMessage(
            to_email=to_email,
            subject=subject,
            html_content=html_content,
            text_content=text_content,
            reply_to=settings.COMPANY_EMAIL,
            email_type=EmailType.INVOICE_REMINDER,
            metadata={
                "invoice_id": invoice_id,
                "invoice_number": invoice_number,
                "reminder_type": reminder_type.value,
                "offset_days": offset_days,
            },
        )

        return await self.send_email(message)


# ============================================================================
# Reminder Notifier
# ============================================================================


class ReminderNotifier:
    """
    Delivers reminder candidates for an invoice.

    WHAT: Turns (invoice, reminder candidate) into a reminder email.

    WHY: The ledger only knows about invoices and candidates. The notifier
    is the one place that knows how a reminder reaches the client, and it
    reports failure as an EmailResult so nothing is recorded as sent
    unless delivery actually succeeded.
    """

    def __init__(self, email_service: Optional[EmailService] = None):
        self._email_service = email_service or get_email_service()

    async def notify(self, invoice, candidate) -> EmailResult:
        """
        Send one reminder.

        Args:
            invoice: Invoice aggregate
            candidate: ReminderCandidate to deliver

        Returns:
            EmailResult; success=False when the client has no email address
        """
        client = invoice.client or {}
        to_email = client.get("email")
        if not to_email:
            return EmailResult(
                success=False,
                error="Client has no email address",
                provider=None,
            )

        branding = invoice.branding or {}
        return await self._email_service.send_invoice_reminder_email(
            to_email=to_email,
            client_name=client.get("name") or to_email,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            amount_due=f"{invoice.amount_due:.2f}",
            currency=invoice.currency,
            due_date=invoice.due_date.isoformat(),
            reminder_type=candidate.reminder_type,
            offset_days=candidate.offset_days,
            company_name=branding.get("company_name"),
        )

    async def notify_sent(self, invoice) -> EmailResult:
        """Send the invoice itself to the client."""
        client = invoice.client or {}
        to_email = client.get("email")
        if not to_email:
            return EmailResult(success=False, error="Client has no email address")

        branding = invoice.branding or {}
        return await self._email_service.send_invoice_sent_email(
            to_email=to_email,
            client_name=client.get("name") or to_email,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            total_amount=f"{invoice.total_amount:.2f}",
            currency=invoice.currency,
            due_date=invoice.due_date.isoformat(),
            company_name=branding.get("company_name"),
        )


# Global instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """
    Get or create the global email service instance.

    WHY: Singleton pattern ensures consistent configuration
    and resource sharing across the application.

    Returns:
        EmailService instance
    """
    global _email_service

    if _email_service is None:
        _email_service = EmailService()

    return _email_service
