"""
FastAPI dependencies for owner scoping and service wiring.

WHY: Dependencies provide reusable request plumbing that can be injected
into route handlers, following the DRY principle and ensuring every
invoice route is scoped to exactly one owner.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from ledger.core.exceptions import AuthenticationError
from ledger.db.session import get_db
from ledger.services.invoice_service import InvoiceLedgerService


async def get_current_owner_id(
    x_owner_id: Optional[str] = Header(default=None, alias="X-Owner-Id"),
) -> int:
    """
    Get the owner identity of the current request.

    WHY: Authentication lives in front of this service (gateway or parent
    application), which forwards the authenticated owner in the X-Owner-Id
    header. Invoices of other owners are invisible to the request.

    Usage:
        @router.get("/invoices")
        async def list_invoices(owner_id: int = Depends(get_current_owner_id)):
            ...

    Returns:
        Positive owner id

    Raises:
        AuthenticationError: Header missing, non-numeric or not positive
    """
    if x_owner_id is None or not x_owner_id.strip():
        raise AuthenticationError(message="X-Owner-Id header is required")

    try:
        owner_id = int(x_owner_id)
    except ValueError:
        raise AuthenticationError(message="X-Owner-Id must be an integer", reason="malformed")

    if owner_id <= 0:
        raise AuthenticationError(message="X-Owner-Id must be positive", reason="malformed")

    return owner_id


async def get_ledger_service(db: AsyncSession = Depends(get_db)) -> InvoiceLedgerService:
    """
    Get an InvoiceLedgerService bound to the request's session.

    WHY: get_db commits when the handler returns, so everything the
    service flushed during the request becomes durable together.
    """
    return InvoiceLedgerService(db)
