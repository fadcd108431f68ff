"""
Invoice status resolution.

WHAT: Derives the reported invoice status from money, time and the last
explicit lifecycle stage, and validates explicit lifecycle actions.

WHY: Status is never stored as the result of scattered conditionals.
One ordered rule table decides it, so the same facts always produce the
same status and the rules can be read (and tested) in one place.

HOW:
1. resolve_status() walks STATUS_RULES in priority order; the first
   matching predicate wins, otherwise the last explicit stage is reported.
2. next_stage() looks up (action, stage) in STAGE_TRANSITIONS and raises
   InvalidStateTransitionError for anything not listed.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple, Union

from ledger.core.exceptions import InvalidStateTransitionError
from ledger.models.enums import InvoiceStage, InvoiceStatus, LifecycleAction


@dataclass(frozen=True)
class StatusFacts:
    """Inputs the status rules are evaluated against."""

    stage: InvoiceStage
    amount_paid: Decimal
    total_amount: Decimal
    due_date: Optional[date]
    today: date

    @property
    def amount_due(self) -> Decimal:
        return self.total_amount - self.amount_paid


def _is_cancelled(facts: StatusFacts) -> bool:
    return facts.stage == InvoiceStage.CANCELLED


def _is_fully_paid(facts: StatusFacts) -> bool:
    return facts.total_amount > 0 and facts.amount_paid >= facts.total_amount


def _is_partially_paid(facts: StatusFacts) -> bool:
    return 0 < facts.amount_paid < facts.total_amount


def _is_overdue(facts: StatusFacts) -> bool:
    # Overdue is evaluated at date granularity, never for unsent drafts
    return (
        facts.amount_due > 0
        and facts.due_date is not None
        and facts.today > facts.due_date
        and facts.stage != InvoiceStage.DRAFT
    )


# Priority order matters: the first matching rule decides the status.
STATUS_RULES: Tuple[Tuple[Callable[[StatusFacts], bool], InvoiceStatus], ...] = (
    (_is_cancelled, InvoiceStatus.CANCELLED),
    (_is_fully_paid, InvoiceStatus.PAID),
    (_is_partially_paid, InvoiceStatus.PARTIALLY_PAID),
    (_is_overdue, InvoiceStatus.OVERDUE),
)


def _as_date(now: Union[date, datetime]) -> date:
    if isinstance(now, datetime):
        return now.date()
    return now


def resolve_status(
    stage: InvoiceStage,
    amount_paid: Decimal,
    total_amount: Decimal,
    due_date: Optional[date],
    now: Union[date, datetime],
) -> InvoiceStatus:
    """
    Derive the invoice status.

    Args:
        stage: Last explicit lifecycle stage
        amount_paid: Sum of recorded payments
        total_amount: Invoice total after tax and discount
        due_date: Payment due date
        now: Current time (date or datetime)

    Returns:
        The derived InvoiceStatus
    """
    facts = StatusFacts(
        stage=InvoiceStage(stage),
        amount_paid=amount_paid or Decimal("0"),
        total_amount=total_amount or Decimal("0"),
        due_date=due_date,
        today=_as_date(now),
    )

    for predicate, status in STATUS_RULES:
        if predicate(facts):
            return status

    return InvoiceStatus(facts.stage.value)


# (action) -> {allowed stage: resulting stage}
STAGE_TRANSITIONS: Dict[LifecycleAction, Dict[InvoiceStage, InvoiceStage]] = {
    LifecycleAction.SEND: {
        InvoiceStage.DRAFT: InvoiceStage.SENT,
        InvoiceStage.SENT: InvoiceStage.SENT,
        InvoiceStage.VIEWED: InvoiceStage.VIEWED,
    },
    LifecycleAction.VIEW: {
        InvoiceStage.DRAFT: InvoiceStage.DRAFT,
        InvoiceStage.SENT: InvoiceStage.VIEWED,
        InvoiceStage.VIEWED: InvoiceStage.VIEWED,
        InvoiceStage.CANCELLED: InvoiceStage.CANCELLED,
    },
    LifecycleAction.CANCEL: {
        InvoiceStage.DRAFT: InvoiceStage.CANCELLED,
        InvoiceStage.SENT: InvoiceStage.CANCELLED,
        InvoiceStage.VIEWED: InvoiceStage.CANCELLED,
    },
}


def next_stage(
    action: LifecycleAction,
    stage: InvoiceStage,
    status: InvoiceStatus,
) -> InvoiceStage:
    """
    Validate an explicit lifecycle action and return the resulting stage.

    WHY: Paid invoices are a settled financial record; they cannot be
    cancelled even though their stage alone would allow it.

    Raises:
        InvalidStateTransitionError: Action not allowed from the current state
    """
    action = LifecycleAction(action)
    stage = InvoiceStage(stage)

    if action == LifecycleAction.CANCEL and status == InvoiceStatus.PAID:
        raise InvalidStateTransitionError(
            message="Paid invoices cannot be cancelled",
            current_state=status.value,
            requested_action=action.value,
        )

    allowed = STAGE_TRANSITIONS[action]
    if stage not in allowed:
        raise InvalidStateTransitionError(
            message=f"Cannot {action.value} an invoice in '{status.value}' status",
            current_state=status.value,
            requested_action=action.value,
        )

    return allowed[stage]
