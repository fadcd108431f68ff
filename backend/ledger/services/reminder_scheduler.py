"""
Reminder cadence.

WHAT: Decides which payment reminders an invoice is owed right now.

WHY: Reminders go out before the due date, on it, and at configured
offsets after it. The sent-reminder log is the only memory the scheduler
has; a (type, offset) pair already in the log is never emitted again, so
re-running the sweep cannot double-send.

HOW: compute_due_reminders() is a pure function of the settings, the
due date, the current time, the sent log, and the invoice's status and
balance. Dispatching and recording are the caller's job.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from ledger.core.exceptions import ValidationError
from ledger.models.enums import InvoiceStatus, ReminderType


ReminderKey = Tuple[ReminderType, int]

SILENT_STATUSES = {InvoiceStatus.DRAFT, InvoiceStatus.PAID, InvoiceStatus.CANCELLED}


@dataclass(frozen=True)
class ReminderSettings:
    """
    Per-invoice reminder cadence.

    after_due_days is kept sorted and de-duplicated.
    """

    before_due_days: int = 3
    on_due_date: bool = True
    after_due_days: Tuple[int, ...] = field(default_factory=lambda: (1, 7, 14, 30))

    def __post_init__(self):
        if self.before_due_days is None or int(self.before_due_days) < 0:
            raise ValidationError(
                message="before_due_days must be zero or greater",
                field="before_due_days",
            )
        offsets = tuple(sorted({int(d) for d in (self.after_due_days or ())}))
        if any(d < 0 for d in offsets):
            raise ValidationError(
                message="after_due_days entries must be zero or greater",
                field="after_due_days",
            )
        object.__setattr__(self, "before_due_days", int(self.before_due_days))
        object.__setattr__(self, "on_due_date", bool(self.on_due_date))
        object.__setattr__(self, "after_due_days", offsets)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ReminderSettings":
        """Build settings from a stored JSON snapshot; missing keys use defaults."""
        if not data:
            return cls()
        defaults = cls()
        return cls(
            before_due_days=data.get("before_due_days", defaults.before_due_days),
            on_due_date=data.get("on_due_date", defaults.on_due_date),
            after_due_days=tuple(data.get("after_due_days", defaults.after_due_days) or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "before_due_days": self.before_due_days,
            "on_due_date": self.on_due_date,
            "after_due_days": list(self.after_due_days),
        }


@dataclass(frozen=True)
class ReminderCandidate:
    """A reminder the invoice is owed but has not been sent."""

    reminder_type: ReminderType
    offset_days: int
    scheduled_for: date

    @property
    def key(self) -> ReminderKey:
        return (self.reminder_type, self.offset_days)


def compute_due_reminders(
    settings: ReminderSettings,
    due_date: Optional[date],
    now: Union[date, datetime],
    sent: Iterable[ReminderKey],
    status: InvoiceStatus,
    amount_due: Decimal,
) -> List[ReminderCandidate]:
    """
    List reminders owed at `now`.

    Rules:
    - Nothing for paid or cancelled invoices, or when no balance remains.
    - Nothing for drafts either, beyond that base rule: the client has never
      received a draft, so there is nothing to remind them of.
    - pre_due: today in [due_date - before_due_days, due_date); skipped when
      before_due_days is 0.
    - on_due: today == due_date and on_due_date enabled.
    - post_due: one per offset d with today >= due_date + d.

    Args:
        settings: Reminder cadence for the invoice
        due_date: Invoice due date
        now: Current time
        sent: (type, offset_days) pairs already recorded as sent
        status: Current derived status
        amount_due: Current balance

    Returns:
        Candidates ordered pre_due, on_due, then post_due by offset
    """
    if due_date is None or status in SILENT_STATUSES or amount_due is None or amount_due <= 0:
        return []

    today = now.date() if isinstance(now, datetime) else now
    already_sent: Set[ReminderKey] = {(ReminderType(t), int(d)) for t, d in sent}
    candidates: List[ReminderCandidate] = []

    if settings.before_due_days > 0:
        window_start = due_date - timedelta(days=settings.before_due_days)
        if window_start <= today < due_date and (ReminderType.PRE_DUE, 0) not in already_sent:
            candidates.append(ReminderCandidate(ReminderType.PRE_DUE, 0, window_start))

    if settings.on_due_date and today == due_date and (ReminderType.ON_DUE, 0) not in already_sent:
        candidates.append(ReminderCandidate(ReminderType.ON_DUE, 0, due_date))

    for offset in settings.after_due_days:
        scheduled_for = due_date + timedelta(days=offset)
        if today >= scheduled_for and (ReminderType.POST_DUE, offset) not in already_sent:
            candidates.append(ReminderCandidate(ReminderType.POST_DUE, offset, scheduled_for))

    return candidates
