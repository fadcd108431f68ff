"""
Invoice money math.

WHAT: Pure functions for line-item amounts, subtotal, tax/total and the
payment summary.

WHY: Every derived money field on an invoice is computed here, from
scratch, on every recompute. Nothing accumulates incrementally, so
recomputing twice from the same inputs gives identical results and
payments applied in any order converge to the same balance.

HOW: decimal.Decimal throughout, quantized to cents with ROUND_HALF_UP.
Inputs are converted via str() so a float literal never leaks binary
rounding into a stored amount. Caller-supplied amounts, rates and
quantities are never rounded: more decimal places than the column
holds is a validation error (parse_money, parse_quantity, parse_tax_rate).
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from ledger.core.exceptions import LineItemValidationError, ValidationError


CENT = Decimal("0.01")
QUANTITY_STEP = Decimal("0.001")
TAX_RATE_STEP = Decimal("0.0001")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def _to_decimal(value: Any, field: str) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(message=f"{field} must be a number", field=field, value=str(value))
    if not result.is_finite():
        raise ValidationError(message=f"{field} must be a finite number", field=field)
    return result


def to_money(value: Any, field: str = "amount") -> Decimal:
    """Convert a number to a cent-quantized Decimal (round half up)."""
    return _to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value: Any) -> Decimal:
    """Convert a quantity to a Decimal with three decimal places."""
    return _to_decimal(value, "quantity").quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def _parse_exact(value: Any, step: Decimal, field: str, error=ValidationError) -> Decimal:
    """Convert `value` to a multiple of `step`, rejecting anything finer."""
    result = _to_decimal(value, field)
    places = -step.as_tuple().exponent
    try:
        exact = result.quantize(step)
    except InvalidOperation:
        raise error(message=f"{field} is too large", field=field, value=str(value))
    if exact != result:
        raise error(
            message=f"{field} allows at most {places} decimal places",
            field=field,
            value=str(value),
        )
    return exact


def parse_money(value: Any, field: str = "amount", error=ValidationError) -> Decimal:
    """Caller-supplied currency amount; sub-cent precision is rejected."""
    return _parse_exact(value, CENT, field, error)


def parse_quantity(value: Any) -> Decimal:
    """Caller-supplied quantity; at most three decimal places."""
    return _parse_exact(value, QUANTITY_STEP, "quantity", LineItemValidationError)


def parse_tax_rate(value: Any) -> Decimal:
    """
    Caller-supplied tax percentage.

    Stored with four decimal places so rates like 8.125 are kept exactly;
    tax itself is rounded to cents only when it is computed.

    Raises:
        ValidationError: Out of 0-100 or more than four decimal places
    """
    rate = _parse_exact(value, TAX_RATE_STEP, "tax_rate")
    if rate < 0 or rate > HUNDRED:
        raise ValidationError(
            message="Tax rate must be between 0 and 100",
            field="tax_rate",
            value=str(rate),
        )
    return rate


def validate_line_item(description: Optional[str], quantity: Any, rate: Any) -> tuple[str, Decimal, Decimal]:
    """
    Validate and normalise one line item.

    Returns:
        (description, quantity, rate) normalised

    Raises:
        LineItemValidationError: blank description, negative quantity/rate,
            or more precision than a quantity (3 places) or rate (2 places) holds
    """
    cleaned = (description or "").strip()
    if not cleaned:
        raise LineItemValidationError(message="Line item description is required", field="description")

    qty = parse_quantity(quantity)
    if qty < 0:
        raise LineItemValidationError(
            message="Line item quantity cannot be negative",
            field="quantity",
            value=str(qty),
        )

    unit_rate = parse_money(rate, "rate", LineItemValidationError)
    if unit_rate < 0:
        raise LineItemValidationError(
            message="Line item rate cannot be negative",
            field="rate",
            value=str(unit_rate),
        )

    return cleaned, qty, unit_rate


def line_item_amount(quantity: Any, rate: Any) -> Decimal:
    """amount = quantity × rate, rounded to cents."""
    return (to_quantity(quantity) * to_money(rate, "rate")).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_subtotal(amounts: Iterable[Any]) -> Decimal:
    """Sum of line item amounts."""
    return sum((to_money(amount) for amount in amounts), ZERO)


@dataclass(frozen=True)
class Totals:
    """Result of the totals calculation."""

    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    discount_clamped: bool = False


def compute_totals(subtotal: Any, tax_rate: Any, discount: Any) -> Totals:
    """
    Turn (subtotal, tax rate, discount) into tax and total.

    WHAT: tax = round_half_up(subtotal × tax_rate / 100, 2);
    total = subtotal + tax − discount.

    WHY: When the discount exceeds subtotal + tax the total would go
    negative. It is clamped to zero and flagged instead, so the invoice
    never claims the freelancer owes the client.

    Args:
        subtotal: Sum of line item amounts
        tax_rate: Percentage, 0-100
        discount: Absolute currency amount, >= 0

    Returns:
        Totals with discount_clamped set when the clamp applied

    Raises:
        ValidationError: tax_rate outside 0-100 or negative discount
    """
    base = to_money(subtotal, "subtotal")
    rate = _to_decimal(tax_rate, "tax_rate")
    if rate < 0 or rate > HUNDRED:
        raise ValidationError(
            message="Tax rate must be between 0 and 100",
            field="tax_rate",
            value=str(rate),
        )

    reduction = to_money(discount, "discount")
    if reduction < 0:
        raise ValidationError(
            message="Discount cannot be negative",
            field="discount",
            value=str(reduction),
        )

    tax_amount = (base * rate / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    total_amount = base + tax_amount - reduction
    clamped = total_amount < 0
    if clamped:
        total_amount = ZERO

    return Totals(
        subtotal=base,
        tax_amount=tax_amount,
        total_amount=total_amount,
        discount_clamped=clamped,
    )


@dataclass(frozen=True)
class PaymentSummary:
    """Derived payment figures for an invoice."""

    amount_paid: Decimal
    amount_due: Decimal


def summarize_payments(total_amount: Any, payment_amounts: Iterable[Any]) -> PaymentSummary:
    """
    amount_paid = Σ payments; amount_due = total − amount_paid.

    amount_due is allowed to go negative: an overpayment is a credit owed
    back to the client, not something to hide.
    """
    paid = compute_subtotal(payment_amounts)
    return PaymentSummary(amount_paid=paid, amount_due=to_money(total_amount) - paid)
