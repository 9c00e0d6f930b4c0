"""Deterministic invoice arithmetic.

All totals are derived from the line items and the merchant's tax settings:
``grand_total = subtotal + tax + shipping - discount``. Tax is charged on the
subtotal at the merchant-configured rate only.
"""

from datetime import date, timedelta
from decimal import Decimal

from chat_invoice.interpretation.amounts import quantize_money
from chat_invoice.interpretation.schema import (
    DiscountType,
    DownPayment,
    ExtractedOrder,
    Installment,
    PartialLineItem,
    PaymentSchedule,
    ScheduleType,
)

HUNDRED = Decimal("100")
ZERO = Decimal("0")

PAYMENT_TERM_DAYS: dict[str, int] = {
    "DUE_ON_RECEIPT": 0,
    "NET_15": 15,
    "NET_30": 30,
    "NET_45": 45,
    "NET_60": 60,
}


def due_date_for_terms(invoice_date: date, payment_terms: str) -> date:
    """Due date implied by payment terms; unknown terms are treated as NET_30."""
    return invoice_date + timedelta(days=PAYMENT_TERM_DAYS.get(payment_terms, 30))


def normalize_items(items: list[PartialLineItem], currency: str) -> list[PartialLineItem]:
    """Return copies of ``items`` with ``line_total = quantity * unit_price``.

    The unit price is rounded to the currency's minor unit first and the line
    total after multiplying, so the equality is exact for whole quantities and
    holds to the minor unit for fractional ones (1.5 x 33333 IDR is 50000).
    """
    normalized = []
    for item in items:
        unit_price = quantize_money(max(item.unit_price, ZERO), currency)
        line_total = quantize_money(item.quantity * unit_price, currency)
        normalized.append(
            item.model_copy(update={"unit_price": unit_price, "line_total": max(line_total, ZERO)})
        )
    return normalized


def discount_amount(
    subtotal: Decimal, discount: Decimal, discount_type: DiscountType, currency: str
) -> Decimal:
    """Money value of a discount, never more than the subtotal.

    A "percentage" above 100 is read as an absolute amount.
    """
    if discount <= 0:
        return ZERO
    if discount_type == DiscountType.PERCENTAGE and discount <= HUNDRED:
        amount = subtotal * discount / HUNDRED
    else:
        amount = discount
    return quantize_money(min(amount, subtotal), currency)


def tax_amount(subtotal: Decimal, tax_enabled: bool, tax_rate: Decimal, currency: str) -> Decimal:
    if not tax_enabled or tax_rate <= 0:
        return ZERO
    return quantize_money(subtotal * tax_rate / HUNDRED, currency)


def build_payment_schedule(
    grand_total: Decimal,
    *,
    currency: str,
    invoice_date: date,
    final_due_date: date,
    percentage: Decimal | None = None,
    amount: Decimal | None = None,
    immediate: bool = True,
    down_payment_due_date: date | None = None,
) -> PaymentSchedule:
    """Split ``grand_total`` into a down payment and a remaining balance.

    Exactly one of ``percentage`` or ``amount`` should be given. An absolute
    amount is capped at the grand total. The remaining balance is always
    ``grand_total - down_payment`` so the two installments sum exactly.

    Args:
        grand_total: Invoice grand total
        currency: Currency used for rounding
        invoice_date: Invoice date, due date of an immediate down payment
        final_due_date: Due date of the remaining balance
        percentage: Down payment percentage (0-100)
        amount: Absolute down payment amount
        immediate: Whether the down payment is due on the invoice date
        down_payment_due_date: Due date of a non-immediate down payment

    Returns:
        PaymentSchedule with both installments pending
    """
    if amount is not None:
        down = quantize_money(min(amount, grand_total), currency)
        pct = (down * HUNDRED / grand_total).quantize(Decimal("0.01")) if grand_total > 0 else ZERO
    else:
        pct = percentage if percentage is not None else ZERO
        down = quantize_money(grand_total * pct / HUNDRED, currency)

    dp_due = invoice_date if immediate or down_payment_due_date is None else down_payment_due_date
    return PaymentSchedule(
        schedule_type=ScheduleType.DOWN_PAYMENT,
        total_amount=grand_total,
        down_payment=DownPayment(
            percentage=pct,
            amount=down,
            due_date=dp_due,
            stated_amount=amount,
        ),
        remaining_balance=Installment(amount=grand_total - down, due_date=final_due_date),
        immediate_down_payment=immediate,
    )


def rebalance_schedule(
    schedule: PaymentSchedule, grand_total: Decimal, currency: str
) -> PaymentSchedule:
    """Recompute installment amounts after the grand total changed."""
    return build_payment_schedule(
        grand_total,
        currency=currency,
        invoice_date=schedule.down_payment.due_date,
        final_due_date=schedule.remaining_balance.due_date,
        percentage=schedule.down_payment.percentage,
        amount=schedule.down_payment.stated_amount,
        immediate=True,
    ).model_copy(update={"immediate_down_payment": schedule.immediate_down_payment})


def recompute_totals(order: ExtractedOrder) -> ExtractedOrder:
    """Return a copy of ``order`` with every derived amount recomputed.

    Lines are normalized first, then subtotal, discount, tax, grand total
    and, when present, the payment schedule.
    """
    currency = order.currency
    items = normalize_items(order.items, currency)
    subtotal = sum((item.line_total for item in items), ZERO)
    shipping = quantize_money(max(order.shipping, ZERO), currency)
    discount = discount_amount(subtotal, order.discount, order.discount_type, currency)
    tax = tax_amount(subtotal, order.tax_enabled, order.tax_rate, currency)
    grand_total = max(subtotal + tax + shipping - discount, ZERO)

    schedule = order.payment_schedule
    if schedule is not None and schedule.schedule_type == ScheduleType.DOWN_PAYMENT:
        schedule = rebalance_schedule(schedule, grand_total, currency)

    return order.model_copy(
        update={
            "items": items,
            "subtotal": subtotal,
            "shipping": shipping,
            "discount_amount": discount,
            "tax_amount": tax,
            "grand_total": grand_total,
            "payment_schedule": schedule,
        }
    )
