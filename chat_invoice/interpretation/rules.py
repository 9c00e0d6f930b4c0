"""Deterministic business-rule extraction layered over the model draft.

The completion draft is treated as untrusted. Discounts, down-payment
schedules and notes are re-derived from the raw message with explicit keyword
rules, and every amount is recomputed from the line items.

Rule order matters: the discount phrase is consumed first, so "discount 10%"
can never be read as a 10% down payment.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from chat_invoice.interpretation.amounts import parse_amount
from chat_invoice.interpretation.schema import DiscountType, ExtractedOrder
from chat_invoice.interpretation.totals import build_payment_schedule, recompute_totals
from chat_invoice.shared.config import Settings

logger = logging.getLogger(__name__)

_VALUE = r"(?P<value>\d[\d.,]*)\s*(?P<unit>%|persen|percent|ribu|rb|juta|jt|k)?(?![a-z])"

DISCOUNT_RE = re.compile(
    r"\b(?:discount|disc|diskon|potongan|potong)\b\.?\s*(?:harga\s+)?"
    r"(?:sebesar\s+|of\s+|:\s*)?(?:rp\.?\s*)?" + _VALUE,
    re.IGNORECASE,
)

# "dp" inside tokens such as "budi.dp" or "/dp/" is not a keyword
_DOWN_PAYMENT_KEYWORD = r"(?:down\s*payment|uang\s+muka|bayar\s+muka|(?<![.@/])dp)"

# E-mail addresses and URLs are blanked before any keyword rule runs
ADDRESS_RE = re.compile(
    r"[\w.+-]+@[\w-]+(?:\.[\w-]+)*\.[a-z]{2,}\b|\bhttps?://\S+|\bwww\.\S+", re.IGNORECASE
)

DOWN_PAYMENT_KEYWORD_RE = re.compile(r"\b" + _DOWN_PAYMENT_KEYWORD + r"\b", re.IGNORECASE)

DOWN_PAYMENT_VALUE_RE = re.compile(
    r"\b" + _DOWN_PAYMENT_KEYWORD + r"\b\s*(?:dulu\s+|first\s+)?"
    r"(?:sebesar\s+|of\s+|:\s*)?(?:rp\.?\s*)?" + _VALUE,
    re.IGNORECASE,
)

# "30% DP", "30 persen uang muka"
DOWN_PAYMENT_PREFIX_RE = re.compile(
    r"(?P<value>\d+(?:[.,]\d+)?)\s*(?:%|persen|percent)\s*(?:as\s+|sebagai\s+)?"
    + _DOWN_PAYMENT_KEYWORD
    + r"\b",
    re.IGNORECASE,
)

IMMEDIATE_RE = re.compile(r"\b(?:dulu|first|now|sekarang)\b", re.IGNORECASE)

FINAL_DATE_RE = re.compile(
    r"\b(?:sisa(?:nya)?|pelunasan|lunas|final\s+payment|remaining(?:\s+balance)?)\b"
    r"[^\d\n]{0,40}?"
    r"(?P<date>\d{4}-\d{1,2}-\d{1,2}|\d{1,2}[/-]\d{1,2}[/-]\d{4})",
    re.IGNORECASE,
)

NOTES_RE = re.compile(r"\b(?:catatan|notes?)\s*:\s*(?P<notes>[^\n]+)", re.IGNORECASE)

PERCENT_UNITS = ("%", "persen", "percent")


@dataclass(frozen=True)
class DiscountRule:
    value: Decimal
    discount_type: DiscountType
    span: tuple[int, int]


@dataclass(frozen=True)
class DownPaymentRule:
    percentage: Decimal | None
    amount: Decimal | None
    immediate: bool
    final_due_date: date | None


def parse_date(text: str) -> date | None:
    """Parse ``2025-08-20`` or day-first ``20/08/2025`` / ``20-08-2025``."""
    parts = re.split(r"[/-]", text)
    try:
        if len(parts[0]) == 4:
            return date(int(parts[0]), int(parts[1]), int(parts[2]))
        return date(int(parts[2]), int(parts[1]), int(parts[0]))
    except (ValueError, IndexError):
        return None


def find_discount(text: str) -> DiscountRule | None:
    """Find the first keyword-anchored discount phrase."""
    match = DISCOUNT_RE.search(text)
    if not match:
        return None

    unit = (match.group("unit") or "").lower()
    if unit in PERCENT_UNITS:
        value = parse_amount(match.group("value"))
        discount_type = DiscountType.PERCENTAGE
        if value is not None and value > 100:
            discount_type = DiscountType.FIXED
    else:
        value = parse_amount(match.group("value") + unit)
        discount_type = DiscountType.FIXED

    if value is None or value <= 0:
        return None
    return DiscountRule(value=value, discount_type=discount_type, span=match.span())


def find_down_payment(text: str) -> DownPaymentRule | None:
    """Find a down-payment request; ``text`` must already have the discount blanked out."""
    if not DOWN_PAYMENT_KEYWORD_RE.search(text):
        return None

    percentage: Decimal | None = None
    amount: Decimal | None = None

    prefix = DOWN_PAYMENT_PREFIX_RE.search(text)
    match = DOWN_PAYMENT_VALUE_RE.search(text)
    if prefix:
        percentage = parse_amount(prefix.group("value"))
    elif match:
        unit = (match.group("unit") or "").lower()
        if unit in PERCENT_UNITS:
            percentage = parse_amount(match.group("value"))
        else:
            amount = parse_amount(match.group("value") + unit)

    if percentage is not None and not (0 < percentage <= 100):
        percentage = None
    if amount is not None and amount <= 0:
        amount = None

    final_due_date = None
    date_match = FINAL_DATE_RE.search(text)
    if date_match:
        final_due_date = parse_date(date_match.group("date"))

    return DownPaymentRule(
        percentage=percentage,
        amount=amount,
        immediate=IMMEDIATE_RE.search(text) is not None,
        final_due_date=final_due_date,
    )


def blank_span(text: str, span: tuple[int, int]) -> str:
    start, end = span
    return text[:start] + " " * (end - start) + text[end:]


def mask_addresses(text: str) -> str:
    """Blank out e-mail addresses and URLs, keeping every other offset intact."""
    return ADDRESS_RE.sub(lambda match: " " * len(match.group()), text)


class RuleExtractor:
    """Correct a model-produced order draft with deterministic rules.

    ``apply`` is pure and idempotent: it returns a new order and applying it
    twice with the same message gives the same result.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def apply(self, order: ExtractedOrder, raw_message: str) -> ExtractedOrder:
        """Apply discount, down-payment and notes rules, then recompute totals.

        Args:
            order: Draft from the interpreter (completion or fallback path)
            raw_message: Original merchant message

        Returns:
            Corrected copy of ``order``
        """
        text = mask_addresses(raw_message or "")
        update: dict = {}

        discount = find_discount(text)
        if discount:
            update["discount"] = discount.value
            update["discount_type"] = discount.discount_type
            text = blank_span(text, discount.span)
        else:
            update["discount"] = Decimal("0")
            update["discount_type"] = DiscountType.FIXED

        if not order.notes:
            notes = NOTES_RE.search(raw_message or "")
            if notes:
                update["notes"] = notes.group("notes").strip()

        down_payment = find_down_payment(text)
        previous_schedule = order.payment_schedule
        if previous_schedule is not None and down_payment is None:
            logger.info(
                f"Dropping payment schedule on {order.invoice_number}: "
                "no down-payment keyword in message"
            )
        update["payment_schedule"] = None

        corrected = recompute_totals(order.model_copy(update=update))
        if down_payment is None:
            return corrected

        percentage = down_payment.percentage
        amount = down_payment.amount
        if percentage is None and amount is None:
            if previous_schedule is not None and previous_schedule.down_payment.stated_amount:
                amount = previous_schedule.down_payment.stated_amount
            elif previous_schedule is not None and previous_schedule.down_payment.percentage > 0:
                percentage = previous_schedule.down_payment.percentage
            else:
                percentage = self.settings.default_down_payment_percentage

        final_due_date = down_payment.final_due_date
        if final_due_date is None:
            final_due_date = (
                previous_schedule.remaining_balance.due_date
                if previous_schedule is not None
                else corrected.due_date
            )

        schedule = build_payment_schedule(
            corrected.grand_total,
            currency=corrected.currency,
            invoice_date=corrected.invoice_date,
            final_due_date=final_due_date,
            percentage=percentage,
            amount=amount,
            immediate=down_payment.immediate,
        )
        return corrected.model_copy(update={"payment_schedule": schedule})
