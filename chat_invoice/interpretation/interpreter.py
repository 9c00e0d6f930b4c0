"""Order interpretation: free-form merchant text to a structured order draft.

The completion collaborator produces a draft; the draft is parsed, validated,
priced from the catalog where needed and then corrected by the rule
extractor. Any failure of the completion path degrades to
``ExtractedOrder.fallback`` instead of failing the request.
"""

import json
import logging
import re
import secrets
import string
import time
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from chat_invoice.completion.base import CompletionProvider, CompletionRequest
from chat_invoice.interpretation.prompts import SYSTEM_PROMPT, build_user_prompt, token_budget
from chat_invoice.interpretation.rules import RuleExtractor
from chat_invoice.interpretation.schema import (
    BusinessProfile,
    CatalogSnapshot,
    CompletionOrderPayload,
    CustomerPayload,
    ExtractedOrder,
    OrderSource,
    PartialCustomer,
    PartialLineItem,
    PipelineWarning,
    WarningType,
)
from chat_invoice.interpretation.totals import build_payment_schedule, due_date_for_terms
from chat_invoice.matching.similarity import best_match
from chat_invoice.shared.config import Settings
from chat_invoice.shared.errors import InputError
from chat_invoice.shared.metrics import completion_duration_seconds, interpretations_total

logger = logging.getLogger(__name__)


class CompletionParseError(ValueError):
    """Raised when completion output cannot be turned into an order."""


def generate_invoice_number(now: datetime | None = None) -> str:
    """Invoice number like ``INV-2025-123456-AB12``."""
    now = now or datetime.now()
    stamp = str(int(now.timestamp() * 1000))[-6:]
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"INV-{now.year}-{stamp}-{suffix}"


def _reject_constant(name: str) -> Any:
    raise CompletionParseError(f"Completion JSON contains non-finite number {name}")


def parse_json_object(text: str) -> dict[str, Any]:
    """Extract a JSON object from completion text.

    Tolerates markdown code fences and prose around the object.

    Raises:
        json.JSONDecodeError: If no valid JSON found
        CompletionParseError: If the JSON is not an object or contains NaN or Infinity
    """
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    if fenced:
        candidate = fenced.group(1).strip()
    else:
        braces = re.search(r"\{[\s\S]*\}", text)
        candidate = braces.group(0) if braces else text.strip()

    result = json.loads(candidate, parse_constant=_reject_constant)
    if not isinstance(result, dict):
        raise CompletionParseError("Completion JSON is not an object")
    return result


class OrderInterpreter:
    """Turn a merchant message into an ``ExtractedOrder``.

    Args:
        settings: Application settings
        provider: Text-completion collaborator
        rules: Rule extractor; built from settings when omitted
        today: Clock for the invoice date, injectable for tests
    """

    def __init__(
        self,
        settings: Settings,
        provider: CompletionProvider,
        rules: RuleExtractor | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings
        self.provider = provider
        self.rules = rules or RuleExtractor(settings)
        self._today = today

    def interpret(
        self,
        message: str,
        catalog: CatalogSnapshot,
        business_profile: BusinessProfile,
        customer: PartialCustomer | None = None,
        items: list[PartialLineItem] | None = None,
    ) -> ExtractedOrder:
        """Interpret a message into a priced, rule-corrected order draft.

        Args:
            message: Raw merchant message
            catalog: Catalog snapshot used for prompting and pricing
            business_profile: Merchant profile (tax, currency, terms)
            customer: Known customer details, used to fill gaps and for the fallback
            items: Known items, used only when the completion path fails

        Returns:
            ExtractedOrder with ``source`` set to completion or fallback

        Raises:
            InputError: If the message is empty
        """
        if not message or not message.strip():
            raise InputError("Order message is empty")

        today = self._today()
        invoice_number = generate_invoice_number()
        default_due = due_date_for_terms(today, business_profile.payment_terms)

        request = CompletionRequest(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_user_prompt(message, catalog, business_profile, self.settings, today),
            max_tokens=token_budget(self.settings, len(catalog)),
            temperature=self.settings.completion_temperature,
        )

        start = time.perf_counter()
        result = self.provider.complete(request)
        completion_duration_seconds.labels(provider=result.provider).observe(
            time.perf_counter() - start
        )

        order: ExtractedOrder | None = None
        reason = result.error or "Completion failed"
        if result.success and result.content:
            try:
                payload = CompletionOrderPayload.model_validate(parse_json_object(result.content))
                order = self._from_payload(
                    payload,
                    raw=result.content,
                    invoice_number=invoice_number,
                    today=today,
                    default_due=default_due,
                    profile=business_profile,
                    customer=customer,
                )
            except (ValueError, ArithmeticError, RecursionError) as e:
                # Covers JSONDecodeError, ValidationError and CompletionParseError
                reason = f"Completion output rejected: {e}"

        if order is None:
            logger.warning(f"Falling back to skeleton order for {invoice_number}: {reason}")
            order = ExtractedOrder.fallback(
                invoice_number=invoice_number,
                invoice_date=today,
                due_date=default_due,
                profile=business_profile,
                customer=customer,
                items=items,
                raw_completion=result.content,
                reason=reason,
            )

        order = self._price_from_catalog(order, catalog)
        order = self.rules.apply(order, message)
        order = self._flag_missing_prices(order)

        interpretations_total.labels(source=order.source.value).inc()
        logger.info(
            f"Interpreted order {order.invoice_number}: source={order.source.value}, "
            f"items={len(order.items)}, grand_total={order.grand_total}"
        )
        return order

    def _from_payload(
        self,
        payload: CompletionOrderPayload,
        *,
        raw: str,
        invoice_number: str,
        today: date,
        default_due: date,
        profile: BusinessProfile,
        customer: PartialCustomer | None,
    ) -> ExtractedOrder:
        items = []
        for entry in payload.items:
            name = entry.product_name.strip()
            if not name:
                continue
            quantity = entry.quantity or Decimal("1")
            unit_price = entry.unit_price
            if not unit_price and entry.line_total:
                unit_price = entry.line_total / quantity
            items.append(
                PartialLineItem(
                    product_name=name,
                    quantity=quantity,
                    unit_price=unit_price or Decimal("0"),
                    description=entry.description,
                )
            )
        if not items:
            raise CompletionParseError("Completion returned no line items")

        due_date = payload.due_date if payload.due_date and payload.due_date >= today else default_due

        schedule = None
        if payload.payment_schedule is not None and payload.payment_schedule.schedule_type != "full":
            proposed = payload.payment_schedule
            percentage = proposed.down_payment_percentage
            if percentage is not None and not (0 < percentage <= 100):
                percentage = None
            amount = proposed.down_payment_amount or None
            if percentage is None and amount is None:
                percentage = self.settings.default_down_payment_percentage
            # Amounts are placeholders; the rule extractor rebuilds them from the grand total
            schedule = build_payment_schedule(
                Decimal("0"),
                currency=profile.currency,
                invoice_date=today,
                final_due_date=proposed.final_payment_due_date or due_date,
                percentage=percentage,
                amount=amount,
            )

        return ExtractedOrder(
            invoice_number=invoice_number,
            invoice_date=today,
            due_date=due_date,
            customer=self._merge_customer(payload.customer, customer),
            items=items,
            discount=payload.discount or Decimal("0"),
            discount_type=payload.discount_type or "fixed",
            tax_enabled=profile.tax_enabled,
            tax_rate=profile.tax_rate if profile.tax_enabled else Decimal("0"),
            shipping=payload.shipping or Decimal("0"),
            currency=profile.currency,
            payment_schedule=schedule,
            notes=payload.notes or "",
            terms=payload.terms or profile.terms,
            thank_you_message=payload.thank_you_message or "Thank you for your business!",
            source=OrderSource.COMPLETION,
            raw_completion=raw,
        )

    @staticmethod
    def _merge_customer(extracted: CustomerPayload, known: PartialCustomer | None) -> PartialCustomer:
        merged = PartialCustomer(
            name=extracted.name,
            email=extracted.email,
            phone=extracted.phone,
            address=extracted.address,
        )
        if known is None:
            return merged
        return merged.model_copy(
            update={
                field: value
                for field, value in known.model_dump().items()
                if value not in (None, "")
            }
        )

    def _price_from_catalog(self, order: ExtractedOrder, catalog: CatalogSnapshot) -> ExtractedOrder:
        """Fill zero prices from the most similar catalog product; names are kept."""
        products = catalog.active_products()
        if not products:
            return order

        priced = []
        for item in order.items:
            if item.unit_price > 0:
                priced.append(item)
                continue
            match = best_match(
                item.product_name,
                products,
                key=lambda product: product.name,
                threshold=self.settings.product_match_threshold,
            )
            if match is None or match.unit_price <= 0:
                priced.append(item)
                continue
            priced.append(
                item.model_copy(
                    update={
                        "unit_price": match.unit_price,
                        "product_id": match.id,
                        "matched_from_catalog": True,
                    }
                )
            )
        return order.model_copy(update={"items": priced})

    @staticmethod
    def _flag_missing_prices(order: ExtractedOrder) -> ExtractedOrder:
        unpriced = [item.product_name for item in order.items if item.unit_price <= 0]
        if not unpriced:
            return order
        warning = PipelineWarning(
            type=WarningType.MISSING_PRICES,
            message=f"{len(unpriced)} item(s) have no price; please review before confirming",
            items=unpriced,
        )
        logger.info(f"Order {order.invoice_number} has unpriced items: {unpriced}")
        return order.model_copy(update={"warnings": [*order.warnings, warning]})
