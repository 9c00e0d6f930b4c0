"""Data models for interpreted orders.

``ExtractedOrder`` is the typed draft passed from the interpreter to the rule
extractor and on to the invoice lifecycle. ``CompletionOrderPayload`` is the
lenient model used to validate whatever JSON the completion collaborator
returned before it is converted into an ``ExtractedOrder``.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from chat_invoice.interpretation.amounts import parse_amount
from chat_invoice.shared.config import Settings


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ScheduleType(str, Enum):
    FULL = "full"
    DOWN_PAYMENT = "down_payment"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class OrderSource(str, Enum):
    COMPLETION = "completion"
    FALLBACK = "fallback"


class WarningType(str, Enum):
    MISSING_PRICES = "missing_prices"
    COMPLETION_FALLBACK = "completion_fallback"


class PipelineWarning(BaseModel):
    """Non-fatal issue attached to a successful preview.

    Attributes:
        type: Warning category
        message: Human-readable explanation
        items: Names of the affected line items, if any
    """

    type: WarningType
    message: str
    items: list[str] = Field(default_factory=list)


class PartialCustomer(BaseModel):
    """Customer as extracted from text; unvalidated and possibly incomplete."""

    name: str = ""
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class PartialLineItem(BaseModel):
    """One invoice line.

    A zero ``unit_price`` is a valid state (free item or price not yet known).
    """

    product_name: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    line_total: Decimal = Field(default=Decimal("0"), ge=0)
    description: str | None = None
    product_id: str | None = None
    matched_from_catalog: bool = False


class Installment(BaseModel):
    amount: Decimal = Field(ge=0)
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_at: datetime | None = None


class DownPayment(Installment):
    percentage: Decimal = Field(ge=0, le=100)
    # Set when the merchant wrote an absolute amount ("DP 500rb") instead of a percentage
    stated_amount: Decimal | None = None


class PaymentSchedule(BaseModel):
    """Two-installment split of the grand total.

    ``down_payment.amount + remaining_balance.amount`` always equals
    ``total_amount`` when the schedule is built.
    """

    schedule_type: ScheduleType = ScheduleType.DOWN_PAYMENT
    total_amount: Decimal
    down_payment: DownPayment
    remaining_balance: Installment
    immediate_down_payment: bool = True


class BusinessProfile(BaseModel):
    """Merchant identity and invoicing defaults."""

    name: str
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""
    logo_url: str | None = None
    tax_enabled: bool = False
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_name: str = "PPN"
    terms: str = ""
    payment_terms: str = "NET_30"
    currency: str = "IDR"

    @classmethod
    def from_settings(cls, settings: Settings) -> "BusinessProfile":
        """Build the configured merchant profile."""
        return cls(
            name=settings.business_name,
            address=settings.business_address,
            phone=settings.business_phone,
            email=settings.business_email,
            website=settings.business_website,
            logo_url=settings.business_logo_url,
            tax_enabled=settings.business_tax_enabled,
            tax_rate=settings.business_tax_rate,
            tax_name=settings.business_tax_name,
            terms=settings.business_terms,
            payment_terms=settings.default_payment_terms,
            currency=settings.business_currency,
        )


class CatalogProduct(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    sku: str | None = None
    category: str | None = None
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    description: str | None = None
    tags: tuple[str, ...] = ()
    active: bool = True


class CatalogSnapshot(BaseModel):
    """Read-only view of the catalog at interpretation time."""

    model_config = ConfigDict(frozen=True)

    products: tuple[CatalogProduct, ...] = ()
    taken_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def __len__(self) -> int:
        return len(self.products)

    def active_products(self) -> list[CatalogProduct]:
        return [p for p in self.products if p.active]


class ExtractedOrder(BaseModel):
    """Structured, priced order draft.

    Attributes:
        discount: Discount as stated (10 for "10%", or an absolute amount)
        discount_amount: Discount in money after applying ``discount_type``
        source: Whether the draft came from the completion or the fallback path
        raw_completion: Raw model output, kept for diagnosis
    """

    invoice_number: str
    invoice_date: date
    due_date: date
    customer: PartialCustomer = Field(default_factory=PartialCustomer)
    items: list[PartialLineItem] = Field(default_factory=list)
    subtotal: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    discount_type: DiscountType = DiscountType.FIXED
    discount_amount: Decimal = Decimal("0")
    tax_enabled: bool = False
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    grand_total: Decimal = Decimal("0")
    currency: str = "IDR"
    payment_schedule: PaymentSchedule | None = None
    notes: str = ""
    terms: str = ""
    thank_you_message: str = ""
    source: OrderSource = OrderSource.COMPLETION
    raw_completion: str | None = None
    warnings: list[PipelineWarning] = Field(default_factory=list)

    @classmethod
    def fallback(
        cls,
        *,
        invoice_number: str,
        invoice_date: date,
        due_date: date,
        profile: BusinessProfile,
        customer: PartialCustomer | None = None,
        items: list[PartialLineItem] | None = None,
        raw_completion: str | None = None,
        reason: str = "Completion output could not be used",
    ) -> "ExtractedOrder":
        """Build the degraded draft used when the completion path fails.

        Args:
            invoice_number: Generated invoice number
            invoice_date: Invoice date
            due_date: Due date derived from payment terms
            profile: Merchant profile supplying tax, currency and terms
            customer: Caller-supplied customer, if any
            items: Caller-supplied items, if any
            raw_completion: Whatever the model returned
            reason: Explanation stored in the ``completion_fallback`` warning

        Returns:
            ExtractedOrder with ``source == fallback``
        """
        return cls(
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            due_date=due_date,
            customer=customer.model_copy() if customer else PartialCustomer(),
            items=[item.model_copy() for item in items or []],
            tax_enabled=profile.tax_enabled,
            tax_rate=profile.tax_rate if profile.tax_enabled else Decimal("0"),
            currency=profile.currency,
            terms=profile.terms,
            thank_you_message="Thank you for your business!",
            source=OrderSource.FALLBACK,
            raw_completion=raw_completion,
            warnings=[
                PipelineWarning(type=WarningType.COMPLETION_FALLBACK, message=reason),
            ],
        )


# --- Completion payload -----------------------------------------------------


def _lenient_amount(value: Any) -> Decimal | None:
    amount = parse_amount(value)
    if amount is None:
        return None
    return max(amount, Decimal("0"))


def _lenient_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


class _CamelPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CustomerPayload(_CamelPayload):
    name: str = ""
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("email", "phone", "address", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class LineItemPayload(_CamelPayload):
    product_name: str = Field(validation_alias=AliasChoices("productName", "product_name", "name"))
    quantity: Decimal | None = None
    unit_price: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("unitPrice", "unit_price", "price")
    )
    line_total: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("lineTotal", "line_total", "total")
    )
    description: str | None = None

    @field_validator("unit_price", "line_total", mode="before")
    @classmethod
    def _coerce_money(cls, value: Any) -> Decimal | None:
        return _lenient_amount(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, value: Any) -> Decimal | None:
        quantity = parse_amount(value)
        if quantity is None or quantity <= 0:
            return None
        return quantity


class SchedulePayload(_CamelPayload):
    schedule_type: str | None = None
    down_payment_percentage: Decimal | None = None
    down_payment_amount: Decimal | None = None
    final_payment_due_date: date | None = None

    @field_validator("down_payment_percentage", "down_payment_amount", mode="before")
    @classmethod
    def _coerce_money(cls, value: Any) -> Decimal | None:
        if isinstance(value, str):
            value = value.replace("%", "")
        return _lenient_amount(value)

    @field_validator("final_payment_due_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> date | None:
        return _lenient_date(value)


class CompletionOrderPayload(_CamelPayload):
    """Order JSON as produced by the completion collaborator.

    ``customer`` and ``items`` are required; every other field is coerced
    leniently and falls back to ``None`` when unusable.
    """

    invoice_number: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    customer: CustomerPayload
    items: list[LineItemPayload]
    subtotal: Decimal | None = None
    discount: Decimal | None = None
    discount_type: DiscountType | None = None
    shipping: Decimal | None = None
    tax_amount: Decimal | None = None
    grand_total: Decimal | None = Field(
        default=None, validation_alias=AliasChoices("grandTotal", "grand_total", "total")
    )
    payment_schedule: SchedulePayload | None = None
    notes: str | None = None
    terms: str | None = None
    thank_you_message: str | None = None

    @field_validator("subtotal", "discount", "shipping", "tax_amount", "grand_total", mode="before")
    @classmethod
    def _coerce_money(cls, value: Any) -> Decimal | None:
        return _lenient_amount(value)

    @field_validator("invoice_date", "due_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> date | None:
        return _lenient_date(value)

    @field_validator("discount_type", mode="before")
    @classmethod
    def _coerce_discount_type(cls, value: Any) -> DiscountType | None:
        if isinstance(value, str) and value.strip().lower() in ("percentage", "percent", "%"):
            return DiscountType.PERCENTAGE
        if isinstance(value, str) and value.strip().lower() in ("fixed", "amount", "nominal"):
            return DiscountType.FIXED
        return None

    @field_validator("invoice_number", "notes", "terms", "thank_you_message", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value).strip() or None

    @field_validator("payment_schedule", mode="before")
    @classmethod
    def _drop_empty_schedule(cls, value: Any) -> Any:
        if not isinstance(value, dict) or not value:
            return None
        return value
