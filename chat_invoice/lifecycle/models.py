"""Persisted invoice and lifecycle result models."""

from datetime import UTC, date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from chat_invoice.interpretation.schema import (
    BusinessProfile,
    DiscountType,
    ExtractedOrder,
    PartialCustomer,
    PartialLineItem,
    PaymentSchedule,
    PipelineWarning,
)
from chat_invoice.learning.models import LearningOutcome
from chat_invoice.lifecycle.stages import PaymentStage, PaymentStatus


def utcnow() -> datetime:
    return datetime.now(UTC)


class Invoice(BaseModel):
    """Durable invoice.

    Attributes:
        original_due_date: Due date before the down payment moved it to the final payment date
        merchant: Snapshot of the business profile at confirmation time
        customer_token: Capability token for the customer-facing invoice page
        final_payment_token: Minted when the down payment is confirmed
        final_payment_amount: ``grand_total - down_payment.amount``
        preview_id: Preview the invoice was confirmed from, if any
    """

    id: str
    invoice_number: str
    invoice_date: date
    due_date: date
    original_due_date: date | None = None
    merchant: BusinessProfile
    customer: PartialCustomer
    items: list[PartialLineItem]
    subtotal: Decimal
    discount: Decimal = Decimal("0")
    discount_type: DiscountType = DiscountType.FIXED
    discount_amount: Decimal = Decimal("0")
    tax_enabled: bool = False
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    shipping: Decimal = Decimal("0")
    grand_total: Decimal
    currency: str
    payment_schedule: PaymentSchedule | None = None
    payment_stage: PaymentStage
    payment_status: PaymentStatus = PaymentStatus.PENDING
    customer_token: str
    final_payment_token: str | None = None
    final_payment_amount: Decimal | None = None
    notes: str = ""
    terms: str = ""
    thank_you_message: str = ""
    preview_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    down_payment_confirmed_at: datetime | None = None
    final_payment_confirmed_at: datetime | None = None


class InvoicePreview(BaseModel):
    """Ephemeral draft returned for merchant review; never persisted."""

    preview_id: str
    order: ExtractedOrder
    warnings: list[PipelineWarning] = Field(default_factory=list)


class ConfirmationResult(BaseModel):
    invoice: Invoice
    learning: LearningOutcome | None = None


class DownPaymentConfirmation(BaseModel):
    invoice: Invoice
    final_payment_token: str
    final_payment_amount: Decimal


class FinalPaymentConfirmation(BaseModel):
    """Result of the final payment.

    ``order_error`` is set when the downstream order could not be created;
    the payment itself stays confirmed.
    """

    invoice: Invoice
    order_id: str | None = None
    order_error: str | None = None
