"""Invoice lifecycle: preview, confirm and payment-stage transitions.

Previews are never persisted. Confirmation persists the reviewed order and
runs auto-learning. Payment confirmations move the invoice through
``down_payment -> final_payment -> completed`` with conditional updates at the
persistence boundary, so a repeated or out-of-order confirmation is rejected
without touching the stored invoice.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal

from chat_invoice.interpretation.interpreter import OrderInterpreter
from chat_invoice.interpretation.schema import (
    BusinessProfile,
    CatalogSnapshot,
    ExtractedOrder,
    InstallmentStatus,
    PartialCustomer,
    PartialLineItem,
    ScheduleType,
)
from chat_invoice.interpretation.totals import recompute_totals
from chat_invoice.learning.coordinator import AutoLearningCoordinator
from chat_invoice.learning.models import LearningOutcome
from chat_invoice.lifecycle.models import (
    ConfirmationResult,
    DownPaymentConfirmation,
    FinalPaymentConfirmation,
    Invoice,
    InvoicePreview,
)
from chat_invoice.lifecycle.stages import PaymentStage, PaymentStatus, validate_transition
from chat_invoice.lifecycle.tokens import (
    new_customer_token,
    new_final_payment_token,
    new_invoice_id,
    new_preview_id,
)
from chat_invoice.shared.config import Settings
from chat_invoice.shared.errors import InputError, InvoiceNotFoundError, StageTransitionError
from chat_invoice.shared.metrics import (
    invoices_confirmed_total,
    order_creation_failures_total,
    stage_transitions_total,
)
from chat_invoice.storage.catalog_cache import CatalogProvider
from chat_invoice.storage.ports import LoggingOrderManagement, OrderManagement, Repository

logger = logging.getLogger(__name__)

# Fields a request may override; logo, tax and terms always come from the configured profile
OVERRIDABLE_PROFILE_FIELDS = ("name", "address", "phone", "email", "website")


class InvoiceLifecycle:
    """Orchestrates the invoice from preview to completed payment.

    Args:
        settings: Application settings
        interpreter: Order interpreter used for previews
        repository: Persistence collaborator
        catalog: Cached catalog snapshots for previews
        learning: Auto-learning coordinator run after confirmation
        orders: Order-management collaborator called after the final payment
        profile: Configured merchant profile; built from settings when omitted
        clock: Current time, injectable for tests
    """

    def __init__(
        self,
        settings: Settings,
        interpreter: OrderInterpreter,
        repository: Repository,
        catalog: CatalogProvider,
        learning: AutoLearningCoordinator | None = None,
        orders: OrderManagement | None = None,
        profile: BusinessProfile | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.settings = settings
        self.interpreter = interpreter
        self.repository = repository
        self.catalog = catalog
        self.learning = learning
        self.orders = orders or LoggingOrderManagement()
        self.profile = profile or BusinessProfile.from_settings(settings)
        self._clock = clock

    # --- preview / confirm --------------------------------------------------

    def preview(
        self,
        message: str,
        profile: BusinessProfile | None = None,
        catalog: CatalogSnapshot | None = None,
        customer: PartialCustomer | None = None,
        items: list[PartialLineItem] | None = None,
    ) -> InvoicePreview:
        """Interpret a message into a reviewable draft without writing anything.

        Raises:
            InputError: If the message is empty
        """
        merged = self._merge_profile(profile)
        snapshot = catalog if catalog is not None else self.catalog.snapshot()
        order = self.interpreter.interpret(message, snapshot, merged, customer=customer, items=items)
        preview = InvoicePreview(preview_id=new_preview_id(), order=order, warnings=order.warnings)
        logger.info(
            f"Preview {preview.preview_id} built for {order.invoice_number} "
            f"with {len(preview.warnings)} warning(s)"
        )
        return preview

    def confirm(
        self,
        order: ExtractedOrder,
        profile: BusinessProfile | None = None,
        preview_id: str | None = None,
    ) -> ConfirmationResult:
        """Persist a reviewed order as an invoice and run auto-learning.

        Args:
            order: Order as reviewed by the merchant
            profile: Request-level profile overrides
            preview_id: Preview the order came from

        Returns:
            ConfirmationResult with the stored invoice and the learning outcome

        Raises:
            InputError: If customer name or items are missing, or a quantity is not positive
        """
        self._validate_order(order)
        merged = self._merge_profile(profile)

        order = recompute_totals(
            order.model_copy(
                update={
                    "tax_enabled": merged.tax_enabled,
                    "tax_rate": merged.tax_rate if merged.tax_enabled else Decimal("0"),
                    "currency": merged.currency,
                    "terms": order.terms or merged.terms,
                }
            )
        )

        schedule = order.payment_schedule
        has_down_payment = (
            schedule is not None and schedule.schedule_type == ScheduleType.DOWN_PAYMENT
        )
        stage = PaymentStage.DOWN_PAYMENT if has_down_payment else PaymentStage.FULL_PAYMENT
        now = self._clock()

        invoice = Invoice(
            id=new_invoice_id(),
            invoice_number=order.invoice_number,
            invoice_date=order.invoice_date,
            due_date=order.due_date,
            merchant=merged,
            customer=order.customer,
            items=order.items,
            subtotal=order.subtotal,
            discount=order.discount,
            discount_type=order.discount_type,
            discount_amount=order.discount_amount,
            tax_enabled=order.tax_enabled,
            tax_rate=order.tax_rate,
            tax_amount=order.tax_amount,
            shipping=order.shipping,
            grand_total=order.grand_total,
            currency=order.currency,
            payment_schedule=schedule if has_down_payment else None,
            payment_stage=stage,
            payment_status=PaymentStatus.PENDING,
            customer_token=new_customer_token(),
            notes=order.notes,
            terms=order.terms,
            thank_you_message=order.thank_you_message,
            preview_id=preview_id,
            created_at=now,
            updated_at=now,
        )
        invoice = self.repository.save_invoice(invoice)
        invoices_confirmed_total.labels(payment_stage=stage.value).inc()
        logger.info(
            f"Confirmed invoice {invoice.invoice_number} ({invoice.id}): "
            f"stage={stage.value}, grand_total={invoice.grand_total}"
        )

        return ConfirmationResult(invoice=invoice, learning=self._run_learning(order))

    # --- payment stages -----------------------------------------------------

    def confirm_down_payment(self, invoice_id: str) -> DownPaymentConfirmation:
        """Record the down payment and open the final payment.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            StageTransitionError: If the invoice is not awaiting its down payment
        """

        def apply(invoice: Invoice) -> Invoice:
            schedule = invoice.payment_schedule
            if schedule is None or schedule.schedule_type != ScheduleType.DOWN_PAYMENT:
                raise StageTransitionError(
                    invoice.id,
                    current_stage=invoice.payment_stage.value,
                    expected_stage=PaymentStage.DOWN_PAYMENT.value,
                    reason="invoice has no down-payment schedule",
                )
            validate_transition(invoice.id, invoice.payment_stage, PaymentStage.FINAL_PAYMENT)

            now = self._clock()
            final_amount = invoice.grand_total - schedule.down_payment.amount
            updated_schedule = schedule.model_copy(
                update={
                    "down_payment": schedule.down_payment.model_copy(
                        update={"status": InstallmentStatus.PAID, "paid_at": now}
                    ),
                    "remaining_balance": schedule.remaining_balance.model_copy(
                        update={"amount": final_amount, "status": InstallmentStatus.PENDING}
                    ),
                }
            )
            return invoice.model_copy(
                update={
                    "payment_schedule": updated_schedule,
                    "payment_stage": PaymentStage.FINAL_PAYMENT,
                    "payment_status": PaymentStatus.PARTIAL,
                    "final_payment_token": new_final_payment_token(),
                    "final_payment_amount": final_amount,
                    "original_due_date": invoice.due_date,
                    "due_date": schedule.remaining_balance.due_date,
                    "down_payment_confirmed_at": now,
                    "updated_at": now,
                }
            )

        invoice = self._transition(
            invoice_id, PaymentStage.DOWN_PAYMENT, PaymentStage.FINAL_PAYMENT, apply
        )
        logger.info(
            f"Down payment confirmed for {invoice.invoice_number}; "
            f"final payment of {invoice.final_payment_amount} due {invoice.due_date}"
        )
        return DownPaymentConfirmation(
            invoice=invoice,
            final_payment_token=invoice.final_payment_token or "",
            final_payment_amount=invoice.final_payment_amount or Decimal("0"),
        )

    def confirm_final_payment(self, invoice_id: str) -> FinalPaymentConfirmation:
        """Record the final payment, complete the invoice and create the order.

        An order-creation failure is logged and reported in ``order_error``;
        the payment stays confirmed.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            StageTransitionError: If the invoice is not awaiting its final payment
        """

        def apply(invoice: Invoice) -> Invoice:
            validate_transition(invoice.id, invoice.payment_stage, PaymentStage.COMPLETED)
            now = self._clock()
            schedule = invoice.payment_schedule
            if schedule is not None:
                schedule = schedule.model_copy(
                    update={
                        "remaining_balance": schedule.remaining_balance.model_copy(
                            update={"status": InstallmentStatus.PAID, "paid_at": now}
                        )
                    }
                )
            return invoice.model_copy(
                update={
                    "payment_schedule": schedule,
                    "payment_stage": PaymentStage.COMPLETED,
                    "payment_status": PaymentStatus.PAID,
                    "final_payment_confirmed_at": now,
                    "updated_at": now,
                }
            )

        invoice = self._transition(
            invoice_id, PaymentStage.FINAL_PAYMENT, PaymentStage.COMPLETED, apply
        )
        logger.info(f"Final payment confirmed for {invoice.invoice_number}; invoice completed")

        order_id = None
        order_error = None
        try:
            order_id = self.orders.create_order_from_invoice(invoice.id)
        except Exception as e:
            order_creation_failures_total.inc()
            order_error = str(e)
            logger.error(f"Order creation failed for invoice {invoice.id}: {e}")

        return FinalPaymentConfirmation(invoice=invoice, order_id=order_id, order_error=order_error)

    # --- lookups ------------------------------------------------------------

    def get_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def find_by_customer_token(self, token: str) -> Invoice:
        invoice = self.repository.find_invoice_by_token(token)
        if invoice is None or invoice.customer_token != token:
            raise InvoiceNotFoundError("customer token")
        return invoice

    def find_by_final_payment_token(self, token: str) -> Invoice:
        """Resolve a final-payment token; only valid while the final payment is open."""
        invoice = self.repository.find_invoice_by_token(token)
        if (
            invoice is None
            or invoice.final_payment_token != token
            or invoice.payment_stage != PaymentStage.FINAL_PAYMENT
        ):
            raise InvoiceNotFoundError("final-payment token")
        return invoice

    # --- helpers ------------------------------------------------------------

    def _transition(
        self,
        invoice_id: str,
        expected: PaymentStage,
        target: PaymentStage,
        apply: Callable[[Invoice], Invoice],
    ) -> Invoice:
        label = f"{expected.value}->{target.value}"
        try:
            invoice = self.repository.transition_invoice(invoice_id, expected, apply)
        except StageTransitionError as e:
            stage_transitions_total.labels(transition=label, outcome="rejected").inc()
            logger.warning(f"Rejected {label} transition: {e}")
            raise
        stage_transitions_total.labels(transition=label, outcome="success").inc()
        return invoice

    def _merge_profile(self, requested: BusinessProfile | None) -> BusinessProfile:
        if requested is None:
            return self.profile
        overrides = {
            field: getattr(requested, field)
            for field in OVERRIDABLE_PROFILE_FIELDS
            if getattr(requested, field)
        }
        return self.profile.model_copy(update=overrides)

    @staticmethod
    def _validate_order(order: ExtractedOrder) -> None:
        if not order.customer.name.strip():
            raise InputError("Customer name is required")
        if not order.items:
            raise InputError("At least one item is required")
        for item in order.items:
            if not item.product_name.strip():
                raise InputError("Every item needs a product name")
            if item.quantity <= 0:
                raise InputError(f"Quantity must be positive for '{item.product_name}'")

    def _run_learning(self, order: ExtractedOrder) -> LearningOutcome | None:
        if not self.settings.auto_learning_enabled or self.learning is None:
            return None
        try:
            outcome = self.learning.process(self.learning.analyze(order))
        except Exception as e:
            logger.error(f"Auto-learning failed for {order.invoice_number}: {e}")
            return None
        if outcome.customers_added or outcome.products_added:
            self.catalog.invalidate()
        return outcome
