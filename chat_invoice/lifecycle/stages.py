"""Payment stage state machine.

State Flow:
    (confirm) -> full_payment
    (confirm) -> down_payment -> final_payment -> completed

Terminal States: completed. ``full_payment`` has no outgoing transition;
settlement of single-payment invoices happens outside the pipeline.
"""

from enum import Enum

from chat_invoice.shared.errors import StageTransitionError


class PaymentStage(str, Enum):
    FULL_PAYMENT = "full_payment"
    DOWN_PAYMENT = "down_payment"
    FINAL_PAYMENT = "final_payment"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


ALLOWED_TRANSITIONS: dict[PaymentStage, list[PaymentStage]] = {
    PaymentStage.FULL_PAYMENT: [],
    PaymentStage.DOWN_PAYMENT: [PaymentStage.FINAL_PAYMENT],
    PaymentStage.FINAL_PAYMENT: [PaymentStage.COMPLETED],
    PaymentStage.COMPLETED: [],  # Terminal state
}


def can_transition(current: PaymentStage, target: PaymentStage) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, [])


def validate_transition(invoice_id: str, current: PaymentStage, target: PaymentStage) -> None:
    """Validate that a stage transition is allowed.

    Args:
        invoice_id: Invoice being transitioned, for the error message
        current: Current payment stage
        target: Stage to move to

    Raises:
        StageTransitionError: If transition is not allowed
    """
    if can_transition(current, target):
        return
    expected = next(
        (stage for stage, targets in ALLOWED_TRANSITIONS.items() if target in targets),
        target,
    )
    raise StageTransitionError(
        invoice_id,
        current_stage=current.value,
        expected_stage=expected.value,
        reason=f"cannot move to '{target.value}'",
    )
