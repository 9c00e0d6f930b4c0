"""Exception hierarchy for the invoice pipeline."""


class ChatInvoiceError(Exception):
    """Base class for all pipeline errors."""


class InputError(ChatInvoiceError):
    """Raised when caller-supplied data is missing or invalid.

    Nothing is persisted when this is raised.
    """


class InvoiceNotFoundError(ChatInvoiceError):
    """Raised when an invoice id or token does not resolve to an invoice."""

    def __init__(self, invoice_id: str) -> None:
        super().__init__(f"Invoice not found: {invoice_id}")
        self.invoice_id = invoice_id


class StageTransitionError(ChatInvoiceError):
    """Raised when a payment-stage transition is attempted from the wrong stage.

    Attributes:
        invoice_id: Invoice the transition was attempted on
        current_stage: Stage the invoice is actually in
        expected_stage: Stage the transition requires
    """

    def __init__(
        self,
        invoice_id: str,
        current_stage: str,
        expected_stage: str,
        reason: str | None = None,
    ) -> None:
        message = (
            f"Invoice {invoice_id} is in stage '{current_stage}', "
            f"expected '{expected_stage}'"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.invoice_id = invoice_id
        self.current_stage = current_stage
        self.expected_stage = expected_stage
        self.reason = reason
