"""Collaborator interfaces for persistence and order management.

The core depends only on these protocols; adapters live in ``memory.py`` and
``sql.py``.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

from chat_invoice.interpretation.schema import CatalogProduct
from chat_invoice.lifecycle.models import Invoice
from chat_invoice.lifecycle.stages import PaymentStage
from chat_invoice.matching.models import CustomerDraft, CustomerRecord, ProductDraft

logger = logging.getLogger(__name__)


class InvoiceRepository(Protocol):
    def save_invoice(self, invoice: Invoice) -> Invoice: ...

    def get_invoice(self, invoice_id: str) -> Invoice | None: ...

    def update_invoice(self, invoice_id: str, patch: dict[str, Any]) -> Invoice:
        """Apply a field patch.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
        """
        ...

    def transition_invoice(
        self,
        invoice_id: str,
        expected_stage: PaymentStage,
        apply: Callable[[Invoice], Invoice],
    ) -> Invoice:
        """Atomically replace the invoice with ``apply(invoice)`` if it is in ``expected_stage``.

        ``apply`` may raise to abort; nothing is written in that case.

        Raises:
            InvoiceNotFoundError: If the invoice does not exist
            StageTransitionError: If the invoice is not (or no longer) in ``expected_stage``
        """
        ...

    def find_invoice_by_token(self, token: str) -> Invoice | None:
        """Resolve a customer token or final-payment token."""
        ...


class CustomerRepository(Protocol):
    def get_customer(self, email: str) -> CustomerRecord | None: ...

    def find_fuzzy_name_match(self, name: str) -> CustomerRecord | None: ...

    def get_all_customers(self, limit: int, offset: int) -> list[CustomerRecord]: ...

    def save_customer(self, data: CustomerDraft) -> CustomerRecord: ...


class ProductRepository(Protocol):
    def get_all_products(
        self,
        limit: int,
        offset: int,
        category: str | None = None,
        active_only: bool = True,
    ) -> list[CatalogProduct]: ...

    def create_product(self, data: ProductDraft) -> CatalogProduct: ...


class Repository(InvoiceRepository, CustomerRepository, ProductRepository, Protocol):
    """Everything the pipeline needs from persistence."""


class OrderManagement(Protocol):
    def create_order_from_invoice(self, invoice_id: str) -> str | None:
        """Create a downstream order for a fully paid invoice.

        Returns:
            Order id, if the collaborator assigns one
        """
        ...


class LoggingOrderManagement:
    """Order management adapter that only records the request."""

    def create_order_from_invoice(self, invoice_id: str) -> str | None:
        logger.info(f"Order creation requested for invoice {invoice_id}")
        return None
