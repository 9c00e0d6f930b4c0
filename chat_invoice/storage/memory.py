"""In-memory persistence adapter.

Default storage when no database URL is configured. All operations run under
a single lock; stored models are copied on the way in and out so callers can
never mutate stored state by accident.
"""

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from chat_invoice.interpretation.schema import CatalogProduct
from chat_invoice.lifecycle.models import Invoice
from chat_invoice.lifecycle.stages import PaymentStage
from chat_invoice.matching.models import CustomerDraft, CustomerRecord, ProductDraft
from chat_invoice.matching.similarity import normalize_name, similarity
from chat_invoice.shared.errors import InvoiceNotFoundError, StageTransitionError

logger = logging.getLogger(__name__)


class InMemoryRepository:
    """Thread-safe in-memory repository for invoices, customers and products.

    Args:
        name_match_threshold: Similarity above which a stored customer name matches
        min_name_length: Names shorter than this are never fuzzy-matched
        products: Catalog products to seed
        customers: Customers to seed
    """

    def __init__(
        self,
        name_match_threshold: float = 0.8,
        min_name_length: int = 3,
        products: list[CatalogProduct] | None = None,
        customers: list[CustomerRecord] | None = None,
    ) -> None:
        self.name_match_threshold = name_match_threshold
        self.min_name_length = min_name_length
        self._lock = threading.RLock()
        self._invoices: dict[str, Invoice] = {}
        self._customers: dict[str, CustomerRecord] = {c.id: c for c in customers or []}
        self._products: dict[str, CatalogProduct] = {p.id: p for p in products or []}

    # --- invoices -----------------------------------------------------------

    def save_invoice(self, invoice: Invoice) -> Invoice:
        with self._lock:
            if invoice.id in self._invoices:
                raise ValueError(f"Invoice already exists: {invoice.id}")
            self._invoices[invoice.id] = invoice.model_copy(deep=True)
            return invoice.model_copy(deep=True)

    def get_invoice(self, invoice_id: str) -> Invoice | None:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            return invoice.model_copy(deep=True) if invoice else None

    def update_invoice(self, invoice_id: str, patch: dict[str, Any]) -> Invoice:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(invoice_id)
            updated = invoice.model_copy(update={**patch, "updated_at": datetime.now(UTC)}, deep=True)
            self._invoices[invoice_id] = updated
            return updated.model_copy(deep=True)

    def transition_invoice(
        self,
        invoice_id: str,
        expected_stage: PaymentStage,
        apply: Callable[[Invoice], Invoice],
    ) -> Invoice:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(invoice_id)
            if invoice.payment_stage != expected_stage:
                raise StageTransitionError(
                    invoice_id,
                    current_stage=invoice.payment_stage.value,
                    expected_stage=expected_stage.value,
                )
            updated = apply(invoice.model_copy(deep=True))
            self._invoices[invoice_id] = updated.model_copy(deep=True)
            return updated

    def find_invoice_by_token(self, token: str) -> Invoice | None:
        with self._lock:
            for invoice in self._invoices.values():
                if token in (invoice.customer_token, invoice.final_payment_token):
                    return invoice.model_copy(deep=True)
            return None

    # --- customers ----------------------------------------------------------

    def get_customer(self, email: str) -> CustomerRecord | None:
        target = email.strip().lower()
        with self._lock:
            return next(
                (c for c in self._customers.values() if c.email and c.email.lower() == target),
                None,
            )

    def find_fuzzy_name_match(self, name: str) -> CustomerRecord | None:
        if not name or len(name.strip()) < self.min_name_length:
            return None
        target = normalize_name(name)
        best: CustomerRecord | None = None
        best_score = self.name_match_threshold
        with self._lock:
            for customer in self._customers.values():
                if not customer.name:
                    continue
                score = similarity(target, normalize_name(customer.name))
                if score > best_score:
                    best, best_score = customer, score
        return best

    def get_all_customers(self, limit: int, offset: int) -> list[CustomerRecord]:
        with self._lock:
            return list(self._customers.values())[offset : offset + limit]

    def save_customer(self, data: CustomerDraft) -> CustomerRecord:
        record = CustomerRecord(id=uuid.uuid4().hex, **data.model_dump())
        with self._lock:
            self._customers[record.id] = record
        logger.debug(f"Saved customer {record.id}: {record.name}")
        return record

    # --- products -----------------------------------------------------------

    def get_all_products(
        self,
        limit: int,
        offset: int,
        category: str | None = None,
        active_only: bool = True,
    ) -> list[CatalogProduct]:
        with self._lock:
            products = [
                p
                for p in self._products.values()
                if (not active_only or p.active) and (category is None or p.category == category)
            ]
        return products[offset : offset + limit]

    def create_product(self, data: ProductDraft) -> CatalogProduct:
        product = CatalogProduct(
            id=uuid.uuid4().hex,
            name=data.name,
            sku=data.sku,
            category=data.category,
            unit_price=data.unit_price,
            description=data.description,
        )
        with self._lock:
            self._products[product.id] = product
        logger.debug(f"Created product {product.id}: {product.name}")
        return product

    def add_product(self, product: CatalogProduct) -> CatalogProduct:
        """Insert an existing catalog product (used for seeding)."""
        with self._lock:
            self._products[product.id] = product
        return product
