"""Auto-learning of customers and products from confirmed orders.

``analyze`` runs the identity matcher over an order, ``process`` persists the
entities the policy table allows to be auto-added and hands every other new
entity back as a confirmation request, and ``accept`` stores a candidate once
the merchant approves it.
"""

import logging

from chat_invoice.interpretation.schema import CatalogProduct, ExtractedOrder, PartialCustomer
from chat_invoice.learning.models import (
    ConfirmationRequest,
    LearningAnalysis,
    LearningError,
    LearningOutcome,
)
from chat_invoice.matching.matcher import IdentityMatcher
from chat_invoice.matching.models import (
    CustomerDraft,
    CustomerRecord,
    EntityKind,
    MatchAction,
    MatchResult,
    ProductDraft,
)
from chat_invoice.shared.metrics import learning_candidates_total
from chat_invoice.storage.ports import Repository

logger = logging.getLogger(__name__)

QUEUED_ACTIONS = (MatchAction.SMART_CONFIRM, MatchAction.MANUAL_REVIEW)


def _has_identity(customer: PartialCustomer) -> bool:
    return bool(customer.name.strip() or customer.email or customer.phone)


class AutoLearningCoordinator:
    """Apply identity-matching decisions to persistence.

    Args:
        matcher: Identity matcher
        repository: Persistence collaborator receiving new customers and products
    """

    def __init__(self, matcher: IdentityMatcher, repository: Repository) -> None:
        self.matcher = matcher
        self.repository = repository

    def analyze(self, order: ExtractedOrder) -> LearningAnalysis:
        """Match the order's customer and every line item."""
        customer = None
        if _has_identity(order.customer):
            customer = self.matcher.match(EntityKind.CUSTOMER, order.customer)
            learning_candidates_total.labels(kind="customer", action=customer.action.value).inc()

        products = []
        for item in order.items:
            result = self.matcher.match(EntityKind.PRODUCT, item)
            learning_candidates_total.labels(kind="product", action=result.action.value).inc()
            products.append(result)

        return LearningAnalysis(customer=customer, products=products)

    def process(self, analysis: LearningAnalysis) -> LearningOutcome:
        """Persist auto-add entities and queue the rest for confirmation.

        Failures are isolated per entity and reported in ``errors``.
        """
        outcome = LearningOutcome()
        results = [analysis.customer] if analysis.customer is not None else []
        results.extend(analysis.products)

        for result in results:
            name = (result.data or {}).get("name")
            if result.action == MatchAction.ERROR:
                outcome.errors.append(
                    LearningError(kind=result.kind, name=name, error=result.error or "Matching failed")
                )
                continue
            if not result.is_new:
                continue

            if result.action in QUEUED_ACTIONS:
                outcome.confirmations_needed.append(
                    ConfirmationRequest(
                        kind=result.kind,
                        action=result.action,
                        data=result.data or {},
                        confidence=result.confidence,
                    )
                )
                continue

            try:
                self._persist(result)
            except Exception as e:
                logger.error(f"Auto-learning failed to store {result.kind.value} '{name}': {e}")
                outcome.errors.append(LearningError(kind=result.kind, name=name, error=str(e)))
                continue

            if result.kind == EntityKind.CUSTOMER:
                outcome.customers_added += 1
            else:
                outcome.products_added += 1
            logger.info(f"Auto-added {result.kind.value}: {name}")

        return outcome

    def accept(self, confirmation: ConfirmationRequest) -> CustomerRecord | CatalogProduct:
        """Persist a queued candidate after the merchant approved it.

        Raises:
            pydantic.ValidationError: If the candidate data is incomplete
        """
        if confirmation.kind == EntityKind.CUSTOMER:
            customer = self.repository.save_customer(CustomerDraft.model_validate(confirmation.data))
            logger.info(f"Confirmed new customer: {customer.name}")
            return customer
        product = self.repository.create_product(ProductDraft.model_validate(confirmation.data))
        logger.info(f"Confirmed new product: {product.name}")
        return product

    def _persist(self, result: MatchResult) -> None:
        if result.kind == EntityKind.CUSTOMER:
            self.repository.save_customer(CustomerDraft.model_validate(result.data))
        else:
            self.repository.create_product(ProductDraft.model_validate(result.data))
