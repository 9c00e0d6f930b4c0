"""Unit tests for the auto-learning coordinator.

Tests cover:
- Analysis of customers and line items
- Policy-driven persistence and confirmation queueing
- Per-entity failure isolation
- Accepting queued candidates
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from chat_invoice.interpretation.schema import (
    CatalogProduct,
    ExtractedOrder,
    PartialCustomer,
    PartialLineItem,
)
from chat_invoice.learning.coordinator import AutoLearningCoordinator
from chat_invoice.learning.models import ConfirmationRequest
from chat_invoice.matching.matcher import IdentityMatcher
from chat_invoice.matching.models import CustomerRecord, EntityKind, MatchAction
from chat_invoice.shared.config import Settings
from chat_invoice.storage.memory import InMemoryRepository
from tests.conftest import TODAY

AHMAD = CustomerRecord(id="c-ahmad", name="Ahmad Rahman", email="ahmad@example.com")


def make_order(customer: PartialCustomer, items: list[PartialLineItem]) -> ExtractedOrder:
    return ExtractedOrder(
        invoice_number="INV-2025-000001-TEST",
        invoice_date=TODAY,
        due_date=TODAY,
        customer=customer,
        items=items,
    )


@pytest.fixture
def repository(catalog_products: list[CatalogProduct]) -> InMemoryRepository:
    return InMemoryRepository(products=catalog_products, customers=[AHMAD])


@pytest.fixture
def auto_add_settings() -> Settings:
    """Settings that let reasonably complete customers be stored without review."""
    return Settings(_env_file=None, customer_auto_add_threshold=0.6)


def build_coordinator(settings: Settings, repository: InMemoryRepository) -> AutoLearningCoordinator:
    return AutoLearningCoordinator(IdentityMatcher(settings, repository=repository), repository)


class TestAnalyze:
    def test_known_customer_and_mixed_products(
        self, settings: Settings, repository: InMemoryRepository
    ) -> None:
        coordinator = build_coordinator(settings, repository)
        order = make_order(
            PartialCustomer(name="Ahmad", email="ahmad@example.com"),
            [
                PartialLineItem(product_name="iPhone 15 Pro"),
                PartialLineItem(product_name="Sepatu Nike Air", unit_price=Decimal("1500000")),
            ],
        )

        analysis = coordinator.analyze(order)

        assert analysis.customer is not None
        assert analysis.customer.action == MatchAction.EXISTING
        assert analysis.new_customer_detected is False
        assert [r.is_new for r in analysis.products] == [False, True]
        assert analysis.new_products_detected is True

    def test_customer_without_identity_skipped(
        self, settings: Settings, repository: InMemoryRepository
    ) -> None:
        coordinator = build_coordinator(settings, repository)

        analysis = coordinator.analyze(make_order(PartialCustomer(), [PartialLineItem(product_name="Lolly Bag")]))

        assert analysis.customer is None
        assert analysis.new_products_detected is False


class TestProcess:
    def test_new_products_are_queued_never_stored(
        self, auto_add_settings: Settings, repository: InMemoryRepository
    ) -> None:
        coordinator = build_coordinator(auto_add_settings, repository)
        before = len(repository.get_all_products(100, 0))
        order = make_order(
            PartialCustomer(name="Ahmad Rahman"),
            [PartialLineItem(product_name="Samsung Galaxy S24", unit_price=Decimal("12000000"))],
        )

        outcome = coordinator.process(coordinator.analyze(order))

        assert outcome.products_added == 0
        assert len(outcome.confirmations_needed) == 1
        assert outcome.confirmations_needed[0].kind == EntityKind.PRODUCT
        assert outcome.confirmations_needed[0].action == MatchAction.MANUAL_REVIEW
        assert len(repository.get_all_products(100, 0)) == before

    def test_confident_customer_auto_added(
        self, auto_add_settings: Settings, repository: InMemoryRepository
    ) -> None:
        coordinator = build_coordinator(auto_add_settings, repository)
        order = make_order(
            PartialCustomer(name="Budi Santoso", phone="081299998888"),
            [PartialLineItem(product_name="Lolly Bag")],
        )

        outcome = coordinator.process(coordinator.analyze(order))

        assert outcome.customers_added == 1
        assert outcome.confirmations_needed == []
        stored = repository.find_fuzzy_name_match("Budi Santoso")
        assert stored is not None
        assert stored.source == "ai_auto_learning"
        assert stored.confidence_score == 0.6

    def test_unconfident_customer_queued(
        self, settings: Settings, repository: InMemoryRepository
    ) -> None:
        coordinator = build_coordinator(settings, repository)
        order = make_order(PartialCustomer(name="Budi Santoso"), [PartialLineItem(product_name="Lolly Bag")])

        outcome = coordinator.process(coordinator.analyze(order))

        assert outcome.customers_added == 0
        assert outcome.confirmations_needed[0].action == MatchAction.MANUAL_REVIEW
        assert repository.find_fuzzy_name_match("Budi Santoso") is None

    def test_storage_failure_isolated_per_entity(
        self, auto_add_settings: Settings, repository: InMemoryRepository
    ) -> None:
        coordinator = build_coordinator(auto_add_settings, repository)
        order = make_order(
            PartialCustomer(name="Budi Santoso", phone="081299998888"),
            [PartialLineItem(product_name="Kopi Susu Gula Aren", unit_price=Decimal("25000"))],
        )
        analysis = coordinator.analyze(order)

        with patch.object(repository, "save_customer", side_effect=RuntimeError("disk full")):
            outcome = coordinator.process(analysis)

        assert outcome.customers_added == 0
        assert len(outcome.errors) == 1
        assert outcome.errors[0].kind == EntityKind.CUSTOMER
        assert outcome.errors[0].name == "Budi Santoso"
        assert "disk full" in outcome.errors[0].error
        assert len(outcome.confirmations_needed) == 1

    def test_matching_error_reported(
        self, settings: Settings, repository: InMemoryRepository
    ) -> None:
        coordinator = build_coordinator(settings, repository)
        order = make_order(
            PartialCustomer(name="Budi", email="budi@example.com"),
            [PartialLineItem(product_name="iPhone 15 Pro")],
        )

        with patch.object(repository, "get_customer", side_effect=RuntimeError("timeout")):
            outcome = coordinator.process(coordinator.analyze(order))

        assert len(outcome.errors) == 1
        assert outcome.errors[0].kind == EntityKind.CUSTOMER
        assert outcome.confirmations_needed == []


class TestAccept:
    def test_accept_product(self, settings: Settings, repository: InMemoryRepository) -> None:
        coordinator = build_coordinator(settings, repository)
        confirmation = ConfirmationRequest(
            kind=EntityKind.PRODUCT,
            action=MatchAction.MANUAL_REVIEW,
            data={"name": "Sepatu Nike Air", "sku": "SEP-AB12", "unit_price": "1500000", "category": "Fashion"},
            confidence=0.9,
        )

        product = coordinator.accept(confirmation)

        assert isinstance(product, CatalogProduct)
        assert product.sku == "SEP-AB12"
        assert product.unit_price == Decimal("1500000")
        assert product.id in {p.id for p in repository.get_all_products(100, 0)}

    def test_accept_customer(self, settings: Settings, repository: InMemoryRepository) -> None:
        coordinator = build_coordinator(settings, repository)
        confirmation = ConfirmationRequest(
            kind=EntityKind.CUSTOMER,
            action=MatchAction.SMART_CONFIRM,
            data={"name": "Budi Santoso", "email": "budi@example.com"},
            confidence=0.7,
        )

        customer = coordinator.accept(confirmation)

        assert isinstance(customer, CustomerRecord)
        assert repository.get_customer("budi@example.com") is not None

    def test_accept_rejects_incomplete_product(
        self, settings: Settings, repository: InMemoryRepository
    ) -> None:
        coordinator = build_coordinator(settings, repository)
        confirmation = ConfirmationRequest(
            kind=EntityKind.PRODUCT,
            action=MatchAction.MANUAL_REVIEW,
            data={"name": "No SKU"},
            confidence=0.6,
        )

        with pytest.raises(ValidationError):
            coordinator.accept(confirmation)
