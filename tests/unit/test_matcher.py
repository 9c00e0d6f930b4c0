"""Unit tests for identity matching and the action policy table."""

import re
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from chat_invoice.interpretation.schema import CatalogProduct, PartialCustomer, PartialLineItem
from chat_invoice.matching.matcher import (
    IdentityMatcher,
    customer_confidence,
    generate_sku,
    infer_category,
    is_valid_email,
    normalize_phone,
    product_confidence,
)
from chat_invoice.matching.models import CustomerRecord, EntityKind, MatchAction
from chat_invoice.matching.policy import ACTION_POLICIES, ActionPolicy, build_policies
from chat_invoice.shared.config import Settings
from chat_invoice.storage.memory import InMemoryRepository
from tests.conftest import StubCompletionProvider


@pytest.fixture
def customers() -> list[CustomerRecord]:
    return [
        CustomerRecord(id="c-ahmad", name="Ahmad Rahman", email="ahmad@example.com", phone="0812-3456-7890"),
        CustomerRecord(id="c-siti", name="Siti Nurhaliza", phone="+62 813 1111 2222"),
        CustomerRecord(id="c-ali", name="Ali"),
    ]


@pytest.fixture
def matcher(settings: Settings) -> IdentityMatcher:
    return IdentityMatcher(settings)


class TestHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("0812-3456-7890", "6281234567890"),
            ("+62 812 3456 7890", "6281234567890"),
            ("81234567890", "6281234567890"),
            ("(021) 555-1234", "0215551234"),
            (None, ""),
            ("", ""),
        ],
    )
    def test_normalize_phone(self, raw: str | None, expected: str) -> None:
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize(
        "email,valid",
        [("budi@example.com", True), ("budi@example", False), ("budi example.com", False), (None, False)],
    )
    def test_is_valid_email(self, email: str | None, valid: bool) -> None:
        assert is_valid_email(email) is valid

    def test_customer_confidence_complete(self) -> None:
        customer = PartialCustomer(
            name="Budi Santoso",
            email="budi@example.com",
            phone="081234567890",
            address="Jl. Sudirman No. 1, Jakarta",
        )
        assert customer_confidence(customer) == 1.0

    def test_customer_confidence_name_only(self) -> None:
        assert customer_confidence(PartialCustomer(name="Budi Santoso")) == 0.4

    def test_customer_confidence_ignores_invalid_email(self) -> None:
        assert customer_confidence(PartialCustomer(name="Budi", email="not-an-email")) == 0.4

    def test_product_confidence_branded_and_priced(self) -> None:
        item = PartialLineItem(product_name="Samsung Galaxy S24", unit_price=Decimal("12000000"))
        assert product_confidence(item) == 0.9

    def test_product_confidence_capped(self) -> None:
        item = PartialLineItem(
            product_name="Sepatu Nike Air",
            unit_price=Decimal("1500000"),
            description="Ukuran 42, warna hitam",
        )
        assert product_confidence(item) == 1.0

    def test_generate_sku(self) -> None:
        assert re.fullmatch(r"IPH-[A-Z0-9]{4}", generate_sku("iPhone 15 Pro"))
        assert re.fullmatch(r"AXX-[A-Z0-9]{4}", generate_sku("a"))
        assert re.fullmatch(r"XXX-[A-Z0-9]{4}", generate_sku("!!"))

    @pytest.mark.parametrize(
        "name,category",
        [
            ("AirPods Pro", "Elektronik"),
            ("Kemeja Batik", "Fashion"),
            ("Lolly Bag", "Makanan"),
            ("Kopi Susu", "Minuman"),
            ("Meja", "Umum"),
        ],
    )
    def test_infer_category(self, name: str, category: str) -> None:
        assert infer_category(name) == category


class TestActionPolicy:
    def test_products_never_auto_add(self) -> None:
        with pytest.raises(ValueError, match="never be auto-added"):
            ActionPolicy(EntityKind.PRODUCT, auto_add_threshold=0.9)

    def test_default_product_policy_always_reviews(self) -> None:
        policy = ACTION_POLICIES[EntityKind.PRODUCT]
        assert policy.decide(1.0) == MatchAction.MANUAL_REVIEW
        assert policy.decide(0.0) == MatchAction.MANUAL_REVIEW

    @pytest.mark.parametrize(
        "confidence,action",
        [(0.95, MatchAction.AUTO_ADD), (0.9, MatchAction.AUTO_ADD), (0.6, MatchAction.SMART_CONFIRM), (0.4, MatchAction.MANUAL_REVIEW)],
    )
    def test_customer_thresholds(self, confidence: float, action: MatchAction) -> None:
        policy = ActionPolicy(EntityKind.CUSTOMER, auto_add_threshold=0.9, smart_confirm_threshold=0.6)
        assert policy.decide(confidence) == action

    def test_build_policies_from_settings(self) -> None:
        settings = Settings(_env_file=None, customer_auto_add_threshold=0.8)

        policies = build_policies(settings)

        assert policies[EntityKind.CUSTOMER].decide(0.8) == MatchAction.AUTO_ADD
        assert policies[EntityKind.PRODUCT].auto_add_threshold is None

    def test_auto_add_disabled_by_default(self, settings: Settings) -> None:
        assert build_policies(settings)[EntityKind.CUSTOMER].decide(1.0) == MatchAction.SMART_CONFIRM


class TestCustomerMatching:
    def test_email_match_is_case_insensitive(
        self, matcher: IdentityMatcher, customers: list[CustomerRecord]
    ) -> None:
        result = matcher.match(
            EntityKind.CUSTOMER, PartialCustomer(name="Someone Else", email="AHMAD@example.com"), customers
        )

        assert result.is_new is False
        assert result.action == MatchAction.EXISTING
        assert result.confidence == 1.0
        assert result.matched_by == "email"
        assert result.data["id"] == "c-ahmad"

    def test_phone_match_across_formats(
        self, matcher: IdentityMatcher, customers: list[CustomerRecord]
    ) -> None:
        result = matcher.match(EntityKind.CUSTOMER, PartialCustomer(name="Bu Siti", phone="0813-1111-2222"), customers)

        assert result.matched_by == "phone"
        assert result.data["id"] == "c-siti"

    def test_fuzzy_name_match(self, matcher: IdentityMatcher, customers: list[CustomerRecord]) -> None:
        result = matcher.match(EntityKind.CUSTOMER, PartialCustomer(name="Ahmad Rahmad"), customers)

        assert result.matched_by == "name"
        assert result.data["id"] == "c-ahmad"

    def test_email_checked_before_name(
        self, matcher: IdentityMatcher, customers: list[CustomerRecord]
    ) -> None:
        """First hit wins in the order email, phone, name."""
        result = matcher.match(
            EntityKind.CUSTOMER,
            PartialCustomer(name="Siti Nurhaliza", email="ahmad@example.com"),
            customers,
        )

        assert result.data["id"] == "c-ahmad"

    def test_short_names_not_fuzzy_matched(
        self, matcher: IdentityMatcher, customers: list[CustomerRecord]
    ) -> None:
        result = matcher.match(EntityKind.CUSTOMER, PartialCustomer(name="Ali"), customers)

        assert result.is_new is True

    def test_new_customer_smart_confirm(
        self, matcher: IdentityMatcher, customers: list[CustomerRecord]
    ) -> None:
        result = matcher.match(
            EntityKind.CUSTOMER, PartialCustomer(name="Budi Santoso", phone="081299998888"), customers
        )

        assert result.is_new is True
        assert result.confidence == 0.6
        assert result.action == MatchAction.SMART_CONFIRM
        assert result.data["name"] == "Budi Santoso"
        assert result.data["source"] == "ai_auto_learning"

    def test_new_customer_manual_review(self, matcher: IdentityMatcher) -> None:
        result = matcher.match(EntityKind.CUSTOMER, PartialCustomer(name="Budi Santoso"), [])

        assert result.action == MatchAction.MANUAL_REVIEW
        assert result.confidence == 0.4

    def test_repository_backed_lookup(self, settings: Settings, customers: list[CustomerRecord]) -> None:
        matcher = IdentityMatcher(settings, repository=InMemoryRepository(customers=customers))

        by_email = matcher.match(EntityKind.CUSTOMER, PartialCustomer(email="ahmad@example.com"))
        by_phone = matcher.match(EntityKind.CUSTOMER, PartialCustomer(phone="6281311112222"))
        by_name = matcher.match(EntityKind.CUSTOMER, PartialCustomer(name="Siti Nurhaliza"))

        assert by_email.matched_by == "email"
        assert by_phone.matched_by == "phone"
        assert by_name.matched_by == "name"
        assert by_name.data["id"] == "c-siti"

    def test_repository_failure_becomes_error_result(self, settings: Settings) -> None:
        repository = MagicMock()
        repository.get_customer.side_effect = RuntimeError("database unavailable")
        matcher = IdentityMatcher(settings, repository=repository)

        result = matcher.match(EntityKind.CUSTOMER, PartialCustomer(name="Budi", email="budi@example.com"))

        assert result.action == MatchAction.ERROR
        assert result.is_new is False
        assert result.confidence == 0.0
        assert "database unavailable" in result.error

    def test_kind_mismatch_is_error(self, matcher: IdentityMatcher) -> None:
        result = matcher.match(EntityKind.PRODUCT, PartialCustomer(name="Budi"), [])

        assert result.action == MatchAction.ERROR


class TestProductMatching:
    def test_existing_product(
        self, matcher: IdentityMatcher, catalog_products: list[CatalogProduct]
    ) -> None:
        result = matcher.match(EntityKind.PRODUCT, PartialLineItem(product_name="iphone 15 pro"), catalog_products)

        assert result.is_new is False
        assert result.action == MatchAction.EXISTING
        assert result.data["id"] == "p-iphone"

    def test_inactive_products_ignored(
        self, matcher: IdentityMatcher, catalog_products: list[CatalogProduct]
    ) -> None:
        result = matcher.match(EntityKind.PRODUCT, PartialLineItem(product_name="Nokia 3310"), catalog_products)

        assert result.is_new is True

    def test_new_product_always_manual_review(
        self, matcher: IdentityMatcher, catalog_products: list[CatalogProduct]
    ) -> None:
        item = PartialLineItem(
            product_name="Sepatu Nike Air",
            unit_price=Decimal("1500000"),
            description="Ukuran 42, warna hitam",
        )

        result = matcher.match(EntityKind.PRODUCT, item, catalog_products)

        assert result.is_new is True
        assert result.confidence == 1.0
        assert result.action == MatchAction.MANUAL_REVIEW
        assert result.data["name"] == "Sepatu Nike Air"
        assert result.data["category"] == "Fashion"
        assert result.data["unit_price"] == Decimal("1500000")
        assert re.fullmatch(r"SEP-[A-Z0-9]{4}", result.data["sku"])

    def test_repository_backed_lookup(
        self, settings: Settings, catalog_products: list[CatalogProduct]
    ) -> None:
        matcher = IdentityMatcher(settings, repository=InMemoryRepository(products=catalog_products))

        result = matcher.match(EntityKind.PRODUCT, PartialLineItem(product_name="Airpods Pro"))

        assert result.data["id"] == "p-airpods"

    def test_category_from_provider(self, settings: Settings) -> None:
        provider = StubCompletionProvider(settings, content='"Aksesoris"')
        matcher = IdentityMatcher(settings, provider=provider)

        result = matcher.match(EntityKind.PRODUCT, PartialLineItem(product_name="Gantungan Kunci"), [])

        assert result.data["category"] == "Aksesoris"
        assert provider.requests[0].json_output is False
        assert provider.requests[0].max_tokens == 20

    def test_category_falls_back_to_keywords(self, settings: Settings) -> None:
        provider = StubCompletionProvider(settings, success=False, error="Completion failed: timeout")
        matcher = IdentityMatcher(settings, provider=provider)

        result = matcher.match(EntityKind.PRODUCT, PartialLineItem(product_name="Kaos Polos"), [])

        assert result.data["category"] == "Fashion"
