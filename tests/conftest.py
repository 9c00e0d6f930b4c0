"""Shared test fixtures."""

import json
from collections.abc import Generator
from datetime import date
from decimal import Decimal
from typing import Any
from unittest.mock import patch

import pytest

from chat_invoice.completion.base import CompletionProvider, CompletionRequest, CompletionResult
from chat_invoice.interpretation.schema import (
    BusinessProfile,
    CatalogProduct,
    CatalogSnapshot,
    PartialCustomer,
    PartialLineItem,
)
from chat_invoice.lifecycle.models import Invoice
from chat_invoice.lifecycle.stages import PaymentStage
from chat_invoice.lifecycle.tokens import new_customer_token, new_invoice_id
from chat_invoice.shared.config import Settings

TODAY = date(2025, 8, 1)


class StubCompletionProvider(CompletionProvider):
    """Completion provider returning canned responses and recording requests."""

    def __init__(
        self,
        settings: Settings,
        content: str | None = None,
        success: bool = True,
        error: str | None = None,
    ) -> None:
        super().__init__(settings)
        self.content = content
        self.success = success
        self.error = error
        self.requests: list[CompletionRequest] = []

    @property
    def provider_name(self) -> str:
        return "stub"

    def is_available(self) -> bool:
        return True

    def complete(self, request: CompletionRequest) -> CompletionResult:
        self.requests.append(request)
        return CompletionResult(
            content=self.content if self.success else None,
            success=self.success,
            error=self.error,
            provider=self.provider_name,
        )

    def respond_with(self, payload: dict[str, Any]) -> None:
        self.content = json.dumps(payload)
        self.success = True
        self.error = None


def make_invoice(**overrides: Any) -> Invoice:
    """Stored invoice awaiting its down payment, for repository tests."""
    fields: dict[str, Any] = {
        "id": new_invoice_id(),
        "invoice_number": "INV-2025-000001-TEST",
        "invoice_date": TODAY,
        "due_date": date(2025, 8, 31),
        "merchant": BusinessProfile(name="Toko Maju"),
        "customer": PartialCustomer(name="Ahmad Rahman"),
        "items": [
            PartialLineItem(
                product_name="Lolly Bag",
                quantity=Decimal("2"),
                unit_price=Decimal("50000"),
                line_total=Decimal("100000"),
            )
        ],
        "subtotal": Decimal("100000"),
        "grand_total": Decimal("100000"),
        "currency": "IDR",
        "payment_stage": PaymentStage.DOWN_PAYMENT,
        "customer_token": new_customer_token(),
    }
    fields.update(overrides)
    return Invoice(**fields)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def profile() -> BusinessProfile:
    return BusinessProfile(name="Toko Maju", currency="IDR", terms="Barang yang sudah dibeli tidak dapat dikembalikan")


@pytest.fixture
def taxed_profile() -> BusinessProfile:
    return BusinessProfile(name="Toko Maju", currency="IDR", tax_enabled=True, tax_rate=Decimal("11"))


@pytest.fixture
def catalog_products() -> list[CatalogProduct]:
    return [
        CatalogProduct(
            id="p-iphone",
            name="iPhone 15 Pro",
            sku="IPH-15PR",
            category="Elektronik",
            unit_price=Decimal("16500000"),
            tags=("apple", "phone"),
        ),
        CatalogProduct(
            id="p-airpods",
            name="AirPods Pro",
            sku="AIR-PRO2",
            category="Elektronik",
            unit_price=Decimal("4100000"),
        ),
        CatalogProduct(
            id="p-lolly",
            name="Lolly Bag",
            sku="LOL-BAG1",
            category="Makanan",
            unit_price=Decimal("50000"),
        ),
        CatalogProduct(
            id="p-old",
            name="Nokia 3310",
            unit_price=Decimal("500000"),
            active=False,
        ),
    ]


@pytest.fixture
def catalog(catalog_products: list[CatalogProduct]) -> CatalogSnapshot:
    return CatalogSnapshot(products=tuple(catalog_products))


@pytest.fixture
def stub_provider(settings: Settings) -> StubCompletionProvider:
    return StubCompletionProvider(settings)


@pytest.fixture
def no_retry_wait() -> Generator[None, None, None]:
    """Skip tenacity backoff sleeps."""
    with patch("time.sleep"):
        yield
