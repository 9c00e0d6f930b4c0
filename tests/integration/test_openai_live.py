"""Integration tests against the live OpenAI API.

These tests require:
- OPENAI_API_KEY environment variable set
- Internet connection to OpenAI API

Tests are skipped if OPENAI_API_KEY is not available.
Use pytest -v -m integration to run only integration tests.
"""

import os
from decimal import Decimal

import pytest

from chat_invoice.completion.openai_provider import OpenAICompletionProvider
from chat_invoice.interpretation.interpreter import OrderInterpreter
from chat_invoice.interpretation.schema import BusinessProfile, CatalogSnapshot, OrderSource
from chat_invoice.shared.config import Settings

# Skip all tests in this module if no API key available
pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not os.getenv("OPENAI_API_KEY"),
        reason="OPENAI_API_KEY not set - skipping integration tests",
    ),
]


@pytest.fixture
def live_settings() -> Settings:
    """Create settings for integration tests."""
    return Settings()


@pytest.fixture
def interpreter(live_settings: Settings) -> OrderInterpreter:
    return OrderInterpreter(live_settings, OpenAICompletionProvider(live_settings))


def test_interpret_discount_order(interpreter: OrderInterpreter, catalog: CatalogSnapshot) -> None:
    """A real completion for a discounted order yields the expected totals."""
    message = (
        "Ahmad Rahman, ahmad@x.com, 2 iPhone 15 Pro @16.500.000 each, "
        "1 AirPods Pro 4.100.000, discount 10%"
    )

    order = interpreter.interpret(message, catalog, BusinessProfile(name="Toko Maju"))

    assert order.source == OrderSource.COMPLETION
    assert order.customer.name.lower() == "ahmad rahman"
    assert len(order.items) == 2
    assert order.subtotal == Decimal("37100000")
    assert order.discount_amount == Decimal("3710000")
    assert order.payment_schedule is None


def test_interpret_down_payment_order(interpreter: OrderInterpreter, catalog: CatalogSnapshot) -> None:
    """Down-payment wording produces an exactly split schedule."""
    message = "Budi Santoso, 4 Lolly Bag, DP 50% dulu ya"

    order = interpreter.interpret(message, catalog, BusinessProfile(name="Toko Maju"))

    assert order.payment_schedule is not None
    schedule = order.payment_schedule
    assert schedule.down_payment.amount + schedule.remaining_balance.amount == order.grand_total
    assert schedule.down_payment.amount == order.grand_total / 2
