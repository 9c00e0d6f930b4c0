"""Unit tests for locale-aware amount parsing."""

from decimal import Decimal

import pytest

from chat_invoice.interpretation.amounts import minor_unit, parse_amount, quantize_money


class TestParseAmount:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("16.500.000", Decimal("16500000")),
            ("4.100.000", Decimal("4100000")),
            ("16,500,000", Decimal("16500000")),
            ("50rb", Decimal("50000")),
            ("50 ribu", Decimal("50000")),
            ("1,5jt", Decimal("1500000")),
            ("1.5 juta", Decimal("1500000")),
            ("Rp 250.000", Decimal("250000")),
            ("Rp. 75.000,-", Decimal("75000")),
            ("IDR 10000", Decimal("10000")),
            ("10k", Decimal("10000")),
            ("12,5", Decimal("12.5")),
            ("1.234.567,89", Decimal("1234567.89")),
            ("1,234,567.89", Decimal("1234567.89")),
            ("99.95", Decimal("99.95")),
            ("16.500", Decimal("16500")),
        ],
    )
    def test_notations(self, text: str, expected: Decimal) -> None:
        assert parse_amount(text) == expected

    def test_numbers_pass_through(self) -> None:
        assert parse_amount(1500) == Decimal("1500")
        assert parse_amount(12.5) == Decimal("12.5")
        assert parse_amount(Decimal("7")) == Decimal("7")

    @pytest.mark.parametrize(
        "value",
        [
            None, "", "gratis", "abc123", "nan", True, [], {},
            float("nan"), float("inf"), Decimal("NaN"), Decimal("-Infinity"),
        ],
    )
    def test_unparseable_returns_none(self, value: object) -> None:
        assert parse_amount(value) is None


class TestQuantize:
    def test_idr_has_no_minor_unit(self) -> None:
        assert minor_unit("IDR") == Decimal("1")
        assert quantize_money(Decimal("10016999.5"), "IDR") == Decimal("10017000")

    def test_usd_rounds_to_cents_half_up(self) -> None:
        assert minor_unit("usd") == Decimal("0.01")
        assert quantize_money(Decimal("2.345"), "USD") == Decimal("2.35")
