"""Tests for ledger value types and amount helpers."""

from decimal import Decimal

import pytest

from earnings.ledger.exceptions import InvalidAmount
from earnings.ledger.types import (
    Money,
    TransitionOutcome,
    calculate_fee,
    cents_from_decimal,
)


class TestCalculateFee:
    @pytest.mark.parametrize(
        "gross,rate,expected",
        [
            (10000, Decimal("0.10"), 1000),
            (999, Decimal("0.10"), 100),  # 99.9 rounds up
            (995, Decimal("0.10"), 100),  # 99.5 rounds half up
            (994, Decimal("0.10"), 99),
            (10000, Decimal("0"), 0),
            (10000, Decimal("1"), 10000),
        ],
    )
    def test_rounds_half_up(self, gross, rate, expected):
        assert calculate_fee(gross, rate) == expected


class TestCentsFromDecimal:
    @pytest.mark.parametrize(
        "value,expected",
        [("50.00", 5000), ("50", 5000), ("0.01", 1), (Decimal("12.5"), 1250), (7, 700)],
    )
    def test_valid_amounts(self, value, expected):
        assert cents_from_decimal(value) == expected

    @pytest.mark.parametrize("value", ["abc", "", "1.005", "NaN", "Infinity"])
    def test_invalid_amounts(self, value):
        with pytest.raises(InvalidAmount):
            cents_from_decimal(value)


class TestMoney:
    def test_str(self):
        assert str(Money(cents=9000)) == "$90.00 USD"

    def test_arithmetic(self):
        assert Money(5000) + Money(250) == Money(5250)
        assert Money(5000) - Money(250) == Money(4750)

    def test_currency_mismatch(self):
        with pytest.raises(ValueError):
            Money(100, "usd") + Money(100, "eur")

    def test_as_decimal_string(self):
        assert Money(5).as_decimal_string() == "0.05"
        assert Money(123456).as_decimal_string() == "1234.56"


class TestTransitionOutcome:
    def test_done(self):
        outcome = TransitionOutcome.done("escrow", "available", credited_cents=9000)

        assert outcome.applied is True
        assert outcome.conflict is False
        assert outcome.details == {"credited_cents": 9000}
        assert outcome.describe() == "escrow->available"

    def test_conflicted(self):
        outcome = TransitionOutcome.conflicted("reversed")

        assert outcome.applied is False
        assert outcome.conflict is True
        assert outcome.describe() == "conflict:reversed"
