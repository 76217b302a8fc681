"""
Tests para la aritmética monetaria en centavos
"""

import random
from decimal import Decimal

import pytest

from app.common.money import Money


class TestMoneyConstruction:

    def test_from_decimal_to_cents(self):
        assert Money.from_decimal(Decimal("180.25")).cents == 18025
        assert Money.from_decimal("0.25").cents == 25
        assert Money.from_decimal(100).cents == 10000
        assert Money.from_decimal("-5.25").cents == -525

    def test_rejects_float(self):
        with pytest.raises(TypeError):
            Money.from_decimal(30.25)

    def test_rejects_more_than_two_decimals(self):
        with pytest.raises(ValueError):
            Money.from_decimal("10.005")

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            Money.from_decimal("diez")
        with pytest.raises(ValueError):
            Money.from_decimal("NaN")

    def test_trailing_zeros_are_fine(self):
        assert Money.from_decimal("10.500") == Money(1050)

    def test_rejects_decimal_overflow(self):
        with pytest.raises(ValueError):
            Money.from_decimal("1e999999999")
        with pytest.raises(ValueError):
            Money.from_decimal(Decimal("-1e999999999"))

    def test_rejects_amounts_beyond_bigint(self):
        with pytest.raises(ValueError):
            Money.from_decimal("100000000000000000000")
        with pytest.raises(ValueError):
            Money.from_decimal(10 ** 20)
        with pytest.raises(ValueError):
            Money(2 ** 63)
        assert Money(2 ** 63 - 1).cents == 2 ** 63 - 1
        assert Money(-(2 ** 63)).cents == -(2 ** 63)

    def test_arithmetic_beyond_bigint(self):
        with pytest.raises(ValueError):
            Money(2 ** 62).multiply(4)


class TestMoneyArithmetic:

    def test_add_subtract_multiply(self):
        a = Money.from_decimal("50.00")
        b = Money.from_decimal("30.25")
        assert (a + b).cents == 8025
        assert (a - b).cents == 1975
        assert (b * 3).cents == 9075
        assert (3 * b).cents == 9075
        assert (-b).cents == -3025

    def test_multiply_only_by_int(self):
        with pytest.raises(TypeError):
            Money(100) * 1.5
        with pytest.raises(TypeError):
            Money(100) * True

    def test_mixing_with_plain_numbers_fails(self):
        with pytest.raises(TypeError):
            Money(100) + 1

    def test_builtin_sum(self):
        assert sum([Money(10), Money(20), Money(5)]) == Money(35)

    def test_comparisons_are_exact(self):
        assert Money(1) > Money(0)
        assert Money(-1) < Money(0)
        assert Money(525) == Money.from_decimal("5.25")
        assert Money(525) != Money(524)

    def test_sum_of_many_cent_amounts_never_drifts(self):
        rng = random.Random(20261019)
        cents = [rng.randint(1, 999_999) for _ in range(5000)]
        amounts = [Money.from_decimal(Decimal(c) / 100) for c in cents]
        assert Money.sum(amounts).cents == sum(cents)


class TestMoneyPresentation:

    def test_format(self):
        assert Money.from_decimal("180.25").format() == "Q180.25"
        assert Money.from_decimal("-5.25").format() == "-Q5.25"
        assert Money.from_decimal("1234567.5").format("$") == "$1,234,567.50"

    def test_to_decimal(self):
        assert Money(18025).to_decimal() == Decimal("180.25")
        assert str(Money(5).to_decimal()) == "0.05"
