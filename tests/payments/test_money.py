from decimal import Decimal

import pytest

from domain.payment.money import to_major_units, to_minor_units


@pytest.mark.parametrize(
    "amount,currency,expected",
    [
        (Decimal("100.00"), "usd", 10000),
        (Decimal("19.99"), "USD", 1999),
        (Decimal("0.005"), "usd", 1),
        (Decimal("500"), "jpy", 500),
    ],
)
def test_to_minor_units(amount, currency, expected):
    assert to_minor_units(amount, currency) == expected


def test_to_major_units_keeps_currency_exponent():
    assert to_major_units(10000, "usd") == Decimal("100.00")
    assert str(to_major_units(2550, "usd")) == "25.50"
    assert to_major_units(500, "JPY") == Decimal("500")
