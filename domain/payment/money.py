"""
Minor/major currency unit conversion.

Every amount crossing the provider boundary is an integer in the currency's
smallest unit; every amount crossing the caller boundary is a Decimal in
major units. Conversions happen here and nowhere else.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

# Currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW"})


def currency_exponent(currency: str) -> int:
    return 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else 2


def to_minor_units(amount: Decimal, currency: str) -> int:
    exponent = currency_exponent(currency)
    scaled = Decimal(amount) * (Decimal(10) ** exponent)
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_major_units(amount_minor: int, currency: str) -> Decimal:
    exponent = currency_exponent(currency)
    quantum = Decimal(1).scaleb(-exponent)
    return (Decimal(int(amount_minor)) / (Decimal(10) ** exponent)).quantize(quantum)
