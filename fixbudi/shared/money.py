"""Fixed-point currency helpers shared by settlement, delivery and negotiation"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Amount = Union[Decimal, int, float, str]

# Currencies without a minor unit; everything else uses two decimal places
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW", "UGX", "RWF", "XAF", "XOF"}


def minor_unit_exponent(currency: Optional[str]) -> Decimal:
    """Quantization exponent for the currency's minor unit"""
    if currency and currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return Decimal("1")
    return Decimal("0.01")


def to_decimal(value: Amount) -> Decimal:
    """Convert an amount to Decimal without going through binary float"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value: Amount, currency: Optional[str] = None) -> Decimal:
    """Round an amount half-up to the currency's minor unit"""
    return to_decimal(value).quantize(minor_unit_exponent(currency), rounding=ROUND_HALF_UP)


def apply_rate(value: Amount, rate: Amount, currency: Optional[str] = None) -> Decimal:
    """Percentage of an amount, rounded to the minor unit"""
    return quantize(to_decimal(value) * to_decimal(rate), currency)


def to_minor_units(value: Amount, currency: Optional[str] = None) -> int:
    """Amount in the provider's lowest unit (kobo, cents)"""
    exponent = minor_unit_exponent(currency)
    return int(quantize(value, currency) / exponent)


def from_minor_units(value: int, currency: Optional[str] = None) -> Decimal:
    return quantize(Decimal(value) * minor_unit_exponent(currency), currency)
