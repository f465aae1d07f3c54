import re
from decimal import Decimal
from typing import Union

# ISO 4217 codes whose minor unit is not the usual cent
CURRENCY_EXPONENTS = {
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "UYI": 0, "VND": 0, "VUV": 0,
    "XAF": 0, "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}
DEFAULT_EXPONENT = 2

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def is_valid_currency(code) -> bool:
    return isinstance(code, str) and bool(_CURRENCY_RE.match(code))


def validate_currency(code) -> str:
    if not is_valid_currency(code):
        raise ValueError(f"Malformed currency code: {code!r}")
    return code


def exponent(currency: str) -> int:
    return CURRENCY_EXPONENTS.get(currency, DEFAULT_EXPONENT)


def to_dec(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    if isinstance(x, float):
        raise TypeError("Refusing binary float for a money amount; pass str or Decimal")
    return Decimal(str(x))


def to_minor(amount: Union[Decimal, str, int], currency: str) -> int:
    """
    Decimal amount -> integer count of minor units (e.g. "12.34" USD -> 1234).
    Amounts finer than the currency's minor unit are rejected rather than rounded.
    """
    validate_currency(currency)
    d = to_dec(amount)
    if not d.is_finite():
        raise ValueError(f"Amount is not a finite number: {amount!r}")
    scaled = d.scaleb(exponent(currency))
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {d} is finer than the minor unit of {currency}")
    return int(scaled)


def to_decimal(minor: int, currency: str) -> Decimal:
    """Integer minor units -> Decimal with exactly the currency's number of places."""
    exp = exponent(currency)
    return Decimal(minor).scaleb(-exp).quantize(Decimal(1).scaleb(-exp))
