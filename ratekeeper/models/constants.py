"""Currency codes understood by the rates service and the conversion helpers."""

from typing import Dict, Optional, Tuple

BASE_CURRENCY = "IRT"
CURRENCIES: Tuple[str, ...] = ("IRT", "USD", "USDT", "EUR")

# Quote currency -> RateSnapshot field
RATE_FIELDS: Dict[str, str] = {
    "USD": "usd_to_base",
    "EUR": "eur_to_base",
    "USDT": "usdt_to_base",
}

# Rounding for base-unit amounts: 0 = whole toman, 1 = one decimal place.
BASE_UNIT_DECIMALS = 1


def to_currency_code(value: str) -> str:
    upper = value.strip().upper()
    if upper in CURRENCIES:
        return upper
    raise ValueError(f"Unsupported currency: {value}")


def try_currency_code(value: str) -> Optional[str]:
    try:
        return to_currency_code(value)
    except ValueError:
        return None
