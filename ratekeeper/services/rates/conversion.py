from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from ratekeeper.models.constants import BASE_CURRENCY
from ratekeeper.models.rates import RateSnapshot
from ratekeeper.services.money import round_base

"""Base-unit (toman) conversion helpers.

Pure functions over an already-scaled RateSnapshot; the rial -> toman scale is
applied once at ingestion and never again here.

Fail-soft rules:
    - negative or non-finite amounts convert to 0
    - a missing snapshot or a non-positive / non-finite rate converts to 0
    - rounding (round_base) applies to amounts going *into* the base unit only;
      from_base_unit returns the raw quotient for display code to round.
"""


def _valid_rate(snapshot: Optional[RateSnapshot], currency: str) -> Optional[float]:
    if snapshot is None:
        return None
    rate = snapshot.rate_for(currency)
    if rate is None or not math.isfinite(rate) or rate <= 0:
        return None
    return rate


def _valid_amount(amount: float) -> bool:
    try:
        return math.isfinite(amount) and amount >= 0
    except TypeError:
        return False


def to_base_unit(
    amount: float, currency: str, snapshot: Optional[RateSnapshot] = None
) -> float:
    if not _valid_amount(amount):
        return 0.0
    if currency.upper() == BASE_CURRENCY:
        return round_base(amount)
    rate = _valid_rate(snapshot, currency)
    if rate is None:
        return 0.0
    return round_base(amount * rate)


def from_base_unit(
    base_amount: float, currency: str, snapshot: Optional[RateSnapshot] = None
) -> float:
    if currency.upper() == BASE_CURRENCY:
        return base_amount
    rate = _valid_rate(snapshot, currency)
    if rate is None:
        return 0.0
    return base_amount / rate


@dataclass(frozen=True)
class ConversionResult:
    original_amount: float
    currency: str
    rate: float
    base_equivalent: float


def compute_base_equivalent(
    amount: float, currency: str, snapshot: Optional[RateSnapshot] = None
) -> ConversionResult:
    currency = currency.upper()
    if currency == BASE_CURRENCY:
        rate = 1.0
    else:
        rate = _valid_rate(snapshot, currency) or 0.0
    return ConversionResult(
        original_amount=amount,
        currency=currency,
        rate=rate,
        base_equivalent=to_base_unit(amount, currency, snapshot),
    )


def total_in_base(
    items: Iterable[Tuple[float, str]], snapshot: Optional[RateSnapshot] = None
) -> float:
    """Sum (amount, currency) pairs in the base unit, e.g. holdings or expenses."""
    return round_base(sum(to_base_unit(a, c, snapshot) for a, c in items))
