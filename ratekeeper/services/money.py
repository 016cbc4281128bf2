"""Money / rounding helpers.

Centralized so ingestion, conversion and any future endpoint use identical
rounding semantics (half-up, the way quotes are rounded on the provider side).
"""

from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP, localcontext

from ratekeeper.models.constants import BASE_UNIT_DECIMALS


def _quantum(decimals: int) -> Decimal:
    return Decimal(1).scaleb(-decimals)


def round_half_up(value: float, decimals: int = 0) -> float:
    """Half-up rounding for any finite float, however large."""
    exact = Decimal(str(value))
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the kept decimals
        ctx.prec = max(ctx.prec, exact.adjusted() + decimals + 2)
        return float(exact.quantize(_quantum(decimals), rounding=ROUND_HALF_UP))


def round_base(value: float, decimals: int = BASE_UNIT_DECIMALS) -> float:
    """Round a base-unit amount with the configured precision; 0 for non-finite."""
    if not math.isfinite(value):
        return 0.0
    return round_half_up(value, decimals)
