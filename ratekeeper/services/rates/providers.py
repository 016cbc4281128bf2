from __future__ import annotations

"""Navasan provider: request parameters and payload -> snapshot ingestion.

Navasan quotes rial; snapshots carry toman, so every value is divided by the
scale factor and rounded half-up to a whole toman before it enters the cache.
"""
import math
from datetime import datetime
from typing import Any, Dict, Optional

from ratekeeper.models.navasan import NavasanPayload
from ratekeeper.models.rates import RateSnapshot
from ratekeeper.services.money import round_half_up

DEFAULT_ITEMS = "usd,eur,usdt"
DEFAULT_SCALE_FACTOR = 10

# Snapshot field -> provider symbol
_SYMBOLS: Dict[str, str] = {
    "usd_to_base": "usd",
    "eur_to_base": "eur",
    "usdt_to_base": "usdt",
}


def to_base_value(value: Optional[float], scale_factor: int = DEFAULT_SCALE_FACTOR) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        return 0.0
    try:
        scaled = round_half_up(value / scale_factor)
    except ArithmeticError:
        # not representable as a whole toman; treat as absent
        return 0.0
    return scaled if math.isfinite(scaled) and scaled > 0 else 0.0


class NavasanRateSource:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        items: str = DEFAULT_ITEMS,
        scale_factor: int = DEFAULT_SCALE_FACTOR,
    ):
        self.base_url = base_url
        self._api_key = api_key
        self.items = items
        self.scale_factor = scale_factor

    def request_params(self) -> Dict[str, str]:
        return {"item": self.items, "api_key": self._api_key}

    def build_snapshot(self, data: Any, observed_at: datetime) -> RateSnapshot:
        payload = NavasanPayload.from_json(data)
        values = {
            field: to_base_value(payload.quote(symbol), self.scale_factor)
            for field, symbol in _SYMBOLS.items()
        }
        return RateSnapshot(**values, observed_at=observed_at, stale=False)
