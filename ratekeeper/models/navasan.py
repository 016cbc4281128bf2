"""Narrow model of the Navasan ``/latest`` response.

The provider answers with a JSON object keyed by item symbol (``usd``, ``eur``,
``usdt``); each item carries its quote under ``value`` or, for some items,
``price``. Anything missing or non-numeric is treated as absent.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator


def _lenient_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if not value:
            return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


class NavasanItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    value: Optional[float] = None
    price: Optional[float] = None

    @field_validator("value", "price", mode="before")
    @classmethod
    def numeric_or_absent(cls, v: Any) -> Optional[float]:
        return _lenient_number(v)

    @property
    def quote(self) -> Optional[float]:
        return self.value if self.value is not None else self.price


class NavasanPayload(BaseModel):
    items: Dict[str, NavasanItem] = {}

    @classmethod
    def from_json(cls, data: Any) -> "NavasanPayload":
        if not isinstance(data, dict):
            return cls()
        items = {
            str(symbol).lower(): NavasanItem.model_validate(entry)
            for symbol, entry in data.items()
            if isinstance(entry, dict)
        }
        return cls(items=items)

    def quote(self, symbol: str) -> Optional[float]:
        item = self.items.get(symbol.lower())
        return item.quote if item else None
