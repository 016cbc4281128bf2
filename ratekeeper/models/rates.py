from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from .constants import RATE_FIELDS


def _non_negative(value: Any) -> float:
    """Coerce anything that is not a finite, non-negative number to 0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(num) or num < 0:
        return 0.0
    return num


class RateSnapshot(BaseModel):
    """Consistent set of base-unit rates as of one provider fetch.

    Serialized with camelCase keys (``usdToBase``, ``observedAt`` ...), which is
    the shape polling clients read.
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, alias_generator=to_camel
    )

    usd_to_base: float = 0.0
    eur_to_base: float = 0.0
    usdt_to_base: float = 0.0
    observed_at: datetime
    stale: bool = False

    @field_validator("usd_to_base", "eur_to_base", "usdt_to_base", mode="before")
    @classmethod
    def rates_not_negative(cls, v: Any) -> float:
        return _non_negative(v)

    @field_serializer("usd_to_base", "eur_to_base", "usdt_to_base")
    def whole_rates_as_int(self, v: float) -> Any:
        # ingested rates are whole toman; keep them integral on the wire
        return int(v) if float(v).is_integer() else v

    @classmethod
    def placeholder(cls, observed_at: datetime) -> "RateSnapshot":
        """Zero-valued stale snapshot used before any fetch has succeeded."""
        return cls(observed_at=observed_at, stale=True)

    def with_stale(self, stale: bool) -> "RateSnapshot":
        if stale == self.stale:
            return self
        return self.model_copy(update={"stale": stale})

    def rate_for(self, currency: str) -> Optional[float]:
        field = RATE_FIELDS.get(currency.upper())
        if field is None:
            return None
        return getattr(self, field)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
