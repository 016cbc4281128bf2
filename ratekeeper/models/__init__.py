"""Pydantic domain models for the rates service."""

from .constants import (
    BASE_CURRENCY,
    BASE_UNIT_DECIMALS,
    CURRENCIES,
    to_currency_code,
    try_currency_code,
)  # re-export
from .navasan import NavasanItem, NavasanPayload
from .rates import RateSnapshot

__all__ = [
    "BASE_CURRENCY",
    "BASE_UNIT_DECIMALS",
    "CURRENCIES",
    "to_currency_code",
    "try_currency_code",
    "NavasanItem",
    "NavasanPayload",
    "RateSnapshot",
]
