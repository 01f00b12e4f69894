"""Response parsers for the supported spot price providers.

Each parser is a pure function ``(payload, metal) -> Decimal | None``. ``None``
means the payload did not contain a usable positive USD/oz price; the adapter
turns that into a ParseError.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from .base import Metal
from .catalog import ProviderKind

Parser = Callable[[Any, Metal], Optional[Decimal]]


def _to_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    if not isinstance(value, (int, float, str, Decimal)):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def _positive(value: Any) -> Optional[Decimal]:
    number = _to_decimal(value)
    if number is None or number <= 0:
        return None
    return number


def _inverted(rate: Any) -> Optional[Decimal]:
    # Rates are quoted as metal per USD.
    number = _positive(rate)
    if number is None:
        return None
    return Decimal(1) / number


def parse_metals_dev(payload: Any, metal: Metal) -> Optional[Decimal]:
    if not isinstance(payload, dict):
        return None
    rate = payload.get("rate")
    if not isinstance(rate, dict):
        return None
    return _positive(rate.get("price"))


def parse_rates_per_usd(payload: Any, metal: Metal) -> Optional[Decimal]:
    if not isinstance(payload, dict):
        return None
    rates = payload.get("rates")
    if not isinstance(rates, dict):
        return None
    return _inverted(rates.get(metal.symbol))


def parse_custom(payload: Any, metal: Metal) -> Optional[Decimal]:
    if isinstance(payload, dict):
        if payload.get("price") is not None:
            return _positive(payload["price"])
        rate = payload.get("rate")
        if isinstance(rate, (int, float)) and not isinstance(rate, bool):
            return _positive(rate)
        return None
    if isinstance(payload, (int, float)):
        return _positive(payload)
    return None


PARSERS: Dict[ProviderKind, Parser] = {
    ProviderKind.METALS_DEV: parse_metals_dev,
    ProviderKind.METALS_API: parse_rates_per_usd,
    ProviderKind.METAL_PRICE_API: parse_rates_per_usd,
    ProviderKind.CUSTOM: parse_custom,
}


def parse_price(kind: ProviderKind, payload: Any, metal: Metal) -> Optional[Decimal]:
    return PARSERS[kind](payload, metal)
