from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Optional, Union


class Metal(str, Enum):
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    PALLADIUM = "palladium"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]

    @property
    def storage_key(self) -> str:
        return f"spot{self.display_name}"

    @property
    def default_price(self) -> Decimal:
        return _DEFAULT_PRICES[self]

    @classmethod
    def parse(cls, value: str) -> "Metal":
        """Accept a key ("silver"), a display name ("Silver") or a symbol ("XAG")."""
        text = (value or "").strip()
        for metal in cls:
            if text.lower() == metal.value or text.upper() == metal.symbol:
                return metal
        raise ValueError(f"Unknown metal '{value}'")


_SYMBOLS = {
    Metal.SILVER: "XAG",
    Metal.GOLD: "XAU",
    Metal.PLATINUM: "XPT",
    Metal.PALLADIUM: "XPD",
}

_DEFAULT_PRICES = {
    Metal.SILVER: Decimal("25.0"),
    Metal.GOLD: Decimal("2500.0"),
    Metal.PLATINUM: Decimal("1000.0"),
    Metal.PALLADIUM: Decimal("1000.0"),
}


@dataclass(frozen=True, slots=True)
class PriceQuote:
    metal: Metal
    price: Decimal
    observed_at: datetime
    source: str
    provider: Optional[str] = None

    def __post_init__(self) -> None:
        if self.price <= 0:
            raise ValueError(f"{self.metal.display_name} price must be positive, got {self.price}")


class FetchErrorKind(str, Enum):
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    PARSE = "parse"
    TIMEOUT = "timeout"
    CONFIGURATION = "configuration"


class PriceFetchError(RuntimeError):
    """Raised when a provider cannot produce a price for a metal."""

    kind = FetchErrorKind.NETWORK

    def __init__(
        self,
        provider: str,
        metal: Metal,
        reason: str,
        *,
        kind: Optional[FetchErrorKind] = None,
    ) -> None:
        super().__init__(f"{provider} {metal.value}: {reason}")
        self.provider = provider
        self.metal = metal
        self.reason = reason
        if kind is not None:
            self.kind = kind


class NetworkError(PriceFetchError):
    kind = FetchErrorKind.NETWORK


class HttpStatusError(PriceFetchError):
    kind = FetchErrorKind.HTTP_STATUS

    def __init__(self, provider: str, metal: Metal, status_code: int, reason: str) -> None:
        super().__init__(provider, metal, f"HTTP {status_code}: {reason}")
        self.status_code = status_code


class ParseError(PriceFetchError):
    kind = FetchErrorKind.PARSE


class PriceTimeoutError(PriceFetchError):
    kind = FetchErrorKind.TIMEOUT


FetchOutcome = Union[PriceQuote, PriceFetchError]


class PriceSource(ABC):
    name: str

    @abstractmethod
    async def get_price(self, metal: Metal) -> PriceQuote:
        """Return a quote for ``metal`` or raise PriceFetchError."""

    async def get_prices(self, metals: Iterable[Metal]) -> Dict[Metal, FetchOutcome]:
        targets = list(metals)
        results = await asyncio.gather(
            *(self.get_price(metal) for metal in targets),
            return_exceptions=True,
        )
        outcomes: Dict[Metal, FetchOutcome] = {}
        for metal, result in zip(targets, results):
            if isinstance(result, PriceFetchError):
                outcomes[metal] = result
            elif isinstance(result, BaseException):
                raise result
            else:
                outcomes[metal] = result
        return outcomes

    async def close(self) -> None:
        return None
