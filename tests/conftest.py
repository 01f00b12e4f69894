from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Union

import pytest

from spot_tracker.providers.price_sources.base import (
    Metal,
    NetworkError,
    PriceFetchError,
    PriceQuote,
    PriceSource,
)
from spot_tracker.storage.store import MemoryStore


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeSource(PriceSource):
    """In-memory price source; prices or errors are configured per metal."""

    name = "Fake"

    def __init__(self, clock: FakeClock, prices: Optional[Dict[Metal, Union[str, Exception]]] = None) -> None:
        self.clock = clock
        self.prices: Dict[Metal, Union[str, Exception]] = dict(prices or {})
        self.calls: List[Metal] = []
        self.closed = False

    async def get_price(self, metal: Metal) -> PriceQuote:
        self.calls.append(metal)
        value = self.prices.get(metal)
        if value is None:
            raise NetworkError(self.name, metal, "connection refused")
        if isinstance(value, PriceFetchError):
            raise value
        return PriceQuote(
            metal=metal,
            price=Decimal(value),
            observed_at=self.clock(),
            source="api",
            provider=self.name,
        )

    async def close(self) -> None:
        self.closed = True


ALL_PRICES = {
    Metal.SILVER: "31.5",
    Metal.GOLD: "2650.10",
    Metal.PLATINUM: "980.25",
    Metal.PALLADIUM: "1010.00",
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def source(clock) -> FakeSource:
    return FakeSource(clock, ALL_PRICES)
