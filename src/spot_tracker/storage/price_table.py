from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional

from loguru import logger

from spot_tracker.providers.price_sources.base import Metal, PriceQuote

from .schemas import decode_quote, encode_quote
from .store import KeyValueStore


class SpotPriceTable:
    """Latest accepted quote per metal, mirrored into the key-value store.

    Writes go through to the store immediately; the last write wins.
    """

    def __init__(self, store: KeyValueStore, metals: Iterable[Metal] = tuple(Metal)) -> None:
        self._store = store
        self._metals = tuple(metals)
        self._quotes: Dict[Metal, PriceQuote] = {}
        self._load()

    def _load(self) -> None:
        for metal in self._metals:
            raw = self._store.get(metal.storage_key)
            if raw is None:
                continue
            try:
                self._quotes[metal] = decode_quote(raw)
            except ValueError as exc:
                logger.warning("Ignoring unreadable stored {} price: {}", metal.value, exc)

    @property
    def metals(self) -> tuple:
        return self._metals

    def get(self, metal: Metal) -> Optional[PriceQuote]:
        return self._quotes.get(metal)

    def price(self, metal: Metal):
        """Current price, falling back to the metal's default when nothing is stored."""
        quote = self._quotes.get(metal)
        return quote.price if quote else metal.default_price

    def set(self, quote: PriceQuote) -> None:
        self._quotes[quote.metal] = quote
        self._store.set(quote.metal.storage_key, encode_quote(quote))

    def snapshot(self) -> Mapping[Metal, PriceQuote]:
        return dict(self._quotes)

    def __contains__(self, metal: object) -> bool:
        return metal in self._quotes

    def __len__(self) -> int:
        return len(self._quotes)
