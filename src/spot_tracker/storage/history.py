from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

from loguru import logger

from spot_tracker.providers.price_sources.base import Metal, PriceQuote

from .schemas import HISTORY_KEY, decode_history, encode_history
from .store import KeyValueStore

DEFAULT_HISTORY_LIMIT = 500


class PriceHistory:
    """Bounded, write-through log of accepted price observations.

    Oldest entries are evicted first once ``limit`` is exceeded, and the whole
    log is persisted on every append.
    """

    def __init__(self, store: KeyValueStore, *, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self._store = store
        self._limit = limit
        self._entries: Deque[PriceQuote] = deque(self._load(), maxlen=limit)

    def _load(self) -> List[PriceQuote]:
        raw = self._store.get(HISTORY_KEY)
        if raw is None:
            return []
        try:
            return decode_history(raw)
        except ValueError as exc:
            logger.warning("Discarding unreadable price history: {}", exc)
            return []

    @property
    def limit(self) -> int:
        return self._limit

    def record_observation(self, quote: PriceQuote) -> None:
        self._entries.append(quote)
        self._persist()
        logger.debug(
            "Recorded {} {} ({}); history size {}",
            quote.metal.value,
            quote.price,
            quote.source,
            len(self._entries),
        )

    def entries(self, metal: Optional[Metal] = None, limit: Optional[int] = None) -> List[PriceQuote]:
        items = [q for q in self._entries if metal is None or q.metal is metal]
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def latest(self, metal: Metal, source: Optional[str] = None) -> Optional[PriceQuote]:
        for quote in reversed(self._entries):
            if quote.metal is metal and (source is None or quote.source == source):
                return quote
        return None

    def clear(self) -> None:
        self._entries.clear()
        self._persist()

    def _persist(self) -> None:
        self._store.set(HISTORY_KEY, encode_history(list(self._entries)))

    def __len__(self) -> int:
        return len(self._entries)
