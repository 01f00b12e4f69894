from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, TypeAdapter

from spot_tracker.providers.price_sources.base import Metal, PriceQuote

# Well-known keys, kept compatible with the browser tool's localStorage names.
LAST_UPDATE_KEY = "spotApiLastUpdate"
HISTORY_KEY = "metalSpotHistory"


class QuoteRecord(BaseModel):
    metal: Metal
    spot: Decimal
    source: str
    provider: Optional[str] = None
    timestamp: datetime

    @classmethod
    def from_quote(cls, quote: PriceQuote) -> "QuoteRecord":
        return cls(
            metal=quote.metal,
            spot=quote.price,
            source=quote.source,
            provider=quote.provider,
            timestamp=quote.observed_at,
        )

    def to_quote(self) -> PriceQuote:
        timestamp = self.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return PriceQuote(
            metal=self.metal,
            price=self.spot,
            observed_at=timestamp,
            source=self.source,
            provider=self.provider,
        )


HistoryAdapter = TypeAdapter(List[QuoteRecord])


def encode_quote(quote: PriceQuote) -> bytes:
    return QuoteRecord.from_quote(quote).model_dump_json().encode("utf-8")


def decode_quote(raw: bytes) -> PriceQuote:
    return QuoteRecord.model_validate_json(raw).to_quote()


def encode_history(quotes: List[PriceQuote]) -> bytes:
    return HistoryAdapter.dump_json([QuoteRecord.from_quote(q) for q in quotes])


def decode_history(raw: bytes) -> List[PriceQuote]:
    return [record.to_quote() for record in HistoryAdapter.validate_json(raw)]


def encode_timestamp(moment: datetime) -> bytes:
    return str(int(moment.timestamp() * 1000)).encode("ascii")


def decode_timestamp(raw: bytes) -> datetime:
    millis = int(raw.decode("ascii").strip())
    try:
        return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"timestamp out of range: {millis}") from exc
