from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Optional, Union

import httpx
from loguru import logger

from spot_tracker.storage.history import DEFAULT_HISTORY_LIMIT, PriceHistory
from spot_tracker.storage.price_table import SpotPriceTable
from spot_tracker.storage.schemas import LAST_UPDATE_KEY, decode_timestamp, encode_timestamp
from spot_tracker.storage.store import FileStore, KeyValueStore

from .price_sources.base import Metal, PriceFetchError, PriceQuote, PriceSource
from .price_sources.catalog import ProviderKind, get_provider
from .price_sources.http_source import Clock, ConfiguredPriceSource, utc_now

PricesUpdatedCallback = Callable[[Mapping[Metal, PriceQuote]], None]


def is_stale(last_update: Optional[datetime], now: datetime, interval: timedelta) -> bool:
    if last_update is None:
        return True
    return now - last_update >= interval


class UpdateStatus(str, Enum):
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SUPERSEDED = "superseded"


@dataclass(slots=True)
class UpdateResult:
    status: UpdateStatus
    updated: Dict[Metal, PriceQuote] = field(default_factory=dict)
    errors: Dict[Metal, PriceFetchError] = field(default_factory=dict)
    generation: int = 0

    @property
    def partial(self) -> bool:
        return self.status is UpdateStatus.SUCCEEDED and bool(self.errors)

    def __bool__(self) -> bool:
        return self.status is UpdateStatus.SUCCEEDED


class SpotPriceService:
    """Keeps the current spot price table in sync with a remote provider.

    Staleness is computed lazily from the persisted last-update timestamp.
    Each refresh takes a new generation number; a refresh whose generation is
    no longer current when its responses arrive is discarded.
    """

    def __init__(
        self,
        *,
        source: PriceSource,
        store: KeyValueStore,
        refresh_interval: timedelta = timedelta(hours=24),
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        metals: Iterable[Metal] = tuple(Metal),
        clock: Clock = utc_now,
        on_prices_updated: Optional[PricesUpdatedCallback] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._source = source
        self._store = store
        self._refresh_interval = refresh_interval
        self._clock = clock
        self._on_prices_updated = on_prices_updated
        self._client = client
        self._table = SpotPriceTable(store, metals)
        self._history = PriceHistory(store, limit=history_limit)
        self._generation = 0
        self._poll_task: Optional[asyncio.Task[None]] = None

    @property
    def source(self) -> PriceSource:
        return self._source

    @property
    def table(self) -> SpotPriceTable:
        return self._table

    @property
    def history(self) -> PriceHistory:
        return self._history

    @property
    def generation(self) -> int:
        return self._generation

    def last_update(self) -> Optional[datetime]:
        raw = self._store.get(LAST_UPDATE_KEY)
        if raw is None:
            return None
        try:
            return decode_timestamp(raw)
        except ValueError as exc:
            logger.warning("Ignoring unreadable last update timestamp: {}", exc)
            return None

    def is_fresh(self) -> bool:
        return not is_stale(self.last_update(), self._clock(), self._refresh_interval)

    def current_prices(self) -> Mapping[Metal, PriceQuote]:
        return self._table.snapshot()

    async def update_prices(self, force_update: bool = False) -> UpdateResult:
        now = self._clock()
        if not force_update and not is_stale(self.last_update(), now, self._refresh_interval):
            logger.debug("Spot prices are fresh; skipping refresh")
            return UpdateResult(UpdateStatus.SKIPPED, generation=self._generation)

        self._generation += 1
        generation = self._generation
        metals = self._table.metals
        logger.debug(
            "Refresh #{} requesting {} metal(s) from {}",
            generation,
            len(metals),
            self._source.name,
        )
        outcomes = await self._source.get_prices(metals)

        if generation != self._generation:
            logger.info(
                "Discarding refresh #{} from {}; superseded by #{}",
                generation,
                self._source.name,
                self._generation,
            )
            return UpdateResult(UpdateStatus.SUPERSEDED, generation=generation)

        result = UpdateResult(UpdateStatus.FAILED, generation=generation)
        for metal, outcome in outcomes.items():
            if isinstance(outcome, PriceFetchError):
                result.errors[metal] = outcome
                logger.warning(
                    "Spot fetch failed for {} via {} ({}): {}",
                    metal.value,
                    outcome.provider,
                    outcome.kind.value,
                    outcome.reason,
                )
                continue
            self._table.set(outcome)
            self._history.record_observation(outcome)
            result.updated[metal] = outcome
            logger.info(
                "Source {} quote accepted: 1 oz {} = {} USD",
                outcome.provider or outcome.source,
                metal.value,
                outcome.price,
            )

        if not result.updated:
            logger.error(
                "No valid prices retrieved from {}; keeping last known values",
                self._source.name,
            )
            return result

        self._store.set(LAST_UPDATE_KEY, encode_timestamp(now))
        result.status = UpdateStatus.SUCCEEDED
        logger.info(
            "Synced {} of {} metal prices from {}",
            len(result.updated),
            len(metals),
            self._source.name,
        )
        self._notify()
        return result

    async def refresh_now(self) -> UpdateResult:
        return await self.update_prices(force_update=True)

    async def test_connection(self) -> bool:
        try:
            quote = await self._source.get_price(Metal.SILVER)
        except PriceFetchError as exc:
            logger.warning("Connection test against {} failed: {}", self._source.name, exc)
            return False
        logger.info("Connection test against {} returned silver at {}", self._source.name, quote.price)
        return True

    def set_manual_price(self, metal: Metal, price: Union[str, float, Decimal]) -> PriceQuote:
        try:
            value = Decimal(str(price))
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid {metal.value} spot price: {price!r}") from None
        if not value.is_finite() or value <= 0:
            raise ValueError(f"Invalid {metal.value} spot price: {price!r}")

        quote = PriceQuote(metal=metal, price=value, observed_at=self._clock(), source="manual")
        self._accept(quote)
        return quote

    def reset_price(self, metal: Metal) -> PriceQuote:
        """Restore the last API price for ``metal``, or its default price."""
        last_api = self._history.latest(metal, source="api")
        if last_api is not None:
            quote = PriceQuote(
                metal=metal,
                price=last_api.price,
                observed_at=self._clock(),
                source="api",
                provider=last_api.provider,
            )
        else:
            quote = PriceQuote(
                metal=metal,
                price=metal.default_price,
                observed_at=self._clock(),
                source="default",
            )
        self._accept(quote)
        return quote

    def clear_cache(self) -> None:
        self._store.delete(LAST_UPDATE_KEY)
        logger.info("Cleared spot price cache timestamp")

    def _accept(self, quote: PriceQuote) -> None:
        self._table.set(quote)
        self._history.record_observation(quote)
        logger.info("{} spot set to {} ({})", quote.metal.display_name, quote.price, quote.source)
        self._notify()

    def _notify(self) -> None:
        if self._on_prices_updated is None:
            return
        try:
            self._on_prices_updated(self._table.snapshot())
        except Exception as exc:
            logger.warning("Price update listener failed: {}", exc)

    async def run(self, poll_interval: float, *, max_ticks: Optional[int] = None) -> None:
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            try:
                await self.update_prices()
            except Exception:
                logger.exception("Spot refresh tick failed; will retry in {}s", poll_interval)
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            await asyncio.sleep(poll_interval)

    def start(self, poll_interval: float) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self.run(poll_interval))

    async def close(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        await self._source.close()
        if self._client is not None:
            await self._client.aclose()


def build_service(
    settings,
    *,
    store: Optional[KeyValueStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    on_prices_updated: Optional[PricesUpdatedCallback] = None,
) -> SpotPriceService:
    """Wire a SpotPriceService from a Config instance."""
    kind = ProviderKind.parse(settings.provider)
    provider = get_provider(
        kind,
        custom_base_url=settings.custom_base_url,
        custom_endpoint=settings.custom_endpoint,
    )
    owned = client is None
    if owned:
        timeout = settings.request_timeout
        client = httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=min(5.0, timeout)))
    source = ConfiguredPriceSource(provider, client, api_key=settings.api_key_for(kind.value))
    return SpotPriceService(
        source=source,
        store=store if store is not None else FileStore(settings.data_dir),
        refresh_interval=timedelta(seconds=settings.refresh_interval_seconds),
        history_limit=settings.history_limit,
        on_prices_updated=on_prices_updated,
        client=client if owned else None,
    )
