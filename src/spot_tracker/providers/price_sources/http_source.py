from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, Optional

import httpx
from loguru import logger

from .base import (
    FetchErrorKind,
    HttpStatusError,
    Metal,
    NetworkError,
    ParseError,
    PriceFetchError,
    PriceQuote,
    PriceSource,
    PriceTimeoutError,
)
from .catalog import ProviderConfig, build_url
from .parsers import parse_price

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ConfiguredPriceSource(PriceSource):
    """Price source driven entirely by a static ProviderConfig.

    One GET per metal; the JSON body goes through the parser registered for
    the provider kind. Every failure surfaces as a PriceFetchError subclass and
    nothing is retried here.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        client: httpx.AsyncClient,
        *,
        api_key: Optional[str] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._provider = provider
        self._client = client
        self._api_key = api_key
        self._clock = clock
        self.name = provider.name

    @property
    def provider(self) -> ProviderConfig:
        return self._provider

    async def get_price(self, metal: Metal) -> PriceQuote:
        if self._provider.requires_key and not self._api_key:
            raise PriceFetchError(
                self.name,
                metal,
                f"no API key configured for {self._provider.kind.value}",
                kind=FetchErrorKind.CONFIGURATION,
            )

        url = build_url(self._provider, metal, self._api_key)
        if not url:
            raise PriceFetchError(
                self.name,
                metal,
                "no endpoint configured",
                kind=FetchErrorKind.CONFIGURATION,
            )

        logger.debug("Requesting {} spot via {}", metal.value, self.name)
        try:
            response = await self._client.get(url, headers=self._headers)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise PriceTimeoutError(self.name, metal, f"request timed out ({exc.__class__.__name__})") from exc
        except httpx.HTTPStatusError as exc:
            raise HttpStatusError(
                self.name,
                metal,
                exc.response.status_code,
                exc.response.reason_phrase or "unexpected status",
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(self.name, metal, str(exc) or exc.__class__.__name__) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(self.name, metal, "response body is not valid JSON") from exc

        price = parse_price(self._provider.kind, payload, metal)
        if price is None:
            logger.debug("{} returned unexpected payload for {}: {}", self.name, metal.value, payload)
            raise ParseError(self.name, metal, "invalid price data")

        return PriceQuote(
            metal=metal,
            price=price,
            observed_at=self._clock(),
            source="api",
            provider=self.name,
        )

    @property
    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._provider.bearer_auth and self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers
