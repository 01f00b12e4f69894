from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from .base import Metal


class ProviderKind(str, Enum):
    METALS_DEV = "METALS_DEV"
    METALS_API = "METALS_API"
    METAL_PRICE_API = "METAL_PRICE_API"
    CUSTOM = "CUSTOM"

    @classmethod
    def parse(cls, value: str) -> "ProviderKind":
        text = (value or "").strip().upper().replace("-", "_")
        try:
            return cls(text)
        except ValueError:
            supported = ", ".join(kind.value for kind in cls)
            raise ValueError(f"Unsupported provider '{value}'. Use one of: {supported}") from None


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    kind: ProviderKind
    name: str
    base_url: str
    endpoints: Mapping[Metal, str] = field(default_factory=dict)
    documentation: str = ""
    bearer_auth: bool = False
    requires_key: bool = True

    def endpoint_for(self, metal: Metal) -> Optional[str]:
        template = self.endpoints.get(metal)
        if not template and not self.base_url:
            return None
        return f"{self.base_url}{template or ''}"


def _endpoints(template: str) -> Mapping[Metal, str]:
    return MappingProxyType({metal: template for metal in Metal})


PROVIDERS: Mapping[ProviderKind, ProviderConfig] = MappingProxyType(
    {
        ProviderKind.METALS_DEV: ProviderConfig(
            kind=ProviderKind.METALS_DEV,
            name="Metals.dev",
            base_url="https://api.metals.dev/v1",
            endpoints=_endpoints("/metal/spot?api_key={API_KEY}&metal={METAL}&currency=USD"),
            documentation="https://www.metals.dev/docs",
            bearer_auth=True,
        ),
        ProviderKind.METALS_API: ProviderConfig(
            kind=ProviderKind.METALS_API,
            name="Metals-API.com",
            base_url="https://metals-api.com/api",
            endpoints=_endpoints("/latest?access_key={API_KEY}&base=USD&symbols={SYMBOL}"),
            documentation="https://metals-api.com/documentation",
        ),
        ProviderKind.METAL_PRICE_API: ProviderConfig(
            kind=ProviderKind.METAL_PRICE_API,
            name="MetalPriceAPI.com",
            base_url="https://api.metalpriceapi.com/v1",
            endpoints=_endpoints("/latest?api_key={API_KEY}&base=USD&currencies={SYMBOL}"),
            documentation="https://metalpriceapi.com/documentation",
        ),
        ProviderKind.CUSTOM: ProviderConfig(
            kind=ProviderKind.CUSTOM,
            name="Custom Provider",
            base_url="",
            endpoints=MappingProxyType({}),
            requires_key=False,
        ),
    }
)


def get_provider(
    kind: ProviderKind,
    *,
    custom_base_url: Optional[str] = None,
    custom_endpoint: Optional[str] = None,
) -> ProviderConfig:
    """Return the static config for ``kind``; CUSTOM is filled in from settings."""
    provider = PROVIDERS[kind]
    if kind is not ProviderKind.CUSTOM:
        return provider
    base_url = (custom_base_url or "").strip().rstrip("/")
    template = (custom_endpoint or "").strip()
    return replace(
        provider,
        base_url=base_url,
        endpoints=_endpoints(template) if template else MappingProxyType({}),
    )


def build_url(provider: ProviderConfig, metal: Metal, api_key: Optional[str]) -> Optional[str]:
    url = provider.endpoint_for(metal)
    if not url:
        return None
    return (
        url.replace("{API_KEY}", api_key or "")
        .replace("{METAL}", metal.value)
        .replace("{SYMBOL}", metal.symbol)
    )
