import json
from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from usageboard.models import TokenCounts

logger = structlog.get_logger()

_PER_MILLION = 1_000_000


@dataclass(frozen=True, slots=True)
class ProviderRates:
    """
    ProviderRates holds USD prices per million tokens
    for a single provider.
    """

    input_per_million: "float" = 0.0
    output_per_million: "float" = 0.0
    cache_per_million: "float" = 0.0

    @classmethod
    def from_dict(cls, data: "dict[str, object]") -> "ProviderRates":
        return cls(
            input_per_million=float(data.get("input_per_million") or 0),
            output_per_million=float(data.get("output_per_million") or 0),
            cache_per_million=float(data.get("cache_per_million") or 0),
        )


class PricingTable:
    """
    PricingTable maps provider labels to their rates and derives
    a cost from token counts for lines that logged none.
    """

    def __init__(self, rates: "dict[str, ProviderRates] | None" = None) -> "None":
        self._rates: "dict[str, ProviderRates]" = dict(rates or {})

    @classmethod
    def default(cls) -> "PricingTable":
        return cls(
            {
                "Anthropic": ProviderRates(),
                "OpenAI": ProviderRates(),
                "Google": ProviderRates(),
            }
        )

    @classmethod
    def from_dict(cls, data: "dict[str, object]") -> "PricingTable":
        """
        accepts either {"providers": {name: rates}} or a bare
        {name: rates} mapping.
        """
        providers = data.get("providers", data)
        if not isinstance(providers, dict):
            raise ValueError("pricing providers must be a JSON object")

        return cls(
            {
                str(name): ProviderRates.from_dict(rates)
                for name, rates in providers.items()
                if isinstance(rates, dict)
            }
        )

    def rates_for(self, provider: "str") -> "ProviderRates | None":
        return self._rates.get(provider)

    def estimate(self, provider: "str", tokens: "TokenCounts") -> "float":
        rates = self._rates.get(provider)
        if rates is None:
            return 0.0

        return (
            tokens.input / _PER_MILLION * rates.input_per_million
            + tokens.output / _PER_MILLION * rates.output_per_million
            + tokens.cache / _PER_MILLION * rates.cache_per_million
        )


async def _read_document(location: "str") -> "str":
    if location.startswith(("http://", "https://")):
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.get(location)
            resp.raise_for_status()
            return resp.text

    return Path(location).expanduser().read_text(encoding="utf-8")


async def load_pricing(location: "str | None") -> "PricingTable":
    """
    loads the pricing table from a local path or an http(s) URL.
    Any failure falls back to the zero-rate defaults, pricing is
    never fatal for an aggregation pass.
    """
    if not location:
        return PricingTable.default()

    try:
        raw = await _read_document(location)
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("pricing document must be a JSON object")
        return PricingTable.from_dict(data)

    except (OSError, ValueError, TypeError, httpx.HTTPError) as err:
        logger.debug("pricing_defaults_used", location=location, reason=str(err))
        return PricingTable.default()
