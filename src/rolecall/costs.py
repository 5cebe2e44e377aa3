"""Cost table: per-million-token prices keyed by (provider, model)."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from rolecall.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostEntry:
    """Prices in ``currency`` per one million tokens."""

    input_cost_per_1m: float = 0.0
    output_cost_per_1m: float = 0.0
    currency: str = "USD"


ZERO_COST = CostEntry()

# Published list prices at time of writing; local backends are free.
_DEFAULT_PRICES: dict[str, dict[str, tuple[float, float]]] = {
    "anthropic": {
        "claude-opus-4-20250514": (15.0, 75.0),
        "claude-sonnet-4-20250514": (3.0, 15.0),
        "claude-3-7-sonnet-20250219": (3.0, 15.0),
        "claude-3-5-sonnet-20241022": (3.0, 15.0),
        "claude-3-5-haiku-20241022": (0.8, 4.0),
    },
    "openai": {
        "gpt-4o": (2.5, 10.0),
        "gpt-4o-mini": (0.15, 0.6),
        "gpt-4.1": (2.0, 8.0),
        "o3-mini": (1.1, 4.4),
        "o4-mini": (1.1, 4.4),
    },
    "google": {
        "gemini-2.0-flash": (0.1, 0.4),
        "gemini-2.5-flash": (0.3, 2.5),
        "gemini-2.5-pro": (1.25, 10.0),
    },
    "perplexity": {
        "sonar": (1.0, 1.0),
        "sonar-pro": (3.0, 15.0),
        "sonar-reasoning-pro": (2.0, 8.0),
    },
    "xai": {
        "grok-3": (3.0, 15.0),
        "grok-3-mini": (0.3, 0.5),
    },
}


class CostTable:
    """Read-only price lookup shared across requests."""

    def __init__(self, entries: Mapping[str, Mapping[str, CostEntry]]) -> None:
        """Freeze *entries*; provider names are matched case-insensitively."""
        self._entries: Mapping[str, Mapping[str, CostEntry]] = MappingProxyType(
            {
                provider.lower(): MappingProxyType(dict(models))
                for provider, models in entries.items()
            }
        )

    def lookup(self, provider: str, model_id: str) -> CostEntry:
        """Return the entry for (provider, model_id), or zero cost in USD."""
        models = self._entries.get(provider.lower()) if provider else None
        if models is None:
            logger.warning(
                "Provider %r not found in cost table; cannot determine cost for model %s",
                provider,
                model_id,
            )
            return ZERO_COST
        entry = models.get(model_id)
        if entry is None:
            logger.debug(
                "Cost data not found for model %r under provider %r; assuming zero cost",
                model_id,
                provider,
            )
            return ZERO_COST
        return entry

    def __contains__(self, key: object) -> bool:
        """Support ``(provider, model_id) in table``."""
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        provider, model_id = key
        models = self._entries.get(str(provider).lower())
        return models is not None and model_id in models

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CostTable:
        """Build the default table overlaid with ``settings.costs``."""
        entries: dict[str, dict[str, CostEntry]] = {
            provider: {
                model: CostEntry(input_cost_per_1m=inp, output_cost_per_1m=out)
                for model, (inp, out) in models.items()
            }
            for provider, models in _DEFAULT_PRICES.items()
        }
        if settings is not None:
            for provider, models in settings.costs.items():
                bucket = entries.setdefault(provider.lower(), {})
                for model, spec in models.items():
                    bucket[model] = CostEntry(
                        input_cost_per_1m=spec.input,
                        output_cost_per_1m=spec.output,
                        currency=spec.currency or "USD",
                    )
        return cls(entries)


def default_cost_table() -> CostTable:
    """Return the built-in price table without configuration overlays."""
    return CostTable.from_settings(None)
