"""Model-name normalization and cost resolution."""

import json
import logging
import re
from pathlib import Path
from typing import NamedTuple

from pydantic import TypeAdapter, ValidationError

from .config import PRICING_PATH
from .errors import PricingNotFoundError
from .models import CostSource, PricingData, PricingOverride

logger = logging.getLogger("agentspend")

PACKAGED_PRICING = Path(__file__).parent / "pricing.json"

_DATE_SUFFIX = re.compile(r"-\d{8}$")
_SHORT_SUFFIX = re.compile(r"-\d{4}$")

_overrides_adapter = TypeAdapter(dict[str, PricingOverride])

_pricing_data: PricingData | None = None


class CostResolution(NamedTuple):
    cost: float
    source: CostSource


def load_pricing(path: Path | None = None) -> PricingData:
    """Load the rate table from the first readable location.

    Tries ``path``, then ``AGENTSPEND_PRICING_PATH``, then the table shipped
    with the package. Raises PricingNotFoundError when none can be read.
    """
    candidates = [p for p in (path, PRICING_PATH, PACKAGED_PRICING) if p is not None]
    for candidate in candidates:
        try:
            text = Path(candidate).read_text(encoding="utf-8", errors="replace")
            data = PricingData.model_validate_json(text)
        except (OSError, ValidationError) as e:
            logger.debug("Pricing table not usable at %s: %s", candidate, e)
            continue
        logger.info("Loaded pricing table v%d from %s", data.version, candidate)
        return data
    raise PricingNotFoundError(f"Could not load pricing table from: {', '.join(map(str, candidates))}")


def get_pricing_data() -> PricingData:
    """Process-wide pricing table, loaded on first use."""
    global _pricing_data
    if _pricing_data is None:
        _pricing_data = load_pricing()
    return _pricing_data


def load_overrides(path: Path | None) -> dict[str, PricingOverride]:
    """Read a JSON object of model id -> partial rates. Unreadable files are ignored."""
    if path is None:
        return {}
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8", errors="replace"))
        return _overrides_adapter.validate_python(raw)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Ignoring pricing overrides at %s: %s", path, e)
        return {}


def cost_from_rates(
    input_tokens: int,
    output_tokens: int,
    cache_read: int,
    cache_write: int,
    input_rate: float,
    output_rate: float,
    cache_read_rate: float | None = None,
    cache_write_rate: float | None = None,
) -> float:
    """Cost in USD from per-million-token rates. Missing cache rates add nothing."""
    cost = input_tokens / 1_000_000 * input_rate
    cost += output_tokens / 1_000_000 * output_rate
    if cache_read_rate is not None and cache_read > 0:
        cost += cache_read / 1_000_000 * cache_read_rate
    if cache_write_rate is not None and cache_write > 0:
        cost += cache_write / 1_000_000 * cache_write_rate
    return cost


class PricingResolver:
    """Turns raw model identifiers and token counts into a cost and its provenance."""

    def __init__(self, data: PricingData, overrides: dict[str, PricingOverride] | None = None):
        self.data = data
        self.overrides = overrides or {}
        self._warned: set[str] = set()
        # Longest ids first so the most specific model wins fuzzy matching.
        self._by_length = sorted(data.models, key=len, reverse=True)

    @property
    def version(self) -> int:
        return self.data.version

    def normalize(self, raw) -> str:
        if not raw or not isinstance(raw, str):
            return "unknown"
        name = raw.lower().strip()
        if not name:
            return "unknown"

        for prefix in self.data.provider_prefixes:
            if name.startswith(prefix):
                name = name[len(prefix):]
                break

        aliases = self.data.aliases
        if raw in aliases:
            return aliases[raw]
        if name in aliases:
            return aliases[name]

        models = self.data.models
        if name in models:
            return name

        stripped = _SHORT_SUFFIX.sub("", _DATE_SUFFIX.sub("", name))
        if stripped != name and stripped in models:
            return stripped

        for known in self._by_length:
            if name.startswith(known):
                return known
        for known in self._by_length:
            if known.startswith(name):
                return known

        return name

    def resolve(
        self,
        raw_model: str,
        input_tokens: int,
        output_tokens: int,
        cache_read: int = 0,
        cache_write: int = 0,
        provider_cost: float | None = None,
    ) -> CostResolution:
        if provider_cost is not None and provider_cost > 0:
            return CostResolution(provider_cost, "provider")

        normalized = self.normalize(raw_model)

        override = self.overrides.get(normalized)
        if override is not None:
            cost = cost_from_rates(
                input_tokens, output_tokens, cache_read, cache_write,
                override.input or 0.0, override.output or 0.0,
                override.cache_read, override.cache_write,
            )
            return CostResolution(cost, "override")

        pricing = self.data.models.get(normalized)
        if pricing is not None:
            cost = cost_from_rates(
                input_tokens, output_tokens, cache_read, cache_write,
                pricing.input, pricing.output,
                pricing.cache_read, pricing.cache_write,
            )
            return CostResolution(cost, "calculated")

        if normalized not in self._warned:
            self._warned.add(normalized)
            logger.warning("Unknown model %r (normalized: %r), cost will be $0", raw_model, normalized)
        return CostResolution(0.0, "calculated")
