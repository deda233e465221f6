"""Multi-provider price aggregation with circuit breaking and validation."""

from __future__ import annotations

import asyncio
import math
import re
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from utils.circuit_breaker import CircuitBreaker, classify_failure
from utils.logging_setup import get_logger
from utils.ttl_cache import TTLCache

from .exceptions import AggregationError, FetchCancelledError, ProviderDisabledError
from .models import DEFAULT_PRICE_RANGES, DEFAULT_SYMBOLS, PricePoint, Quote
from .providers import ProviderAdapter, metal_info
from .sanitizer import MAX_REASONABLE_CHANGE_PERCENT, sanitize_quote, validate_series, validate_snapshot

logger = get_logger('aggregator')

MIN_DAYS = 2
MAX_DAYS = 365
DEFAULT_DAYS = 30

_LEADING_INT = re.compile(r'\s*([+-]?)0*(\d{1,9})')


def clamp_days(value: Any, default: int = DEFAULT_DAYS) -> int:
    """Parse a day count (int or query-string value) and clamp it to [MIN_DAYS, MAX_DAYS]."""
    if value is None or isinstance(value, bool):
        days = default
    elif isinstance(value, (int, float)):
        days = int(value) if math.isfinite(value) else default
    else:
        # leading integer, so '7.5' -> 7 and '10days' -> 10
        m = _LEADING_INT.match(str(value))
        days = int(m.group(1) + m.group(2)) if m else default
    return max(MIN_DAYS, min(days, MAX_DAYS))


@dataclass
class PriceEngineState:
    """Mutable state shared by one aggregator: raw payload cache and breaker timestamps."""

    cache: TTLCache = field(default_factory=TTLCache)
    breaker: CircuitBreaker = field(default_factory=CircuitBreaker)


class FallbackAggregator:
    """Tries providers in priority order; the first provider whose result validates wins."""

    def __init__(
        self,
        providers: Iterable[ProviderAdapter],
        state: PriceEngineState | None = None,
        symbols: Sequence[str] = DEFAULT_SYMBOLS,
        price_ranges: Mapping[str, tuple[float, float]] | None = None,
        max_change_percent: float = MAX_REASONABLE_CHANGE_PERCENT,
        max_concurrency: int = 4,
        series_margin: int = 5,
    ) -> None:
        self.providers = list(providers)
        self.state = state or PriceEngineState()
        self.symbols = tuple(metal_info(s).symbol for s in symbols)
        self.price_ranges = dict(price_ranges or DEFAULT_PRICE_RANGES)
        self.max_change_percent = float(max_change_percent)
        self.max_concurrency = max(1, int(max_concurrency))
        self.series_margin = max(0, int(series_margin))
        for provider in self.providers:
            provider.bind_cache(self.state.cache)
            self.state.breaker.cooldowns.setdefault(provider.name, provider.cooldown_s)

    @property
    def breaker(self) -> CircuitBreaker:
        return self.state.breaker

    # ---- provider bookkeeping ----
    def _ensure_enabled(self, provider: ProviderAdapter) -> None:
        if self.breaker.is_open(provider.name):
            raise ProviderDisabledError(provider.name, self.breaker.disabled_until(provider.name))

    def _record_failure(self, provider: ProviderAdapter, error: Exception) -> str:
        kind = classify_failure(error)
        self.breaker.record_failure(provider.name, kind)
        logger.warning(f"Provider {provider.name} failed ({kind.value}): {error}")
        return f"{kind.value}: {error}"

    def _wanted(self, symbols: Iterable[str] | None) -> list[str]:
        if symbols is None:
            return list(self.symbols)
        out: list[str] = []
        for s in symbols:
            sym = metal_info(s).symbol
            if sym not in out:
                out.append(sym)
        return out

    # ---- latest quotes ----
    async def _attempt_snapshot(
        self, provider: ProviderAdapter, symbols: list[str], cancel: threading.Event | None
    ) -> list[Quote]:
        sem = asyncio.Semaphore(self.max_concurrency)

        async def _one(sym: str) -> Quote:
            async with sem:
                raw = await asyncio.to_thread(provider.fetch_latest, sym, cancel)
            return sanitize_quote(raw.to_quote(), self.max_change_percent)

        # any failing symbol fails the whole attempt
        return list(await asyncio.gather(*(_one(s) for s in symbols)))

    async def aget_all_quotes(
        self, symbols: Iterable[str] | None = None, cancel: threading.Event | None = None
    ) -> list[Quote]:
        wanted = self._wanted(symbols)
        self.state.cache.purge_expired()
        attempts: list[tuple[str, str]] = []
        for provider in self.providers:
            try:
                self._ensure_enabled(provider)
                quotes = await self._attempt_snapshot(provider, wanted, cancel)
                validate_snapshot(quotes, wanted, self.price_ranges)
            except FetchCancelledError:
                raise
            except ProviderDisabledError as e:
                logger.info(f"Skipping {provider.name}: {e}")
                attempts.append((provider.name, f"circuit open until {e.disabled_until:.0f}"))
                continue
            except Exception as e:
                attempts.append((provider.name, self._record_failure(provider, e)))
                continue
            logger.debug(f"Quotes for {', '.join(wanted)} served by {provider.name}")
            return quotes
        raise AggregationError(attempts)

    def get_all_quotes(
        self, symbols: Iterable[str] | None = None, cancel: threading.Event | None = None
    ) -> list[Quote]:
        """Blocking wrapper around aget_all_quotes (must not run inside an event loop)."""
        return asyncio.run(self.aget_all_quotes(symbols, cancel=cancel))

    def get_latest_prices(
        self, symbols: Iterable[str] | None = None, cancel: threading.Event | None = None
    ) -> dict[str, float]:
        return {q.symbol: q.price for q in self.get_all_quotes(symbols, cancel=cancel)}

    # ---- history ----
    def get_series(
        self, symbol: str, days: Any = DEFAULT_DAYS, cancel: threading.Event | None = None
    ) -> list[PricePoint]:
        """Return the last ``days + 1`` daily points for ``symbol`` from the first healthy provider."""
        sym = metal_info(symbol).symbol
        safe_days = clamp_days(days)
        requested = safe_days + self.series_margin
        attempts: list[tuple[str, str]] = []
        for provider in self.providers:
            if not provider.supports_history:
                attempts.append((provider.name, 'history not supported'))
                continue
            try:
                self._ensure_enabled(provider)
                series = provider.fetch_series(sym, requested, cancel=cancel)
                validate_series(sym, series, self.price_ranges)
            except FetchCancelledError:
                raise
            except ProviderDisabledError as e:
                attempts.append((provider.name, f"circuit open until {e.disabled_until:.0f}"))
                continue
            except Exception as e:
                attempts.append((provider.name, self._record_failure(provider, e)))
                continue
            return list(series[-(safe_days + 1):])
        raise AggregationError(attempts)

    # ---- inspection ----
    def stats(self) -> dict:
        return {
            'providers': [p.name for p in self.providers],
            'cache': self.state.cache.stats(),
            'breakers': self.breaker.stats(),
        }
