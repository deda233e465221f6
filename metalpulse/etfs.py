"""ETF quote board: one provider, fetched per symbol, partial results tolerated."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterable, Sequence

from utils.circuit_breaker import CircuitBreaker, classify_failure
from utils.logging_setup import get_logger
from utils.ttl_cache import TTLCache

from .exceptions import AggregationError, FetchCancelledError
from .models import DEFAULT_ETF_SYMBOLS, EtfQuote
from .providers import TwelveDataProvider, etf_symbol

logger = get_logger('etfs')


class EtfQuoteBoard:
    """Snapshot of ETF quotes where a failing symbol is dropped instead of failing the batch."""

    def __init__(
        self,
        provider: TwelveDataProvider,
        symbols: Sequence[str] = DEFAULT_ETF_SYMBOLS,
        cache: TTLCache | None = None,
        breaker: CircuitBreaker | None = None,
        max_concurrency: int = 4,
    ) -> None:
        self.provider = provider
        self.symbols = tuple(etf_symbol(s) for s in symbols)
        self.cache = cache if cache is not None else TTLCache()
        self.breaker = breaker or CircuitBreaker()
        self.max_concurrency = max(1, int(max_concurrency))
        provider.bind_cache(self.cache)
        self.breaker.cooldowns.setdefault(provider.name, provider.cooldown_s)

    def _wanted(self, symbols: Iterable[str] | None) -> list[str]:
        if symbols is None:
            return list(self.symbols)
        out: list[str] = []
        for s in symbols:
            sym = etf_symbol(s)
            if sym not in out:
                out.append(sym)
        return out

    async def aget_quotes(
        self, symbols: Iterable[str] | None = None, cancel: threading.Event | None = None
    ) -> list[EtfQuote]:
        wanted = self._wanted(symbols)
        name = self.provider.name
        if self.breaker.is_open(name):
            until = self.breaker.disabled_until(name)
            raise AggregationError([(name, f"circuit open until {until:.0f}")])
        self.cache.purge_expired()
        sem = asyncio.Semaphore(self.max_concurrency)

        async def _one(sym: str) -> EtfQuote:
            async with sem:
                return await asyncio.to_thread(self.provider.fetch_quote, sym, cancel)

        results = await asyncio.gather(*(_one(s) for s in wanted), return_exceptions=True)
        quotes: list[EtfQuote] = []
        failures: list[tuple[str, str]] = []
        for sym, result in zip(wanted, results):
            if isinstance(result, FetchCancelledError):
                raise result
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                kind = classify_failure(result)
                self.breaker.record_failure(name, kind)
                logger.warning(f"ETF quote for {sym} unavailable ({kind.value}): {result}")
                failures.append((f"{name}:{sym}", f"{kind.value}: {result}"))
                continue
            quotes.append(result)
        if wanted and not quotes:
            raise AggregationError(failures)
        return quotes

    def get_quotes(
        self, symbols: Iterable[str] | None = None, cancel: threading.Event | None = None
    ) -> list[EtfQuote]:
        """Blocking wrapper around aget_quotes (must not run inside an event loop)."""
        return asyncio.run(self.aget_quotes(symbols, cancel=cancel))

    def get_latest_prices(
        self, symbols: Iterable[str] | None = None, cancel: threading.Event | None = None
    ) -> dict[str, float]:
        return {q.symbol: q.price for q in self.get_quotes(symbols, cancel=cancel)}

    def stats(self) -> dict:
        return {
            'provider': self.provider.name,
            'symbols': list(self.symbols),
            'cache': self.cache.stats(),
            'breakers': self.breaker.stats(),
        }
