"""Upstream price providers.

Includes:
- Stooq daily CSV (no key, latest + history)
- GoldAPI.io JSON (key, latest with native change)
- MetalpriceAPI JSON (key, latest/yesterday + timeframe history)
- Twelve Data JSON (key, ETF quotes only)

Every adapter returns a ProviderQuote for the latest path and a list of
PricePoint for the history path. Raw payloads are cached on the shared
TTLCache only once they normalize cleanly, so an error body is never served
from cache.
"""

from __future__ import annotations

import json
import math
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import requests

from utils.circuit_breaker import classify_failure
from utils.http_client import HTTPClient, RequestCancelled
from utils.logging_setup import get_logger
from utils.ttl_cache import TTLCache

from .exceptions import (
    ConfigError,
    FetchCancelledError,
    UnknownSymbolError,
    UpstreamFetchError,
    UpstreamParseError,
)
from .models import ETFS, METALS, EtfQuote, MetalInfo, PricePoint, ProviderQuote, round2
from .series_parser import parse_series

logger = get_logger('providers')

T = TypeVar('T')


def metal_info(symbol: str) -> MetalInfo:
    meta = METALS.get((symbol or '').strip().upper())
    if meta is None:
        raise UnknownSymbolError(symbol)
    return meta


def etf_symbol(symbol: str) -> str:
    sym = (symbol or '').strip().upper()
    if sym not in ETFS:
        raise UnknownSymbolError(symbol, kind='ETF')
    return sym


def _snippet(text: str, limit: int = 160) -> str:
    flat = ' '.join((text or '').split())
    return flat if len(flat) <= limit else flat[:limit] + '...'


def to_number(value: Any) -> float | None:
    """Accept int/float or numeric strings ('2934.5', '0.63%'); None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        out = float(value)
    elif isinstance(value, str):
        raw = value.strip().rstrip('%').strip()
        if not raw:
            return None
        try:
            out = float(raw)
        except ValueError:
            return None
    else:
        return None
    return out if math.isfinite(out) else None


def _utc_date(ts: Any) -> str | None:
    seconds = to_number(ts)
    if seconds is None:
        return None
    if seconds > 1e12:  # milliseconds
        seconds /= 1000.0
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime('%Y-%m-%d')
    except (OverflowError, OSError, ValueError):
        logger.debug(f"Ignoring out-of-range timestamp {ts!r}")
        return None


class UpstreamSource:
    """Common plumbing for one upstream HTTP source: fetch, cache, parse."""

    name = 'base'
    default_cooldown_s = 1800.0

    def __init__(
        self,
        http: HTTPClient | None = None,
        cache: TTLCache | None = None,
        cooldown_s: float | None = None,
    ) -> None:
        self._http = http or HTTPClient(headers={'Accept': 'application/json, text/csv, */*'})
        self._cache = cache
        self.cooldown_s = float(self.default_cooldown_s if cooldown_s is None else cooldown_s)

    def bind_cache(self, cache: TTLCache) -> None:
        self._cache = cache

    # ---- shared plumbing ----
    def _get_text(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cancel: threading.Event | None = None,
    ) -> str:
        try:
            resp = self._http.get(url, params=params, headers=headers, cancel=cancel)
        except RequestCancelled as e:
            raise FetchCancelledError(str(e)) from e
        except requests.RequestException as e:
            raise UpstreamFetchError(f"{self.name}: request failed: {e}", provider=self.name) from e
        if resp.status_code >= 400:
            raise UpstreamFetchError(
                f"{self.name}: fetch failed {resp.status_code} {resp.reason or ''} - {_snippet(resp.text)}",
                status_code=resp.status_code,
                provider=self.name,
            )
        return resp.text

    def _load(
        self,
        cache_key: str,
        url: str,
        parse: Callable[[str], T],
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cancel: threading.Event | None = None,
    ) -> T:
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                return parse(cached)
        text = self._get_text(url, params=params, headers=headers, cancel=cancel)
        result = parse(text)
        if self._cache is not None:
            self._cache.put(cache_key, text)
        logger.debug(f"{self.name}: fetched {cache_key}")
        return result

    def _json(self, text: str) -> dict[str, Any]:
        try:
            data = json.loads(text)
        except ValueError as e:
            raise UpstreamParseError(f"{self.name}: invalid JSON - {_snippet(text)}") from e
        if not isinstance(data, dict):
            raise UpstreamParseError(f"{self.name}: expected a JSON object, got {type(data).__name__}")
        return data

    def _number(self, data: dict[str, Any], key: str) -> float | None:
        """Optional numeric field: absent is None, present but malformed is a parse error."""
        raw = data.get(key)
        if raw is None:
            return None
        value = to_number(raw)
        if value is None:
            raise UpstreamParseError(f"{self.name}: field {key!r} is not numeric: {raw!r}")
        return value

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class ProviderAdapter(UpstreamSource, ABC):
    """A metal spot-price source: latest quote plus (optionally) daily history."""

    supports_history = True

    @abstractmethod
    def fetch_latest(self, symbol: str, cancel: threading.Event | None = None) -> ProviderQuote: ...

    @abstractmethod
    def fetch_series(
        self, symbol: str, days: int, cancel: threading.Event | None = None
    ) -> list[PricePoint]: ...


class StooqProvider(ProviderAdapter):
    """Free daily CSV endpoint (``date,open,high,low,close,volume``)."""

    name = 'stooq'
    default_cooldown_s = 1800.0
    BASE_URL = 'https://stooq.com/q/d/l/'
    LATEST_WINDOW = 32
    MAX_ROWS = 400

    def _rows(self, symbol: str, length: int, cancel: threading.Event | None) -> list[PricePoint]:
        meta = metal_info(symbol)
        n = max(2, min(int(length), self.MAX_ROWS))

        def parse(text: str) -> list[PricePoint]:
            rows = parse_series(text)
            if not rows:
                # quota exhaustion arrives as a 200 text body
                raise UpstreamParseError(f"stooq returned no rows for {meta.symbol}: {_snippet(text)}")
            return rows

        return self._load(
            f"stooq:series:{meta.symbol}:{n}",
            self.BASE_URL,
            parse,
            params={'s': meta.stooq_symbol, 'i': 'd', 'l': n},
            cancel=cancel,
        )

    def fetch_latest(self, symbol: str, cancel: threading.Event | None = None) -> ProviderQuote:
        rows = self._rows(symbol, self.LATEST_WINDOW, cancel)
        return ProviderQuote(provider=self.name, symbol=metal_info(symbol).symbol, series=tuple(rows))

    def fetch_series(
        self, symbol: str, days: int, cancel: threading.Event | None = None
    ) -> list[PricePoint]:
        return self._rows(symbol, days, cancel)


class GoldAPIProvider(ProviderAdapter):
    """GoldAPI.io spot quotes with native change fields (``ch``/``chp``)."""

    name = 'goldapi'
    supports_history = False
    default_cooldown_s = 3600.0
    BASE_URL = 'https://www.goldapi.io/api'

    def __init__(self, api_key: str | None, **kwargs: Any) -> None:
        if not api_key:
            raise ConfigError('Missing GOLDAPI_API_KEY')
        super().__init__(**kwargs)
        self.api_key = api_key

    def _normalize(self, symbol: str, text: str) -> ProviderQuote:
        data = self._json(text)
        if data.get('error'):
            raise UpstreamFetchError(f"goldapi: {data['error']}", provider=self.name)
        price = None
        for key in ('price', 'ask', 'bid'):
            price = self._number(data, key)
            if price is not None and price > 0:
                break
        if price is None or price <= 0:
            raise UpstreamParseError(f"goldapi: no usable price for {symbol}")
        return ProviderQuote(
            provider=self.name,
            symbol=symbol,
            price=price,
            change=self._number(data, 'ch'),
            change_percent=self._number(data, 'chp'),
            effective_date=_utc_date(data.get('timestamp')),
        )

    def fetch_latest(self, symbol: str, cancel: threading.Event | None = None) -> ProviderQuote:
        meta = metal_info(symbol)
        today = datetime.now(timezone.utc).strftime('%Y%m%d')
        endpoints = [
            ('latest', f"{self.BASE_URL}/{meta.symbol}/USD"),
            (today, f"{self.BASE_URL}/{meta.symbol}/USD/{today}"),
        ]
        last_error: Exception | None = None
        for tag, url in endpoints:
            try:
                return self._load(
                    f"goldapi:latest:{meta.symbol}:{tag}",
                    url,
                    lambda text: self._normalize(meta.symbol, text),
                    headers={'x-access-token': self.api_key, 'Accept': 'application/json'},
                    cancel=cancel,
                )
            except (UpstreamFetchError, UpstreamParseError) as e:
                # a quota signal applies to every endpoint
                if classify_failure(e).opens_circuit:
                    raise
                logger.debug(f"goldapi: {tag} endpoint failed for {meta.symbol}: {e}")
                last_error = e
        if last_error is None:
            raise UpstreamFetchError(f"goldapi: no endpoint answered for {meta.symbol}", provider=self.name)
        raise last_error

    def fetch_series(
        self, symbol: str, days: int, cancel: threading.Event | None = None
    ) -> list[PricePoint]:
        raise UpstreamFetchError('goldapi: historical series not supported', provider=self.name)


class MetalpriceAPIProvider(ProviderAdapter):
    """MetalpriceAPI rates (``USDXAU`` = USD per ounce)."""

    name = 'metalpriceapi'
    default_cooldown_s = 3600.0
    BASE_URL = 'https://api.metalpriceapi.com/v1'

    def __init__(self, api_key: str | None, **kwargs: Any) -> None:
        if not api_key:
            raise ConfigError('Missing METALPRICE_API_KEY')
        super().__init__(**kwargs)
        self.api_key = api_key

    def _checked(self, text: str) -> dict[str, Any]:
        data = self._json(text)
        if not data.get('success'):
            err = data.get('error') if isinstance(data.get('error'), dict) else {}
            info = err.get('info') or 'MetalpriceAPI returned an error. Check your API key and quota.'
            raise UpstreamFetchError(f"metalpriceapi: {info}", provider=self.name)
        return data

    def _usd_rate(self, rates: Any, symbol: str) -> float | None:
        if not isinstance(rates, dict):
            raise UpstreamParseError('metalpriceapi: missing rates')
        direct = to_number(rates.get(f"USD{symbol}"))
        if direct is not None and direct > 0:
            return direct
        # plain key is ounces per USD
        inverse = to_number(rates.get(symbol))
        if inverse is not None and inverse > 0:
            return 1.0 / inverse
        return None

    def _parse_rate(self, symbol: str, text: str) -> tuple[float, str | None]:
        data = self._checked(text)
        price = self._usd_rate(data.get('rates'), symbol)
        if price is None:
            raise UpstreamParseError(f"metalpriceapi: no rate for {symbol}")
        return price, _utc_date(data.get('timestamp')) or data.get('date')

    def _params(self, symbol: str, **extra: Any) -> dict[str, Any]:
        return {'api_key': self.api_key, 'base': 'USD', 'currencies': symbol, **extra}

    def fetch_latest(self, symbol: str, cancel: threading.Event | None = None) -> ProviderQuote:
        meta = metal_info(symbol)
        price, effective = self._load(
            f"metalpriceapi:latest:{meta.symbol}",
            f"{self.BASE_URL}/latest",
            lambda text: self._parse_rate(meta.symbol, text),
            params=self._params(meta.symbol),
            cancel=cancel,
        )
        prev: float | None = None
        try:
            prev, _ = self._load(
                f"metalpriceapi:yesterday:{meta.symbol}",
                f"{self.BASE_URL}/yesterday",
                lambda text: self._parse_rate(meta.symbol, text),
                params=self._params(meta.symbol),
                cancel=cancel,
            )
        except (UpstreamFetchError, UpstreamParseError) as e:
            logger.info(f"metalpriceapi: yesterday's rate unavailable for {meta.symbol}: {e}")

        change = change_pct = 0.0
        if prev is not None and prev > 0:
            change = price - prev
            change_pct = (change / prev) * 100
        return ProviderQuote(
            provider=self.name,
            symbol=meta.symbol,
            price=price,
            change=change,
            change_percent=change_pct,
            effective_date=effective,
        )

    def fetch_series(
        self, symbol: str, days: int, cancel: threading.Event | None = None
    ) -> list[PricePoint]:
        meta = metal_info(symbol)
        end = datetime.now(timezone.utc).date()
        start = end - timedelta(days=max(1, int(days)))

        def parse(text: str) -> list[PricePoint]:
            data = self._checked(text)
            rates = data.get('rates')
            if not isinstance(rates, dict):
                raise UpstreamParseError('metalpriceapi: missing rates')
            points = []
            for day, day_rates in rates.items():
                value = self._usd_rate(day_rates, meta.symbol) if isinstance(day_rates, dict) else None
                if value is not None:
                    points.append(PricePoint(date=str(day), close=value))
            if not points:
                raise UpstreamParseError(f"metalpriceapi: empty timeframe for {meta.symbol}")
            points.sort(key=lambda p: p.date)
            return points

        return self._load(
            f"metalpriceapi:series:{meta.symbol}:{start.isoformat()}:{end.isoformat()}",
            f"{self.BASE_URL}/timeframe",
            parse,
            params=self._params(meta.symbol, start_date=start.isoformat(), end_date=end.isoformat()),
            cancel=cancel,
        )


class TwelveDataProvider(UpstreamSource):
    """Twelve Data ``/quote`` endpoint for precious-metal ETFs (USD per share)."""

    name = 'twelvedata'
    default_cooldown_s = 3600.0
    BASE_URL = 'https://api.twelvedata.com'

    def __init__(self, api_key: str | None, **kwargs: Any) -> None:
        if not api_key:
            raise ConfigError('Missing TWELVEDATA_API_KEY')
        super().__init__(**kwargs)
        self.api_key = api_key

    def _normalize(self, symbol: str, text: str) -> EtfQuote:
        data = self._json(text)
        if data.get('status') == 'error' or 'code' in data:
            message = data.get('message') or data.get('info') or 'Twelve Data returned an error'
            code = data.get('code')
            raise UpstreamFetchError(
                f"twelvedata: {message}",
                status_code=code if isinstance(code, int) and not isinstance(code, bool) else None,
                provider=self.name,
            )
        price = None
        for key in ('close', 'price', 'last'):
            price = self._number(data, key)
            if price is not None:
                break
        if price is None or price <= 0:
            raise UpstreamParseError(f"twelvedata: no usable price for {symbol}")
        change_pct = self._number(data, 'percent_change')
        if change_pct is None:
            change_pct = self._number(data, 'change_percent')
        return EtfQuote(
            symbol=symbol,
            name=str(data.get('name') or ETFS.get(symbol) or symbol),
            price=round2(price),
            change=round2(self._number(data, 'change') or 0.0),
            change_percent=round2(change_pct or 0.0),
        )

    def fetch_quote(self, symbol: str, cancel: threading.Event | None = None) -> EtfQuote:
        sym = etf_symbol(symbol)
        return self._load(
            f"twelvedata:quote:{sym}",
            f"{self.BASE_URL}/quote",
            lambda text: self._normalize(sym, text),
            params={'symbol': sym, 'apikey': self.api_key},
            cancel=cancel,
        )


PROVIDER_CLASSES: dict[str, type[ProviderAdapter]] = {
    StooqProvider.name: StooqProvider,
    GoldAPIProvider.name: GoldAPIProvider,
    MetalpriceAPIProvider.name: MetalpriceAPIProvider,
}
