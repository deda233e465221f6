"""Wiring: build providers, aggregator, ETF board, store, notifier and worker from Settings."""

from __future__ import annotations

from utils.circuit_breaker import CircuitBreaker
from utils.http_client import HTTPClient
from utils.logging_setup import get_logger
from utils.ttl_cache import TTLCache

from .aggregator import FallbackAggregator, PriceEngineState
from .config import Settings
from .etfs import EtfQuoteBoard
from .exceptions import ConfigError
from .notifier import ResendEmailSender
from .providers import PROVIDER_CLASSES, ProviderAdapter, TwelveDataProvider
from .store import AlertStore, SQLiteAlertStore, SupabaseAlertStore
from .worker import AlertWorker

logger = get_logger('factory')


def build_providers(settings: Settings, http: HTTPClient | None = None) -> list[ProviderAdapter]:
    http = http or HTTPClient(timeout=settings.http_timeout_s)
    keys = {'goldapi': settings.goldapi_api_key, 'metalpriceapi': settings.metalprice_api_key}
    providers: list[ProviderAdapter] = []
    for name in settings.enabled_providers():
        cls = PROVIDER_CLASSES[name]
        cooldown = settings.cooldowns_s.get(name)
        if name in keys:
            providers.append(cls(keys[name], http=http, cooldown_s=cooldown))  # type: ignore[call-arg]
        else:
            providers.append(cls(http=http, cooldown_s=cooldown))
    skipped = [n for n in settings.provider_order if n not in settings.enabled_providers()]
    if skipped:
        logger.info(f"Providers without API keys disabled: {', '.join(skipped)}")
    return providers


def build_aggregator(settings: Settings, http: HTTPClient | None = None) -> FallbackAggregator:
    state = PriceEngineState(
        cache=TTLCache(ttl_s=settings.cache_ttl_s),
        breaker=CircuitBreaker(cooldowns=dict(settings.cooldowns_s)),
    )
    return FallbackAggregator(
        build_providers(settings, http=http),
        state=state,
        price_ranges=settings.price_ranges,
        max_change_percent=settings.max_change_percent,
    )


def build_etf_board(settings: Settings, http: HTTPClient | None = None) -> EtfQuoteBoard | None:
    """None when no Twelve Data key is configured; ETF alerts are then left unevaluated."""
    if not settings.has_etf_quotes:
        return None
    provider = TwelveDataProvider(
        settings.twelvedata_api_key,
        http=http or HTTPClient(timeout=settings.http_timeout_s),
        cooldown_s=settings.twelvedata_cooldown_s,
    )
    return EtfQuoteBoard(provider, cache=TTLCache(ttl_s=settings.cache_ttl_s))


def build_store(settings: Settings) -> AlertStore:
    settings.require_store()
    if settings.has_supabase:
        return SupabaseAlertStore(
            settings.supabase_url,  # type: ignore[arg-type]
            settings.supabase_service_key,  # type: ignore[arg-type]
            http=HTTPClient(timeout=settings.http_timeout_s),
        )
    if not settings.alerts_db_path:
        raise ConfigError('ALERTS_DB_PATH is not set')
    return SQLiteAlertStore(settings.alerts_db_path)


def build_notifier(settings: Settings) -> ResendEmailSender:
    if not (settings.resend_api_key and settings.alert_from_email):
        raise ConfigError('RESEND_API_KEY and ALERT_FROM_EMAIL are required to send alerts')
    return ResendEmailSender(
        settings.resend_api_key,
        settings.alert_from_email,
        from_name=settings.alert_from_name,
        http=HTTPClient(timeout=settings.http_timeout_s),
    )


def build_worker(settings: Settings) -> AlertWorker:
    settings.require_worker()
    etf_board = build_etf_board(settings)
    if etf_board is None:
        logger.info('TWELVEDATA_API_KEY not set; ETF alerts will not be evaluated')
    return AlertWorker(
        build_aggregator(settings),
        build_store(settings),
        build_notifier(settings),
        interval_s=settings.alert_interval_s,
        etf_quotes=etf_board,
    )
