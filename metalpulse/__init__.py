"""metalpulse package initializer: expose the price engine, ETF board, alert worker and exceptions."""

from __future__ import annotations

from .aggregator import FallbackAggregator, PriceEngineState, clamp_days
from .alerts import evaluate_transition, is_condition_met
from .config import Settings
from .etfs import EtfQuoteBoard
from .exceptions import (
    AggregationError,
    ConfigError,
    FetchCancelledError,
    MetalPulseError,
    PersistenceError,
    ProviderDisabledError,
    UnknownSymbolError,
    UpstreamFetchError,
    UpstreamParseError,
    ValidationError,
)
from .models import AlertRecord, ConditionState, Direction, EtfQuote, PricePoint, ProviderQuote, Quote
from .notifier import NotificationSender, ResendEmailSender
from .providers import (
    GoldAPIProvider,
    MetalpriceAPIProvider,
    ProviderAdapter,
    StooqProvider,
    TwelveDataProvider,
)
from .store import AlertStore, SQLiteAlertStore, SupabaseAlertStore
from .worker import AlertWorker, TickReport

__all__ = [
    'FallbackAggregator',
    'PriceEngineState',
    'clamp_days',
    'evaluate_transition',
    'is_condition_met',
    'Settings',
    'EtfQuoteBoard',
    'AlertRecord',
    'ConditionState',
    'Direction',
    'PricePoint',
    'ProviderQuote',
    'Quote',
    'EtfQuote',
    'NotificationSender',
    'ResendEmailSender',
    'ProviderAdapter',
    'StooqProvider',
    'GoldAPIProvider',
    'MetalpriceAPIProvider',
    'TwelveDataProvider',
    'AlertStore',
    'SQLiteAlertStore',
    'SupabaseAlertStore',
    'AlertWorker',
    'TickReport',
    'MetalPulseError',
    'AggregationError',
    'ConfigError',
    'FetchCancelledError',
    'PersistenceError',
    'ProviderDisabledError',
    'UnknownSymbolError',
    'UpstreamFetchError',
    'UpstreamParseError',
    'ValidationError',
]
