"""Response payloads for the metals API (``/api/metals``, ``/api/metals/{SYMBOL}/history`` and ``/api/etfs``)."""

from __future__ import annotations

from datetime import date
from typing import Any

from utils.logging_setup import get_logger

from .aggregator import FallbackAggregator, clamp_days
from .etfs import EtfQuoteBoard
from .exceptions import ConfigError, UnknownSymbolError
from .models import round2
from .providers import metal_info

logger = get_logger('service')


def format_chart_date(iso_day: str) -> str:
    """'2024-01-05' -> 'Jan 5'; unparseable values pass through."""
    try:
        d = date.fromisoformat(iso_day[:10])
    except ValueError:
        return iso_day
    return f"{d:%b} {d.day}"


def metals_payload(aggregator: FallbackAggregator) -> list[dict[str, Any]]:
    return [q.to_dict() for q in aggregator.get_all_quotes()]


def etfs_payload(board: EtfQuoteBoard | None) -> list[dict[str, Any]]:
    if board is None:
        raise ConfigError('Missing TWELVEDATA_API_KEY')
    return [q.to_dict() for q in board.get_quotes()]


def history_payload(aggregator: FallbackAggregator, symbol: str, days: Any = None) -> list[dict[str, Any]]:
    sym = metal_info(symbol).symbol
    series = aggregator.get_series(sym, clamp_days(days))
    return [{'date': format_chart_date(p.date), 'price': round2(p.close)} for p in series]


def error_response(exc: Exception) -> tuple[int, dict[str, str]]:
    if isinstance(exc, UnknownSymbolError):
        return 404, {'error': 'Metal not found' if exc.kind == 'metal' else f"{exc.kind} not found"}
    logger.error(f"Request failed: {exc}")
    return 500, {'error': str(exc) or 'Failed to fetch prices'}
