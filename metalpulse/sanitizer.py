"""Plausibility checks for quotes and series.

- sanitize_quote zeroes a day-over-day change above the threshold, keeping the price.
- validate_snapshot / validate_series reject prices outside the per-symbol range.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Mapping, Sequence

from utils.logging_setup import get_logger

from .exceptions import ValidationError
from .models import DEFAULT_PRICE_RANGES, PricePoint, Quote

logger = get_logger('sanitizer')

MAX_REASONABLE_CHANGE_PERCENT = 15.0

PriceRanges = Mapping[str, tuple[float, float]]


def sanitize_quote(quote: Quote, max_change_percent: float = MAX_REASONABLE_CHANGE_PERCENT) -> Quote:
    if abs(quote.change_percent) > max_change_percent:
        logger.warning(
            f"Clamping implausible change for {quote.symbol}: "
            f"{quote.change} ({quote.change_percent}%)"
        )
        return dataclasses.replace(quote, change=0.0, change_percent=0.0)
    return quote


def is_plausible(symbol: str, price: float, ranges: PriceRanges | None = None) -> bool:
    bounds = (ranges or DEFAULT_PRICE_RANGES).get(symbol)
    if bounds is None:
        return False
    try:
        value = float(price)
    except (TypeError, ValueError):
        return False
    lo, hi = bounds
    return math.isfinite(value) and lo <= value <= hi


def validate_snapshot(
    quotes: Sequence[Quote],
    expected_symbols: Sequence[str],
    ranges: PriceRanges | None = None,
) -> list[Quote]:
    """Check an all-metals snapshot is complete and plausible; returns it unchanged."""
    if len(quotes) != len(expected_symbols):
        raise ValidationError(f"expected {len(expected_symbols)} quotes, got {len(quotes)}")
    seen = [q.symbol for q in quotes]
    if sorted(seen) != sorted(expected_symbols):
        raise ValidationError(f"snapshot symbols {seen} do not match {list(expected_symbols)}")
    for q in quotes:
        if not is_plausible(q.symbol, q.price, ranges):
            raise ValidationError(f"{q.symbol} price {q.price} outside plausible range")
    return list(quotes)


def validate_series(symbol: str, series: Sequence[PricePoint], ranges: PriceRanges | None = None) -> None:
    if len(series) < 2:
        raise ValidationError(f"{symbol}: not enough data points ({len(series)})")
    last = series[-1]
    if not is_plausible(symbol, last.close, ranges):
        raise ValidationError(f"{symbol}: latest close {last.close} outside plausible range")
