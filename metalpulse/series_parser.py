"""Parser for delimited daily price payloads (Stooq-style CSV).

The header row must contain ``date`` and ``close`` columns (any case). Rows
arrive in no guaranteed order and may contain junk; both are normalized here
so callers always get an ascending, strictly positive series.
"""

from __future__ import annotations

import math

from .models import PricePoint


def _detect_delimiter(header: str) -> str:
    return ';' if ';' in header else ','


def _parse_close(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def parse_series(text: str | None) -> list[PricePoint]:
    """Parse ``text`` into a list of PricePoint sorted by date.

    A payload with fewer than two lines, or a header without ``date``/``close``,
    yields an empty list rather than raising.
    """
    trimmed = (text or '').strip()
    if not trimmed:
        return []
    lines = [ln.strip() for ln in trimmed.splitlines()]
    lines = [ln for ln in lines if ln]
    if len(lines) < 2:
        return []

    delimiter = _detect_delimiter(lines[0])
    cols = [c.strip().lower() for c in lines[0].split(delimiter)]
    try:
        idx_date = cols.index('date')
        idx_close = cols.index('close')
    except ValueError:
        return []

    rows: list[PricePoint] = []
    for line in lines[1:]:
        parts = line.split(delimiter)
        date = parts[idx_date].strip() if idx_date < len(parts) else ''
        close = _parse_close(parts[idx_close] if idx_close < len(parts) else None)
        if not date or close is None:
            continue
        rows.append(PricePoint(date=date, close=close))

    # ISO dates sort lexicographically
    rows.sort(key=lambda p: p.date)
    return rows
