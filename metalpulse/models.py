"""Domain types shared by the price engine and the alert worker."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import UpstreamParseError


@dataclass(frozen=True)
class MetalInfo:
    id: str
    name: str
    symbol: str
    stooq_symbol: str
    min_price: float
    max_price: float


# USD per troy ounce
METALS: dict[str, MetalInfo] = {
    'XAU': MetalInfo('gold', 'Gold', 'XAU', 'xauusd', 1000.0, 10000.0),
    'XAG': MetalInfo('silver', 'Silver', 'XAG', 'xagusd', 5.0, 200.0),
    'XPT': MetalInfo('platinum', 'Platinum', 'XPT', 'xptusd', 300.0, 5000.0),
    'XPD': MetalInfo('palladium', 'Palladium', 'XPD', 'xpdusd', 300.0, 5000.0),
}

DEFAULT_SYMBOLS: tuple[str, ...] = tuple(METALS)

DEFAULT_PRICE_RANGES: dict[str, tuple[float, float]] = {
    sym: (m.min_price, m.max_price) for sym, m in METALS.items()
}

# precious-metal ETFs quoted in USD per share
ETFS: dict[str, str] = {
    'GLD': 'SPDR Gold Shares',
    'SLV': 'iShares Silver Trust',
    'PPLT': 'abrdn Platinum ETF',
    'PALL': 'abrdn Palladium ETF',
    'GDX': 'VanEck Gold Miners',
    'GDXJ': 'VanEck Junior Gold Miners',
}

DEFAULT_ETF_SYMBOLS: tuple[str, ...] = tuple(ETFS)


def round2(value: float) -> float:
    return round(float(value), 2)


@dataclass(frozen=True)
class PricePoint:
    date: str
    close: float


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: float
    change: float
    change_percent: float
    high: float
    low: float
    effective_date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        meta = METALS.get(self.symbol)
        return {
            'id': meta.id if meta else self.symbol.lower(),
            'name': meta.name if meta else self.symbol,
            'symbol': self.symbol,
            'price': self.price,
            'change': self.change,
            'changePercent': self.change_percent,
            'high24h': self.high,
            'low24h': self.low,
            'effectiveDate': self.effective_date,
        }


@dataclass(frozen=True)
class ProviderQuote:
    """Normalized output of one provider for one symbol.

    Either ``series`` (two or more points) or a native ``price`` must be set.
    Native change fields win over the series-derived delta when present.
    """

    provider: str
    symbol: str
    series: tuple[PricePoint, ...] = ()
    price: float | None = None
    change: float | None = None
    change_percent: float | None = None
    effective_date: str | None = None

    def to_quote(self) -> Quote:
        if self.price is not None:
            return self._native_quote()
        if len(self.series) < 2:
            raise UpstreamParseError(
                f"{self.provider}: not enough data points for {self.symbol} ({len(self.series)})"
            )
        last = self.series[-1]
        prev = self.series[-2]
        change = last.close - prev.close
        change_pct = (change / prev.close) * 100 if prev.close > 0 else 0.0
        closes = [p.close for p in self.series]
        return Quote(
            symbol=self.symbol,
            price=round2(last.close),
            change=round2(change if self.change is None else self.change),
            change_percent=round2(change_pct if self.change_percent is None else self.change_percent),
            high=round2(max(closes)),
            low=round2(min(closes)),
            effective_date=last.date,
        )

    def _native_quote(self) -> Quote:
        price = float(self.price)  # type: ignore[arg-type]
        if not math.isfinite(price) or price <= 0:
            raise UpstreamParseError(f"{self.provider}: invalid price for {self.symbol}: {self.price!r}")
        change = self.change or 0.0
        change_pct = self.change_percent
        if change_pct is None:
            prev = price - change
            change_pct = (change / prev) * 100 if change and prev > 0 else 0.0
        if self.series:
            closes = [p.close for p in self.series] + [price]
            high, low = max(closes), min(closes)
        else:
            # free tiers carry no intraday range
            high = low = price
        return Quote(
            symbol=self.symbol,
            price=round2(price),
            change=round2(change),
            change_percent=round2(change_pct),
            high=round2(high),
            low=round2(low),
            effective_date=self.effective_date or (self.series[-1].date if self.series else None),
        )


@dataclass(frozen=True)
class EtfQuote:
    symbol: str
    name: str
    price: float
    change: float = 0.0
    change_percent: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            'symbol': self.symbol,
            'name': self.name,
            'price': self.price,
            'change': self.change,
            'changePercent': self.change_percent,
        }


class Direction(str, Enum):
    ABOVE = 'above'
    BELOW = 'below'


class ConditionState(Enum):
    UNKNOWN = 'unknown'
    UNMET = 'unmet'
    MET = 'met'

    @classmethod
    def from_flag(cls, flag: bool | None) -> ConditionState:
        if flag is None:
            return cls.UNKNOWN
        return cls.MET if flag else cls.UNMET


@dataclass
class AlertRecord:
    id: str
    email: str
    asset_symbol: str
    direction: Direction
    target_price: float
    asset_type: str = 'metal'
    is_active: bool = True
    last_condition_met: bool | None = None
    created_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def state(self) -> ConditionState:
        return ConditionState.from_flag(self.last_condition_met)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AlertRecord:
        """Build from a store row using the column names of the ``price_alerts`` table.

        Raises KeyError, TypeError or ValueError for a row that cannot be evaluated.
        """
        last = row.get('last_is_condition_met')
        target = float(row['target_price'])
        if not math.isfinite(target) or target <= 0:
            raise ValueError(f"target_price must be a positive number, got {row['target_price']!r}")
        return cls(
            id=str(row['id']),
            email=str(row['email']),
            asset_symbol=str(row['asset_symbol'] or '').upper(),
            direction=Direction(str(row['direction']).lower()),
            target_price=target,
            asset_type=str(row.get('asset_type') or 'metal'),
            is_active=bool(row.get('is_active', True)),
            last_condition_met=None if last is None else bool(last),
            created_at=row.get('created_at'),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'asset_type': self.asset_type,
            'asset_symbol': self.asset_symbol,
            'direction': self.direction.value,
            'target_price': self.target_price,
            'is_active': self.is_active,
            'last_is_condition_met': self.last_condition_met,
            'created_at': self.created_at,
        }
