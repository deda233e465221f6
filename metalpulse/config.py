"""Environment-driven settings for the price engine and the alert worker.

Durations are given in milliseconds in the environment and held in seconds.
Keys are read from the process environment, optionally primed from
``.env`` / ``.env.local`` by ``utils.env.load_dotenv_safe``.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .exceptions import ConfigError
from .models import DEFAULT_PRICE_RANGES, METALS
from .sanitizer import MAX_REASONABLE_CHANGE_PERCENT

DEFAULT_PROVIDER_ORDER: tuple[str, ...] = ('goldapi', 'metalpriceapi', 'stooq')

KNOWN_PROVIDERS = frozenset(DEFAULT_PROVIDER_ORDER)


def _get(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _ms_to_seconds(env: Mapping[str, str], key: str, default_ms: int) -> float:
    raw = _get(env, key)
    if raw is None:
        return default_ms / 1000.0
    try:
        ms = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number of milliseconds, got {raw!r}") from None
    if not math.isfinite(ms) or ms <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return ms / 1000.0


def _positive_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _get(env, key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


def parse_price_range(key: str, raw: str) -> tuple[float, float]:
    """Parse ``min:max`` into a float pair."""
    parts = raw.split(':')
    if len(parts) != 2:
        raise ConfigError(f"{key} must look like 'min:max', got {raw!r}")
    try:
        lo, hi = float(parts[0]), float(parts[1])
    except ValueError:
        raise ConfigError(f"{key} bounds must be numbers, got {raw!r}") from None
    if not (math.isfinite(lo) and math.isfinite(hi)) or lo < 0 or lo >= hi:
        raise ConfigError(f"{key} needs 0 <= min < max, got {raw!r}")
    return lo, hi


def parse_provider_order(raw: str | None) -> tuple[str, ...]:
    if raw is None:
        return DEFAULT_PROVIDER_ORDER
    names: list[str] = []
    for part in raw.split(','):
        name = part.strip().lower()
        if not name:
            continue
        if name not in KNOWN_PROVIDERS:
            raise ConfigError(f"Unknown provider {name!r} in PROVIDER_ORDER")
        if name not in names:
            names.append(name)
    if not names:
        raise ConfigError('PROVIDER_ORDER lists no providers')
    return tuple(names)


@dataclass(frozen=True)
class Settings:
    cache_ttl_s: float = 1800.0
    alert_interval_s: float = 900.0
    goldapi_api_key: str | None = None
    metalprice_api_key: str | None = None
    twelvedata_api_key: str | None = None
    cooldowns_s: dict[str, float] = field(
        default_factory=lambda: {'goldapi': 3600.0, 'metalpriceapi': 3600.0, 'stooq': 1800.0}
    )
    twelvedata_cooldown_s: float = 3600.0
    max_change_percent: float = MAX_REASONABLE_CHANGE_PERCENT
    price_ranges: dict[str, tuple[float, float]] = field(default_factory=lambda: dict(DEFAULT_PRICE_RANGES))
    provider_order: tuple[str, ...] = DEFAULT_PROVIDER_ORDER
    http_timeout_s: float = 10.0
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    alerts_db_path: str | None = None
    resend_api_key: str | None = None
    alert_from_email: str | None = None
    alert_from_name: str | None = None
    log_level: str = 'INFO'
    log_file: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env
        ranges = dict(DEFAULT_PRICE_RANGES)
        for sym in METALS:
            key = f"PRICE_RANGE_{sym}"
            raw = _get(env, key)
            if raw is not None:
                ranges[sym] = parse_price_range(key, raw)
        return cls(
            cache_ttl_s=_ms_to_seconds(env, 'CACHE_TTL_MS', 1_800_000),
            alert_interval_s=_ms_to_seconds(env, 'ALERT_CHECK_INTERVAL_MS', 900_000),
            goldapi_api_key=_get(env, 'GOLDAPI_API_KEY'),
            metalprice_api_key=_get(env, 'METALPRICE_API_KEY'),
            twelvedata_api_key=_get(env, 'TWELVEDATA_API_KEY'),
            cooldowns_s={
                'goldapi': _ms_to_seconds(env, 'GOLDAPI_COOLDOWN_MS', 3_600_000),
                'metalpriceapi': _ms_to_seconds(env, 'METALPRICE_COOLDOWN_MS', 3_600_000),
                'stooq': _ms_to_seconds(env, 'STOOQ_COOLDOWN_MS', 1_800_000),
            },
            twelvedata_cooldown_s=_ms_to_seconds(env, 'TWELVEDATA_COOLDOWN_MS', 3_600_000),
            max_change_percent=_positive_float(env, 'MAX_CHANGE_PERCENT', MAX_REASONABLE_CHANGE_PERCENT),
            price_ranges=ranges,
            provider_order=parse_provider_order(_get(env, 'PROVIDER_ORDER')),
            http_timeout_s=_positive_float(env, 'HTTP_TIMEOUT_SEC', 10.0),
            supabase_url=_get(env, 'SUPABASE_URL'),
            supabase_service_key=_get(env, 'SUPABASE_SERVICE_ROLE_KEY'),
            alerts_db_path=_get(env, 'ALERTS_DB_PATH'),
            resend_api_key=_get(env, 'RESEND_API_KEY'),
            alert_from_email=_get(env, 'ALERT_FROM_EMAIL'),
            alert_from_name=_get(env, 'ALERT_FROM_NAME'),
            log_level=(_get(env, 'LOG_LEVEL') or 'INFO').upper(),
            log_file=_get(env, 'LOG_FILE'),
        )

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    def has_store(self) -> bool:
        return self.has_supabase or bool(self.alerts_db_path)

    @property
    def has_etf_quotes(self) -> bool:
        return bool(self.twelvedata_api_key)

    def enabled_providers(self) -> tuple[str, ...]:
        """Provider names in priority order, minus those missing an API key."""
        keys = {'goldapi': self.goldapi_api_key, 'metalpriceapi': self.metalprice_api_key}
        return tuple(name for name in self.provider_order if name not in keys or keys[name])

    def require_store(self) -> None:
        if not self.has_store():
            raise ConfigError('Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY, or ALERTS_DB_PATH')

    def require_worker(self) -> None:
        self.require_store()
        missing = [k for k, v in (('RESEND_API_KEY', self.resend_api_key), ('ALERT_FROM_EMAIL', self.alert_from_email)) if not v]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")
