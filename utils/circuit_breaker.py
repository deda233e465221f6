"""Per-provider cool-down circuit breaker.

Usage:
    cb = CircuitBreaker(cooldowns={'goldapi': 3600}, default_cooldown_s=1800)
    if cb.is_open('goldapi'):
        ...  # skip the provider
    try:
        fetch()
    except Exception as e:
        cb.record_failure('goldapi', classify_failure(e))

Notes:
- Thread-safe.
- Only quota/rate-limit/plan signals open the breaker; transient errors never do.
- No explicit close: a provider is callable again once now >= disabled_until.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum

from .logging_setup import get_logger

logger = get_logger('circuit_breaker')


class FailureKind(str, Enum):
    RATE_LIMITED = 'rate_limited'
    QUOTA_EXHAUSTED = 'quota_exhausted'
    PLAN_RESTRICTED = 'plan_restricted'
    TRANSIENT = 'transient'

    @property
    def opens_circuit(self) -> bool:
        return self is not FailureKind.TRANSIENT


_RATE_LIMIT_KEYWORDS = (
    'rate limit', 'rate-limit', 'too many requests', 'hits limit', 'limit reached', 'out of api credits',
)
_QUOTA_KEYWORDS = ('quota', 'limit exceeded', 'monthly limit', 'daily limit', 'usage limit')
_PLAN_KEYWORDS = ('upgrade', 'subscription', 'your plan', 'current plan', 'plan does not', 'not available on')


def classify_failure(error: BaseException | str | None, status_code: int | None = None) -> FailureKind:
    """Map an upstream failure to a FailureKind from its status code and message."""
    if status_code is None and error is not None and not isinstance(error, str):
        status_code = getattr(error, 'status_code', None)
    if status_code == 429:
        return FailureKind.RATE_LIMITED
    if status_code == 402:
        return FailureKind.PLAN_RESTRICTED

    text = str(error or '').lower()
    if any(k in text for k in _RATE_LIMIT_KEYWORDS):
        return FailureKind.RATE_LIMITED
    if any(k in text for k in _QUOTA_KEYWORDS):
        return FailureKind.QUOTA_EXHAUSTED
    if any(k in text for k in _PLAN_KEYWORDS):
        return FailureKind.PLAN_RESTRICTED
    return FailureKind.TRANSIENT


@dataclass(frozen=True)
class CircuitState:
    provider_id: str
    disabled_until: float


class CircuitBreaker:
    def __init__(self, cooldowns: dict[str, float] | None = None, default_cooldown_s: float = 1800.0) -> None:
        self.cooldowns = {k: float(v) for k, v in (cooldowns or {}).items()}
        self.default_cooldown_s = float(default_cooldown_s)
        self._lock = threading.Lock()
        self._states: dict[str, CircuitState] = {}
        self._opened_count: dict[str, int] = {}

    def cooldown_for(self, provider_id: str) -> float:
        return self.cooldowns.get(provider_id, self.default_cooldown_s)

    def is_open(self, provider_id: str, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        with self._lock:
            st = self._states.get(provider_id)
            return st is not None and now < st.disabled_until

    def disabled_until(self, provider_id: str) -> float:
        with self._lock:
            st = self._states.get(provider_id)
            return st.disabled_until if st else 0.0

    def record_failure(self, provider_id: str, kind: FailureKind, now: float | None = None) -> bool:
        """Open the circuit for quota-like failures. Returns True when it opened."""
        if not kind.opens_circuit:
            return False
        now = time.time() if now is None else now
        until = now + self.cooldown_for(provider_id)
        with self._lock:
            self._states[provider_id] = CircuitState(provider_id=provider_id, disabled_until=until)
            self._opened_count[provider_id] = self._opened_count.get(provider_id, 0) + 1
        logger.warning(f"Circuit for '{provider_id}' opened ({kind.value}) for {until - now:.0f}s")
        return True

    def state(self, provider_id: str) -> CircuitState | None:
        with self._lock:
            return self._states.get(provider_id)

    def stats(self, now: float | None = None) -> dict[str, dict]:
        now = time.time() if now is None else now
        with self._lock:
            return {
                pid: {
                    'open': now < st.disabled_until,
                    'disabled_until': st.disabled_until,
                    'opened_count': self._opened_count.get(pid, 0),
                }
                for pid, st in self._states.items()
            }
