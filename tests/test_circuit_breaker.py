import pytest

from metalpulse.exceptions import UpstreamFetchError
from utils.circuit_breaker import CircuitBreaker, FailureKind, classify_failure


@pytest.mark.parametrize(
    'message,status,expected',
    [
        ('anything', 429, FailureKind.RATE_LIMITED),
        ('anything', 402, FailureKind.PLAN_RESTRICTED),
        ('Exceeded the daily hits limit', None, FailureKind.RATE_LIMITED),
        ('Too Many Requests', None, FailureKind.RATE_LIMITED),
        ('You have run out of API credits for the current minute.', None, FailureKind.RATE_LIMITED),
        ('You have reached your monthly quota', None, FailureKind.QUOTA_EXHAUSTED),
        ('Please upgrade your subscription', None, FailureKind.PLAN_RESTRICTED),
        ('Connection reset by peer', None, FailureKind.TRANSIENT),
        ('Max retries exceeded with url', None, FailureKind.TRANSIENT),
    ],
)
def test_classify_failure(message, status, expected):
    assert classify_failure(message, status_code=status) is expected


def test_classify_reads_status_code_from_exception():
    err = UpstreamFetchError('goldapi: fetch failed', status_code=429)
    assert classify_failure(err) is FailureKind.RATE_LIMITED
    assert classify_failure(UpstreamFetchError('boom', status_code=500)) is FailureKind.TRANSIENT


def test_transient_failure_never_opens():
    cb = CircuitBreaker(default_cooldown_s=60)
    assert cb.record_failure('stooq', FailureKind.TRANSIENT, now=0.0) is False
    assert not cb.is_open('stooq', now=0.0)
    assert cb.state('stooq') is None


def test_cooldown_reopens_exactly_at_deadline():
    cb = CircuitBreaker(cooldowns={'goldapi': 3600})
    t = 1_000.0
    assert cb.record_failure('goldapi', FailureKind.QUOTA_EXHAUSTED, now=t) is True
    assert cb.disabled_until('goldapi') == t + 3600
    assert cb.is_open('goldapi', now=t + 3599.999)
    assert not cb.is_open('goldapi', now=t + 3600)


def test_default_cooldown_and_stats():
    cb = CircuitBreaker(default_cooldown_s=30)
    cb.record_failure('x', FailureKind.RATE_LIMITED, now=10.0)
    cb.record_failure('x', FailureKind.RATE_LIMITED, now=20.0)
    stats = cb.stats(now=25.0)
    assert stats['x'] == {'open': True, 'disabled_until': 50.0, 'opened_count': 2}
    assert cb.cooldown_for('other') == 30
