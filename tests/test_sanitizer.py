import pytest

from metalpulse.exceptions import ValidationError
from metalpulse.models import PricePoint, Quote
from metalpulse.sanitizer import is_plausible, sanitize_quote, validate_series, validate_snapshot


def _quote(symbol='XAU', price=2934.5, change=18.3, pct=0.63):
    return Quote(symbol, price, change, pct, price, price)


def test_large_change_is_zeroed_price_kept():
    q = sanitize_quote(_quote(change=1000.0, pct=42.0))
    assert q.price == 2934.5
    assert q.change == 0.0 and q.change_percent == 0.0


def test_threshold_is_inclusive_and_configurable():
    assert sanitize_quote(_quote(pct=15.0)).change_percent == 15.0
    assert sanitize_quote(_quote(pct=-15.01)).change_percent == 0.0
    assert sanitize_quote(_quote(pct=6.0), max_change_percent=5).change == 0.0


def test_is_plausible_uses_ranges():
    assert is_plausible('XAG', 32.0)
    assert not is_plausible('XAG', 320.0)
    assert not is_plausible('XAG', float('nan'))
    assert not is_plausible('BTC', 50000.0)
    assert is_plausible('XAG', 320.0, {'XAG': (5.0, 500.0)})


def test_validate_snapshot_requires_every_symbol():
    quotes = [_quote('XAU'), _quote('XAG', price=32.0)]
    assert validate_snapshot(quotes, ['XAG', 'XAU']) == quotes
    with pytest.raises(ValidationError):
        validate_snapshot(quotes[:1], ['XAU', 'XAG'])
    with pytest.raises(ValidationError):
        validate_snapshot([_quote('XAU'), _quote('XAU')], ['XAU', 'XAG'])
    with pytest.raises(ValidationError):
        validate_snapshot([_quote('XAU', price=1.0)], ['XAU'])


def test_validate_series():
    validate_series('XPT', [PricePoint('2024-01-01', 950.0), PricePoint('2024-01-02', 960.0)])
    with pytest.raises(ValidationError):
        validate_series('XPT', [PricePoint('2024-01-01', 950.0)])
    with pytest.raises(ValidationError):
        validate_series('XPT', [PricePoint('2024-01-01', 950.0), PricePoint('2024-01-02', 9.0)])
