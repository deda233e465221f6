import json
import threading
import time

import pytest

from metalpulse.etfs import EtfQuoteBoard
from metalpulse.exceptions import AggregationError, FetchCancelledError, UnknownSymbolError
from metalpulse.providers import TwelveDataProvider
from utils.circuit_breaker import CircuitBreaker, FailureKind
from utils.http_client import RequestCancelled


class DummyResp:
    def __init__(self, status_code=200, text='', reason='OK'):
        self.status_code = status_code
        self.text = text
        self.reason = reason


class DummyHTTP:
    """Answers Twelve Data ``/quote`` calls from a symbol -> payload (or exception) map."""

    def __init__(self, by_symbol):
        self.by_symbol = by_symbol
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, params=None, headers=None, cancel=None):
        with self._lock:
            self.calls.append(params['symbol'])
        item = self.by_symbol[params['symbol']]
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, DummyResp):
            return item
        return DummyResp(text=json.dumps(item))


def _board(by_symbol, symbols=('GLD', 'SLV', 'PPLT'), breaker=None):
    http = DummyHTTP(by_symbol)
    return EtfQuoteBoard(TwelveDataProvider('tk', http=http), symbols=symbols, breaker=breaker), http


def test_partial_results_are_kept_in_symbol_order():
    board, http = _board(
        {
            'GLD': {'close': '215.4'},
            'SLV': DummyResp(500, 'down', 'Server Error'),
            'PPLT': {'price': 90.1, 'percent_change': '-0.3'},
        }
    )
    quotes = board.get_quotes()
    assert [(q.symbol, q.price) for q in quotes] == [('GLD', 215.4), ('PPLT', 90.1)]
    assert sorted(http.calls) == ['GLD', 'PPLT', 'SLV']
    assert board.get_latest_prices() == {'GLD': 215.4, 'PPLT': 90.1}


def test_every_symbol_failing_raises():
    board, _ = _board({'GLD': DummyResp(502, 'bad gateway', 'Bad Gateway')}, symbols=('GLD',))
    with pytest.raises(AggregationError, match='twelvedata:GLD'):
        board.get_quotes()


def test_credit_exhaustion_opens_circuit():
    payload = {'code': 429, 'message': 'You have run out of API credits for the current minute.', 'status': 'error'}
    board, http = _board({'GLD': payload, 'SLV': {'close': 27.0}, 'PPLT': {'close': 90.0}})
    assert [q.symbol for q in board.get_quotes()] == ['SLV', 'PPLT']
    assert board.breaker.is_open('twelvedata')

    # later calls are skipped while the cool-down lasts
    http.calls.clear()
    with pytest.raises(AggregationError, match='circuit open'):
        board.get_quotes()
    assert http.calls == []


def test_open_circuit_from_shared_breaker():
    breaker = CircuitBreaker()
    breaker.record_failure('twelvedata', FailureKind.QUOTA_EXHAUSTED, now=time.time())
    board, http = _board({'GLD': {'close': 1.0}}, symbols=('GLD',), breaker=breaker)
    with pytest.raises(AggregationError):
        board.get_quotes()
    assert http.calls == []


def test_successful_quotes_are_cached():
    board, http = _board({'GLD': {'close': 215.4}}, symbols=('GLD',))
    board.get_quotes()
    board.get_quotes()
    assert http.calls == ['GLD']


def test_cancellation_propagates():
    board, _ = _board({'GLD': RequestCancelled('stop'), 'SLV': {'close': 27.0}}, symbols=('GLD', 'SLV'))
    with pytest.raises(FetchCancelledError):
        board.get_quotes(cancel=threading.Event())


def test_unknown_symbols_rejected():
    with pytest.raises(UnknownSymbolError):
        _board({}, symbols=('GLD', 'QQQ'))
    board, _ = _board({'GLD': {'close': 215.4}})
    with pytest.raises(UnknownSymbolError):
        board.get_quotes(['SPY'])
