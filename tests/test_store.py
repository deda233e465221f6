import json

import pytest
import requests

from metalpulse.exceptions import PersistenceError, ValidationError
from metalpulse.models import ConditionState, Direction
from metalpulse.store import SQLiteAlertStore, SupabaseAlertStore, validate_new_alert


@pytest.fixture()
def store(tmp_path):
    s = SQLiteAlertStore(tmp_path / 'alerts' / 'alerts.db')
    yield s
    s.close()


def test_create_and_list_active(store):
    alert = store.create_alert(' user@example.com ', 'metal', 'xau', 'ABOVE', '2000')
    assert alert.asset_symbol == 'XAU'
    assert alert.direction is Direction.ABOVE
    assert alert.target_price == 2000.0
    assert alert.state is ConditionState.UNKNOWN

    store.create_alert('other@example.com', 'etf', 'GLD', 'below', 180)
    active = store.list_active('metal')
    assert [a.id for a in active] == [alert.id]
    assert active[0].email == 'user@example.com'


def _insert_raw(store, alert_id, direction='above', target=2000.0, created_at='2024-01-01T00:00:00+00:00'):
    store._conn.execute(
        'INSERT INTO price_alerts (id, email, asset_type, asset_symbol, direction, target_price, '
        'is_active, last_is_condition_met, created_at, updated_at) VALUES (?,?,?,?,?,?,?,?,?,?)',
        (alert_id, 'user@example.com', 'metal', 'XAU', direction, target, 1, None, created_at, created_at),
    )


def test_malformed_rows_are_skipped_not_fatal(store, caplog):
    _insert_raw(store, 'bad-direction', direction='sideways')
    _insert_raw(store, 'bad-target', target='n/a')
    _insert_raw(store, 'bad-negative', target=-5)
    good = store.create_alert('user@example.com', 'metal', 'XAU', 'above', 2000)
    with caplog.at_level('WARNING', logger='metalpulse.store'):
        active = store.list_active('metal')
    assert [a.id for a in active] == [good.id]
    assert 'bad-direction' in caplog.text
    assert 'bad-target' in caplog.text
    assert [a.id for a in store.list_by_email('user@example.com')] == [good.id]


def test_update_condition_state_round_trips(store):
    alert = store.create_alert('user@example.com', 'metal', 'XAG', 'below', 30)
    store.update_condition_state(alert.id, False)
    assert store.list_active()[0].state is ConditionState.UNMET
    store.update_condition_state(alert.id, True)
    assert store.list_active()[0].last_condition_met is True


def test_update_unknown_id_raises(store):
    with pytest.raises(PersistenceError):
        store.update_condition_state('missing', True)
    with pytest.raises(PersistenceError):
        store.deactivate('missing')


def test_deactivate_and_list_by_email(store):
    a = store.create_alert('user@example.com', 'metal', 'XAU', 'above', 2100)
    store.create_alert('user@example.com', 'metal', 'XPT', 'above', 1100)
    store.deactivate(a.id)
    assert [x.asset_symbol for x in store.list_active()] == ['XPT']
    mine = store.list_by_email('user@example.com')
    assert len(mine) == 2
    assert {x.is_active for x in mine} == {True, False}


def test_state_survives_reopen(tmp_path):
    path = tmp_path / 'alerts.db'
    first = SQLiteAlertStore(path)
    alert = first.create_alert('user@example.com', 'metal', 'XAU', 'above', 2000)
    first.update_condition_state(alert.id, True)
    first.close()
    second = SQLiteAlertStore(path)
    assert second.list_active()[0].state is ConditionState.MET
    second.close()


@pytest.mark.parametrize(
    'email,asset_type,symbol,direction,target',
    [
        ('not-an-email', 'metal', 'XAU', 'above', 1),
        ('a@b.co', 'crypto', 'XAU', 'above', 1),
        ('a@b.co', 'metal', '  ', 'above', 1),
        ('a@b.co', 'metal', 'XAU', 'sideways', 1),
        ('a@b.co', 'metal', 'XAU', 'above', 0),
        ('a@b.co', 'metal', 'XAU', 'above', 'abc'),
        ('a@b.co', 'metal', 'XAU', 'above', float('inf')),
        ('a@b.co', 'metal', 'XAU', 'above', True),
        ('a@b.co', 'metal', 'GLD', 'above', 1),
        ('a@b.co', 'etf', 'XAU', 'above', 1),
        ('a@b.co', 'etf', 'SPY', 'above', 1),
    ],
)
def test_create_validation(email, asset_type, symbol, direction, target):
    with pytest.raises(ValidationError):
        validate_new_alert(email, asset_type, symbol, direction, target)


class DummyResp:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self.text = text if text is not None else ('' if payload is None else json.dumps(payload))
        self.content = self.text.encode()

    def json(self):
        return json.loads(self.text)


class DummyHTTP:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, params=None, json=None, headers=None, cancel=None):
        self.calls.append({'method': method, 'url': url, 'params': params, 'json': json, 'headers': headers})
        resp = self.responses.pop(0)
        if isinstance(resp, BaseException):
            raise resp
        return resp

    def close(self):
        pass


ROW = {
    'id': 'f0e1',
    'email': 'user@example.com',
    'asset_type': 'metal',
    'asset_symbol': 'XAU',
    'direction': 'above',
    'target_price': 2000,
    'is_active': True,
    'last_is_condition_met': None,
    'created_at': '2024-03-04T00:00:00+00:00',
}


def test_supabase_list_active_query():
    http = DummyHTTP(DummyResp(payload=[ROW]))
    store = SupabaseAlertStore('https://proj.supabase.co/', 'service', http=http)
    alerts = store.list_active('metal')
    assert alerts[0].id == 'f0e1'
    call = http.calls[0]
    assert call['method'] == 'GET'
    assert call['url'] == 'https://proj.supabase.co/rest/v1/price_alerts'
    assert call['params']['is_active'] == 'eq.true'
    assert call['params']['asset_type'] == 'eq.metal'
    assert call['headers']['apikey'] == 'service'
    assert call['headers']['Authorization'] == 'Bearer service'


def test_supabase_update_and_missing_row():
    http = DummyHTTP(DummyResp(payload=[{**ROW, 'last_is_condition_met': True}]), DummyResp(payload=[]))
    store = SupabaseAlertStore('https://proj.supabase.co', 'service', http=http)
    store.update_condition_state('f0e1', True)
    call = http.calls[0]
    assert call['method'] == 'PATCH'
    assert call['params'] == {'id': 'eq.f0e1'}
    assert call['json'] == {'last_is_condition_met': True}
    assert call['headers']['Prefer'] == 'return=representation'
    with pytest.raises(PersistenceError):
        store.update_condition_state('nope', False)


def test_supabase_errors_become_persistence_errors():
    store = SupabaseAlertStore(
        'https://proj.supabase.co', 'service', http=DummyHTTP(DummyResp(401, text='{"message":"bad jwt"}'))
    )
    with pytest.raises(PersistenceError, match='401'):
        store.list_active()
    store = SupabaseAlertStore(
        'https://proj.supabase.co', 'service', http=DummyHTTP(requests.ConnectionError('down'))
    )
    with pytest.raises(PersistenceError):
        store.list_active()


def test_supabase_create_alert_posts_normalized_row():
    http = DummyHTTP(DummyResp(201, payload=[ROW]))
    store = SupabaseAlertStore('https://proj.supabase.co', 'service', http=http)
    alert = store.create_alert('user@example.com', 'metal', 'xau', 'above', 2000)
    assert alert.asset_symbol == 'XAU'
    body = http.calls[0]['json']
    assert body['asset_symbol'] == 'XAU'
    assert body['last_is_condition_met'] is None
    assert http.calls[0]['method'] == 'POST'


def test_supabase_skips_rows_that_cannot_be_evaluated():
    rows = [
        {**ROW, 'id': 'no-target', 'target_price': None},
        {**ROW, 'id': 'odd-direction', 'direction': 'sideways'},
        'not-a-row',
        {**ROW, 'id': 'etf-1', 'asset_type': 'etf', 'asset_symbol': 'gld', 'target_price': '180.5'},
    ]
    store = SupabaseAlertStore('https://proj.supabase.co', 'service', http=DummyHTTP(DummyResp(payload=rows)))
    alerts = store.list_active('etf')
    assert [(a.id, a.asset_symbol, a.target_price) for a in alerts] == [('etf-1', 'GLD', 180.5)]


def test_supabase_non_list_payload_is_still_an_error():
    store = SupabaseAlertStore(
        'https://proj.supabase.co', 'service', http=DummyHTTP(DummyResp(payload={'message': 'oops'}))
    )
    with pytest.raises(PersistenceError):
        store.list_active()
