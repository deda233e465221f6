import pytest

from metalpulse.alerts import (
    build_alert_email_html,
    build_alert_subject,
    evaluate_transition,
    is_condition_met,
)
from metalpulse.models import AlertRecord, ConditionState, Direction


def test_condition_is_exact_and_inclusive():
    assert is_condition_met('above', 2000.0, 2000.0)
    assert not is_condition_met('above', 2000.0, 1999.99)
    assert is_condition_met(Direction.BELOW, 30.0, 30.0)
    assert not is_condition_met(Direction.BELOW, 30.0, 30.01)
    with pytest.raises(ValueError):
        is_condition_met('sideways', 1.0, 1.0)


@pytest.mark.parametrize(
    'previous,is_met,notify,persist',
    [
        (ConditionState.UNMET, True, True, True),
        (ConditionState.UNKNOWN, True, False, True),
        (ConditionState.UNKNOWN, False, False, True),
        (ConditionState.MET, False, False, True),
        (ConditionState.MET, True, False, False),
        (ConditionState.UNMET, False, False, False),
    ],
)
def test_evaluate_transition(previous, is_met, notify, persist):
    t = evaluate_transition(previous, is_met)
    assert (t.notify, t.persist) == (notify, persist)


def test_record_state_from_row():
    row = {
        'id': 7,
        'email': 'a@b.co',
        'asset_symbol': 'xau',
        'direction': 'ABOVE',
        'target_price': '2000',
        'last_is_condition_met': None,
    }
    rec = AlertRecord.from_row(row)
    assert rec.id == '7'
    assert rec.asset_symbol == 'XAU'
    assert rec.direction is Direction.ABOVE
    assert rec.state is ConditionState.UNKNOWN
    assert AlertRecord.from_row({**row, 'last_is_condition_met': 0}).state is ConditionState.UNMET
    assert AlertRecord.from_row({**row, 'last_is_condition_met': True}).state is ConditionState.MET


def test_email_content():
    assert build_alert_subject('XAU', 'above', 2000) == 'MetalPulse alert: XAU is above $2,000.00'
    html = build_alert_email_html('XAU', Direction.ABOVE, 2000, 2010.5)
    assert '$2,010.50' in html
    assert 'above $2,000.00' in html
    assert '<script>' not in build_alert_email_html('<script>', 'below', 1, 1)
