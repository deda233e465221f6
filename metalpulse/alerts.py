"""Alert condition evaluation and the notification content for a crossing."""

from __future__ import annotations

from dataclasses import dataclass
from html import escape

from .models import ConditionState, Direction

VALID_ASSET_TYPES = ('metal', 'etf')


def is_condition_met(direction: Direction | str, target: float, current: float) -> bool:
    """True when ``current`` satisfies the alert; exact comparison, no tolerance."""
    d = Direction(direction)
    if d is Direction.ABOVE:
        return current >= target
    return current <= target


@dataclass(frozen=True)
class Transition:
    notify: bool
    persist: bool


def evaluate_transition(previous: ConditionState, is_met: bool) -> Transition:
    """Edge detection: only UNMET -> MET notifies; UNKNOWN is primed silently."""
    if previous is ConditionState.UNMET and is_met:
        return Transition(notify=True, persist=True)
    if previous is ConditionState.UNKNOWN or previous is not ConditionState.from_flag(is_met):
        return Transition(notify=False, persist=True)
    return Transition(notify=False, persist=False)


def _fmt_price(value: float) -> str:
    return f"{float(value):,.2f}"


def build_alert_subject(symbol: str, direction: Direction | str, target: float) -> str:
    return f"MetalPulse alert: {symbol} is {Direction(direction).value} ${_fmt_price(target)}"


def build_alert_email_html(symbol: str, direction: Direction | str, target: float, current: float) -> str:
    return (
        '<div style="font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, '
        'Helvetica, Arial; line-height: 1.6;">'
        '<h2 style="margin: 0 0 12px;">MetalPulse Price Alert</h2>'
        '<p style="margin: 0 0 10px;">Your alert was triggered:</p>'
        '<ul>'
        f'<li><b>Asset</b>: {escape(symbol)}</li>'
        f'<li><b>Condition</b>: {Direction(direction).value} ${_fmt_price(target)}</li>'
        f'<li><b>Current price</b>: ${_fmt_price(current)}</li>'
        '</ul>'
        '<p style="margin: 16px 0 0; font-size: 12px; color: #666;">'
        "If you didn't create this alert, you can ignore this email.</p>"
        '</div>'
    )
