from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Protocol

from utils.logging_setup import get_logger

from .alerts import build_alert_email_html, build_alert_subject, evaluate_transition, is_condition_met
from .exceptions import FetchCancelledError
from .notifier import NotificationSender
from .store import AlertStore

logger = get_logger('worker')

DEFAULT_INTERVAL_S = 900.0


class PriceSource(Protocol):
    def get_latest_prices(self, symbols=None, cancel: threading.Event | None = None) -> dict[str, float]: ...


@dataclass(frozen=True)
class TickReport:
    checked: int = 0
    notified: int = 0
    updated: int = 0
    skipped: int = 0
    duration_s: float = 0.0

    def summary(self) -> str:
        return (
            f"checked={self.checked} notified={self.notified} updated={self.updated} "
            f"skipped={self.skipped} in {self.duration_s:.2f}s"
        )


class AlertWorker:
    """Background poller that emails an alert's owner when its threshold is crossed.

    Each tick reads active alerts per asset type, fetches one shared price
    snapshot per type, and fires only on the UNMET -> MET edge. A failing
    source does not stop the other asset type from being evaluated. The stop
    event also cancels in-flight upstream fetches.
    """

    def __init__(
        self,
        aggregator: PriceSource,
        store: AlertStore,
        notifier: NotificationSender,
        interval_s: float = DEFAULT_INTERVAL_S,
        etf_quotes: PriceSource | None = None,
    ):
        self.aggregator = aggregator
        self.etf_quotes = etf_quotes
        self.store = store
        self.notifier = notifier
        self.interval_s = max(1.0, float(interval_s))
        self._thr: threading.Thread | None = None
        self._stop = threading.Event()
        self._last_report: TickReport | None = None

    @property
    def sources(self) -> dict[str, PriceSource]:
        out: dict[str, PriceSource] = {'metal': self.aggregator}
        if self.etf_quotes is not None:
            out['etf'] = self.etf_quotes
        return out

    @property
    def running(self) -> bool:
        return bool(self._thr and self._thr.is_alive())

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thr = threading.Thread(target=self._loop, name='alert-worker', daemon=True)
        self._thr.start()
        logger.info(f"Alert worker started (interval {self.interval_s:.0f}s)")

    def stop(self, timeout: float | None = 10.0) -> None:
        self._stop.set()
        if self._thr is not None:
            self._thr.join(timeout)
            if self._thr.is_alive():
                logger.warning('Alert worker did not stop within timeout')
            else:
                self._thr = None
        logger.info('Alert worker stopped')

    def run_forever(self) -> None:
        self._stop.clear()
        self._loop()

    def last_report(self) -> TickReport | None:
        return self._last_report

    def run_once(self) -> TickReport:
        """Evaluate every active alert once.

        Each asset type is evaluated independently; if any of them failed the
        first error is re-raised after the others ran, so the tick is still
        logged as failed.
        """
        started = time.monotonic()
        counts = {'checked': 0, 'notified': 0, 'updated': 0, 'skipped': 0}
        errors: list[Exception] = []
        for asset_type, source in self.sources.items():
            try:
                self._evaluate(asset_type, source, counts)
            except FetchCancelledError:
                raise
            except Exception as e:
                logger.warning(f"Evaluating {asset_type} alerts failed: {e}")
                errors.append(e)

        report = TickReport(duration_s=time.monotonic() - started, **counts)
        self._last_report = report
        if errors:
            raise errors[0]
        return report

    def _evaluate(self, asset_type: str, source: PriceSource, counts: dict[str, int]) -> None:
        alerts = self.store.list_active(asset_type)
        if not alerts:
            return
        prices = source.get_latest_prices(cancel=self._stop)
        for alert in alerts:
            symbol = alert.asset_symbol.upper()
            price = prices.get(symbol)
            if price is None or not math.isfinite(price):
                logger.debug(f"No {asset_type} price for {symbol}; skipping alert {alert.id}")
                counts['skipped'] += 1
                continue
            counts['checked'] += 1
            is_met = is_condition_met(alert.direction, alert.target_price, price)
            transition = evaluate_transition(alert.state, is_met)
            if transition.notify:
                sent = self.notifier.send(
                    alert.email,
                    build_alert_subject(symbol, alert.direction, alert.target_price),
                    build_alert_email_html(symbol, alert.direction, alert.target_price, price),
                )
                if sent:
                    counts['notified'] += 1
                else:
                    logger.warning(f"Notification for alert {alert.id} failed; not retried")
            if transition.persist:
                self.store.update_condition_state(alert.id, is_met)
                counts['updated'] += 1

    # ---------------- internal ----------------
    def _loop(self) -> None:
        while not self._stop.is_set():
            started = time.monotonic()
            try:
                report = self.run_once()
                logger.info(f"Alert tick: {report.summary()}")
            except Exception as e:
                if self._stop.is_set():
                    break
                logger.error(f"Alert tick failed after {time.monotonic() - started:.2f}s: {e}")
            self._stop.wait(self.interval_s)
