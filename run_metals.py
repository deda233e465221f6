#!/usr/bin/env python
"""MetalPulse CLI.

Reads settings from the environment, primed from .env / .env.local in the
current directory (real environment variables win).

Commands:
  quotes                              Latest quotes for XAU, XAG, XPT, XPD
  etfs                                Latest quotes for GLD, SLV, PPLT, PALL, GDX, GDXJ
  history SYMBOL [--days N]           Daily closes (N clamped to 2..365, default 30)
  worker [--once]                     Run the alert worker (one tick with --once)
  alerts add EMAIL SYMBOL above|below PRICE [--asset-type metal|etf]
  alerts list EMAIL
  alerts remove ALERT_ID

Examples:
  python run_metals.py quotes
  python run_metals.py history XAU --days 7
  python run_metals.py alerts add me@example.com XAU above 2500
  python run_metals.py alerts add me@example.com GLD below 180 --asset-type etf
  python run_metals.py worker
"""

from __future__ import annotations

import argparse
import json
import sys

from metalpulse import MetalPulseError, Settings
from metalpulse.factory import build_aggregator, build_etf_board, build_store, build_worker
from metalpulse.service import error_response, etfs_payload, history_payload, metals_payload
from utils.env import load_dotenv_safe
from utils.logging_setup import get_logger, setup_logging

logger = get_logger('cli')


def _print(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


# ---- Command handlers ----


def cmd_quotes(settings: Settings, args) -> int:
    _print(metals_payload(build_aggregator(settings)))
    return 0


def cmd_etfs(settings: Settings, args) -> int:
    _print(etfs_payload(build_etf_board(settings)))
    return 0


def cmd_history(settings: Settings, args) -> int:
    _print(history_payload(build_aggregator(settings), args.symbol, args.days))
    return 0


def cmd_worker(settings: Settings, args) -> int:
    worker = build_worker(settings)
    if args.once:
        report = worker.run_once()
        _print(
            {
                'checked': report.checked,
                'notified': report.notified,
                'updated': report.updated,
                'skipped': report.skipped,
                'duration_s': round(report.duration_s, 3),
            }
        )
        return 0
    try:
        worker.run_forever()
    except KeyboardInterrupt:
        worker.stop()
    return 0


def cmd_alerts_add(settings: Settings, args) -> int:
    store = build_store(settings)
    alert = store.create_alert(args.email, args.asset_type, args.symbol, args.direction, args.price)
    _print(alert.to_dict())
    return 0


def cmd_alerts_list(settings: Settings, args) -> int:
    store = build_store(settings)
    _print([a.to_dict() for a in store.list_by_email(args.email)])
    return 0


def cmd_alerts_remove(settings: Settings, args) -> int:
    store = build_store(settings)
    store.deactivate(args.alert_id)
    _print({'id': args.alert_id, 'is_active': False})
    return 0


def build_parser():
    p = argparse.ArgumentParser(description="MetalPulse precious-metal prices and alerts")
    sub = p.add_subparsers(dest='command', required=True)

    pq = sub.add_parser('quotes', help='Latest quotes for all metals')
    pq.set_defaults(func=cmd_quotes)

    pe = sub.add_parser('etfs', help='Latest quotes for precious-metal ETFs')
    pe.set_defaults(func=cmd_etfs)

    ph = sub.add_parser('history', help='Daily closes for one metal')
    ph.add_argument('symbol', help='Metal symbol (XAU, XAG, XPT, XPD)')
    ph.add_argument('--days', default=None, help='Number of days (default 30)')
    ph.set_defaults(func=cmd_history)

    pw = sub.add_parser('worker', help='Run the alert worker')
    pw.add_argument('--once', action='store_true', help='Run a single tick and exit')
    pw.set_defaults(func=cmd_worker)

    pa = sub.add_parser('alerts', help='Manage price alerts')
    asub = pa.add_subparsers(dest='alerts_command', required=True)

    padd = asub.add_parser('add', help='Create an alert')
    padd.add_argument('email')
    padd.add_argument('symbol')
    padd.add_argument('direction', choices=['above', 'below'])
    padd.add_argument('price', type=float)
    padd.add_argument('--asset-type', default='metal', choices=['metal', 'etf'])
    padd.set_defaults(func=cmd_alerts_add)

    plist = asub.add_parser('list', help='List alerts for an email')
    plist.add_argument('email')
    plist.set_defaults(func=cmd_alerts_list)

    prm = asub.add_parser('remove', help='Deactivate an alert')
    prm.add_argument('alert_id')
    prm.set_defaults(func=cmd_alerts_remove)

    p.add_argument('--log-level', help='Override LOG_LEVEL')
    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    load_dotenv_safe()
    try:
        settings = Settings.from_env()
    except MetalPulseError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    setup_logging(level=args.log_level or settings.log_level, log_file=settings.log_file)
    try:
        return args.func(settings, args)
    except MetalPulseError as e:
        status, body = error_response(e)
        print(json.dumps(body, ensure_ascii=False), file=sys.stderr)
        return 1 if status == 500 else 4


if __name__ == '__main__':
    raise SystemExit(main())
