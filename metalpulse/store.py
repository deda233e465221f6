"""Alert persistence: the row-oriented store the worker reads and updates.

Two implementations of AlertStore:
- SQLiteAlertStore: single ``price_alerts`` table, WAL mode, one lock-guarded
  connection shared across threads.
- SupabaseAlertStore: the same table behind Supabase's PostgREST endpoint.

Unlike a cache, the store never fails soft: every backend error surfaces as
PersistenceError so the worker tick that hit it is logged as failed.
"""
from __future__ import annotations

import math
import re
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import requests

from utils.http_client import HTTPClient
from utils.logging_setup import get_logger

from .alerts import VALID_ASSET_TYPES
from .exceptions import PersistenceError, ValidationError
from .models import ETFS, METALS, AlertRecord, Direction

logger = get_logger('store')

ALERT_COLUMNS = (
    'id, email, asset_type, asset_symbol, direction, target_price, '
    'is_active, last_is_condition_met, created_at, updated_at'
)

_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


def _to_records(rows: Iterable[Any], source: str) -> list[AlertRecord]:
    """Build records, logging and skipping rows that cannot be evaluated."""
    records: list[AlertRecord] = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning(f"Skipping non-object alert row from {source}: {row!r}")
            continue
        try:
            records.append(AlertRecord.from_row(row))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed alert {row.get('id')!r} from {source}: {e}")
    return records


def validate_new_alert(
    email: str, asset_type: str, asset_symbol: str, direction: str, target_price: Any
) -> dict[str, Any]:
    """Validate create-alert input; returns the normalized row values."""
    email = (email or '').strip()
    if not _EMAIL_RE.match(email):
        raise ValidationError(f"invalid email: {email!r}")
    if asset_type not in VALID_ASSET_TYPES:
        raise ValidationError(f"asset_type must be one of {VALID_ASSET_TYPES}")
    symbol = (asset_symbol or '').strip().upper()
    if not symbol:
        raise ValidationError('asset_symbol must be a non-empty string')
    known = METALS if asset_type == 'metal' else ETFS
    if symbol not in known:
        raise ValidationError(f"unknown {asset_type} symbol {symbol!r}; expected one of {', '.join(known)}")
    try:
        d = Direction(str(direction).lower())
    except ValueError:
        raise ValidationError(f"direction must be 'above' or 'below', got {direction!r}") from None
    if isinstance(target_price, bool):
        raise ValidationError('target_price must be a number')
    try:
        target = float(target_price)
    except (TypeError, ValueError):
        raise ValidationError(f"target_price must be a number, got {target_price!r}") from None
    if not math.isfinite(target) or target <= 0:
        raise ValidationError('target_price must be finite and positive')
    return {
        'email': email,
        'asset_type': asset_type,
        'asset_symbol': symbol,
        'direction': d.value,
        'target_price': target,
    }


class AlertStore(ABC):
    @abstractmethod
    def list_active(self, asset_type: str = 'metal') -> list[AlertRecord]: ...

    @abstractmethod
    def update_condition_state(self, alert_id: str, state: bool) -> None: ...

    @abstractmethod
    def create_alert(
        self, email: str, asset_type: str, asset_symbol: str, direction: str, target_price: float
    ) -> AlertRecord: ...

    @abstractmethod
    def list_by_email(self, email: str) -> list[AlertRecord]: ...

    @abstractmethod
    def deactivate(self, alert_id: str) -> None: ...

    def close(self) -> None:  # noqa: B027
        pass


class SQLiteAlertStore(AlertStore):
    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.db_path, timeout=5.0, isolation_level=None, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            with self._lock:
                self._conn.execute('PRAGMA journal_mode=WAL;')
                self._conn.execute('PRAGMA synchronous=NORMAL;')
                self._conn.execute(
                    'CREATE TABLE IF NOT EXISTS price_alerts ('
                    'id TEXT PRIMARY KEY,'
                    'email TEXT NOT NULL,'
                    'asset_type TEXT NOT NULL,'
                    'asset_symbol TEXT NOT NULL,'
                    'direction TEXT NOT NULL,'
                    'target_price REAL NOT NULL,'
                    'is_active INTEGER NOT NULL DEFAULT 1,'
                    'last_is_condition_met INTEGER,'
                    'created_at TEXT NOT NULL,'
                    'updated_at TEXT NOT NULL'
                    ');'
                )
                self._conn.execute(
                    'CREATE INDEX IF NOT EXISTS idx_alerts_active ON price_alerts(is_active, asset_type);'
                )
                self._conn.execute('CREATE INDEX IF NOT EXISTS idx_alerts_email ON price_alerts(email);')
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open alert store {self.db_path}: {e}") from e

    def _query(self, sql: str, params: tuple = ()) -> list[AlertRecord]:
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Alert query failed: {e}") from e
        return _to_records((dict(r) for r in rows), 'sqlite')

    def _execute(self, sql: str, params: tuple) -> int:
        try:
            with self._lock:
                cur = self._conn.execute(sql, params)
                return cur.rowcount
        except sqlite3.Error as e:
            raise PersistenceError(f"Alert write failed: {e}") from e

    def list_active(self, asset_type: str = 'metal') -> list[AlertRecord]:
        return self._query(
            f'SELECT {ALERT_COLUMNS} FROM price_alerts WHERE is_active=1 AND asset_type=? ORDER BY created_at',
            (asset_type,),
        )

    def update_condition_state(self, alert_id: str, state: bool) -> None:
        n = self._execute(
            'UPDATE price_alerts SET last_is_condition_met=?, updated_at=? WHERE id=?',
            (1 if state else 0, _now_iso(), alert_id),
        )
        if n == 0:
            raise PersistenceError(f"Alert {alert_id} not found")

    def create_alert(
        self, email: str, asset_type: str, asset_symbol: str, direction: str, target_price: float
    ) -> AlertRecord:
        values = validate_new_alert(email, asset_type, asset_symbol, direction, target_price)
        now = _now_iso()
        alert_id = str(uuid.uuid4())
        self._execute(
            'INSERT INTO price_alerts(id, email, asset_type, asset_symbol, direction, target_price, '
            'is_active, last_is_condition_met, created_at, updated_at) VALUES(?,?,?,?,?,?,1,NULL,?,?)',
            (
                alert_id,
                values['email'],
                values['asset_type'],
                values['asset_symbol'],
                values['direction'],
                values['target_price'],
                now,
                now,
            ),
        )
        logger.info(f"Created alert {alert_id} for {values['asset_symbol']}")
        return AlertRecord.from_row({**values, 'id': alert_id, 'is_active': True, 'created_at': now})

    def list_by_email(self, email: str) -> list[AlertRecord]:
        return self._query(
            f'SELECT {ALERT_COLUMNS} FROM price_alerts WHERE email=? ORDER BY created_at DESC',
            ((email or '').strip(),),
        )

    def deactivate(self, alert_id: str) -> None:
        n = self._execute(
            'UPDATE price_alerts SET is_active=0, updated_at=? WHERE id=?', (_now_iso(), alert_id)
        )
        if n == 0:
            raise PersistenceError(f"Alert {alert_id} not found")

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class SupabaseAlertStore(AlertStore):
    """``price_alerts`` table through Supabase's REST (PostgREST) API."""

    TABLE = 'price_alerts'

    def __init__(self, url: str, service_key: str, http: HTTPClient | None = None):
        if not url or not service_key:
            raise ValidationError('Supabase url and service key are required')
        self.base_url = f"{url.rstrip('/')}/rest/v1/{self.TABLE}"
        self._headers = {
            'apikey': service_key,
            'Authorization': f"Bearer {service_key}",
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        self._http = http or HTTPClient(headers=self._headers)

    def _call(self, method: str, *, params: dict[str, str], json: Any = None, prefer: str | None = None) -> Any:
        headers = dict(self._headers)
        if prefer:
            headers['Prefer'] = prefer
        try:
            resp = self._http.request(method, self.base_url, params=params, json=json, headers=headers)
        except requests.RequestException as e:
            raise PersistenceError(f"Supabase unreachable: {e}") from e
        if resp.status_code >= 400:
            raise PersistenceError(f"Supabase {method} failed {resp.status_code}: {resp.text[:200]}")
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise PersistenceError(f"Supabase returned invalid JSON: {e}") from e

    def _records(self, rows: Any) -> list[AlertRecord]:
        if not isinstance(rows, list):
            raise PersistenceError('Supabase returned an unexpected payload')
        return _to_records(rows, 'supabase')

    def list_active(self, asset_type: str = 'metal') -> list[AlertRecord]:
        rows = self._call(
            'GET',
            params={'select': ALERT_COLUMNS.replace(' ', ''), 'is_active': 'eq.true', 'asset_type': f"eq.{asset_type}"},
        )
        return self._records(rows)

    def _patch_one(self, alert_id: str, body: dict[str, Any]) -> None:
        rows = self._call(
            'PATCH', params={'id': f"eq.{alert_id}"}, json=body, prefer='return=representation'
        )
        if not rows:
            raise PersistenceError(f"Alert {alert_id} not found")

    def update_condition_state(self, alert_id: str, state: bool) -> None:
        self._patch_one(alert_id, {'last_is_condition_met': bool(state)})

    def create_alert(
        self, email: str, asset_type: str, asset_symbol: str, direction: str, target_price: float
    ) -> AlertRecord:
        values = validate_new_alert(email, asset_type, asset_symbol, direction, target_price)
        rows = self._call(
            'POST',
            params={'select': ALERT_COLUMNS.replace(' ', '')},
            json={**values, 'is_active': True, 'last_is_condition_met': None},
            prefer='return=representation',
        )
        records = self._records(rows)
        if not records:
            raise PersistenceError('Supabase did not return the created alert')
        return records[0]

    def list_by_email(self, email: str) -> list[AlertRecord]:
        rows = self._call(
            'GET',
            params={
                'select': ALERT_COLUMNS.replace(' ', ''),
                'email': f"eq.{(email or '').strip()}",
                'order': 'created_at.desc',
            },
        )
        return self._records(rows)

    def deactivate(self, alert_id: str) -> None:
        self._patch_one(alert_id, {'is_active': False})

    def close(self) -> None:
        self._http.close()
