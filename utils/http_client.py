"""Pooled HTTP client with bounded retries and cooperative cancellation.

- Built on a shared ``requests.Session``.
- Network errors and selected statuses (5xx by default) are retried with
  exponential backoff; rate-limit statuses are returned to the caller untouched.
- An optional ``threading.Event`` aborts the request before each attempt and
  interrupts the backoff wait.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable
from typing import Any

import requests

DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = 'MetalPulse/1.0 (+https://github.com/metalpulse/metalpulse)'


class RequestCancelled(RuntimeError):
    pass


class HTTPClient:
    def __init__(
        self,
        headers: dict[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = 2,
        backoff: float = 0.2,
        retry_statuses: Iterable[int] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.timeout = float(timeout)
        base_headers = {
            'User-Agent': DEFAULT_USER_AGENT,
            'Accept': '*/*',
        }
        self.headers = {**base_headers, **(headers or {})}
        self.retries = max(0, int(retries))
        self.backoff = max(0.0, float(backoff))
        self.retry_statuses = set(retry_statuses or (500, 502, 503, 504))
        self._session = session or requests.Session()
        self._session.headers.update(self.headers)

    def _wait(self, seconds: float, cancel: threading.Event | None) -> None:
        if cancel is not None:
            if cancel.wait(seconds):
                raise RequestCancelled('request cancelled during backoff')
        else:
            time.sleep(seconds)

    def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        cancel: threading.Event | None = None,
    ) -> requests.Response:
        attempt = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise RequestCancelled(f'{method.upper()} {url} cancelled')
            try:
                resp = self._session.request(
                    method.upper(),
                    url,
                    params=params,
                    json=json,
                    headers=headers,
                    timeout=self.timeout,
                )
            except requests.RequestException:
                if attempt < self.retries:
                    self._wait(self.backoff * (2**attempt), cancel)
                    attempt += 1
                    continue
                raise
            if resp.status_code in self.retry_statuses and attempt < self.retries:
                self._wait(self.backoff * (2**attempt), cancel)
                attempt += 1
                continue
            return resp

    def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        cancel: threading.Event | None = None,
    ) -> requests.Response:
        return self.request('GET', url, params=params, headers=headers, cancel=cancel)

    def post(
        self,
        url: str,
        json: Any = None,
        headers: dict[str, str] | None = None,
        cancel: threading.Event | None = None,
    ) -> requests.Response:
        return self.request('POST', url, json=json, headers=headers, cancel=cancel)

    def patch(
        self,
        url: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        return self.request('PATCH', url, params=params, json=json, headers=headers)

    def close(self) -> None:
        self._session.close()


__all__ = ["HTTPClient", "RequestCancelled", "DEFAULT_TIMEOUT"]
