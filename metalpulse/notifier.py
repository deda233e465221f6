"""Outbound alert notifications."""

from __future__ import annotations

from abc import ABC, abstractmethod

import requests

from utils.http_client import HTTPClient
from utils.logging_setup import get_logger

logger = get_logger('notifier')

RESEND_API_URL = 'https://api.resend.com/emails'


class NotificationSender(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, html_body: str) -> bool:
        """Deliver one message; False on failure, never raises for delivery errors."""


class ResendEmailSender(NotificationSender):
    """Transactional email via the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str | None = None,
        http: HTTPClient | None = None,
        api_url: str = RESEND_API_URL,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.api_url = api_url
        self._http = http or HTTPClient()
        self._sent = 0
        self._failed = 0

    @property
    def sender(self) -> str:
        if self.from_name:
            return f"{self.from_name} <{self.from_email}>"
        return self.from_email

    def send(self, to: str, subject: str, html_body: str) -> bool:
        if not (self.api_key and self.from_email):
            logger.warning('Email sender not configured; dropping notification')
            return False
        payload = {'from': self.sender, 'to': [to], 'subject': subject, 'html': html_body}
        headers = {'Authorization': f"Bearer {self.api_key}", 'Content-Type': 'application/json'}
        try:
            resp = self._http.post(self.api_url, json=payload, headers=headers)
        except requests.RequestException as e:
            self._failed += 1
            logger.error(f"Resend request failed for {to}: {e}")
            return False
        if resp.status_code >= 400:
            self._failed += 1
            logger.error(f"Resend rejected email to {to}: HTTP {resp.status_code} {resp.text[:200]}")
            return False
        self._sent += 1
        logger.info(f"Alert email sent to {to}")
        return True

    def stats(self) -> dict[str, int]:
        return {'sent': self._sent, 'failed': self._failed}
