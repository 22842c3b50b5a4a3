"""URL shortener gateway backed by an eokvin service."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

import requests

from .config import format_duration

logger = logging.getLogger(__name__)


class ShortenerError(Exception):
    """Raised when the shortener service cannot produce a short URL."""


class UrlShortener(ABC):
    """Abstract URL shortener interface"""

    @abstractmethod
    def shorten(self, long_url: str, ttl: timedelta) -> str:
        """Return a short URL redirecting to ``long_url`` for ``ttl``."""


class EokvinShortener(UrlShortener):
    """Posts ``token``, ``url`` and ``ttl`` form fields to an eokvin endpoint.

    The service answers with JSON carrying either ``short-url`` or ``error``.
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.endpoint = endpoint
        self._token = token
        self._session = session or requests.Session()
        self._timeout = timeout

    def shorten(self, long_url: str, ttl: timedelta) -> str:
        form = {"token": self._token, "url": long_url, "ttl": format_duration(ttl)}
        try:
            response = self._session.post(self.endpoint, data=form, timeout=self._timeout)
        except requests.RequestException as exc:
            raise ShortenerError(f"request to {self.endpoint} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and payload.get("error"):
            raise ShortenerError(f"shortener returned an error: {payload['error']}")
        if not response.ok:
            raise ShortenerError(f"shortener responded with HTTP {response.status_code}")
        if not isinstance(payload, dict) or not isinstance(payload.get("short-url"), str):
            raise ShortenerError("shortener response did not include a short URL")

        short_url = payload["short-url"]
        logger.debug("Shortened %s -> %s", long_url, short_url)
        return short_url

    def close(self) -> None:
        self._session.close()
