"""HTTP JSON fetching with retries, exposed to the asyncio pipeline."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Mapping

import requests

from .config import HttpConfig


_RETRYABLE_HTTP_STATUS = {403, 429, 500, 502, 503, 504}

_LOGGER = logging.getLogger("hxlmaps.fetch")


class HttpClient:
    """Blocking `requests` sessions wrapped for use from coroutines.

    Requests run in worker threads via `asyncio.to_thread`, so several
    layers and countries can be fetched concurrently from one event loop.
    Each worker thread gets its own `requests.Session`.
    """

    def __init__(self, cfg: HttpConfig) -> None:
        self.cfg = cfg
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._min_request_interval_s = max(float(cfg.min_request_interval_s), 0.0)
        self._max_retries = max(int(cfg.max_retries), 0)
        self._retry_backoff_s = max(float(cfg.retry_backoff_s), 0.01)
        self._slot_lock = threading.Lock()
        self._last_request_started_at: float | None = None

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": self.cfg.user_agent})
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    async def fetch_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        return await asyncio.to_thread(self.get_json, url, params=params)

    def get_json(self, url: str, *, params: Mapping[str, Any] | None = None) -> Any:
        response = self._request_get(url, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise RuntimeError(f"Response from {response.url} is not valid JSON") from exc

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def _request_get(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> requests.Response:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            self._wait_for_request_slot()
            _LOGGER.debug("GET %s params=%s", url, dict(params or {}))
            response = self.session.get(
                url,
                params=params,
                timeout=self.cfg.request_timeout_s,
            )
            if response.status_code not in _RETRYABLE_HTTP_STATUS:
                response.raise_for_status()
                return response
            if attempt >= self._max_retries:
                response.raise_for_status()
            delay_s = self._compute_retry_delay_s(response=response, attempt=attempt)
            _LOGGER.warning(
                "Retryable response %s for %s; retrying in %.1fs (%d/%d)",
                response.status_code,
                response.url,
                delay_s,
                attempt + 1,
                self._max_retries,
            )
            response.close()
            time.sleep(delay_s)
        raise RuntimeError("Unreachable retry loop in HTTP client")

    def _wait_for_request_slot(self) -> None:
        with self._slot_lock:
            if self._min_request_interval_s <= 0:
                self._last_request_started_at = time.monotonic()
                return
            now = time.monotonic()
            if self._last_request_started_at is not None:
                elapsed = now - self._last_request_started_at
                if elapsed < self._min_request_interval_s:
                    time.sleep(self._min_request_interval_s - elapsed)
            self._last_request_started_at = time.monotonic()

    def _compute_retry_delay_s(self, *, response: requests.Response, attempt: int) -> float:
        retry_after_s = _parse_retry_after_seconds(response.headers.get("Retry-After"))
        exponential_s = self._retry_backoff_s * (2**attempt)
        chosen = max(exponential_s, retry_after_s)
        return min(chosen, 300.0)


def _parse_retry_after_seconds(raw: str | None) -> float:
    if raw is None:
        return 0.0
    value = raw.strip()
    if not value:
        return 0.0
    try:
        parsed = float(value)
    except ValueError:
        return 0.0
    return max(parsed, 0.0)
