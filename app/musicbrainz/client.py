"""Rate-limited MusicBrainz web service client.

MusicBrainz asks anonymous clients for at most one request per second and a
descriptive User-Agent. Requests are never retried; a failed call yields
nothing and the caller moves on.
"""

import logging
import os
import threading
import time
from typing import Any

import requests

logger = logging.getLogger(__name__)

MUSICBRAINZ_BASE_URL = os.getenv("MUSICBRAINZ_BASE_URL", "https://musicbrainz.org")
MUSICBRAINZ_USER_AGENT = os.getenv("MUSICBRAINZ_USER_AGENT", "TuneFlip/1.0 (contact@tuneflip.example)")
MUSICBRAINZ_TIMEOUT_SECONDS = float(os.getenv("MUSICBRAINZ_TIMEOUT_SECONDS", "10"))
MUSICBRAINZ_MIN_INTERVAL_SECONDS = float(os.getenv("MUSICBRAINZ_MIN_INTERVAL_SECONDS", "1.0"))

RECORDING_ENDPOINT = "ws/2/recording"
MAX_SEARCH_LIMIT = 100


class MusicBrainzClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        user_agent: str | None = None,
        timeout_seconds: float | None = None,
        min_interval_seconds: float | None = None,
    ) -> None:
        self.base_url = (base_url or MUSICBRAINZ_BASE_URL).rstrip("/")
        self.user_agent = user_agent or MUSICBRAINZ_USER_AGENT
        self.timeout_seconds = MUSICBRAINZ_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        interval = MUSICBRAINZ_MIN_INTERVAL_SECONDS if min_interval_seconds is None else min_interval_seconds
        self.min_interval_seconds = max(0.0, interval)
        self._throttle_lock = threading.Lock()
        self._next_allowed_at = 0.0
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": self.user_agent, "Accept": "application/json"})

    def _throttle(self) -> None:
        # Held while sleeping; concurrent callers queue behind the interval.
        with self._throttle_lock:
            delay = self._next_allowed_at - time.monotonic()
            if delay > 0:
                time.sleep(delay)
            self._next_allowed_at = time.monotonic() + self.min_interval_seconds

    def get_json(
        self,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any] | None:
        """GET ``endpoint`` as JSON; any failure is logged and returns ``None``."""
        self._throttle()
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        try:
            resp = self._session.get(
                url,
                params={**(params or {}), "fmt": "json"},
                timeout=timeout or self.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning("MusicBrainz request failed endpoint=%s error=%s", endpoint, exc)
            return None

        logger.info("MusicBrainz request endpoint=%s status=%s", endpoint, resp.status_code)
        if resp.status_code != 200:
            return None
        try:
            payload = resp.json()
        except ValueError:
            logger.warning("MusicBrainz returned malformed JSON endpoint=%s", endpoint)
            return None
        return payload if isinstance(payload, dict) else None

    def search_recordings(self, query: str, *, limit: int = 6, timeout: float | None = None) -> list[dict[str, Any]]:
        payload = self.get_json(
            RECORDING_ENDPOINT,
            params={"query": query, "limit": max(1, min(MAX_SEARCH_LIMIT, int(limit)))},
            timeout=timeout,
        )
        recordings = (payload or {}).get("recordings") or []
        return [rec for rec in recordings if isinstance(rec, dict)]


_CLIENT: MusicBrainzClient | None = None
_CLIENT_LOCK = threading.Lock()


def get_musicbrainz_client() -> MusicBrainzClient:
    """Process-wide client, so every caller shares one rate limit."""
    global _CLIENT
    with _CLIENT_LOCK:
        if _CLIENT is None:
            _CLIENT = MusicBrainzClient()
        return _CLIENT
