"""Spotify Web API client using the client-credentials grant."""

from __future__ import annotations

import base64
import logging
import os
import threading
import time
from typing import Any, Callable

import requests

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SEC = 3600


class SpotifyTokenCache:
    """Bearer token cache owned by one client.

    A token is served only while ``now < expires_at - refresh_margin_sec``;
    past that point the cached value is dropped before a refresh is attempted,
    so an expired token is never returned. Refresh runs under a lock, which
    keeps concurrent callers from issuing duplicate token requests.
    """

    def __init__(
        self,
        fetch_token: Callable[[], tuple[str, int]],
        *,
        refresh_margin_sec: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetch_token = fetch_token
        self.refresh_margin_sec = refresh_margin_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._token: str | None = None
        self._expires_at: float = 0.0

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def is_fresh(self) -> bool:
        return bool(self._token) and self._clock() < self._expires_at - self.refresh_margin_sec

    def get(self) -> str:
        with self._lock:
            if self.is_fresh():
                return str(self._token)
            self._token = None
            self._expires_at = 0.0
            token, expires_in = self._fetch_token()
            self._token = token
            self._expires_at = self._clock() + max(0, int(expires_in))
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0


class SpotifyClient:
    """Minimal Spotify search client for catalog lookups."""

    _TOKEN_URL = "https://accounts.spotify.com/api/token"
    _SEARCH_URL = "https://api.spotify.com/v1/search"

    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        timeout_sec: float = 10,
        token_cache: SpotifyTokenCache | None = None,
    ) -> None:
        self.client_id = client_id or os.environ.get("SPOTIFY_CLIENT_ID")
        self.client_secret = client_secret or os.environ.get("SPOTIFY_CLIENT_SECRET")
        self.timeout_sec = timeout_sec
        self.token_cache = token_cache or SpotifyTokenCache(self._request_token)

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _request_token(self) -> tuple[str, int]:
        if not self.has_credentials:
            raise RuntimeError("Spotify credentials are required")

        auth_payload = f"{self.client_id}:{self.client_secret}".encode("utf-8")
        auth_header = base64.b64encode(auth_payload).decode("ascii")
        response = requests.post(
            self._TOKEN_URL,
            data={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {auth_header}"},
            timeout=self.timeout_sec,
        )
        if response.status_code != 200:
            raise RuntimeError(f"Spotify token request failed ({response.status_code})")

        payload = response.json()
        token = payload.get("access_token")
        if not token:
            raise RuntimeError("Spotify token response missing access_token")
        expires_in = int(payload.get("expires_in") or DEFAULT_TOKEN_TTL_SEC)
        logger.info("Spotify token refreshed (expires_in=%s)", expires_in)
        return str(token), expires_in

    def _request_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        token = self.token_cache.get()
        headers = {"Authorization": f"Bearer {token}"}
        response = requests.get(url, params=params, headers=headers, timeout=self.timeout_sec)
        if response.status_code == 401:
            self.token_cache.invalidate()
            token = self.token_cache.get()
            headers = {"Authorization": f"Bearer {token}"}
            response = requests.get(url, params=params, headers=headers, timeout=self.timeout_sec)
        if response.status_code != 200:
            raise RuntimeError(f"Spotify request failed ({response.status_code})")
        return response.json()

    def search_tracks(
        self,
        query: str,
        *,
        limit: int = 20,
        market: str | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Return raw track objects from ``GET /v1/search?type=track``."""
        params: dict[str, Any] = {
            "q": query,
            "type": "track",
            "limit": max(1, min(50, int(limit))),
            "include_external": "audio",
            "market": (market or "US").upper(),
        }
        if offset:
            params["offset"] = int(offset)
        payload = self._request_json(self._SEARCH_URL, params=params)
        tracks = (payload.get("tracks") or {}).get("items") or []
        return [track for track in tracks if isinstance(track, dict)]
