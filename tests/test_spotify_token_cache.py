from __future__ import annotations

import pytest

from spotify.client import SpotifyClient, SpotifyTokenCache


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_token_is_reused_until_refresh_margin() -> None:
    clock = _Clock()
    issued: list[str] = []

    def fetch():
        issued.append(f"token-{len(issued)}")
        return issued[-1], 3600

    cache = SpotifyTokenCache(fetch, clock=clock)

    assert cache.get() == "token-0"
    clock.now += 3600 - 31
    assert cache.get() == "token-0"
    clock.now += 1
    assert cache.get() == "token-1"
    assert len(issued) == 2


def test_failed_refresh_never_serves_expired_token() -> None:
    clock = _Clock()
    calls = {"count": 0}

    def fetch():
        calls["count"] += 1
        if calls["count"] > 1:
            raise RuntimeError("token endpoint down")
        return "first", 60

    cache = SpotifyTokenCache(fetch, clock=clock)
    assert cache.get() == "first"

    clock.now += 60
    with pytest.raises(RuntimeError):
        cache.get()
    assert not cache.is_fresh()


def test_invalidate_forces_refresh() -> None:
    tokens = iter(["a", "b"])
    cache = SpotifyTokenCache(lambda: (next(tokens), 3600), clock=_Clock())

    assert cache.get() == "a"
    cache.invalidate()
    assert cache.get() == "b"


class _FakeResponse:
    def __init__(self, status_code: int, payload: dict) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> dict:
        return self._payload


def test_search_retries_once_after_unauthorized(monkeypatch) -> None:
    token_calls: list[int] = []
    search_headers: list[str] = []
    responses = [
        _FakeResponse(401, {}),
        _FakeResponse(200, {"tracks": {"items": [{"id": "t1", "name": "Song"}]}}),
    ]

    def fake_post(*_args, **_kwargs):
        token_calls.append(1)
        return _FakeResponse(200, {"access_token": f"tok-{len(token_calls)}", "expires_in": 3600})

    def fake_get(url, params=None, headers=None, timeout=None):
        search_headers.append(headers["Authorization"])
        return responses.pop(0)

    monkeypatch.setattr("spotify.client.requests.post", fake_post)
    monkeypatch.setattr("spotify.client.requests.get", fake_get)

    client = SpotifyClient(client_id="id", client_secret="secret")
    tracks = client.search_tracks("song", limit=5)

    assert [track["id"] for track in tracks] == ["t1"]
    assert search_headers == ["Bearer tok-1", "Bearer tok-2"]
    assert len(token_calls) == 2


def test_client_without_credentials_reports_it(monkeypatch) -> None:
    monkeypatch.delenv("SPOTIFY_CLIENT_ID", raising=False)
    monkeypatch.delenv("SPOTIFY_CLIENT_SECRET", raising=False)

    assert SpotifyClient().has_credentials is False
