from __future__ import annotations

from types import SimpleNamespace

import requests

from app.musicbrainz import client as client_module
from app.musicbrainz.client import MusicBrainzClient


class _FakeResponse:
    def __init__(self, status_code=200, payload=None, error=None):
        self.status_code = status_code
        self._payload = payload
        self._error = error

    def json(self):
        if self._error is not None:
            raise self._error
        return self._payload


def _client(monkeypatch, responses, calls):
    client = MusicBrainzClient(base_url="https://mb.test/", min_interval_seconds=0)

    def fake_get(url, params=None, timeout=None):
        calls.append({"url": url, "params": params, "timeout": timeout})
        result = responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr(client._session, "get", fake_get)
    return client


def test_search_recordings_sends_json_query(monkeypatch) -> None:
    calls: list[dict] = []
    client = _client(monkeypatch, [_FakeResponse(payload={"recordings": [{"id": "r1"}, "junk"]})], calls)

    recordings = client.search_recordings("song", limit=500, timeout=3)

    assert recordings == [{"id": "r1"}]
    assert calls[0]["url"] == "https://mb.test/ws/2/recording"
    assert calls[0]["params"] == {"query": "song", "limit": 100, "fmt": "json"}
    assert calls[0]["timeout"] == 3
    assert client._session.headers["User-Agent"].startswith("TuneFlip/")


def test_failures_are_not_retried(monkeypatch) -> None:
    calls: list[dict] = []
    client = _client(
        monkeypatch,
        [
            requests.ConnectionError("down"),
            _FakeResponse(status_code=503),
            _FakeResponse(error=ValueError("bad json")),
        ],
        calls,
    )

    assert client.search_recordings("a") == []
    assert client.search_recordings("b") == []
    assert client.search_recordings("c") == []
    assert len(calls) == 3


def test_requests_are_spaced_by_min_interval(monkeypatch) -> None:
    sleeps: list[float] = []
    clock = {"now": 100.0}

    def fake_sleep(seconds):
        sleeps.append(seconds)
        clock["now"] += seconds

    monkeypatch.setattr(client_module, "time", SimpleNamespace(monotonic=lambda: clock["now"], sleep=fake_sleep))
    client = MusicBrainzClient(min_interval_seconds=1.0)

    client._throttle()
    clock["now"] += 0.25
    client._throttle()

    assert sleeps == [0.75]
