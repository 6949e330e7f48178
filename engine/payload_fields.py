"""Client event payloads resolved into fixed records.

Clients send tracks in several shapes (iTunes rows, app-side camelCase,
snake_case). Each logical attribute has an ordered tuple of accepted keys;
the first key present with a non-empty value wins.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

from engine.search_adapters import upgrade_artwork_url

TRACK_ID_FIELDS = ("track_id", "trackId", "id")
TITLE_FIELDS = ("title", "trackName", "name")
ARTIST_FIELDS = ("artist", "artistName")
ALBUM_FIELDS = ("album", "collectionName")
ART_URL_FIELDS = ("art_url", "artUrl", "artworkUrl600", "artworkUrl100")
STORE_URL_FIELDS = ("store_url", "trackViewUrl", "url")
PREVIEW_URL_FIELDS = ("preview_url", "previewUrl")
SESSION_ID_FIELDS = ("session_id", "sessionId")
USER_ID_FIELDS = ("user_id", "userId")

# SQLite INTEGER range.
TS_MIN = -(2**63)
TS_MAX = 2**63 - 1


def resolve_field(source: dict | None, aliases: tuple[str, ...]) -> str | None:
    if not isinstance(source, dict):
        return None
    for key in aliases:
        value = source.get(key)
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


@dataclass(frozen=True)
class TrackMeta:
    track_id: str | None
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    art_url: str | None = None
    store_url: str | None = None
    preview_url: str | None = None

    @classmethod
    def from_payload(cls, body: dict) -> "TrackMeta":
        track = body.get("track") if isinstance(body.get("track"), dict) else body
        return cls(
            track_id=resolve_field(track, TRACK_ID_FIELDS),
            title=resolve_field(track, TITLE_FIELDS),
            artist=resolve_field(track, ARTIST_FIELDS),
            album=resolve_field(track, ALBUM_FIELDS),
            art_url=upgrade_artwork_url(resolve_field(track, ART_URL_FIELDS)),
            store_url=resolve_field(track, STORE_URL_FIELDS),
            preview_url=resolve_field(track, PREVIEW_URL_FIELDS),
        )


@dataclass(frozen=True)
class EventRecord:
    type: str
    ts: int
    track: TrackMeta
    payload: str
    user_id: str | None = None
    session_id: str | None = None

    @property
    def track_id(self) -> str | None:
        return self.track.track_id

    @classmethod
    def from_payload(cls, body: Any, *, now_ms: int | None = None) -> "EventRecord":
        if not isinstance(body, dict):
            raise ValueError("event must be a JSON object")
        ts = body.get("ts")
        if isinstance(ts, bool) or not isinstance(ts, int):
            ts = now_ms if now_ms is not None else int(time.time() * 1000)
        elif not TS_MIN <= ts <= TS_MAX:
            raise ValueError("ts out of range")
        return cls(
            type=resolve_field(body, ("type",)) or "unknown",
            ts=ts,
            track=TrackMeta.from_payload(body),
            payload=json.dumps(body, sort_keys=True, default=str),
            user_id=resolve_field(body, USER_ID_FIELDS),
            session_id=resolve_field(body, SESSION_ID_FIELDS),
        )
