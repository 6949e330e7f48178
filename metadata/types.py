"""Structured track types shared by adapters, merge, and scoring."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass
class CandidateTrack:
    """Normalized search result produced per request and never persisted."""

    title: str = ""
    artist: str = ""
    album: str = ""
    source: str = ""
    source_id: str = ""
    album_art_url: str | None = None
    preview_url: str | None = None
    store_url: str | None = None
    isrc: str | None = None
    ids: dict[str, str] = field(default_factory=dict)
    links: dict[str, str] = field(default_factory=dict)
    score: float | None = None

    @property
    def is_playable(self) -> bool:
        return bool(self.preview_url)

    def copy(self, **changes: Any) -> "CandidateTrack":
        """Return a shallow copy with fresh `ids`/`links` maps and optional overrides."""
        changes.setdefault("ids", dict(self.ids))
        changes.setdefault("links", dict(self.links))
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Render the camelCase wire shape returned to clients."""
        payload: dict[str, Any] = {
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "albumArtUrl": self.album_art_url,
            "previewUrl": self.preview_url,
            "source": self.source,
            "sourceId": self.source_id,
            "ids": dict(self.ids),
        }
        if self.links:
            payload["links"] = dict(self.links)
        if self.store_url:
            payload["storeUrl"] = self.store_url
        if self.isrc:
            payload["isrc"] = self.isrc
        if self.score is not None:
            payload["score"] = self.score
        return payload


def clean_str(value: Any) -> str:
    """Coerce provider values to a display string; missing becomes ``""``."""
    if value is None:
        return ""
    return str(value).strip()


def clean_optional(value: Any) -> str | None:
    text = clean_str(value)
    return text or None
