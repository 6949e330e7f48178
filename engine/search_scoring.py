from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Any, Iterable

from metadata.types import CandidateTrack

AFFINITY_MIN = -0.4
AFFINITY_MAX = 0.6


@dataclass(frozen=True)
class ScoringWeights:
    artist_penalty: float = 0.5
    album_penalty: float = 0.35
    like_boost: float = 1.2
    dislike_penalty: float = 0.4

    @classmethod
    def from_payload(cls, payload: dict | None, *, base: "ScoringWeights | None" = None) -> "ScoringWeights":
        """Overlay camelCase or snake_case overrides (``artistPenalty``) on ``base``."""
        base = base or cls()
        values = {f.name: getattr(base, f.name) for f in fields(cls)}
        if not isinstance(payload, dict):
            return cls(**values)
        for name in values:
            raw = payload.get(_camel(name), payload.get(name))
            if raw is None or raw == "":
                continue
            try:
                value = float(raw)
            except (TypeError, ValueError, OverflowError):
                raise ValueError(f"{_camel(name)} must be a number") from None
            if not math.isfinite(value):
                raise ValueError(f"{_camel(name)} must be a finite number")
            values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class ScoringProfile:
    recent_artists: frozenset[str] = field(default_factory=frozenset)
    recent_albums: frozenset[str] = field(default_factory=frozenset)
    likes: dict[str, float] = field(default_factory=dict)
    artist_affinity: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict | None) -> "ScoringProfile":
        if not isinstance(payload, dict):
            return cls()
        return cls(
            recent_artists=frozenset(_str_list(payload.get("recentArtists", payload.get("recent_artists")))),
            recent_albums=frozenset(_str_list(payload.get("recentAlbums", payload.get("recent_albums")))),
            likes=_number_map(payload.get("likes")),
            artist_affinity=_number_map(payload.get("artistAffinity", payload.get("artist_affinity"))),
        )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple, set, frozenset)):
        return []
    return [str(item) for item in value if item is not None]


def _number_map(value: Any) -> dict[str, float]:
    if not isinstance(value, dict):
        return {}
    out: dict[str, float] = {}
    for key, raw in value.items():
        try:
            number = float(raw)
        except (TypeError, ValueError, OverflowError):
            continue
        if math.isfinite(number):
            out[str(key)] = number
    return out


def clamp(value: float, low: float, high: float) -> float:
    if value < low:
        return float(low)
    if value > high:
        return float(high)
    return float(value)


def like_key(candidate: CandidateTrack) -> str:
    """Key used to look up like/dislike signals for a candidate."""
    if candidate.preview_url:
        return candidate.preview_url
    return f"{candidate.artist}|{candidate.title}|{candidate.album}".lower()


def score_candidate(candidate: CandidateTrack, profile: ScoringProfile, weights: ScoringWeights) -> float:
    score = 1.0
    if candidate.artist in profile.recent_artists:
        score *= 1 - weights.artist_penalty
    if candidate.album in profile.recent_albums:
        score *= 1 - weights.album_penalty

    signal = profile.likes.get(like_key(candidate), 0.0)
    if signal > 0:
        score *= weights.like_boost
    elif signal < 0:
        score *= weights.dislike_penalty

    affinity = profile.artist_affinity.get(candidate.artist, 0.0)
    score *= 1 + clamp(affinity, AFFINITY_MIN, AFFINITY_MAX)
    return score


def score_candidates(
    candidates: Iterable[CandidateTrack],
    profile: ScoringProfile | None = None,
    weights: ScoringWeights | None = None,
) -> list[CandidateTrack]:
    """Score candidates and return copies sorted by descending score.

    The sort is stable, so equal scores keep their input order.
    """
    profile = profile or ScoringProfile()
    weights = weights or ScoringWeights()
    scored = [item.copy(score=score_candidate(item, profile, weights)) for item in candidates]
    return sorted(scored, key=lambda item: -float(item.score or 0.0))
