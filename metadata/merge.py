"""Merge candidate tracks reported by several providers into one record per song."""

from __future__ import annotations

import logging
from typing import Iterable

from engine.music_title_normalization import merge_key, normalize_isrc
from metadata.types import CandidateTrack

_LOG = logging.getLogger(__name__)

_OPTIONAL_FIELDS = ("album", "album_art_url", "preview_url", "store_url", "isrc", "source_id")


def merge_candidates(candidates: Iterable[CandidateTrack]) -> list[CandidateTrack]:
    """Collapse duplicates by normalized (title, artist), keeping first-seen order.

    The first record seen for a key is canonical. Each empty optional field is
    filled from the first later duplicate that has it, and ``ids``/``links``
    are unioned with first-seen values winning. A candidate whose text key is
    new but whose ISRC matches an earlier record joins that record. Titles that
    normalize to nothing are never merged.
    """
    merged: list[CandidateTrack] = []
    by_key: dict[tuple[str, str], int] = {}
    by_isrc: dict[str, int] = {}
    duplicates = 0

    for candidate in candidates:
        if candidate is None:
            continue
        key = merge_key(candidate.title, candidate.artist)
        isrc = normalize_isrc(candidate.isrc)

        index = by_key.get(key) if key[0] else None
        if index is None and isrc:
            index = by_isrc.get(isrc)

        if index is None:
            merged.append(candidate.copy())
            index = len(merged) - 1
            if key[0]:
                by_key[key] = index
        else:
            _absorb(merged[index], candidate)
            duplicates += 1
            if key[0]:
                by_key.setdefault(key, index)

        canonical_isrc = normalize_isrc(merged[index].isrc)
        if canonical_isrc:
            by_isrc.setdefault(canonical_isrc, index)
        if isrc:
            by_isrc.setdefault(isrc, index)

    if duplicates:
        _LOG.debug("merge_candidates collapsed=%d kept=%d", duplicates, len(merged))
    return merged


def _absorb(target: CandidateTrack, other: CandidateTrack) -> None:
    for name in _OPTIONAL_FIELDS:
        if not getattr(target, name) and getattr(other, name):
            setattr(target, name, getattr(other, name))
    for source, value in other.ids.items():
        if value and not target.ids.get(source):
            target.ids[source] = value
    for source, value in other.links.items():
        if value and not target.links.get(source):
            target.links[source] = value
