"""Ranked and federated search across the provider adapters."""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Iterable

from config import settings
from engine.search_adapters import default_adapters
from engine.search_scoring import ScoringProfile, ScoringWeights, score_candidates
from metadata.merge import merge_candidates
from metadata.types import CandidateTrack

MAX_PARALLEL_ADAPTERS = 6

SOURCE_FALLBACKS = {
    "itunes": ("itunes", "spotify"),
    "spotify": ("spotify", "itunes"),
    "auto": ("itunes", "spotify"),
}
FEDERATED_LIMITS = {
    "spotify": 20,
    "itunes": 25,
    "youtube": 6,
    "musicbrainz": 6,
}
PREVIEW_CHAIN = ("deezer", "napster", "itunes")


def _log_event(level, message, **fields):
    payload = {"message": message, **fields}
    try:
        logging.log(level, json.dumps(payload, sort_keys=True, default=str))
    except (TypeError, ValueError) as exc:
        logging.log(level, f"log_event_serialization_failed: {exc} message={message}")


def _run_adapter_search(adapter, query, limit, market, options):
    """Run one adapter search; never raises."""
    started = time.monotonic()
    try:
        candidates = adapter.search(query, limit, market, **options)
    except Exception as exc:
        _log_event(logging.ERROR, "adapter_search_failed", source=adapter.source, error=str(exc))
        return []
    _log_event(
        logging.INFO,
        "adapter_search_completed",
        source=adapter.source,
        count=len(candidates),
        elapsed_ms=int((time.monotonic() - started) * 1000),
    )
    return candidates


def resolve_source_chain(source_pref, available):
    pref = str(source_pref or "auto").strip().lower()
    if pref == "all":
        return tuple(available)
    chain = SOURCE_FALLBACKS.get(pref)
    if chain is None:
        chain = (pref,) if pref in available else SOURCE_FALLBACKS["auto"]
    return tuple(source for source in chain if source in available)


class SearchService:
    def __init__(self, adapters=None, *, timeout_sec=None, overfetch_factor=None, default_market=None):
        self.adapters = adapters if adapters is not None else default_adapters()
        self.timeout_sec = settings.ADAPTER_TIMEOUT_SECONDS if timeout_sec is None else timeout_sec
        self.overfetch_factor = settings.OVERFETCH_FACTOR if overfetch_factor is None else overfetch_factor
        self.default_market = default_market or settings.DEFAULT_MARKET

    def fan_out(
        self,
        sources: Iterable[str],
        query: str,
        limit: int,
        market: str | None = None,
        *,
        limits: dict[str, int] | None = None,
        options: dict[str, dict] | None = None,
    ) -> dict[str, list[CandidateTrack]]:
        """Query every source concurrently and settle all of them.

        Returns ``{source: [CandidateTrack, ...]}`` with one entry per
        requested source. A source that raises or misses the deadline maps
        to an empty list; its thread is abandoned, not joined.
        """
        sources = [source for source in sources if source in self.adapters]
        results = {source: [] for source in sources}
        if not sources:
            return results

        limits = limits or {}
        options = options or {}
        pool = ThreadPoolExecutor(max_workers=min(MAX_PARALLEL_ADAPTERS, len(sources)))
        try:
            futures = {
                pool.submit(
                    _run_adapter_search,
                    self.adapters[source],
                    query,
                    limits.get(source, limit),
                    market,
                    options.get(source, {}),
                ): source
                for source in sources
            }
            done, pending = wait(futures, timeout=self.timeout_sec)
            for fut in done:
                results[futures[fut]] = fut.result() or []
            for fut in pending:
                _log_event(
                    logging.WARNING,
                    "adapter_search_timeout",
                    source=futures[fut],
                    timeout_sec=self.timeout_sec,
                )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return results

    def ranked_search(
        self,
        query: str,
        *,
        limit: int = settings.DEFAULT_RANKED_LIMIT,
        market: str | None = None,
        source_pref: str = "auto",
        profile: ScoringProfile | None = None,
        weights: ScoringWeights | None = None,
        playable_only: bool = True,
        overfetch: int | None = None,
    ) -> dict[str, Any]:
        limit = max(1, min(settings.MAX_RANKED_LIMIT, int(limit)))
        factor = max(1, int(overfetch or self.overfetch_factor))
        market = (market or self.default_market).upper()
        chain = resolve_source_chain(source_pref, self.adapters)

        fetched = self.fan_out(chain, query, limit * factor, market)
        if str(source_pref or "").strip().lower() == "all":
            pool = [item for source in chain for item in fetched.get(source, [])]
        else:
            pool = next((fetched[source] for source in chain if fetched.get(source)), [])

        if playable_only:
            pool = [item for item in pool if item.is_playable]
        ranked = score_candidates(merge_candidates(pool), profile, weights)[:limit]
        _log_event(
            logging.INFO,
            "ranked_search_completed",
            query=query,
            chain=list(chain),
            candidates=len(pool),
            returned=len(ranked),
        )
        return {
            "ok": True,
            "source": ranked[0].source if ranked else "unknown",
            "items": [item.to_dict() for item in ranked],
        }

    def federated_search(self, query, *, limit=20):
        limit = max(1, int(limit))
        limits = {source: min(limit, cap) for source, cap in FEDERATED_LIMITS.items()}
        fetched = self.fan_out(tuple(FEDERATED_LIMITS), query, limit, limits=limits)
        pool = [item for source in FEDERATED_LIMITS for item in fetched.get(source, [])]
        merged = merge_candidates(pool)[:limit]
        return {"q": query, "results": [item.to_dict() for item in merged]}

    def spotify_search(self, query, *, limit=10, market=None, offset=0):
        adapter = self.adapters.get("spotify")
        if adapter is None:
            return {"ok": True, "items": []}
        found = adapter.search(query, limit, market or self.default_market, offset=offset)
        return {"ok": True, "items": [item.to_dict() for item in found if item.is_playable]}

    def itunes_search(self, query, *, genre_id=None, limit=20, country=None, playable=True):
        """iTunes catalog search, falling back to genre top songs for empty queries."""
        adapter = self.adapters.get("itunes")
        if adapter is None:
            return {"ok": True, "source": "itunes", "items": []}
        items = adapter.search(query, limit, country, genre_id=genre_id) if query else []
        if playable:
            items = [item for item in items if item.is_playable]
        if items or query or not genre_id:
            return {"ok": True, "source": "itunes", "items": [item.to_dict() for item in items]}

        items = adapter.top_songs(genre_id, limit, country)
        if playable:
            items = [item for item in items if item.is_playable]
        return {"ok": True, "source": "itunes-rss", "items": [item.to_dict() for item in items[:limit]]}

    def itunes_genres(self):
        adapter = self.adapters.get("itunes")
        return adapter.fetch_genres() if adapter is not None else None

    def resolve_preview(self, title=None, artist=None, album=None, isrc=None):
        """Walk the preview chain in order; first playable hit wins."""
        title = (title or "").strip()
        artist = (artist or "").strip()
        for source in PREVIEW_CHAIN:
            adapter = self.adapters.get(source)
            if adapter is None:
                continue
            for query, limit in self._preview_queries(source, title, artist):
                hit = next((item for item in adapter.search(query, limit) if item.is_playable), None)
                if hit is not None:
                    _log_event(logging.INFO, "preview_resolved", source=source, title=title, artist=artist)
                    return {"url": hit.preview_url, "source": source, "format": adapter.preview_format}
        _log_event(logging.INFO, "preview_not_found", title=title, artist=artist, album=album, isrc=isrc)
        return None

    @staticmethod
    def _preview_queries(source, title, artist):
        plain = " ".join(part for part in (artist, title) if part)
        if source == "deezer":
            if title and artist:
                return [(f'track:"{title}" artist:"{artist}"', 10), (plain, 10)]
            return [(title, 10)] if title else []
        if source == "napster":
            return [(plain, 3)] if plain else []
        return [(plain, 5)] if plain else []
