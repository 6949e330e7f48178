"""Fill missing rows of the ``tracks`` table from the iTunes lookup API."""

from __future__ import annotations

import logging

from db.connection import transaction
from db.events import upsert_track
from db.track_perf import list_missing_track_ids
from engine.payload_fields import TrackMeta


def backfill_tracks(conn, adapter, limit=50):
    ids = list_missing_track_ids(conn, limit)
    looked_up = 0
    added = 0
    for track_id in ids:
        looked_up += 1
        candidate = adapter.lookup(track_id)
        if candidate is None:
            logging.warning("Track backfill lookup found nothing for track_id=%s", track_id)
            continue
        meta = TrackMeta(
            track_id=track_id,
            title=candidate.title or None,
            artist=candidate.artist or None,
            album=candidate.album or None,
            art_url=candidate.album_art_url,
            store_url=candidate.store_url,
            preview_url=candidate.preview_url,
        )
        try:
            with transaction(conn) as cur:
                upsert_track(cur, meta, overwrite=True)
        except Exception:
            logging.exception("Track backfill upsert failed for track_id=%s", track_id)
            continue
        added += 1
    logging.info("Track backfill looked_up=%d added=%d", looked_up, added)
    return {"lookedUp": looked_up, "added": added}
