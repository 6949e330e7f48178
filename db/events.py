"""Append-only event log writes and track metadata upserts."""

from __future__ import annotations

import logging
import sqlite3
from typing import Iterable

from db.connection import transaction
from engine.payload_fields import EventRecord, TrackMeta

_UPSERT_KEEP_EXISTING_SQL = """
    INSERT INTO tracks (track_id, title, artist, album, art_url, store_url, preview_url)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (track_id) DO UPDATE SET
        title = COALESCE(excluded.title, tracks.title),
        artist = COALESCE(excluded.artist, tracks.artist),
        album = COALESCE(excluded.album, tracks.album),
        art_url = COALESCE(excluded.art_url, tracks.art_url),
        store_url = COALESCE(excluded.store_url, tracks.store_url),
        preview_url = COALESCE(excluded.preview_url, tracks.preview_url)
"""

_UPSERT_OVERWRITE_SQL = """
    INSERT INTO tracks (track_id, title, artist, album, art_url, store_url, preview_url)
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (track_id) DO UPDATE SET
        title = excluded.title,
        artist = excluded.artist,
        album = excluded.album,
        art_url = excluded.art_url,
        store_url = excluded.store_url,
        preview_url = excluded.preview_url
"""


def upsert_track(cur: sqlite3.Cursor, meta: TrackMeta, *, overwrite: bool = False) -> None:
    if not meta.track_id:
        raise ValueError("track_id is required")
    cur.execute(
        _UPSERT_OVERWRITE_SQL if overwrite else _UPSERT_KEEP_EXISTING_SQL,
        (
            meta.track_id,
            meta.title,
            meta.artist,
            meta.album,
            meta.art_url,
            meta.store_url,
            meta.preview_url,
        ),
    )


def insert_events(conn: sqlite3.Connection, events: Iterable[EventRecord]) -> int:
    """Insert a batch of events in one transaction.

    Either every event lands or none do. The log is append-only, so
    inserting the same batch twice yields two copies of each row.
    """
    events = list(events)
    if not events:
        return 0
    with transaction(conn) as cur:
        for event in events:
            if event.track_id:
                upsert_track(cur, event.track)
            cur.execute(
                """
                INSERT INTO events (user_id, session_id, type, track_id, ts, payload)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (event.user_id, event.session_id, event.type, event.track_id, event.ts, event.payload),
            )
    logging.info("Inserted %d event(s)", len(events))
    return len(events)
