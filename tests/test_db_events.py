from __future__ import annotations

import sqlite3

import pytest

from db.connection import connect
from db.events import insert_events
from engine.payload_fields import EventRecord, TrackMeta


@pytest.fixture()
def conn(tmp_path):
    connection = connect(str(tmp_path / "events.sqlite3"))
    try:
        yield connection
    finally:
        connection.close()


def _count(conn, table):
    return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]


def test_event_aliases_resolve_to_fixed_record():
    record = EventRecord.from_payload(
        {
            "type": "like",
            "trackId": 42,
            "trackName": "Song",
            "artistName": "Artist",
            "collectionName": "Album",
            "artworkUrl100": "https://img/100x100bb.jpg",
            "trackViewUrl": "https://music.apple.com/42",
            "previewUrl": "https://audio/42.m4a",
            "sessionId": "sess-1",
            "ts": 1234,
        }
    )

    assert record.type == "like"
    assert record.ts == 1234
    assert record.session_id == "sess-1"
    assert record.track == TrackMeta(
        track_id="42",
        title="Song",
        artist="Artist",
        album="Album",
        art_url="https://img/600x600bb.jpg",
        store_url="https://music.apple.com/42",
        preview_url="https://audio/42.m4a",
    )


def test_nested_track_object_wins_over_top_level():
    record = EventRecord.from_payload(
        {"type": "start", "user_id": "u1", "track": {"id": "9", "title": "Nested"}, "title": "Outer"},
        now_ms=5000,
    )

    assert record.track_id == "9"
    assert record.track.title == "Nested"
    assert record.user_id == "u1"
    assert record.ts == 5000


def test_missing_type_defaults_to_unknown():
    record = EventRecord.from_payload({"ts": "not-a-number"}, now_ms=7)

    assert record.type == "unknown"
    assert record.ts == 7
    assert record.track_id is None


def test_timestamp_outside_integer_range_is_rejected():
    with pytest.raises(ValueError, match="ts out of range"):
        EventRecord.from_payload({"type": "like", "ts": 10**20})

    record = EventRecord.from_payload({"type": "like", "ts": 2**63 - 1})
    assert record.ts == 2**63 - 1


def test_non_object_event_is_rejected():
    with pytest.raises(ValueError):
        EventRecord.from_payload(["like"])


def test_reinserting_a_batch_appends_duplicate_rows(conn):
    batch = [
        EventRecord.from_payload({"type": "impression", "track_id": "t1"}, now_ms=1),
        EventRecord.from_payload({"type": "like", "track_id": "t1"}, now_ms=2),
    ]

    assert insert_events(conn, batch) == 2
    assert insert_events(conn, batch) == 2

    assert _count(conn, "events") == 4
    assert _count(conn, "tracks") == 1


def test_failed_row_rolls_back_whole_batch(conn):
    good = EventRecord.from_payload({"type": "like", "track_id": "t1", "title": "Song"}, now_ms=1)
    bad = EventRecord(type=None, ts=2, track=TrackMeta(track_id="t2"), payload="{}")

    with pytest.raises(sqlite3.IntegrityError):
        insert_events(conn, [good, bad])

    assert _count(conn, "events") == 0
    assert _count(conn, "tracks") == 0
    assert not conn.in_transaction


def test_track_upsert_keeps_existing_values(conn):
    insert_events(conn, [EventRecord.from_payload({"type": "like", "track_id": "t1", "title": "Song"}, now_ms=1)])
    insert_events(conn, [EventRecord.from_payload({"type": "start", "track_id": "t1", "artist": "A"}, now_ms=2)])

    row = conn.execute("SELECT title, artist FROM tracks WHERE track_id = 't1'").fetchone()
    assert (row["title"], row["artist"]) == ("Song", "A")


def test_empty_batch_is_a_no_op(conn):
    assert insert_events(conn, []) == 0
    assert _count(conn, "events") == 0
