"""Read helpers over the 7-day track performance view."""

from __future__ import annotations

import sqlite3

_PERF_COLUMNS = (
    "track_id",
    "title",
    "artist",
    "album",
    "art_url",
    "impressions",
    "starts",
    "likes",
    "nopes",
    "ms_played",
    "start_rate",
    "like_rate",
    "nope_rate",
    "avg_play_ratio",
    "score",
)


def list_track_perf(conn: sqlite3.Connection, limit: int = 50) -> list[dict]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT
            v.track_id, t.title, t.artist, t.album, t.art_url,
            v.impressions, v.starts, v.likes, v.nopes, v.ms_played,
            v.start_rate, v.like_rate, v.nope_rate, v.avg_play_ratio, v.score
        FROM v_track_perf_7d v
        LEFT JOIN tracks t ON t.track_id = v.track_id
        ORDER BY v.score DESC, v.track_id ASC
        LIMIT ?
        """,
        (int(limit),),
    )
    return [{name: row[name] for name in _PERF_COLUMNS} for row in cur.fetchall()]


def list_missing_track_ids(conn: sqlite3.Connection, limit: int = 50) -> list[str]:
    """Track ids seen in the view with no metadata row, or one without a title."""
    cur = conn.cursor()
    cur.execute(
        """
        SELECT v.track_id
        FROM v_track_perf_7d v
        LEFT JOIN tracks t ON t.track_id = v.track_id
        WHERE t.track_id IS NULL OR t.title IS NULL
        ORDER BY v.score DESC, v.track_id ASC
        LIMIT ?
        """,
        (int(limit),),
    )
    return [str(row["track_id"]) for row in cur.fetchall()]
