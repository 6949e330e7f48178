"""SQLite schema for the event log, track metadata, and reporting view."""

from __future__ import annotations

import sqlite3

# Rates are per impression; a track with likes but no logged impression
# divides by 1 so the view never yields NULL rates.
_TRACK_PERF_VIEW_SQL = """
CREATE VIEW IF NOT EXISTS v_track_perf_7d AS
WITH recent AS (
    SELECT
        track_id,
        type,
        COALESCE(CAST(json_extract(payload, '$.ms_played_chunk') AS REAL), 0) AS ms_played,
        CAST(json_extract(payload, '$.duration_ms') AS REAL) AS duration_ms
    FROM events
    WHERE track_id IS NOT NULL
      AND ts > (CAST(strftime('%s', 'now') AS INTEGER) - 7 * 86400) * 1000
),
agg AS (
    SELECT
        track_id,
        SUM(CASE WHEN type = 'impression' THEN 1 ELSE 0 END) AS impressions,
        SUM(CASE WHEN type IN ('start', 'play') THEN 1 ELSE 0 END) AS starts,
        SUM(CASE WHEN type = 'like' THEN 1 ELSE 0 END) AS likes,
        SUM(CASE WHEN type = 'nope' THEN 1 ELSE 0 END) AS nopes,
        SUM(ms_played) AS ms_played,
        AVG(CASE WHEN duration_ms > 0 THEN MIN(ms_played / duration_ms, 1.0) END) AS avg_play_ratio
    FROM recent
    GROUP BY track_id
),
rates AS (
    SELECT
        track_id,
        impressions,
        starts,
        likes,
        nopes,
        ms_played,
        1.0 * starts / MAX(impressions, 1) AS start_rate,
        1.0 * likes / MAX(impressions, 1) AS like_rate,
        1.0 * nopes / MAX(impressions, 1) AS nope_rate,
        COALESCE(avg_play_ratio, 0.0) AS avg_play_ratio
    FROM agg
)
SELECT
    track_id,
    impressions,
    starts,
    likes,
    nopes,
    ms_played,
    start_rate,
    like_rate,
    nope_rate,
    avg_play_ratio,
    like_rate * 3.0 + start_rate - nope_rate * 2.0 + avg_play_ratio AS score
FROM rates
"""


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Ensure tables, indexes and the 7-day performance view exist."""
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS events (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT,
            session_id TEXT,
            type TEXT NOT NULL,
            track_id TEXT,
            ts INTEGER NOT NULL,
            payload TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_events_ts ON events (ts)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_events_user_ts ON events (user_id, ts)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_events_track_ts ON events (track_id, ts)")
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS tracks (
            track_id TEXT PRIMARY KEY,
            title TEXT,
            artist TEXT,
            album TEXT,
            art_url TEXT,
            store_url TEXT,
            preview_url TEXT
        )
        """
    )
    cur.execute(_TRACK_PERF_VIEW_SQL)
    if conn.in_transaction:
        conn.commit()
