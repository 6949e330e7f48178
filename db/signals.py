"""Per-user recommendations rolled up from the event log."""

from __future__ import annotations

import math
import sqlite3
import time
from typing import Any

LOOKBACK_MS = 30 * 24 * 60 * 60 * 1000
RECENT_SEEN_MS = 12 * 60 * 60 * 1000

SIGNAL_WEIGHTS = {
    "like": 3.0,
    "dwell_ms": 0.001,
    "skip": -2.5,
    "nope": -4.0,
    "recent_penalty": -1.0,
}

_USER_SIGNALS_SQL = """
    SELECT
        track_id,
        SUM(CASE WHEN type = 'like' THEN 1 ELSE 0 END) AS likes,
        SUM(CASE WHEN type = 'nope' THEN 1 ELSE 0 END) AS nopes,
        SUM(CASE WHEN type IN ('skip', 'dislike') THEN 1 ELSE 0 END) AS skips,
        SUM(COALESCE(CAST(json_extract(payload, '$.ms_played_chunk') AS INTEGER), 0)) AS ms_played,
        MAX(ts) AS last_ts
    FROM events
    WHERE user_id = ? AND track_id IS NOT NULL AND ts > ?
    GROUP BY track_id
"""

_GLOBAL_POPULARITY_SQL = """
    SELECT
        track_id,
        COUNT(*) AS global_events,
        SUM(CASE WHEN type = 'like' THEN 1 ELSE 0 END) AS global_likes
    FROM events
    WHERE track_id IS NOT NULL AND ts > ?
    GROUP BY track_id
    ORDER BY global_events DESC, global_likes DESC, track_id ASC
"""


def signal_score(row: Any, global_events: int, global_likes: int, now_ms: int) -> float:
    last_ts = int(row["last_ts"] or 0)
    recent_penalty = SIGNAL_WEIGHTS["recent_penalty"] if last_ts and now_ms - last_ts < RECENT_SEEN_MS else 0.0
    return (
        SIGNAL_WEIGHTS["like"] * int(row["likes"] or 0)
        + SIGNAL_WEIGHTS["dwell_ms"] * int(row["ms_played"] or 0)
        + SIGNAL_WEIGHTS["skip"] * int(row["skips"] or 0)
        + SIGNAL_WEIGHTS["nope"] * int(row["nopes"] or 0)
        + recent_penalty
        + math.log10(1 + global_events)
        + 0.5 * math.log10(1 + global_likes)
    )


def recommend(
    conn: sqlite3.Connection,
    user_id: str = "anon",
    limit: int = 25,
    *,
    now_ms: int | None = None,
) -> dict[str, Any]:
    """Rank the user's tracks from the last 30 days, then backfill with popular ones.

    Backfilled tracks are globally popular tracks the user has not
    interacted with, in popularity order, each with score 0.
    """
    now_ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
    since = now_ms - LOOKBACK_MS
    limit = max(1, int(limit))

    cur = conn.cursor()
    popular = cur.execute(_GLOBAL_POPULARITY_SQL, (since,)).fetchall()
    popularity = {row["track_id"]: (int(row["global_events"]), int(row["global_likes"] or 0)) for row in popular}
    user_rows = cur.execute(_USER_SIGNALS_SQL, (user_id, since)).fetchall()

    scored = []
    for row in user_rows:
        global_events, global_likes = popularity.get(row["track_id"], (0, 0))
        scored.append({"track_id": row["track_id"], "score": signal_score(row, global_events, global_likes, now_ms)})
    scored.sort(key=lambda item: (-item["score"], item["track_id"]))
    results = scored[:limit]

    if len(results) < limit:
        have = {item["track_id"] for item in results}
        for row in popular:
            if len(results) >= limit:
                break
            if row["track_id"] in have:
                continue
            results.append({"track_id": row["track_id"], "score": 0.0})
            have.add(row["track_id"])

    return {"user_id": user_id, "count": len(results), "tracks": results}
