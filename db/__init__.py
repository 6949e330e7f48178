"""Database helpers for TuneFlip."""

from db.connection import connect, transaction
from db.events import insert_events, upsert_track
from db.migrations import ensure_schema
from db.signals import recommend
from db.track_perf import list_missing_track_ids, list_track_perf

__all__ = [
    "connect",
    "ensure_schema",
    "insert_events",
    "list_missing_track_ids",
    "list_track_perf",
    "recommend",
    "transaction",
    "upsert_track",
]
