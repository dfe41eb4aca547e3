"""Refresh catalog for tracking corpus downloads."""

from datetime import datetime, timedelta
from typing import List, Optional

from centreline_match.data.duckdb_engine import DuckDBEngine
from centreline_match.data.models import RefreshRecord, utcnow


class RefreshCatalog:
    """
    Tracks successful corpus refreshes.

    One row per refresh in ``corpus_refreshes``; the newest row decides
    whether the corpus is stale.
    """

    def __init__(self, engine: DuckDBEngine, freshness_window: timedelta = timedelta(hours=24)):
        """
        Initialize catalog.

        Args:
            engine: DuckDB engine holding the refresh table
            freshness_window: Age after which the corpus must be refetched
        """
        self.engine = engine
        self.freshness_window = freshness_window

    def record(self, info: RefreshRecord) -> None:
        """
        Register a successful refresh.

        Args:
            info: Refresh metadata
        """
        self.engine.execute(
            """
            INSERT INTO corpus_refreshes (fetched_at, segment_count, payload_bytes, fetch_duration_ms)
            VALUES (?, ?, ?, ?)
            """,
            [info.fetched_at, info.segment_count, info.payload_bytes, info.fetch_duration_ms],
        )

    def latest(self) -> Optional[RefreshRecord]:
        """Get metadata for the most recent refresh, if any."""
        history = self.history(limit=1)
        return history[0] if history else None

    def history(self, limit: int = 10) -> List[RefreshRecord]:
        """List recent refreshes, newest first."""
        rows = self.engine.fetch_dicts(
            """
            SELECT fetched_at, segment_count, payload_bytes, fetch_duration_ms
            FROM corpus_refreshes
            ORDER BY fetched_at DESC, id DESC
            LIMIT ?
            """,
            [limit],
        )
        return [RefreshRecord(**row) for row in rows]

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """
        Check if the corpus needs a refetch.

        Args:
            now: Reference time (UTC). Defaults to the current time

        Returns:
            True if no refresh exists or the newest one is older than the window
        """
        latest = self.latest()
        if latest is None:
            return True
        now = now or utcnow()
        return now - latest.fetched_at >= self.freshness_window
