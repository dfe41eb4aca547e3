"""Disruption rows: cached match fields, address output and segment mappings."""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from centreline_match.data.duckdb_engine import DuckDBEngine
from centreline_match.data.models import DisruptionRecord, MatchCacheEntry, SegmentMapping

logger = logging.getLogger(__name__)


@dataclass
class MappingRow:
    """One disruption-to-segment association to persist."""

    segment_id: int
    match_type: str
    confidence: float
    matched_street_name: str


class DisruptionStore:
    """
    Read/write access to the disruption records this package annotates.

    The rows themselves belong to the acquisition pipeline; this store
    only touches the match cache columns, the address output columns and
    the mapping table.
    """

    def __init__(self, engine: DuckDBEngine):
        self.engine = engine

    def upsert(self, record: DisruptionRecord) -> None:
        """Insert a disruption or update its title and description."""
        self.engine.execute(
            """
            INSERT INTO disruptions (external_id, title, description)
            VALUES (?, ?, ?)
            ON CONFLICT (external_id) DO UPDATE SET
                title = excluded.title,
                description = excluded.description
            """,
            [record.external_id, record.title, record.description],
        )

    def get(self, external_id: str) -> Optional[DisruptionRecord]:
        """Load a disruption's text fields."""
        rows = self.engine.fetch_dicts(
            "SELECT external_id, title, description FROM disruptions WHERE external_id = ?",
            [external_id],
        )
        return DisruptionRecord(**rows[0]) if rows else None

    def get_output(self, external_id: str) -> Optional[dict]:
        """Load the address output columns of a disruption."""
        rows = self.engine.fetch_dicts(
            """
            SELECT address_full, address_range, has_match
            FROM disruptions
            WHERE external_id = ?
            """,
            [external_id],
        )
        return rows[0] if rows else None

    def get_cache_entry(self, external_id: str) -> Optional[MatchCacheEntry]:
        """
        Read the cached match fields of a disruption.

        Returns:
            MatchCacheEntry, or None if the disruption is unknown or was never matched
        """
        rows = self.engine.fetch_dicts(
            """
            SELECT content_hash, matched_street, match_confidence, match_type, last_matched_at
            FROM disruptions
            WHERE external_id = ?
            """,
            [external_id],
        )
        if not rows or rows[0]["content_hash"] is None:
            return None
        return MatchCacheEntry(**rows[0])

    def write_cache_entry(self, external_id: str, entry: MatchCacheEntry) -> int:
        """
        Store cache fields on a disruption row.

        Returns:
            Number of rows updated (0 if the disruption is unknown)
        """
        result = self.engine.execute(
            """
            UPDATE disruptions SET
                content_hash = ?,
                matched_street = ?,
                match_confidence = ?,
                match_type = ?,
                last_matched_at = ?
            WHERE external_id = ?
            """,
            [
                entry.content_hash,
                entry.matched_street,
                entry.match_confidence,
                entry.match_type,
                entry.last_matched_at,
                external_id,
            ],
        ).fetchone()
        return int(result[0]) if result else 0

    def replace_mappings(
        self,
        external_id: str,
        rows: Iterable[MappingRow],
        address_full: str,
        address_range: str,
    ) -> int:
        """
        Replace a disruption's segment mappings and address output.

        Runs as one transaction: either every row and the address update
        are committed, or nothing changes.

        Args:
            external_id: Disruption identifier
            rows: Mappings to insert; repeated segment ids keep the first row
            address_full: Joined human-readable labels
            address_range: Joined numeric ranges

        Returns:
            Number of mapping rows stored
        """
        unique_rows: List[MappingRow] = []
        seen = set()
        for row in rows:
            if row.segment_id in seen:
                continue
            seen.add(row.segment_id)
            unique_rows.append(row)

        with self.engine.transaction() as conn:
            conn.execute(
                "DELETE FROM disruption_segments WHERE disruption_external_id = ?",
                [external_id],
            )
            if unique_rows:
                conn.executemany(
                    """
                    INSERT INTO disruption_segments (
                        disruption_external_id, segment_id, match_type,
                        match_confidence, matched_street_name
                    ) VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        [external_id, r.segment_id, r.match_type, r.confidence, r.matched_street_name]
                        for r in unique_rows
                    ],
                )
            conn.execute(
                """
                UPDATE disruptions SET
                    address_full = ?,
                    address_range = ?,
                    has_match = TRUE
                WHERE external_id = ?
                """,
                [address_full, address_range, external_id],
            )

        logger.debug("Stored %d segment mappings for %s", len(unique_rows), external_id)
        return len(unique_rows)

    def clear_mappings(self, external_id: str) -> None:
        """Drop a disruption's mappings and address output in one transaction."""
        with self.engine.transaction() as conn:
            conn.execute(
                "DELETE FROM disruption_segments WHERE disruption_external_id = ?",
                [external_id],
            )
            conn.execute(
                """
                UPDATE disruptions SET
                    address_full = NULL,
                    address_range = NULL,
                    has_match = FALSE
                WHERE external_id = ?
                """,
                [external_id],
            )
        logger.debug("Cleared segment mappings for %s", external_id)

    def clear_all_mappings(self) -> None:
        """Delete every mapping; used when the segment generation is replaced."""
        self.engine.execute("DELETE FROM disruption_segments")

    def get_mappings(self, external_id: str) -> List[SegmentMapping]:
        """
        Load a disruption's mappings joined with their segments.

        Returns:
            Mappings ordered by matched street name, then centreline id
        """
        rows = self.engine.fetch_dicts(
            """
            SELECT
                m.disruption_external_id,
                m.match_type,
                m.match_confidence AS confidence,
                m.matched_street_name,
                s.centreline_id,
                s.street_name,
                s.low_num_left,
                s.high_num_left,
                s.low_num_right,
                s.high_num_right,
                s.geometry
            FROM disruption_segments m
            JOIN street_segments s ON m.segment_id = s.id
            WHERE m.disruption_external_id = ?
            ORDER BY m.matched_street_name, s.centreline_id
            """,
            [external_id],
        )
        return [SegmentMapping(**row) for row in rows]
