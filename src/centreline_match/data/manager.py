"""Corpus manager for orchestrating downloads, parsing and atomic replacement."""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

import duckdb
from pydantic import ValidationError

from centreline_match.address.normalizer import StreetNormalizer
from centreline_match.data.catalog import RefreshCatalog
from centreline_match.data.disruptions import DisruptionStore
from centreline_match.data.downloader import CentrelineDownloader, CorpusFetchError
from centreline_match.data.duckdb_engine import DuckDBEngine
from centreline_match.data.models import CentrelineRecord, RefreshRecord, StreetSegment, utcnow
from centreline_match.data.repository import SegmentRepository

if TYPE_CHECKING:
    from centreline_match.core.cache import StreetNameCache

logger = logging.getLogger(__name__)


class CorpusNotLoadedError(Exception):
    """The segment corpus has not been downloaded yet."""

    def __init__(self, message: str = "Segment corpus is empty; run a refresh first"):
        super().__init__(message)


@dataclass
class RefreshResult:
    """Outcome of a corpus refresh."""

    success: bool
    segments_stored: int = 0
    from_cache: bool = False
    error: Optional[str] = None
    records_skipped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, omitting an empty error."""
        result = asdict(self)
        if self.error is None:
            del result["error"]
        return result


class CorpusManager:
    """
    Keeps the segment corpus fresh.

    Refresh sequence:
    1. Skip if the newest refresh is inside the freshness window
    2. Fetch every page of the feed (nothing is touched on failure)
    3. Validate records and derive centers and geohashes
    4. In one transaction: drop mappings, replace segments, record metadata
    5. Clear the street name cache

    Concurrent refresh() calls are serialized; a caller that waited on a
    refresh in progress sees the fresh corpus and returns from cache.
    """

    def __init__(
        self,
        engine: DuckDBEngine,
        repository: SegmentRepository,
        downloader: CentrelineDownloader,
        name_cache: "StreetNameCache",
        catalog: Optional[RefreshCatalog] = None,
        disruptions: Optional[DisruptionStore] = None,
        normalizer: Optional[StreetNormalizer] = None,
    ):
        """
        Initialize CorpusManager.

        Args:
            engine: DuckDB engine holding all tables
            repository: Segment repository to refresh
            downloader: Feed client
            name_cache: Street name cache cleared after each refresh
            catalog: Refresh metadata. Defaults to a 24 hour window
            disruptions: Disruption store whose mappings reference segments
            normalizer: Normalizer for segment street names
        """
        self.engine = engine
        self.repository = repository
        self.downloader = downloader
        self.name_cache = name_cache
        self.catalog = catalog or RefreshCatalog(engine)
        self.disruptions = disruptions or DisruptionStore(engine)
        self.normalizer = normalizer or StreetNormalizer()
        self._lock = asyncio.Lock()

    async def close(self):
        """Close the feed session."""
        await self.downloader.close()

    async def refresh(self, force: bool = False, progress: bool = False) -> RefreshResult:
        """
        Refresh the corpus if it is stale.

        Args:
            force: Refetch even inside the freshness window
            progress: Show download progress

        Returns:
            RefreshResult; failures are reported, not raised
        """
        async with self._lock:
            latest = self.catalog.latest()
            if not force and latest is not None and not self.catalog.is_stale():
                logger.info(
                    "Corpus is fresh (%d segments from %s)", latest.segment_count, latest.fetched_at
                )
                return RefreshResult(
                    success=True, segments_stored=latest.segment_count, from_cache=True
                )

            try:
                download = await self.downloader.fetch_all(progress=progress)
            except CorpusFetchError as e:
                logger.error("Corpus refresh aborted, existing corpus kept: %s", e)
                return RefreshResult(success=False, error=str(e))

            segments, skipped = self.build_segments(download.records)
            try:
                with self.engine.transaction():
                    self.disruptions.clear_all_mappings()
                    stored = self.repository.replace_all(segments)
                    self.catalog.record(
                        RefreshRecord(
                            fetched_at=utcnow(),
                            segment_count=stored,
                            payload_bytes=download.payload_bytes,
                            fetch_duration_ms=download.duration_ms,
                        )
                    )
            except duckdb.Error as e:
                logger.error("Corpus refresh rolled back: %s", e)
                return RefreshResult(success=False, error=str(e), records_skipped=skipped)

            self.name_cache.clear()
            logger.info("Corpus refreshed: %d segments stored, %d records skipped", stored, skipped)
            return RefreshResult(success=True, segments_stored=stored, records_skipped=skipped)

    def build_segments(self, records: Iterable[Dict[str, Any]]) -> Tuple[List[StreetSegment], int]:
        """
        Validate feed records and turn them into segments.

        Invalid records are skipped; a repeated centreline id keeps its
        first record.

        Args:
            records: Raw datastore records

        Returns:
            Tuple of (segments, number of skipped records)
        """
        segments: List[StreetSegment] = []
        seen = set()
        skipped = 0
        without_location = 0

        for raw in records:
            try:
                record = CentrelineRecord.model_validate(raw)
            except ValidationError as e:
                skipped += 1
                logger.debug("Skipping invalid centreline record: %s", e)
                continue

            if record.centreline_id in seen:
                skipped += 1
                continue
            seen.add(record.centreline_id)

            segment = StreetSegment.from_record(record, self.normalizer.normalize(record.street_name))
            if not segment.has_location:
                without_location += 1
            segments.append(segment)

        if skipped:
            logger.warning("Skipped %d invalid or duplicate centreline records", skipped)
        if without_location:
            logger.warning("%d segments stored without usable geometry", without_location)
        return segments, skipped

    def require_loaded(self) -> int:
        """
        Check that the corpus holds segments.

        Returns:
            Number of stored segments

        Raises:
            CorpusNotLoadedError: If no segments are stored
        """
        count = self.repository.count()
        if count == 0:
            raise CorpusNotLoadedError()
        return count

    def status(self) -> Dict[str, Any]:
        """Summarize the stored corpus."""
        latest = self.catalog.latest()
        return {
            "repository": self.repository.kind,
            "segments": self.repository.count(),
            "street_names": len(self.repository.distinct_street_names()),
            "last_refresh": latest.fetched_at.isoformat() if latest else None,
            "stale": self.catalog.is_stale(),
        }
