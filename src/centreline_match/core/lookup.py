"""Main CentrelineMatcher class - the primary user interface."""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from tqdm import tqdm

from centreline_match.address.composer import compose_address, join_addresses
from centreline_match.address.extractor import StreetNameExtractor
from centreline_match.address.matcher import FuzzyStreetMatcher, MatchType, StreetMatch
from centreline_match.config import MatcherSettings
from centreline_match.core.cache import MatchCache, StreetNameCache
from centreline_match.data.disruptions import DisruptionStore, MappingRow
from centreline_match.data.downloader import CentrelineDownloader
from centreline_match.data.duckdb_engine import DuckDBEngine
from centreline_match.data.manager import CorpusManager, RefreshResult
from centreline_match.data.models import (
    DisruptionRecord,
    MatchCacheEntry,
    SegmentMapping,
    StreetSegment,
)
from centreline_match.data.repository import SegmentRepository, open_segment_repository

logger = logging.getLogger(__name__)


class MatchPolicy(Enum):
    """Which of several successful matches is written to the match cache."""

    FIRST_MATCH = "first_match"  # earliest candidate in the text
    BEST_CONFIDENCE = "best_confidence"  # highest confidence, earliest on ties


@dataclass
class MatchResult:
    """A disruption matched to the segments of one street."""

    disruption_external_id: str
    street_name: str  # normalized corpus name
    match_type: MatchType = MatchType.NONE
    confidence: float = 0.0
    segments: List[StreetSegment] = field(default_factory=list)
    address_full: Optional[str] = None
    address_range: Optional[str] = None
    from_cache: bool = False

    @property
    def is_matched(self) -> bool:
        """Check if the result carries segments."""
        return self.match_type != MatchType.NONE and bool(self.segments)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "disruption_external_id": self.disruption_external_id,
            "street_name": self.street_name,
            "match_type": self.match_type.value,
            "confidence": self.confidence,
            "segment_count": len(self.segments),
            "centreline_ids": [segment.centreline_id for segment in self.segments],
            "address_full": self.address_full,
            "address_range": self.address_range,
            "from_cache": self.from_cache,
        }


@dataclass
class BatchSummary:
    """Aggregate outcome of match_batch(); every input is counted once."""

    matched: int = 0
    failed: int = 0
    unmatched: int = 0

    @property
    def total(self) -> int:
        """Number of disruptions attempted."""
        return self.matched + self.failed + self.unmatched

    def to_dict(self) -> Dict[str, int]:
        """Convert to dictionary."""
        return {"matched": self.matched, "failed": self.failed, "unmatched": self.unmatched}


DisruptionInput = Union[DisruptionRecord, Dict[str, Any]]


class CentrelineMatcher:
    """
    Main interface for centreline-match.

    Matching is async so batches can overlap the CPU-bound fuzzy search
    (run in a worker thread) with storage work on the event loop.

    Example usage:
        >>> matcher = CentrelineMatcher()
        >>> await matcher.refresh_corpus()  # downloads if stale
        >>> results = await matcher.match_one("rd-1", "Water main repair on Queen Street West")
        >>> print(results[0].address_full)
    """

    def __init__(
        self,
        settings: Optional[MatcherSettings] = None,
        engine: Optional[DuckDBEngine] = None,
        repository: Optional[SegmentRepository] = None,
        downloader: Optional[CentrelineDownloader] = None,
        matcher: Optional[FuzzyStreetMatcher] = None,
        name_cache: Optional[StreetNameCache] = None,
        policy: Optional[MatchPolicy] = None,
    ):
        """
        Initialize CentrelineMatcher.

        Args:
            settings: Runtime settings. Defaults to MatcherSettings.from_env()
            engine: DuckDB engine. Defaults to the database in settings.data_dir
            repository: Segment repository. Defaults to probing for the spatial extension
            downloader: Feed client. Defaults to the Toronto Open Data portal
            matcher: Fuzzy matcher. Defaults to settings.max_edit_distance
            name_cache: Street name cache. Defaults to loading from the repository
            policy: Match cache policy. Defaults to settings.match_policy
        """
        self.settings = settings or MatcherSettings.from_env()
        self.engine = engine or DuckDBEngine(self.settings.database_path)
        self.repository = repository or open_segment_repository(
            self.engine,
            prefer_spatial=self.settings.prefer_spatial,
            insert_batch_size=self.settings.insert_batch_size,
        )
        self.matcher = matcher or FuzzyStreetMatcher(max_distance=self.settings.max_edit_distance)
        self.name_cache = name_cache or StreetNameCache(self.repository.distinct_street_names)
        self.policy = policy or MatchPolicy(self.settings.match_policy)

        self._extractor = StreetNameExtractor()
        self._store = DisruptionStore(self.engine)
        self.cache = MatchCache(self._store)
        self.corpus = CorpusManager(
            engine=self.engine,
            repository=self.repository,
            downloader=downloader
            or CentrelineDownloader(
                base_url=self.settings.ckan_base_url,
                resource_id=self.settings.resource_id,
                page_size=self.settings.page_size,
                timeout=self.settings.request_timeout,
                retries=self.settings.retries,
                max_concurrent=self.settings.max_concurrent_pages,
            ),
            name_cache=self.name_cache,
            disruptions=self._store,
        )
        self.corpus.catalog.freshness_window = self.settings.freshness_window

    async def close(self):
        """Close the feed session and the database."""
        await self.corpus.close()
        self.engine.close()

    async def refresh_corpus(self, force: bool = False, progress: bool = False) -> RefreshResult:
        """
        Refresh the segment corpus if it is older than the freshness window.

        Args:
            force: Refetch even if the corpus is fresh
            progress: Show download progress

        Returns:
            RefreshResult with success, segments_stored, from_cache and error
        """
        return await self.corpus.refresh(force=force, progress=progress)

    def register(self, disruption: DisruptionInput) -> DisruptionRecord:
        """Insert or update a disruption row so matches can be cached on it."""
        record = _to_record(disruption)
        self._store.upsert(record)
        return record

    async def match_one(
        self,
        disruption_id: str,
        title: str,
        description: Optional[str] = "",
    ) -> List[MatchResult]:
        """
        Match one disruption's text to corpus streets.

        A cached match computed from the same title and description is
        reused without extraction or fuzzy matching. Internal matching
        errors are logged and reported as no match.

        Args:
            disruption_id: Disruption identifier
            title: Disruption title
            description: Disruption description

        Returns:
            One MatchResult per distinct matched street, in text order
        """
        description = description or ""

        entry = self.cache.get(disruption_id)
        if self.cache.is_reusable(entry, title, description):
            logger.debug("Reusing cached match for %s", disruption_id)
            return self._results_from_cache(disruption_id, entry)

        try:
            results = await self._compute_matches(disruption_id, f"{title} {description}")
        except Exception:
            logger.exception("Matching failed for disruption %s", disruption_id)
            return []

        self.cache.update(disruption_id, title, description, self._cache_choice(results))
        return results

    async def _compute_matches(self, disruption_id: str, text: str) -> List[MatchResult]:
        """Extract candidates and resolve each against the corpus."""
        loop = asyncio.get_running_loop()
        results: "OrderedDict[str, MatchResult]" = OrderedDict()
        candidates = 0

        for candidate in self._extractor.extract(text):
            candidates += 1
            names = self.name_cache.load()
            match: StreetMatch = await loop.run_in_executor(None, self.matcher.match, candidate, names)
            if not match.is_matched or match.matched_name in results:
                continue

            segments = self.repository.get_segments_by_street(match.matched_name)
            if not segments:
                continue

            address = compose_address(match.matched_name, segments)
            results[match.matched_name] = MatchResult(
                disruption_external_id=disruption_id,
                street_name=match.matched_name,
                match_type=match.match_type,
                confidence=match.confidence,
                segments=segments,
                address_full=address.full,
                address_range=address.range,
            )
            logger.debug(
                "%s match %r -> %r (%d segments, confidence %.2f)",
                match.match_type.value,
                candidate,
                match.matched_name,
                len(segments),
                match.confidence,
            )

        if not candidates:
            logger.debug("No street candidates in disruption %s", disruption_id)
        return list(results.values())

    def _cache_choice(self, results: List[MatchResult]) -> Optional[MatchResult]:
        """Pick the match written to the cache according to the policy."""
        if not results:
            return None
        if self.policy is MatchPolicy.BEST_CONFIDENCE:
            return max(results, key=lambda result: result.confidence)
        return results[0]

    def _results_from_cache(self, disruption_id: str, entry: MatchCacheEntry) -> List[MatchResult]:
        """Rebuild a result from cached fields and the current corpus."""
        if not entry.matched_street or entry.match_type in (None, MatchType.NONE.value):
            return []

        segments = self.repository.get_segments_by_street(entry.matched_street)
        if not segments:
            return []

        address = compose_address(entry.matched_street, segments)
        return [
            MatchResult(
                disruption_external_id=disruption_id,
                street_name=entry.matched_street,
                match_type=MatchType(entry.match_type),
                confidence=entry.match_confidence or 0.0,
                segments=segments,
                address_full=address.full,
                address_range=address.range,
                from_cache=True,
            )
        ]

    def store_mappings(self, matches: Iterable[MatchResult]) -> int:
        """
        Persist segment associations for the disruptions in ``matches``.

        Each referenced disruption is rewritten in its own transaction:
        its previous mappings are deleted, one row per matched segment is
        inserted and the joined address strings are written back with the
        has-match flag.

        Args:
            matches: Results from match_one()

        Returns:
            Number of mapping rows stored

        Raises:
            duckdb.Error: If a disruption's transaction fails; disruptions
                written before it stay committed
        """
        grouped: "OrderedDict[str, List[MatchResult]]" = OrderedDict()
        for match in matches:
            if match.is_matched:
                grouped.setdefault(match.disruption_external_id, []).append(match)

        stored = 0
        for disruption_id, group in grouped.items():
            rows = [
                MappingRow(
                    segment_id=segment.id,
                    match_type=match.match_type.value,
                    confidence=match.confidence,
                    matched_street_name=match.street_name,
                )
                for match in group
                for segment in match.segments
                if segment.id is not None
            ]
            stored += self._store.replace_mappings(
                disruption_id,
                rows,
                address_full=join_addresses(match.address_full for match in group),
                address_range=join_addresses(match.address_range for match in group),
            )
        return stored

    def persist_matches(self, disruption: DisruptionInput, matches: List[MatchResult]) -> int:
        """
        Bring a disruption's stored mappings in line with a match_one() outcome.

        - Freshly computed matches replace the stored mappings.
        - Results rebuilt from the cache carry only the cached street, so
          existing mappings and address output are left as they are.
        - When the cache records "none" for the current text, stale
          mappings and address output are cleared.

        Args:
            disruption: The disruption that was matched
            matches: Results from match_one() for that disruption

        Returns:
            Number of mapping rows stored
        """
        record = _to_record(disruption)
        matched = [match for match in matches if match.is_matched]

        if not matched:
            entry = self.cache.get(record.external_id)
            if (
                self.cache.is_reusable(entry, record.title, record.description)
                and entry.match_type == MatchType.NONE.value
            ):
                self._store.clear_mappings(record.external_id)
            return 0

        if all(match.from_cache for match in matched) and self._store.get_mappings(
            record.external_id
        ):
            logger.debug("Keeping stored mappings for %s", record.external_id)
            return 0

        return self.store_mappings(matched)

    def get_mappings_for(self, disruption_id: str) -> List[SegmentMapping]:
        """
        Get stored segment mappings for a disruption.

        Returns:
            Mappings ordered by matched street name, then centreline id
        """
        return self._store.get_mappings(disruption_id)

    def get_address_output(self, disruption_id: str) -> Optional[Dict[str, Any]]:
        """Get the stored address_full, address_range and has_match of a disruption."""
        return self._store.get_output(disruption_id)

    def segments_near(self, lat: float, lon: float, radius_m: float = 250.0) -> List[StreetSegment]:
        """Find corpus segments within ``radius_m`` meters of a point."""
        return self.repository.segments_near(lat, lon, radius_m)

    async def match_batch(
        self,
        disruptions: Iterable[DisruptionInput],
        progress: bool = False,
    ) -> BatchSummary:
        """
        Match and store mappings for many disruptions concurrently.

        Failures are isolated per disruption: they are logged and counted,
        and the rest of the batch continues.

        Args:
            disruptions: DisruptionRecords or dicts with external_id, title, description
            progress: Show progress bar

        Returns:
            BatchSummary with matched, failed and unmatched counts
        """
        semaphore = asyncio.Semaphore(self.settings.batch_workers)

        async def process(item: DisruptionInput) -> str:
            async with semaphore:
                try:
                    record = _to_record(item)
                    matches = await self.match_one(record.external_id, record.title, record.description)
                    self.persist_matches(record, matches)
                    return "matched" if matches else "unmatched"
                except Exception:
                    logger.exception("Failed to match disruption %s", _item_id(item))
                    return "failed"

        tasks = [process(item) for item in disruptions]
        summary = BatchSummary()

        with tqdm(total=len(tasks), desc="Matching", disable=not progress) as pbar:
            for coro in asyncio.as_completed(tasks):
                outcome = await coro
                setattr(summary, outcome, getattr(summary, outcome) + 1)
                pbar.update(1)

        logger.info(
            "Batch matching complete: %d matched, %d unmatched, %d failed",
            summary.matched,
            summary.unmatched,
            summary.failed,
        )
        return summary


def _to_record(item: DisruptionInput) -> DisruptionRecord:
    if isinstance(item, DisruptionRecord):
        return item
    return DisruptionRecord.model_validate(item)


def _item_id(item: DisruptionInput) -> Any:
    if isinstance(item, DisruptionRecord):
        return item.external_id
    if isinstance(item, dict):
        return item.get("external_id")
    return None
