"""Content-hash match cache and the in-memory street name cache."""

import hashlib
import logging
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence

import duckdb

from centreline_match.address.matcher import MatchType
from centreline_match.data.disruptions import DisruptionStore
from centreline_match.data.models import MatchCacheEntry, utcnow

if TYPE_CHECKING:
    from centreline_match.core.lookup import MatchResult

logger = logging.getLogger(__name__)


def compute_content_hash(title: Optional[str], description: Optional[str] = None) -> str:
    """
    Hash the text a match was computed from.

    Case and surrounding whitespace do not change the hash.

    Args:
        title: Disruption title
        description: Disruption description

    Returns:
        SHA-256 hex digest
    """
    content = f"{(title or '').lower().strip()}|{(description or '').lower().strip()}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class MatchCache:
    """
    Per-disruption match cache stored on the disruption row.

    An entry is reusable exactly when its content hash equals the hash of
    the disruption's current title and description. There is no expiry.
    """

    def __init__(self, store: DisruptionStore):
        self._store = store

    def get(self, disruption_id: str) -> Optional[MatchCacheEntry]:
        """Return the cached fields for a disruption, or None if unknown or unreadable."""
        try:
            return self._store.get_cache_entry(disruption_id)
        except duckdb.Error as e:
            logger.warning("Failed to read match cache for %s: %s", disruption_id, e)
            return None

    @staticmethod
    def is_reusable(
        entry: Optional[MatchCacheEntry],
        title: Optional[str],
        description: Optional[str],
    ) -> bool:
        """Check whether a cache entry was computed from the same text."""
        if entry is None or not entry.content_hash:
            return False
        return entry.content_hash == compute_content_hash(title, description)

    def update(
        self,
        disruption_id: str,
        title: Optional[str],
        description: Optional[str],
        match: Optional["MatchResult"],
    ) -> bool:
        """
        Store the match (or the absence of one) for the current text.

        Failures are logged and swallowed; the cache is an optimization.

        Args:
            disruption_id: Disruption identifier
            title: Current title
            description: Current description
            match: Match to cache, or None to record "no match"

        Returns:
            True if the disruption row was updated
        """
        entry = MatchCacheEntry(
            content_hash=compute_content_hash(title, description),
            matched_street=match.street_name if match else None,
            match_confidence=match.confidence if match else 0.0,
            match_type=match.match_type.value if match else MatchType.NONE.value,
            last_matched_at=utcnow(),
        )
        try:
            updated = self._store.write_cache_entry(disruption_id, entry)
        except duckdb.Error as e:
            logger.warning("Failed to update match cache for %s: %s", disruption_id, e)
            return False

        if not updated:
            logger.debug("No disruption row %s to cache a match on", disruption_id)
            return False
        return True


class StreetNameCache:
    """
    In-memory list of the distinct normalized street names in the corpus.

    Loaded lazily on first use and dropped by clear(), which must be called
    after every corpus refresh.
    """

    def __init__(self, loader: Callable[[], Sequence[str]]):
        """
        Initialize cache.

        Args:
            loader: Returns the distinct normalized names, e.g.
                SegmentRepository.distinct_street_names
        """
        self._loader = loader
        self._names: Optional[List[str]] = None

    def load(self) -> List[str]:
        """Return the cached names, loading them if needed."""
        if self._names is None:
            self._names = list(self._loader())
            logger.debug("Loaded %d distinct street names", len(self._names))
        return self._names

    def clear(self) -> None:
        """Drop the cached names so the next load() reads the corpus again."""
        self._names = None

    @property
    def is_loaded(self) -> bool:
        """Whether names are currently held in memory."""
        return self._names is not None
