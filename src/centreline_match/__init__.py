"""
centreline-match: Match road disruption notices to Toronto street centreline segments.

Street names are pulled out of free-text disruption titles and descriptions,
fuzzy-matched against the City of Toronto centreline corpus, and resolved to
the segments (and civic address ranges) of the matched street.

Supports:
- Corpus refresh from the Toronto Open Data CKAN datastore, stored in DuckDB
- Geohash or DuckDB spatial extension lookups of segments near a point
- Content-hash match caching and batch matching with per-item failure isolation
"""

from centreline_match.address.matcher import FuzzyStreetMatcher, MatchType
from centreline_match.address.normalizer import StreetNormalizer
from centreline_match.config import MatcherSettings
from centreline_match.core.geohash import InvalidCoordinateError
from centreline_match.core.lookup import BatchSummary, CentrelineMatcher, MatchPolicy, MatchResult
from centreline_match.data.downloader import CorpusFetchError
from centreline_match.data.manager import CorpusNotLoadedError, RefreshResult
from centreline_match.data.models import DisruptionRecord, SegmentMapping, StreetSegment

__version__ = "0.1.0"
__all__ = [
    # Main API
    "CentrelineMatcher",
    "MatchResult",
    "MatchPolicy",
    "BatchSummary",
    "RefreshResult",
    "MatcherSettings",
    # Models
    "DisruptionRecord",
    "StreetSegment",
    "SegmentMapping",
    "MatchType",
    # Building blocks
    "StreetNormalizer",
    "FuzzyStreetMatcher",
    # Exceptions
    "CorpusFetchError",
    "CorpusNotLoadedError",
    "InvalidCoordinateError",
]
