"""Data management for centreline-match."""

from centreline_match.data.catalog import RefreshCatalog
from centreline_match.data.disruptions import DisruptionStore
from centreline_match.data.downloader import CentrelineDownloader, CorpusFetchError
from centreline_match.data.duckdb_engine import DuckDBEngine
from centreline_match.data.manager import CorpusManager, CorpusNotLoadedError, RefreshResult
from centreline_match.data.repository import (
    GeohashSegmentRepository,
    SegmentRepository,
    SpatialSegmentRepository,
    open_segment_repository,
)

__all__ = [
    "CorpusManager",
    "CorpusNotLoadedError",
    "RefreshResult",
    "RefreshCatalog",
    "DisruptionStore",
    "CentrelineDownloader",
    "CorpusFetchError",
    "DuckDBEngine",
    "SegmentRepository",
    "GeohashSegmentRepository",
    "SpatialSegmentRepository",
    "open_segment_repository",
]
