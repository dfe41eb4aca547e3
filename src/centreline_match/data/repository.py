"""Segment storage behind a single repository interface."""

import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

import pandas as pd

from centreline_match.core import geohash
from centreline_match.core.geohash import GeohashPrecision
from centreline_match.data.duckdb_engine import DuckDBEngine
from centreline_match.data.models import StreetSegment

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE = 111_320.0

# Approximate geohash cell height in meters by precision
_CELL_HEIGHT_M = {6: 610, 5: 4_900, 4: 39_000, 3: 156_000, 2: 1_250_000}

# (frame column, table column) in insert order
_SEGMENT_COLUMNS = [
    ("centreline_id", "centreline_id"),
    ("street_name", "street_name"),
    ("street_name_normalized", "street_name_normalized"),
    ("feature_code", "feature_code"),
    ("feature_description", "feature_description"),
    ("low_num_left", "low_num_left"),
    ("high_num_left", "high_num_left"),
    ("low_num_right", "low_num_right"),
    ("high_num_right", "high_num_right"),
    ("center_lat", "center_lat"),
    ("center_lon", "center_lon"),
    ("geohash_fine", "geohash_7"),
    ("geohash_coarse", "geohash_6"),
    ("geometry", "geometry"),
]

_INT_COLUMNS = [
    "centreline_id",
    "feature_code",
    "low_num_left",
    "high_num_left",
    "low_num_right",
    "high_num_right",
]


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def segments_to_frame(segments: Sequence[StreetSegment]) -> pd.DataFrame:
    """Build an insert frame with nullable integer and float columns."""
    frame = pd.DataFrame(
        [{column: getattr(segment, column) for column, _ in _SEGMENT_COLUMNS} for segment in segments],
        columns=[column for column, _ in _SEGMENT_COLUMNS],
    )
    for column in _INT_COLUMNS:
        frame[column] = frame[column].astype("Int64")
    for column in ("center_lat", "center_lon"):
        frame[column] = frame[column].astype("Float64")
    return frame


class SegmentRepository(ABC):
    """
    Storage for the street segment corpus.

    Readers see either the previous or the new corpus: replace_all() clears
    and reinserts inside one transaction.
    """

    SELECT_COLUMNS = """
        s.id, s.centreline_id, s.street_name, s.street_name_normalized,
        s.feature_code, s.feature_description,
        s.low_num_left, s.high_num_left, s.low_num_right, s.high_num_right,
        s.center_lat, s.center_lon, s.geohash_7, s.geohash_6, s.geometry
    """

    kind = "abstract"

    def __init__(self, engine: DuckDBEngine, insert_batch_size: int = 1000):
        """
        Initialize repository.

        Args:
            engine: DuckDB engine holding the corpus tables
            insert_batch_size: Rows per INSERT statement during refresh
        """
        if insert_batch_size < 1:
            raise ValueError(f"insert_batch_size must be positive, got {insert_batch_size}")
        self.engine = engine
        self.insert_batch_size = insert_batch_size

    def replace_all(self, segments: Sequence[StreetSegment]) -> int:
        """
        Replace the whole corpus with a new generation of segments.

        Args:
            segments: Segments with unique centreline ids

        Returns:
            Number of segments stored
        """
        with self.engine.transaction():
            self._clear()
            for start in range(0, len(segments), self.insert_batch_size):
                batch = segments[start : start + self.insert_batch_size]
                self._insert_batch(segments_to_frame(batch))
        logger.info("Stored %d segments (%s repository)", len(segments), self.kind)
        return len(segments)

    def _clear(self) -> None:
        self.engine.execute("DELETE FROM street_segments")

    def _insert_batch(self, frame: pd.DataFrame) -> None:
        columns = ", ".join(table_column for _, table_column in _SEGMENT_COLUMNS)
        values = ", ".join(frame_column for frame_column, _ in _SEGMENT_COLUMNS)
        with self.engine.registered("segment_batch", frame):
            self.engine.execute(f"INSERT INTO street_segments ({columns}) SELECT {values} FROM segment_batch")

    def get_segments_by_street(self, normalized_name: str) -> List[StreetSegment]:
        """
        Fetch all segments sharing a normalized street name.

        Args:
            normalized_name: Canonical street name, e.g. "queen st w"

        Returns:
            Segments ordered by centreline id
        """
        rows = self.engine.fetch_dicts(
            f"""
            SELECT {self.SELECT_COLUMNS}
            FROM street_segments s
            WHERE s.street_name_normalized = ?
            ORDER BY s.centreline_id
            """,
            [normalized_name],
        )
        return [self._row_to_segment(row) for row in rows]

    def distinct_street_names(self) -> List[str]:
        """Return the sorted distinct normalized street names."""
        rows = self.engine.execute(
            "SELECT DISTINCT street_name_normalized FROM street_segments ORDER BY 1"
        ).fetchall()
        return [row[0] for row in rows]

    def count(self) -> int:
        """Return the number of stored segments."""
        return int(self.engine.scalar("SELECT COUNT(*) FROM street_segments"))

    @abstractmethod
    def segments_near(self, lat: float, lon: float, radius_m: float = 250.0) -> List[StreetSegment]:
        """
        Find segments whose location lies within a radius of a point.

        Args:
            lat: Latitude of the point
            lon: Longitude of the point
            radius_m: Search radius in meters

        Returns:
            Segments ordered by distance
        """

    @staticmethod
    def _row_to_segment(row: Dict[str, Any]) -> StreetSegment:
        return StreetSegment(
            id=row["id"],
            centreline_id=row["centreline_id"],
            street_name=row["street_name"],
            street_name_normalized=row["street_name_normalized"],
            feature_code=row["feature_code"],
            feature_description=row["feature_description"],
            low_num_left=row["low_num_left"],
            high_num_left=row["high_num_left"],
            low_num_right=row["low_num_right"],
            high_num_right=row["high_num_right"],
            center_lat=row["center_lat"],
            center_lon=row["center_lon"],
            geohash_fine=row["geohash_7"],
            geohash_coarse=row["geohash_6"],
            geometry=row["geometry"],
        )


class GeohashSegmentRepository(SegmentRepository):
    """
    Corpus storage without a spatial extension.

    Proximity uses the coarse geohash: the cell containing the point plus its
    eight neighbors, refined by great-circle distance to segment centers.
    """

    kind = "geohash"

    def segments_near(self, lat: float, lon: float, radius_m: float = 250.0) -> List[StreetSegment]:
        precision = GeohashPrecision.COARSE.value
        while precision > 2 and _CELL_HEIGHT_M[precision] < radius_m:
            precision -= 1

        cell = geohash.encode(lat, lon, precision)
        cells = [cell] + geohash.neighbors(cell)
        placeholders = ", ".join("?" for _ in cells)

        rows = self.engine.fetch_dicts(
            f"""
            SELECT {self.SELECT_COLUMNS}
            FROM street_segments s
            WHERE s.geohash_6 IS NOT NULL
              AND LEFT(s.geohash_6, {precision}) IN ({placeholders})
            """,
            cells,
        )

        nearby = []
        for row in rows:
            distance = haversine_m(lat, lon, row["center_lat"], row["center_lon"])
            if distance <= radius_m:
                nearby.append((distance, row["centreline_id"], row))
        nearby.sort(key=lambda item: (item[0], item[1]))
        return [self._row_to_segment(row) for _, _, row in nearby]


class SpatialSegmentRepository(SegmentRepository):
    """
    Corpus storage backed by the DuckDB spatial extension.

    Geometries are kept in a companion table as GEOMETRY values so that
    proximity is measured against the full line, not only its center.
    """

    kind = "spatial"

    def __init__(self, engine: DuckDBEngine, insert_batch_size: int = 1000):
        super().__init__(engine, insert_batch_size)
        if not engine.load_spatial():
            raise RuntimeError("DuckDB spatial extension is not available")
        self.engine.execute(
            """
            CREATE TABLE IF NOT EXISTS street_segment_shapes (
                segment_id BIGINT PRIMARY KEY,
                geom GEOMETRY
            )
            """
        )

    def _clear(self) -> None:
        self.engine.execute("DELETE FROM street_segment_shapes")
        super()._clear()

    def _insert_batch(self, frame: pd.DataFrame) -> None:
        super()._insert_batch(frame)
        with self.engine.registered("segment_batch", frame):
            self.engine.execute(
                """
                INSERT INTO street_segment_shapes (segment_id, geom)
                SELECT s.id, ST_GeomFromGeoJSON(b.geometry)
                FROM segment_batch b
                JOIN street_segments s ON s.centreline_id = b.centreline_id
                WHERE b.geometry IS NOT NULL
                """
            )

    def segments_near(self, lat: float, lon: float, radius_m: float = 250.0) -> List[StreetSegment]:
        radius_deg = radius_m / METERS_PER_DEGREE
        rows = self.engine.fetch_dicts(
            f"""
            SELECT {self.SELECT_COLUMNS}
            FROM street_segments s
            JOIN street_segment_shapes g ON g.segment_id = s.id
            WHERE ST_DWithin(g.geom, ST_Point(?, ?), ?)
            ORDER BY ST_Distance(g.geom, ST_Point(?, ?)), s.centreline_id
            """,
            [lon, lat, radius_deg, lon, lat],
        )
        return [self._row_to_segment(row) for row in rows]


def open_segment_repository(
    engine: DuckDBEngine,
    prefer_spatial: bool = True,
    insert_batch_size: int = 1000,
) -> SegmentRepository:
    """
    Pick the repository implementation once at startup.

    Args:
        engine: DuckDB engine
        prefer_spatial: Try the spatial extension before falling back to geohash buckets
        insert_batch_size: Rows per INSERT statement during refresh

    Returns:
        SpatialSegmentRepository when the extension loads, else GeohashSegmentRepository
    """
    if prefer_spatial and engine.load_spatial():
        return SpatialSegmentRepository(engine, insert_batch_size)
    return GeohashSegmentRepository(engine, insert_batch_size)
