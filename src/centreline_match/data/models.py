"""Typed records for the centreline corpus and disruption collaborator."""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import shapely
from pydantic import BaseModel, ConfigDict, Field, field_validator

from centreline_match.core import geohash
from centreline_match.core.geohash import GeohashPrecision, InvalidCoordinateError
from centreline_match.core.geometry import extract_center, parse_line_geometry

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, as stored in TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CentrelineRecord(BaseModel):
    """One record of the upstream centreline feed, validated at ingestion."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    centreline_id: int = Field(alias="CENTRELINE_ID")
    street_name: str = Field(alias="LINEAR_NAME_FULL", min_length=1)
    feature_code: Optional[int] = Field(None, alias="FEATURE_CODE")
    feature_description: Optional[str] = Field(None, alias="FEATURE_CODE_DESC")
    low_num_left: Optional[int] = Field(None, alias="LO_NUM_L")
    high_num_left: Optional[int] = Field(None, alias="HI_NUM_L")
    low_num_right: Optional[int] = Field(None, alias="LO_NUM_R")
    high_num_right: Optional[int] = Field(None, alias="HI_NUM_R")
    geometry: Optional[Any] = None

    @field_validator("street_name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator(
        "feature_code",
        "low_num_left",
        "high_num_left",
        "low_num_right",
        "high_num_right",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        if isinstance(value, float):
            return int(value)
        if isinstance(value, str):
            return int(float(value))
        return value


class DisruptionRecord(BaseModel):
    """A disruption handed over by the acquisition collaborator."""

    external_id: str = Field(min_length=1)
    title: str
    description: str = ""

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value


@dataclass
class StreetSegment:
    """A street segment stored in the corpus."""

    centreline_id: int
    street_name: str
    street_name_normalized: str
    feature_code: Optional[int] = None
    feature_description: Optional[str] = None
    low_num_left: Optional[int] = None
    high_num_left: Optional[int] = None
    low_num_right: Optional[int] = None
    high_num_right: Optional[int] = None
    center_lat: Optional[float] = None
    center_lon: Optional[float] = None
    geohash_fine: Optional[str] = None
    geohash_coarse: Optional[str] = None
    geometry: Optional[str] = None  # GeoJSON text
    id: Optional[int] = None  # assigned by the store

    @property
    def has_location(self) -> bool:
        """Check if the segment carries a center point and geohashes."""
        return self.center_lat is not None and self.center_lon is not None

    @classmethod
    def from_record(cls, record: CentrelineRecord, normalized_name: str) -> "StreetSegment":
        """
        Build a segment from a validated feed record.

        Center and geohashes are derived from the geometry; when the geometry
        cannot be used all four stay empty and the segment is kept.

        Args:
            record: Validated upstream record
            normalized_name: Canonical form of the street name

        Returns:
            StreetSegment without an internal id
        """
        segment = cls(
            centreline_id=record.centreline_id,
            street_name=record.street_name,
            street_name_normalized=normalized_name,
            feature_code=record.feature_code,
            feature_description=record.feature_description,
            low_num_left=record.low_num_left,
            high_num_left=record.high_num_left,
            low_num_right=record.low_num_right,
            high_num_right=record.high_num_right,
        )

        geom = parse_line_geometry(record.geometry)
        if geom is None or geom.is_empty:
            logger.debug("Segment %s has no usable geometry", record.centreline_id)
            return segment

        segment.geometry = shapely.to_geojson(geom)
        center = extract_center(geom)
        if center is None:
            return segment

        lat, lon = center
        try:
            segment.geohash_fine = geohash.encode(lat, lon, GeohashPrecision.FINE.value)
            segment.geohash_coarse = geohash.encode(lat, lon, GeohashPrecision.COARSE.value)
        except InvalidCoordinateError as e:
            logger.debug("Segment %s center out of range: %s", record.centreline_id, e)
            segment.geohash_fine = segment.geohash_coarse = None
            return segment

        segment.center_lat = lat
        segment.center_lon = lon
        return segment

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class MatchCacheEntry:
    """Cached match fields stored on a disruption row."""

    content_hash: Optional[str] = None
    matched_street: Optional[str] = None
    match_confidence: Optional[float] = None
    match_type: Optional[str] = None
    last_matched_at: Optional[datetime] = None


@dataclass
class RefreshRecord:
    """Metadata about one successful corpus refresh."""

    fetched_at: datetime
    segment_count: int
    payload_bytes: Optional[int] = None
    fetch_duration_ms: Optional[int] = None


@dataclass
class SegmentMapping:
    """A stored disruption-to-segment association joined with its segment."""

    disruption_external_id: str
    match_type: str
    confidence: float
    matched_street_name: str
    centreline_id: int
    street_name: str
    low_num_left: Optional[int] = None
    high_num_left: Optional[int] = None
    low_num_right: Optional[int] = None
    high_num_right: Optional[int] = None
    geometry: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, decoding the geometry."""
        result = asdict(self)
        if self.geometry:
            result["geometry"] = json.loads(self.geometry)
        return result
