"""Core functionality for centreline-match."""

from centreline_match.core.geohash import GeohashPrecision, InvalidCoordinateError
from centreline_match.core.geometry import extract_center, parse_line_geometry

__all__ = [
    "GeohashPrecision",
    "InvalidCoordinateError",
    "extract_center",
    "parse_line_geometry",
]
