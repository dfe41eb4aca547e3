"""Representative points for centreline geometries."""

import json
import logging
from typing import Any, Optional, Tuple

import shapely
from shapely.errors import ShapelyError
from shapely.geometry import LineString, MultiLineString, shape
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)


def parse_line_geometry(geometry: Any) -> Optional[BaseGeometry]:
    """
    Parse a line-shaped geometry payload into a shapely geometry.

    Accepts a GeoJSON object (dict or JSON text), a list of ``[lon, lat]``
    vertices, or a list of such lists for multi-part lines.

    Args:
        geometry: Raw geometry payload

    Returns:
        Shapely geometry, or None if the payload cannot be parsed
    """
    if geometry is None:
        return None

    try:
        if isinstance(geometry, BaseGeometry):
            return geometry
        if isinstance(geometry, (str, bytes)):
            geometry = json.loads(geometry)
        if isinstance(geometry, dict):
            return shape(geometry)
        if isinstance(geometry, (list, tuple)):
            if not geometry:
                return None
            first = geometry[0]
            if isinstance(first, (list, tuple)) and first and isinstance(first[0], (list, tuple)):
                return MultiLineString([[tuple(v[:2]) for v in part] for part in geometry])
            return LineString([tuple(v[:2]) for v in geometry])
    except (ValueError, TypeError, KeyError, IndexError, AttributeError, ShapelyError) as e:
        logger.debug("Unparseable geometry payload: %s", e)
        return None

    return None


def extract_center(geometry: Any) -> Optional[Tuple[float, float]]:
    """
    Compute the mean of all vertices of a line geometry.

    This is an approximation used only for geohash bucketing, not a true
    centroid. Vertices of every part are pooled before averaging.

    Args:
        geometry: Raw geometry payload (see parse_line_geometry)

    Returns:
        (lat, lon) tuple, or None for empty or unparseable geometries
    """
    geom = parse_line_geometry(geometry)
    if geom is None or geom.is_empty:
        return None

    coords = shapely.get_coordinates(geom)
    if len(coords) == 0:
        return None

    lon, lat = coords.mean(axis=0)
    return float(lat), float(lon)
