"""Geohash encoding for approximate spatial bucketing of street segments."""

import math
from enum import Enum
from typing import List, Tuple

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_DECODE_MAP = {char: index for index, char in enumerate(BASE32)}


class InvalidCoordinateError(ValueError):
    """Latitude/longitude outside the encodable range."""

    def __init__(self, lat: float, lon: float, message: str = ""):
        self.lat = lat
        self.lon = lon
        super().__init__(f"Cannot geohash ({lat}, {lon}). {message}".strip())


class GeohashPrecision(Enum):
    """Bucket sizes stored for every segment."""

    FINE = 7
    COARSE = 6

    @property
    def approx_cell_meters(self) -> int:
        """Return the approximate cell width in meters at this precision."""
        sizes = {
            GeohashPrecision.FINE: 76,
            GeohashPrecision.COARSE: 610,
        }
        return sizes[self]


def encode(lat: float, lon: float, precision: int = GeohashPrecision.FINE.value) -> str:
    """
    Encode a coordinate as a geohash string.

    Bits alternate between longitude and latitude, starting with longitude.
    Each bit halves the remaining interval; every 5 bits become one base-32
    character.

    Args:
        lat: Latitude in degrees (-90..90)
        lon: Longitude in degrees (-180..180)
        precision: Number of characters to produce

    Returns:
        Geohash of exactly ``precision`` characters

    Raises:
        InvalidCoordinateError: If the coordinate or precision is invalid
    """
    if precision < 1:
        raise InvalidCoordinateError(lat, lon, f"Precision must be positive, got {precision}")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidCoordinateError(lat, lon, "Coordinates must be finite")
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinateError(lat, lon, "Latitude must be within -90..90")
    if not -180.0 <= lon <= 180.0:
        raise InvalidCoordinateError(lat, lon, "Longitude must be within -180..180")

    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    chars = []
    bits = 0
    bit_count = 0
    even_bit = True

    while len(chars) < precision:
        if even_bit:
            mid = (lon_range[0] + lon_range[1]) / 2
            if lon > mid:
                bits = (bits << 1) | 1
                lon_range[0] = mid
            else:
                bits = bits << 1
                lon_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if lat > mid:
                bits = (bits << 1) | 1
                lat_range[0] = mid
            else:
                bits = bits << 1
                lat_range[1] = mid

        even_bit = not even_bit
        bit_count += 1

        if bit_count == 5:
            chars.append(BASE32[bits])
            bits = 0
            bit_count = 0

    return "".join(chars)


def bounds(geohash: str) -> Tuple[float, float, float, float]:
    """
    Return the bounding box of a geohash cell.

    Args:
        geohash: Geohash string

    Returns:
        Tuple of (min_lat, min_lon, max_lat, max_lon)

    Raises:
        ValueError: If the string is empty or has characters outside the alphabet
    """
    if not geohash:
        raise ValueError("Geohash must not be empty")

    lat_range = [-90.0, 90.0]
    lon_range = [-180.0, 180.0]
    even_bit = True

    for char in geohash.lower():
        if char not in _DECODE_MAP:
            raise ValueError(f"Invalid geohash character {char!r} in {geohash!r}")
        value = _DECODE_MAP[char]
        for shift in range(4, -1, -1):
            bit = (value >> shift) & 1
            interval = lon_range if even_bit else lat_range
            mid = (interval[0] + interval[1]) / 2
            if bit:
                interval[0] = mid
            else:
                interval[1] = mid
            even_bit = not even_bit

    return lat_range[0], lon_range[0], lat_range[1], lon_range[1]


def decode(geohash: str) -> Tuple[float, float]:
    """Return the (lat, lon) center of a geohash cell."""
    min_lat, min_lon, max_lat, max_lon = bounds(geohash)
    return (min_lat + max_lat) / 2, (min_lon + max_lon) / 2


def neighbors(geohash: str) -> List[str]:
    """
    Return the cells surrounding a geohash at the same precision.

    Cells beyond the poles are omitted; longitude wraps around the
    antimeridian.

    Args:
        geohash: Geohash string

    Returns:
        Up to 8 neighboring geohashes (N, NE, E, SE, S, SW, W, NW)
    """
    min_lat, min_lon, max_lat, max_lon = bounds(geohash)
    lat_step = max_lat - min_lat
    lon_step = max_lon - min_lon
    center_lat = (min_lat + max_lat) / 2
    center_lon = (min_lon + max_lon) / 2
    precision = len(geohash)

    result = []
    for d_lat, d_lon in [(1, 0), (1, 1), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1), (1, -1)]:
        lat = center_lat + d_lat * lat_step
        if not -90.0 <= lat <= 90.0:
            continue
        lon = center_lon + d_lon * lon_step
        if lon > 180.0:
            lon -= 360.0
        elif lon < -180.0:
            lon += 360.0
        result.append(encode(lat, lon, precision))

    return result
