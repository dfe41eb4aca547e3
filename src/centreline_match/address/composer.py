"""Compose address range labels from matched segments."""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from centreline_match.data.models import StreetSegment


@dataclass
class ComposedAddress:
    """Human-readable label and compact numeric range for a matched street."""

    full: str
    range: str = ""


def address_bounds(segments: Iterable[StreetSegment]) -> List[int]:
    """Collect every positive address bound across segments."""
    values = []
    for segment in segments:
        for bound in (
            segment.low_num_left,
            segment.high_num_left,
            segment.low_num_right,
            segment.high_num_right,
        ):
            if bound is not None and bound > 0:
                values.append(bound)
    return values


def compose_address(street_name: str, segments: Iterable[StreetSegment]) -> ComposedAddress:
    """
    Build the address label for a street from its segments.

    The overall minimum and maximum positive bound across all segments
    give "100-200 Queen St W"; a single value gives "100 Queen St W"; no
    bounds leaves the bare street name and an empty range.

    Args:
        street_name: Matched street name
        segments: Corpus segments sharing that normalized name

    Returns:
        ComposedAddress with full label and range
    """
    segments = list(segments)
    display_name = _display_name(street_name, segments)
    values = address_bounds(segments)

    if not values:
        return ComposedAddress(full=display_name, range="")

    low, high = min(values), max(values)
    if low == high:
        number_range = str(low)
    else:
        number_range = f"{low}-{high}"

    return ComposedAddress(full=f"{number_range} {display_name}", range=number_range)


def _display_name(street_name: str, segments: List[StreetSegment]) -> str:
    for segment in segments:
        if segment.street_name:
            return segment.street_name
    return street_name


def join_addresses(values: Iterable[Optional[str]]) -> str:
    """Join non-empty address strings with "; "."""
    return "; ".join(value for value in values if value)
