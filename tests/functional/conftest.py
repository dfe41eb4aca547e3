"""Helper functions for functional tests with mocked HTTP responses.

This module provides helper functions for creating mock data:
- Toronto centreline feed records (CKAN datastore_search pages)
- Settings pointing at an isolated data directory

All mock data uses synthetic but realistic segments around Queen St W and
Spadina Ave in downtown Toronto.
"""

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from aioresponses import CallbackResult, aioresponses
from shapely.geometry import LineString, mapping

from centreline_match import MatcherSettings

DATASTORE_PATTERN = re.compile(r".*/api/3/action/datastore_search.*")

# Queen St W at Spadina Ave
QUEEN_SPADINA_LAT = 43.6487
QUEEN_SPADINA_LON = -79.3960


def make_feed_record(
    centreline_id: int,
    name: str,
    coords: Optional[Sequence[Tuple[float, float]]],
    bounds: Tuple[Any, Any, Any, Any] = (None, None, None, None),
    feature: Tuple[int, str] = (201500, "Major Arterial"),
) -> Dict[str, Any]:
    """Create one datastore record as the portal returns it (geometry as JSON text)."""
    low_left, high_left, low_right, high_right = bounds
    return {
        "_id": centreline_id,
        "CENTRELINE_ID": centreline_id,
        "LINEAR_NAME_FULL": name,
        "FEATURE_CODE": feature[0],
        "FEATURE_CODE_DESC": feature[1],
        "LO_NUM_L": low_left,
        "HI_NUM_L": high_left,
        "LO_NUM_R": low_right,
        "HI_NUM_R": high_right,
        "geometry": json.dumps(mapping(LineString(coords))) if coords else None,
    }


def create_feed_records() -> List[Dict[str, Any]]:
    """Create a small downtown Toronto corpus."""
    lat, lon = QUEEN_SPADINA_LAT, QUEEN_SPADINA_LON
    return [
        make_feed_record(
            1001, "Queen St W", [(lon + 0.001, lat), (lon - 0.001, lat)], (100, 198, 101, 199)
        ),
        make_feed_record(
            1002,
            "Queen St W",
            [(lon - 0.001, lat - 0.0002), (lon - 0.004, lat - 0.0006)],
            (200, 298, 201, 299),
        ),
        make_feed_record(
            2001, "Spadina Ave", [(lon, lat), (lon + 0.0006, lat + 0.003)], (1, 99, 2, 98)
        ),
        make_feed_record(3001, "King St W", [(lon - 0.001, lat - 0.004), (lon - 0.004, lat - 0.0045)]),
        make_feed_record(4001, "Bathurst St", None, (500, 500, None, None)),
        make_feed_record(
            5001, "Dundas St W", [(lon, lat + 0.005), (lon - 0.003, lat + 0.0045)], (300, 400, 301, 401)
        ),
    ]


def create_datastore_response(
    records: List[Dict[str, Any]],
    total: int,
    offset: int = 0,
    limit: int = 5000,
) -> Dict[str, Any]:
    """Create a datastore_search response body for one page."""
    return {
        "help": "https://ckan0.cf.opendata.inter.prod-toronto.ca/api/3/action/help_show?name=datastore_search",
        "success": True,
        "result": {
            "resource_id": "ad296ebf-fca6-4e67-b3ce-48040a20e6cd",
            "records": records[offset : offset + limit],
            "total": total,
            "limit": limit,
            "offset": offset,
        },
    }


def mock_feed(
    mocked: aioresponses,
    records: List[Dict[str, Any]],
    fail_offsets: Sequence[int] = (),
    status: int = 500,
) -> List[int]:
    """
    Serve ``records`` page by page from the datastore endpoint.

    Pages whose offset is in ``fail_offsets`` answer with ``status``.

    Returns:
        List that collects the requested offsets
    """
    requested: List[int] = []

    def callback(url, **kwargs):
        offset = int(url.query.get("offset", 0))
        limit = int(url.query.get("limit", 5000))
        requested.append(offset)
        if offset in fail_offsets:
            return CallbackResult(status=status, body="upstream failure", reason="Internal Server Error")
        return CallbackResult(
            status=200,
            payload=create_datastore_response(records, len(records), offset, limit),
        )

    mocked.get(DATASTORE_PATTERN, callback=callback, repeat=True)
    return requested


def make_settings(tmp_path: Path, **overrides: Any) -> MatcherSettings:
    """Create settings with an isolated data directory and small pages."""
    values: Dict[str, Any] = {
        "data_dir": tmp_path / "centreline-match",
        "page_size": 2,
        "retries": 1,
        "prefer_spatial": False,
    }
    values.update(overrides)
    return MatcherSettings(**values)
