"""Tests for feed and disruption records."""

import json

import pytest
from pydantic import ValidationError

from centreline_match.data.models import CentrelineRecord, DisruptionRecord, StreetSegment

GEOMETRY = json.dumps(
    {"type": "MultiLineString", "coordinates": [[[-79.3970, 43.6487], [-79.3950, 43.6487]]]}
)


def feed_record(**overrides):
    record = {
        "_id": 1,
        "CENTRELINE_ID": 1001,
        "LINEAR_NAME_FULL": "Queen St W",
        "FEATURE_CODE": 201500,
        "FEATURE_CODE_DESC": "Major Arterial",
        "LO_NUM_L": 100,
        "HI_NUM_L": 198,
        "LO_NUM_R": 101,
        "HI_NUM_R": 199,
        "geometry": GEOMETRY,
    }
    record.update(overrides)
    return record


class TestCentrelineRecord:
    """Tests for CentrelineRecord validation."""

    def test_aliases(self):
        record = CentrelineRecord.model_validate(feed_record())
        assert record.centreline_id == 1001
        assert record.street_name == "Queen St W"
        assert record.low_num_left == 100

    def test_coercion(self):
        """Test that numeric strings, floats and blanks are coerced."""
        record = CentrelineRecord.model_validate(
            feed_record(CENTRELINE_ID="1001", LO_NUM_L="100", HI_NUM_L=198.0, LO_NUM_R="", HI_NUM_R=None)
        )
        assert record.centreline_id == 1001
        assert record.low_num_left == 100
        assert record.high_num_left == 198
        assert record.low_num_right is None
        assert record.high_num_right is None

    def test_name_stripped(self):
        assert CentrelineRecord.model_validate(feed_record(LINEAR_NAME_FULL="  Queen St W ")).street_name == (
            "Queen St W"
        )

    @pytest.mark.parametrize(
        "overrides",
        [{"CENTRELINE_ID": None}, {"LINEAR_NAME_FULL": ""}, {"LINEAR_NAME_FULL": "   "}, {"LO_NUM_L": "abc"}],
    )
    def test_invalid(self, overrides):
        with pytest.raises(ValidationError):
            CentrelineRecord.model_validate(feed_record(**overrides))

    def test_missing_name(self):
        record = feed_record()
        del record["LINEAR_NAME_FULL"]
        with pytest.raises(ValidationError):
            CentrelineRecord.model_validate(record)


class TestStreetSegmentFromRecord:
    """Tests for StreetSegment.from_record."""

    def test_location_derived(self):
        segment = StreetSegment.from_record(CentrelineRecord.model_validate(feed_record()), "queen st w")

        assert segment.center_lat == pytest.approx(43.6487)
        assert segment.center_lon == pytest.approx(-79.3960)
        assert len(segment.geohash_fine) == 7
        assert len(segment.geohash_coarse) == 6
        assert segment.geohash_fine.startswith(segment.geohash_coarse)
        assert json.loads(segment.geometry)["type"] == "MultiLineString"
        assert segment.has_location
        assert segment.id is None

    @pytest.mark.parametrize("geometry", [None, "garbage", '{"type": "LineString", "coordinates": []}'])
    def test_unusable_geometry_keeps_segment(self, geometry):
        """Test that a bad geometry leaves the location empty but keeps the name."""
        segment = StreetSegment.from_record(
            CentrelineRecord.model_validate(feed_record(geometry=geometry)), "queen st w"
        )

        assert segment.street_name_normalized == "queen st w"
        assert segment.center_lat is None
        assert segment.center_lon is None
        assert segment.geohash_fine is None
        assert segment.geohash_coarse is None
        assert not segment.has_location

    def test_out_of_range_center(self):
        """Test that coordinates outside lat/lon ranges leave the location empty."""
        geometry = json.dumps({"type": "LineString", "coordinates": [[500.0, 43.0], [501.0, 43.0]]})
        segment = StreetSegment.from_record(
            CentrelineRecord.model_validate(feed_record(geometry=geometry)), "queen st w"
        )
        assert segment.geohash_fine is None
        assert not segment.has_location


class TestDisruptionRecord:
    """Tests for DisruptionRecord."""

    def test_defaults(self):
        record = DisruptionRecord(external_id="rd-1", title="Closure")
        assert record.description == ""

    def test_none_description(self):
        assert DisruptionRecord(external_id="rd-1", title="Closure", description=None).description == ""

    def test_requires_id(self):
        with pytest.raises(ValidationError):
            DisruptionRecord(external_id="", title="Closure")
