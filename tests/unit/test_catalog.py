"""Tests for the refresh catalog."""

from datetime import datetime, timedelta

import pytest

from centreline_match.data.catalog import RefreshCatalog
from centreline_match.data.models import RefreshRecord


class TestRefreshCatalog:
    """Tests for RefreshCatalog."""

    @pytest.fixture
    def catalog(self, engine):
        return RefreshCatalog(engine, freshness_window=timedelta(hours=24))

    def test_empty_catalog_is_stale(self, catalog):
        assert catalog.latest() is None
        assert catalog.is_stale() is True

    def test_record_and_latest(self, catalog):
        """Test that the newest refresh is returned."""
        catalog.record(RefreshRecord(datetime(2024, 1, 1, 6, 0), 100, 2048, 350))
        catalog.record(RefreshRecord(datetime(2024, 1, 2, 6, 0), 120))

        latest = catalog.latest()
        assert latest.fetched_at == datetime(2024, 1, 2, 6, 0)
        assert latest.segment_count == 120
        assert latest.payload_bytes is None

    def test_history_newest_first(self, catalog):
        for day in range(1, 4):
            catalog.record(RefreshRecord(datetime(2024, 1, day), day * 10))

        history = catalog.history(limit=2)
        assert [record.segment_count for record in history] == [30, 20]

    def test_staleness_window(self, catalog):
        """Test that staleness starts exactly at the window boundary."""
        fetched = datetime(2024, 1, 1, 12, 0)
        catalog.record(RefreshRecord(fetched, 10))

        assert catalog.is_stale(now=fetched + timedelta(hours=23, minutes=59)) is False
        assert catalog.is_stale(now=fetched + timedelta(hours=24)) is True

    def test_custom_window(self, engine):
        catalog = RefreshCatalog(engine, freshness_window=timedelta(hours=1))
        fetched = datetime(2024, 1, 1, 12, 0)
        catalog.record(RefreshRecord(fetched, 10))
        assert catalog.is_stale(now=fetched + timedelta(hours=2)) is True
