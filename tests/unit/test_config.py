"""Tests for settings."""

from datetime import timedelta
from pathlib import Path

import pytest

from centreline_match.config import MatcherSettings


class TestMatcherSettings:
    """Tests for MatcherSettings."""

    def test_defaults(self):
        settings = MatcherSettings()

        assert settings.data_dir == Path.home() / ".centreline-match"
        assert settings.database_path.name == "centreline.duckdb"
        assert settings.page_size == 5000
        assert settings.max_edit_distance == 3
        assert settings.match_policy == "first_match"
        assert settings.freshness_window == timedelta(hours=24)
        assert settings.ckan_base_url == "https://ckan0.cf.opendata.inter.prod-toronto.ca"

    def test_from_env(self, tmp_path):
        settings = MatcherSettings.from_env(
            {
                "CENTRELINE_MATCH_DATA_DIR": str(tmp_path),
                "CENTRELINE_MATCH_PAGE_SIZE": "250",
                "CENTRELINE_MATCH_FRESHNESS_HOURS": "1.5",
                "CENTRELINE_MATCH_PREFER_SPATIAL": "false",
                "CENTRELINE_MATCH_MATCH_POLICY": "best_confidence",
                "UNRELATED": "x",
            }
        )

        assert settings.data_dir == tmp_path
        assert settings.page_size == 250
        assert settings.freshness_window == timedelta(minutes=90)
        assert settings.prefer_spatial is False
        assert settings.match_policy == "best_confidence"

    def test_overrides_win(self):
        settings = MatcherSettings.from_env(
            {"CENTRELINE_MATCH_RETRIES": "5"}, retries=2, data_dir=None
        )
        assert settings.retries == 2

    def test_empty_variable_ignored(self):
        assert MatcherSettings.from_env({"CENTRELINE_MATCH_PAGE_SIZE": ""}).page_size == 5000

    @pytest.mark.parametrize(
        "name,value",
        [
            ("CENTRELINE_MATCH_PAGE_SIZE", "lots"),
            ("CENTRELINE_MATCH_PREFER_SPATIAL", "maybe"),
            ("CENTRELINE_MATCH_MATCH_POLICY", "random"),
            ("CENTRELINE_MATCH_MAX_EDIT_DISTANCE", "12"),
            ("CENTRELINE_MATCH_BATCH_WORKERS", "0"),
        ],
    )
    def test_invalid_values(self, name, value):
        with pytest.raises(ValueError):
            MatcherSettings.from_env({name: value})

    def test_data_dir_expands_user(self):
        assert MatcherSettings(data_dir="~/cm").data_dir == Path.home() / "cm"
