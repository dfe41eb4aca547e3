"""Functional tests for the centreline-match CLI.

These test the CLI commands that users run directly.
Run with: pytest tests/functional/test_cli.py -v -s
"""

import json

import pandas as pd
import pytest
from aioresponses import aioresponses
from click.testing import CliRunner

from centreline_match.cli.commands import cli
from tests.functional.conftest import create_feed_records, mock_feed

ENV = {
    "CENTRELINE_MATCH_PREFER_SPATIAL": "false",
    "CENTRELINE_MATCH_RETRIES": "1",
    "CENTRELINE_MATCH_PAGE_SIZE": "2",
}


@pytest.fixture
def runner():
    return CliRunner(env=ENV)


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "centreline-match"


@pytest.fixture
def feed():
    with aioresponses() as mocked:
        yield mock_feed(mocked, create_feed_records())


def invoke(runner, data_dir, *args):
    return runner.invoke(cli, ["--data-dir", str(data_dir), *args])


def parse_json_list(output: str):
    """Extract the JSON list from output (log lines may precede it)."""
    return json.loads(output[output.find("[\n") : output.rfind("]") + 1])


class TestCLIRefresh:
    """User downloads the corpus via command line."""

    def test_refresh(self, runner, data_dir, feed):
        result = invoke(runner, data_dir, "refresh")

        assert result.exit_code == 0, result.output
        data = json.loads(result.output[result.output.find("{") : result.output.rfind("}") + 1])
        assert data["success"] is True
        assert data["segments_stored"] == 6
        assert sorted(feed) == [0, 2, 4]

    def test_refresh_failure_exits_nonzero(self, runner, data_dir):
        with aioresponses() as mocked:
            mock_feed(mocked, create_feed_records(), fail_offsets=(0,))
            result = invoke(runner, data_dir, "refresh")

        assert result.exit_code != 0
        assert "HTTP 500" in result.output


class TestCLIMatch:
    """User matches a disruption via command line."""

    def test_match(self, runner, data_dir, feed):
        invoke(runner, data_dir, "refresh")
        result = invoke(
            runner,
            data_dir,
            "match",
            "Water main repair on Queen Street West near Spadina",
            "--id",
            "rd-1",
        )

        assert result.exit_code == 0, result.output
        data = parse_json_list(result.output)
        assert len(data) == 1
        assert data[0]["street_name"] == "queen st w"
        assert data[0]["match_type"] == "exact"
        assert data[0]["centreline_ids"] == [1001, 1002]
        assert data[0]["address_full"] == "100-299 Queen St W"

    def test_match_with_refresh_flag(self, runner, data_dir, feed):
        result = invoke(runner, data_dir, "match", "Paving on Spadina Ave", "--refresh")

        assert result.exit_code == 0, result.output
        assert parse_json_list(result.output)[0]["street_name"] == "spadina ave"

    def test_no_match(self, runner, data_dir, feed):
        invoke(runner, data_dir, "refresh")
        result = invoke(runner, data_dir, "match", "subway delayed at this time")

        assert result.exit_code == 0, result.output
        assert "No street match found." in result.output

    def test_rematch_without_street_clears_mappings(self, runner, data_dir, feed):
        invoke(runner, data_dir, "refresh")
        invoke(runner, data_dir, "match", "Closure on Queen St W", "--id", "rd-1")
        assert "centreline_id" in invoke(runner, data_dir, "mappings", "rd-1").output

        result = invoke(runner, data_dir, "match", "subway delayed at this time", "--id", "rd-1")

        assert "No street match found." in result.output
        assert "No mappings stored for rd-1." in invoke(runner, data_dir, "mappings", "rd-1").output

    def test_match_without_corpus(self, runner, data_dir):
        result = invoke(runner, data_dir, "match", "Paving on Spadina Ave")

        assert result.exit_code != 0
        assert "centreline-match refresh" in result.output


class TestCLIBatch:
    """User batch processes disruptions via command line."""

    def test_batch_csv(self, runner, data_dir, feed, tmp_path):
        input_file = tmp_path / "disruptions.csv"
        pd.DataFrame(
            {
                "external_id": ["rd-1", "rd-2", "rd-3"],
                "title": ["Closure on Queen St W", "Paving on Spadina Ave", "subway delayed"],
                "description": ["", "Curb lane only", ""],
            }
        ).to_csv(input_file, index=False)

        invoke(runner, data_dir, "refresh")
        result = invoke(runner, data_dir, "batch", str(input_file))

        assert result.exit_code == 0, result.output
        assert "Processed 3 disruptions" in result.output
        assert "Matched: 2  Unmatched: 1  Failed: 0" in result.output

        mappings = invoke(runner, data_dir, "mappings", "rd-2")
        assert parse_json_list(mappings.output)[0]["centreline_id"] == 2001

    def test_batch_custom_columns(self, runner, data_dir, feed, tmp_path):
        input_file = tmp_path / "notices.csv"
        pd.DataFrame({"id": ["n-1"], "headline": ["Closure on King St W"]}).to_csv(
            input_file, index=False
        )

        invoke(runner, data_dir, "refresh")
        result = invoke(
            runner, data_dir, "batch", str(input_file), "--id-column", "id", "--title-column", "headline"
        )

        assert result.exit_code == 0, result.output
        assert "Matched: 1" in result.output

    def test_batch_missing_column(self, runner, data_dir, tmp_path):
        input_file = tmp_path / "disruptions.csv"
        pd.DataFrame({"external_id": ["rd-1"]}).to_csv(input_file, index=False)

        result = invoke(runner, data_dir, "batch", str(input_file))

        assert result.exit_code != 0
        assert "Column 'title' not found" in result.output

    def test_batch_rejects_other_formats(self, runner, data_dir, tmp_path):
        input_file = tmp_path / "disruptions.json"
        input_file.write_text("[]")

        result = invoke(runner, data_dir, "batch", str(input_file))

        assert result.exit_code != 0
        assert "Only CSV is supported" in result.output


class TestCLIInfo:
    """User inspects the stored corpus."""

    def test_info_empty(self, runner, data_dir):
        result = invoke(runner, data_dir, "info")

        assert result.exit_code == 0, result.output
        assert "No corpus downloaded yet." in result.output
        assert "Segments: 0" in result.output

    def test_info_after_refresh(self, runner, data_dir, feed):
        invoke(runner, data_dir, "refresh")
        result = invoke(runner, data_dir, "info")

        assert result.exit_code == 0, result.output
        assert "Repository: geohash" in result.output
        assert "Segments: 6" in result.output
        assert "Distinct street names: 5" in result.output
        assert "(fresh)" in result.output

    def test_mappings_none(self, runner, data_dir):
        result = invoke(runner, data_dir, "mappings", "rd-9")
        assert "No mappings stored for rd-9." in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output
