"""Pytest fixtures for centreline-match tests."""

import ast
import re
from pathlib import Path

import pytest

from centreline_match import StreetSegment
from centreline_match.core import geohash
from centreline_match.data.duckdb_engine import DuckDBEngine
from centreline_match.data.repository import GeohashSegmentRepository


# =============================================================================
# Import enforcement: functional tests should only use the public API
# =============================================================================

# Allowed import patterns for centreline_match in tests/functional
# - "centreline_match" (the public API)
# - "centreline_match.cli" or "centreline_match.cli.commands" (CLI testing is allowed)
ALLOWED_IMPORT_PATTERNS = [
    r"^centreline_match$",  # Public API root
    r"^centreline_match\.cli(\..+)?$",  # CLI module and submodules
]


def _is_allowed_import(module_name: str) -> bool:
    """Check if a centreline_match import is allowed."""
    if not module_name.startswith("centreline_match"):
        return True  # Not a centreline_match import, always allowed
    return any(re.match(pattern, module_name) for pattern in ALLOWED_IMPORT_PATTERNS)


def _check_file_imports(filepath: Path) -> list[str]:
    """Check a test file for disallowed internal imports.

    Returns list of error messages for any violations found.
    """
    try:
        content = filepath.read_text()
        tree = ast.parse(content)
    except (SyntaxError, UnicodeDecodeError):
        return []  # Skip files that can't be parsed

    errors = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                if not _is_allowed_import(alias.name):
                    errors.append(
                        f"{filepath}:{node.lineno}: "
                        f"Internal import not allowed: 'import {alias.name}'. "
                        f"Use 'from centreline_match import ...' instead."
                    )
        elif isinstance(node, ast.ImportFrom):
            if node.module and not _is_allowed_import(node.module):
                names = ", ".join(a.name for a in node.names)
                errors.append(
                    f"{filepath}:{node.lineno}: "
                    f"Internal import not allowed: 'from {node.module} import {names}'. "
                    f"Use 'from centreline_match import ...' instead."
                )
    return errors


def pytest_collect_file(parent, file_path):
    """Check functional test files for internal imports during collection."""
    if (
        file_path.suffix == ".py"
        and file_path.name.startswith("test_")
        and "functional" in file_path.parts
    ):
        errors = _check_file_imports(file_path)
        if errors:
            # Raise an error during collection to fail fast
            error_msg = "\n".join(errors)
            pytest.fail(
                f"\n\nInternal import violations detected:\n{error_msg}\n\n"
                "Functional tests should only import from the public API:\n"
                "  - from centreline_match import CentrelineMatcher, MatcherSettings, ...\n"
                "  - from centreline_match.cli.commands import cli  (for CLI tests)\n"
            )


def make_segment(
    centreline_id: int,
    street_name: str,
    normalized: str,
    bounds=(None, None, None, None),
    center=None,
) -> StreetSegment:
    """Build a StreetSegment with optional address bounds and center."""
    low_left, high_left, low_right, high_right = bounds
    segment = StreetSegment(
        centreline_id=centreline_id,
        street_name=street_name,
        street_name_normalized=normalized,
        feature_code=201500,
        feature_description="Major Arterial",
        low_num_left=low_left,
        high_num_left=high_left,
        low_num_right=low_right,
        high_num_right=high_right,
    )
    if center is not None:
        lat, lon = center
        segment.center_lat = lat
        segment.center_lon = lon
        segment.geohash_fine = geohash.encode(lat, lon, 7)
        segment.geohash_coarse = geohash.encode(lat, lon, 6)
        segment.geometry = (
            '{"type":"LineString","coordinates":'
            f"[[{lon - 0.0005},{lat}],[{lon + 0.0005},{lat}]]}}"
        )
    return segment


@pytest.fixture
def sample_segments():
    """Create a small Toronto corpus of street segments."""
    return [
        make_segment(
            1001, "Queen St W", "queen st w", (100, 198, 101, 199), center=(43.6487, -79.3960)
        ),
        make_segment(
            1002, "Queen St W", "queen st w", (200, 298, 201, 299), center=(43.6483, -79.3985)
        ),
        make_segment(
            2001, "Spadina Ave", "spadina ave", (1, 99, 2, 98), center=(43.6490, -79.3957)
        ),
        make_segment(3001, "King St W", "king st w", center=(43.6446, -79.3985)),
        make_segment(4001, "Bathurst St", "bathurst st", (500, 500, None, None)),
    ]


@pytest.fixture
def engine():
    """Create an in-memory DuckDB engine with the full schema."""
    engine = DuckDBEngine()
    yield engine
    engine.close()


@pytest.fixture
def repository(engine, sample_segments):
    """Create a geohash repository loaded with the sample corpus."""
    repository = GeohashSegmentRepository(engine, insert_batch_size=2)
    repository.replace_all(sample_segments)
    return repository
