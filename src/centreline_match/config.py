"""Settings for centreline-match, with environment variable overrides."""

import os
from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from centreline_match.data.downloader import (
    CENTRELINE_RESOURCE_ID,
    CKAN_BASE_URL,
    DEFAULT_PAGE_SIZE,
)

ENV_PREFIX = "CENTRELINE_MATCH_"
DATABASE_FILENAME = "centreline.duckdb"


def _default_data_dir() -> Path:
    return Path.home() / ".centreline-match"


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Not a boolean: {value!r}")


@dataclass
class MatcherSettings:
    """
    Runtime settings.

    Every field can be overridden by an environment variable named
    ``CENTRELINE_MATCH_<FIELD>`` (e.g. ``CENTRELINE_MATCH_PAGE_SIZE``).
    """

    data_dir: Path = field(default_factory=_default_data_dir)
    ckan_base_url: str = CKAN_BASE_URL
    resource_id: str = CENTRELINE_RESOURCE_ID
    page_size: int = DEFAULT_PAGE_SIZE
    request_timeout: int = 120
    retries: int = 3
    max_concurrent_pages: int = 4
    freshness_hours: float = 24.0
    max_edit_distance: int = 3
    batch_workers: int = 8
    insert_batch_size: int = 1000
    match_policy: str = "first_match"
    prefer_spatial: bool = True

    def __post_init__(self):
        self.data_dir = Path(self.data_dir).expanduser()
        for name in ("page_size", "retries", "max_concurrent_pages", "batch_workers", "insert_batch_size"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.freshness_hours <= 0:
            raise ValueError(f"freshness_hours must be positive, got {self.freshness_hours}")
        if not 0 <= self.max_edit_distance <= 9:
            raise ValueError(f"max_edit_distance must be between 0 and 9, got {self.max_edit_distance}")
        if self.match_policy not in ("first_match", "best_confidence"):
            raise ValueError(f"Unknown match_policy: {self.match_policy}")

    @property
    def database_path(self) -> Path:
        """DuckDB database file inside the data directory."""
        return self.data_dir / DATABASE_FILENAME

    @property
    def freshness_window(self) -> timedelta:
        """Age after which the corpus is refetched."""
        return timedelta(hours=self.freshness_hours)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "MatcherSettings":
        """
        Build settings from environment variables.

        Args:
            environ: Variables to read. Defaults to os.environ
            **overrides: Explicit values that win over the environment

        Returns:
            MatcherSettings

        Raises:
            ValueError: If a variable cannot be converted
        """
        environ = os.environ if environ is None else environ
        converters: Dict[str, Callable[[str], Any]] = {
            "data_dir": Path,
            "ckan_base_url": str,
            "resource_id": str,
            "page_size": int,
            "request_timeout": int,
            "retries": int,
            "max_concurrent_pages": int,
            "freshness_hours": float,
            "max_edit_distance": int,
            "batch_workers": int,
            "insert_batch_size": int,
            "match_policy": str,
            "prefer_spatial": _parse_bool,
        }

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            try:
                values[f.name] = converters[f.name](raw)
            except ValueError as e:
                raise ValueError(f"Invalid {ENV_PREFIX + f.name.upper()}={raw!r}: {e}") from e

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
