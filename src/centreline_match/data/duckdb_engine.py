"""DuckDB-based store for the centreline corpus, mappings and disruptions."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import duckdb
import pandas as pd

logger = logging.getLogger(__name__)

SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS street_segments_id_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS street_segments (
        id BIGINT PRIMARY KEY DEFAULT nextval('street_segments_id_seq'),
        centreline_id BIGINT NOT NULL UNIQUE,
        street_name VARCHAR NOT NULL,
        street_name_normalized VARCHAR NOT NULL,
        feature_code INTEGER,
        feature_description VARCHAR,
        low_num_left INTEGER,
        high_num_left INTEGER,
        low_num_right INTEGER,
        high_num_right INTEGER,
        center_lat DOUBLE,
        center_lon DOUBLE,
        geohash_7 VARCHAR,
        geohash_6 VARCHAR,
        geometry VARCHAR
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_segments_street ON street_segments (street_name_normalized)",
    "CREATE INDEX IF NOT EXISTS idx_segments_geohash_6 ON street_segments (geohash_6)",
    "CREATE INDEX IF NOT EXISTS idx_segments_geohash_7 ON street_segments (geohash_7)",
    """
    CREATE TABLE IF NOT EXISTS disruptions (
        external_id VARCHAR PRIMARY KEY,
        title VARCHAR NOT NULL,
        description VARCHAR,
        matched_street VARCHAR,
        match_confidence DOUBLE,
        match_type VARCHAR,
        content_hash VARCHAR,
        last_matched_at TIMESTAMP,
        address_full VARCHAR,
        address_range VARCHAR,
        has_match BOOLEAN DEFAULT FALSE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS disruption_segments (
        disruption_external_id VARCHAR NOT NULL,
        segment_id BIGINT NOT NULL,
        match_type VARCHAR NOT NULL,
        match_confidence DOUBLE NOT NULL,
        matched_street_name VARCHAR NOT NULL,
        created_at TIMESTAMP DEFAULT current_timestamp,
        PRIMARY KEY (disruption_external_id, segment_id)
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS corpus_refreshes_id_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS corpus_refreshes (
        id BIGINT PRIMARY KEY DEFAULT nextval('corpus_refreshes_id_seq'),
        fetched_at TIMESTAMP NOT NULL,
        segment_count INTEGER NOT NULL,
        payload_bytes BIGINT,
        fetch_duration_ms BIGINT
    )
    """,
]


class DuckDBEngine:
    """
    DuckDB-based relational store.

    Handles:
    - Creating the corpus, mapping, disruption and refresh tables
    - Probing for the spatial extension
    - Transactions that commit or roll back as a unit
    - Queries returning pandas DataFrames
    """

    def __init__(self, database: Optional[Path] = None):
        """
        Initialize DuckDB engine.

        Args:
            database: Database file. Defaults to an in-memory database
        """
        self.database = database
        if database is not None:
            database.parent.mkdir(parents=True, exist_ok=True)
        self.conn = duckdb.connect(str(database) if database is not None else ":memory:")
        self._in_transaction = False
        self._spatial: Optional[bool] = None
        self._create_schema()

    def _create_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        for statement in SCHEMA:
            self.conn.execute(statement)

    def load_spatial(self) -> bool:
        """
        Install and load the spatial extension.

        The probe runs once; later calls return the cached outcome.

        Returns:
            True if geometry functions are available
        """
        if self._spatial is None:
            try:
                self.conn.execute("INSTALL spatial")
                self.conn.execute("LOAD spatial")
                self._spatial = True
            except duckdb.Error as e:
                logger.info("DuckDB spatial extension unavailable, using geohash buckets: %s", e)
                self._spatial = False
        return self._spatial

    @property
    def has_spatial(self) -> bool:
        """Whether the spatial extension was loaded."""
        return bool(self._spatial)

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> duckdb.DuckDBPyConnection:
        """Execute a statement with optional positional parameters."""
        if params is None:
            return self.conn.execute(sql)
        return self.conn.execute(sql, params)

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> pd.DataFrame:
        """
        Execute a SQL query and return results as DataFrame.

        Args:
            sql: SQL query string
            params: Positional parameters for ``?`` placeholders

        Returns:
            DataFrame with query results
        """
        return self.execute(sql, params).fetchdf()

    def fetch_dicts(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute a query and return rows as dicts of native Python values."""
        cursor = self.execute(sql, params)
        columns = [column[0] for column in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def scalar(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute a query and return the first column of the first row."""
        row = self.execute(sql, params).fetchone()
        return row[0] if row else None

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """
        Run a block inside a single transaction.

        Commits on success and rolls back on any exception. Nested use joins
        the outer transaction.

        Yields:
            The underlying connection
        """
        if self._in_transaction:
            yield self.conn
            return

        self.conn.execute("BEGIN TRANSACTION")
        self._in_transaction = True
        try:
            yield self.conn
        except BaseException:
            self._rollback()
            raise
        else:
            try:
                self.conn.execute("COMMIT")
            except duckdb.Error:
                self._rollback()
                raise
        finally:
            self._in_transaction = False

    def _rollback(self) -> None:
        try:
            self.conn.execute("ROLLBACK")
        except duckdb.Error as e:
            # Transaction already aborted by the failing statement
            logger.debug("Rollback skipped: %s", e)

    @contextmanager
    def registered(self, name: str, frame: pd.DataFrame) -> Iterator[str]:
        """Expose a DataFrame as a view for the duration of a block."""
        self.conn.register(name, frame)
        try:
            yield name
        finally:
            self.conn.unregister(name)

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
