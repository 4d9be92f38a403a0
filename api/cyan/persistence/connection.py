"""
DuckDB Connection Manager

Manages the database connection, schema initialization, and validation.
Provides a high-level interface for database setup and lifecycle management.
"""

import logging
from pathlib import Path

import duckdb

from cyan.errors import StoreError

from .models import DERIVED_MODELS, SIMULATOR_MODELS
from .schema_generator import generate_schema_ddl, table_name_of, validate_table_schema

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages DuckDB connection and schema.

    Responsibilities:
    - Create and manage the DuckDB connection
    - Initialize simulator and derived schema from Pydantic models
    - Validate schema matches models
    - Provide context manager for clean resource management

    Usage:
        with DatabaseManager("cyclus.duckdb") as manager:
            manager.initialize_schema()
            # Use manager.conn for queries
    """

    def __init__(self, db_path: str | Path = ":memory:", read_only: bool = False):
        """Initialize database manager.

        Args:
            db_path: Path to DuckDB database file (":memory:" for a scratch database)
            read_only: Open the database without write access

        Raises:
            StoreError: If the database cannot be opened
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        try:
            self.conn = duckdb.connect(str(self.db_path), read_only=read_only)
        except duckdb.Error as e:
            raise StoreError(f"cannot open database {db_path}: {e}") from e

    def initialize_schema(self, force_recreate: bool = False) -> None:
        """Create simulator and derived tables from Pydantic models.

        Uses CREATE TABLE IF NOT EXISTS, so safe to run multiple times.

        Args:
            force_recreate: If True, drop existing tables before recreating them
        """
        logger.info("Initializing database schema at %s", self.db_path)

        if force_recreate:
            logger.info("Dropping existing tables")
            self._drop_all_tables()

        for statement in generate_schema_ddl(SIMULATOR_MODELS + DERIVED_MODELS):
            self.conn.execute(statement)

    def is_initialized(self) -> bool:
        """Check if the simulator's run table exists.

        Examples:
            >>> manager = DatabaseManager(":memory:")
            >>> manager.is_initialized()
            False
        """
        try:
            self.conn.execute("SELECT 1 FROM info LIMIT 1")
            return True
        except duckdb.Error:
            return False

    def validate_schema(self, include_derived: bool = True) -> dict[str, list[str]]:
        """Validate that database schema matches Pydantic models.

        Args:
            include_derived: Also check the ``post_*`` tables

        Returns:
            Mapping of table name to validation errors (empty list when valid)
        """
        models = SIMULATOR_MODELS + (DERIVED_MODELS if include_derived else [])

        report = {}
        for model in models:
            is_valid, errors = validate_table_schema(self.conn, model)
            table_name = table_name_of(model)
            report[table_name] = errors
            if is_valid:
                logger.debug("Schema ok: %s", table_name)
            else:
                logger.warning("Schema mismatch in %s: %s", table_name, "; ".join(errors))

        return report

    def _drop_all_tables(self) -> None:
        """Drop every table defined by the record models, derived tables first."""
        for model in reversed(SIMULATOR_MODELS + DERIVED_MODELS):
            self.conn.execute(f"DROP TABLE IF EXISTS {table_name_of(model)}")

    def close(self) -> None:
        """Close database connection."""
        self.conn.close()

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
