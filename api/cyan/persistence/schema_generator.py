"""
DDL Generation from Pydantic Models

Automatically generates CREATE TABLE and CREATE INDEX statements from Pydantic models.
This keeps both the simulator tables and the derived ``post_*`` tables in sync
with the model definitions in ``models.py``.
"""

import inspect
from datetime import datetime
from enum import Enum
from typing import Any, Type, get_args, get_origin

from pydantic import BaseModel


# ============================================================================
# Type Mapping
# ============================================================================

PYTHON_TO_SQL_TYPE_MAP = {
    str: "VARCHAR",
    int: "BIGINT",
    float: "DOUBLE",
    bool: "BOOLEAN",
    datetime: "TIMESTAMP",
}


def python_type_to_sql_type(py_type: Any) -> str:
    """Convert Python type annotation to SQL type.

    Args:
        py_type: Python type annotation (can be Optional, Enum, etc.)

    Returns:
        SQL type string (VARCHAR, BIGINT, etc.)

    Examples:
        >>> python_type_to_sql_type(float)
        'DOUBLE'
        >>> python_type_to_sql_type(int | None)
        'BIGINT'
    """
    origin = get_origin(py_type)
    if origin is not None:
        # Optional[X] / X | None: use the first non-None member
        for arg in get_args(py_type):
            if arg is not type(None):
                py_type = arg
                break

    if inspect.isclass(py_type) and issubclass(py_type, Enum):
        return "VARCHAR"

    return PYTHON_TO_SQL_TYPE_MAP.get(py_type, "VARCHAR")


def table_name_of(model: Type[BaseModel]) -> str:
    """Return the table name configured on a record model.

    Raises:
        ValueError: If model is missing model_config["table_name"]
    """
    config = getattr(model, "model_config", None)
    if not config or "table_name" not in config:
        raise ValueError(f"Model {model.__name__} missing model_config['table_name']")
    return config["table_name"]


# ============================================================================
# DDL Generation
# ============================================================================


def generate_create_table_ddl(model: Type[BaseModel]) -> str:
    """Generate CREATE TABLE DDL from Pydantic model.

    Args:
        model: Pydantic model class with model_config["table_name"]

    Returns:
        SQL CREATE TABLE statement

    Raises:
        ValueError: If model is missing required configuration

    Examples:
        >>> from cyan.persistence.models import TransactionRecord
        >>> ddl = generate_create_table_ddl(TransactionRecord)
        >>> "CREATE TABLE IF NOT EXISTS transactions" in ddl
        True
    """
    table_name = table_name_of(model)
    primary_key = model.model_config.get("primary_key", [])

    columns = []
    for field_name, field_info in model.model_fields.items():
        py_type = field_info.annotation
        sql_type = python_type_to_sql_type(py_type)
        null_constraint = "" if _is_field_optional(py_type) else " NOT NULL"
        columns.append(f"    {field_name} {sql_type}{null_constraint}")

    if primary_key:
        columns.append(f"    PRIMARY KEY ({', '.join(primary_key)})")

    ddl = f"CREATE TABLE IF NOT EXISTS {table_name} (\n"
    ddl += ",\n".join(columns)
    ddl += "\n);"

    return ddl


def generate_create_indexes_ddl(model: Type[BaseModel]) -> list[str]:
    """Generate CREATE INDEX statements from Pydantic model.

    Args:
        model: Pydantic model class with model_config["indexes"]

    Returns:
        List of SQL CREATE INDEX statements (empty if the model declares none)
    """
    indexes = model.model_config.get("indexes") or []
    table_name = table_name_of(model)

    return [
        f"CREATE INDEX IF NOT EXISTS {index_name} ON {table_name} ({', '.join(columns)});"
        for index_name, columns in indexes
    ]


def generate_schema_ddl(
    models: list[Type[BaseModel]], include_indexes: bool = True
) -> list[str]:
    """Generate DDL statements for a group of models.

    Args:
        models: Record models to create tables for
        include_indexes: Whether to emit each model's secondary indexes

    Returns:
        Statements in execution order, each table followed by its indexes

    Examples:
        >>> from cyan.persistence.models import DERIVED_MODELS
        >>> statements = generate_schema_ddl(DERIVED_MODELS, include_indexes=False)
        >>> len(statements) == len(DERIVED_MODELS)
        True
    """
    statements = []
    for model in models:
        statements.append(generate_create_table_ddl(model))
        if include_indexes:
            statements.extend(generate_create_indexes_ddl(model))
    return statements


def generate_full_schema_ddl() -> str:
    """Generate complete schema DDL for simulator and derived tables.

    Examples:
        >>> ddl = generate_full_schema_ddl()
        >>> "resources" in ddl and "post_inventories" in ddl
        True
    """
    from .models import DERIVED_MODELS, SIMULATOR_MODELS

    return "\n\n".join(generate_schema_ddl(SIMULATOR_MODELS + DERIVED_MODELS))


# ============================================================================
# Helper Functions
# ============================================================================


def _is_field_optional(py_type: Any) -> bool:
    """Check if a field is nullable (its annotation includes None)."""
    origin = get_origin(py_type)
    if origin is not None:
        return type(None) in get_args(py_type)
    return False


# ============================================================================
# Schema Validation
# ============================================================================


def validate_table_schema(conn: Any, model: Type[BaseModel]) -> tuple[bool, list[str]]:
    """Validate that database table schema matches Pydantic model.

    Args:
        conn: DuckDB connection
        model: Pydantic model to validate against

    Returns:
        Tuple of (is_valid, list of error messages)

    Examples:
        >>> import duckdb
        >>> from cyan.persistence.models import ResourceRecord
        >>> conn = duckdb.connect(':memory:')
        >>> is_valid, errors = validate_table_schema(conn, ResourceRecord)
        >>> is_valid
        False
    """
    try:
        table_name = table_name_of(model)
    except ValueError as e:
        return False, [str(e)]

    try:
        # DuckDB DESCRIBE returns: column_name, column_type, null, key, default, extra
        result = conn.execute(f"DESCRIBE {table_name}").fetchall()
        db_columns = {row[0]: row[1] for row in result}
    except Exception as e:
        return False, [f"Table {table_name} does not exist: {e}"]

    errors = []
    model_fields = set(model.model_fields.keys())
    db_fields = set(db_columns.keys())

    for col in sorted(model_fields - db_fields):
        errors.append(f"Column '{col}' missing from table {table_name}")

    extra_columns = db_fields - model_fields
    if extra_columns:
        errors.append(f"Unexpected columns in {table_name}: {sorted(extra_columns)}")

    return len(errors) == 0, errors
