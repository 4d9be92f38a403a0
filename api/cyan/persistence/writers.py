"""
DuckDB Write Functions

Batch write operations for the persistence layer.

Records are gathered into a Polars DataFrame whose column types are taken
from the record model, then inserted into DuckDB in one statement via
Apache Arrow.
"""

from datetime import datetime
from typing import Any, Iterable, Type, get_args, get_origin

import duckdb
import polars as pl
from pydantic import BaseModel

from .schema_generator import table_name_of

PYTHON_TO_POLARS_TYPE_MAP = {
    str: pl.Utf8,
    int: pl.Int64,
    float: pl.Float64,
    bool: pl.Boolean,
    datetime: pl.Datetime,
}


def polars_schema(model: Type[BaseModel]) -> dict[str, Any]:
    """Build a Polars schema matching a record model's fields.

    Examples:
        >>> from cyan.persistence.models import PostAgentRecord
        >>> polars_schema(PostAgentRecord)["exit_time"]
        Int64
    """
    schema = {}
    for name, field_info in model.model_fields.items():
        py_type = field_info.annotation
        if get_origin(py_type) is not None:
            py_type = next(a for a in get_args(py_type) if a is not type(None))
        schema[name] = PYTHON_TO_POLARS_TYPE_MAP.get(py_type, pl.Utf8)
    return schema


def records_frame(
    model: Type[BaseModel], records: Iterable[BaseModel | dict[str, Any]]
) -> pl.DataFrame:
    """Collect records into a DataFrame typed after the model."""
    rows = [r.model_dump() if isinstance(r, BaseModel) else r for r in records]
    schema = polars_schema(model)
    return pl.DataFrame(
        [[row.get(col) for col in schema] for row in rows],
        schema=schema,
        orient="row",
    )


def write_records(
    conn: duckdb.DuckDBPyConnection,
    model: Type[BaseModel],
    records: Iterable[BaseModel | dict[str, Any]],
) -> int:
    """Write records into the model's table.

    Args:
        conn: DuckDB connection
        model: Record model naming the destination table
        records: Model instances or dicts keyed by field name

    Returns:
        Number of rows written

    Examples:
        >>> count = write_records(conn, ResourceRecord, resources)
        >>> print(f"Wrote {count} resources")
    """
    df = records_frame(model, records)
    if df.is_empty():
        return 0

    columns = ", ".join(f'"{c}"' for c in df.columns)
    table_name = table_name_of(model)

    # Insert into DuckDB (zero-copy via Arrow)
    conn.execute(f"INSERT INTO {table_name} ({columns}) SELECT {columns} FROM df")

    return df.height
