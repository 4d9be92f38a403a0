"""Custom command - run a named SQL query against the database.

Queries come from the ``custom_queries`` section of the configuration, or
from a JSON file mapping command names to SQL text. Positional arguments
are bound to the query's ``?`` placeholders in order.
"""

import json
from pathlib import Path

import duckdb
import typer
from typing_extensions import Annotated

from cyan.cli.output import log_error, print_rows
from cyan.cli.session import get_state, metric_session


def load_custom_queries(path: Path) -> dict[str, str]:
    """Read a {name: sql} mapping from a JSON file."""
    with open(path) as f:
        queries = json.load(f)
    if not isinstance(queries, dict):
        raise ValueError(f"{path} must contain a JSON object of name -> SQL")
    return {str(k): str(v) for k, v in queries.items()}


def custom_query(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Name of the query to run")],
    args: Annotated[list[str] | None, typer.Argument(help="Query parameters")] = None,
    custom: Annotated[
        Path | None,
        typer.Option("--custom", help="JSON file mapping command names to SQL"),
    ] = None,
) -> None:
    """Run a named SQL query and print the result as a table."""
    state = get_state(ctx)
    queries = dict(state.config.custom_queries)
    if custom is not None:
        try:
            queries.update(load_custom_queries(custom))
        except (OSError, ValueError) as e:
            log_error(f"cannot read custom queries: {e}")
            raise typer.Exit(code=1)

    sql = queries.get(name)
    if sql is None:
        log_error(f"Invalid command {name}")
        raise typer.Exit(code=1)

    with metric_session(state) as session:
        try:
            cursor = session.conn.execute(sql, list(args or []))
        except duckdb.Error as e:
            log_error(f"query {name} failed: {e}")
            raise typer.Exit(code=1)
        columns = [d[0] for d in cursor.description]
        print_rows(columns, cursor.fetchall())
