"""
Simulation Registry

Lookups rooted at the ``info`` table: which runs exist, their metadata,
and the agents deployed in them.
"""

from typing import Any

import duckdb

from cyan.errors import NotFoundError, StoreError

from .models import SimulationInfoRecord


def list_simulation_runs(conn: duckdb.DuckDBPyConnection) -> list[str]:
    """List run identifiers present in the database.

    Returns:
        Hex run ids, sorted

    Raises:
        StoreError: If the info table cannot be read
    """
    try:
        rows = conn.execute("SELECT sim_id FROM info ORDER BY sim_id").fetchall()
    except duckdb.Error as e:
        raise StoreError(f"cannot list simulation runs: {e}") from e
    return [row[0] for row in rows]


def get_run_info(conn: duckdb.DuckDBPyConnection, sim_id: str) -> SimulationInfoRecord:
    """Fetch metadata for one run.

    Raises:
        NotFoundError: If the run is not in the database
    """
    columns = list(SimulationInfoRecord.model_fields)
    try:
        row = conn.execute(
            f"SELECT {', '.join(columns)} FROM info WHERE sim_id = ?", [sim_id]
        ).fetchone()
    except duckdb.Error as e:
        raise StoreError(f"cannot read run info: {e}") from e

    if row is None:
        raise NotFoundError(f"simulation {sim_id} not found")
    return SimulationInfoRecord(**dict(zip(columns, row)))


def resolve_sim_id(conn: duckdb.DuckDBPyConnection, sim_id: str | None = None) -> str:
    """Pick the run a command should operate on.

    An empty id selects the first run in the database.

    Raises:
        NotFoundError: If the database holds no runs or the id is unknown
    """
    if sim_id:
        return get_run_info(conn, sim_id.lower()).sim_id

    ids = list_simulation_runs(conn)
    if not ids:
        raise NotFoundError("database contains no simulation runs")
    return ids[0]


def final_timestep(info: SimulationInfoRecord) -> int:
    """Last timestep of a run."""
    return info.duration - 1


def normalize_interval(info: SimulationInfoRecord, t0: int, t1: int) -> tuple[int, int]:
    """Apply the interval convention: t1 == -1 means the final timestep.

    Raises:
        ValueError: If t0 is after t1
    """
    if t1 == -1:
        t1 = final_timestep(info)
    if t0 > t1:
        raise ValueError(f"interval start {t0} is after end {t1}")
    return t0, t1


def all_agents(
    conn: duckdb.DuckDBPyConnection, sim_id: str, prototype: str = ""
) -> list[dict[str, Any]]:
    """List the agents of a run, optionally restricted to one prototype.

    Reads the raw entry/exit tables so it works before post-processing.
    """
    query = """
        SELECT e.agent_id, e.kind, e.spec, e.prototype, e.parent_id,
               e.lifetime, e.enter_time, x.exit_time
        FROM agent_entry AS e
        LEFT JOIN agent_exit AS x ON x.sim_id = e.sim_id AND x.agent_id = e.agent_id
        WHERE e.sim_id = ?
    """
    params: list[Any] = [sim_id]
    if prototype:
        query += " AND e.prototype = ?"
        params.append(prototype)
    query += " ORDER BY e.agent_id"

    try:
        cursor = conn.execute(query, params)
        columns = [d[0] for d in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]
    except duckdb.Error as e:
        raise StoreError(f"cannot list agents: {e}") from e


def sim_stat(conn: duckdb.DuckDBPyConnection, sim_id: str) -> dict[str, Any]:
    """Summarize one run: metadata plus event counts and post-processing state."""
    info = get_run_info(conn, sim_id)

    def count(table: str) -> int:
        return conn.execute(f"SELECT COUNT(*) FROM {table} WHERE sim_id = ?", [sim_id]).fetchone()[0]

    try:
        processed = conn.execute(
            "SELECT COUNT(*) FROM post_state WHERE sim_id = ?", [sim_id]
        ).fetchone()[0] > 0
    except duckdb.CatalogException:
        processed = False

    try:
        return {
            **info.model_dump(),
            "num_agents": count("agent_entry"),
            "num_resources": count("resources"),
            "num_transactions": count("transactions"),
            "post_processed": processed,
        }
    except duckdb.Error as e:
        raise StoreError(f"cannot summarize simulation {sim_id}: {e}") from e
