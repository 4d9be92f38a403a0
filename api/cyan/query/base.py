"""
Shared plumbing for metric queries.

Queries read the derived ``post_*`` tables when a run has been
post-processed. Otherwise they fall back to resolving lineage on demand
from the simulator tables, which gives the same answers more slowly.
"""

import logging
from typing import Any, Sequence

import duckdb

from cyan.errors import NotFoundError, StoreError
from cyan.persistence.models import SimulationInfoRecord
from cyan.persistence.registry import get_run_info, normalize_interval
from cyan.post.controller import is_processed
from cyan.post.lineage import Composition, LineageResolver, TransformRules, add_compositions
from cyan.post.walker import Holding, InventoryWalker

logger = logging.getLogger(__name__)

# Agents of a run with their exit time, for runs without post_agents rows
RAW_AGENTS_SQL = """(
    SELECT e.sim_id, e.agent_id, e.kind, e.spec, e.prototype, e.parent_id,
           e.lifetime, e.enter_time, x.exit_time
    FROM agent_entry AS e
    LEFT JOIN agent_exit AS x ON x.sim_id = e.sim_id AND x.agent_id = e.agent_id
)"""


def in_clause(column: str, values: Sequence[Any]) -> tuple[str, list[Any]]:
    """Build ``column IN (?, ...)`` with its parameters.

    Examples:
        >>> in_clause("t.sender_id", [3, 4])
        ('t.sender_id IN (?, ?)', [3, 4])
    """
    placeholders = ", ".join("?" for _ in values)
    return f"{column} IN ({placeholders})", list(values)


class RunQuery:
    """Base for query components bound to one database connection."""

    def __init__(self, conn: duckdb.DuckDBPyConnection, rules: TransformRules | None = None):
        """Initialize query component.

        Args:
            conn: DuckDB connection
            rules: Edge folding rules used when resolving lineage on demand
        """
        self.conn = conn
        self.rules = rules
        self._resolvers: dict[str, LineageResolver] = {}
        self._holdings: dict[str, list[Holding]] = {}

    def info(self, sim_id: str) -> SimulationInfoRecord:
        return get_run_info(self.conn, sim_id)

    def interval(self, sim_id: str, t0: int, t1: int) -> tuple[int, int]:
        return normalize_interval(self.info(sim_id), t0, t1)

    def processed(self, sim_id: str) -> bool:
        return is_processed(self.conn, sim_id)

    def agents_source(self, sim_id: str) -> str:
        return "post_agents" if self.processed(sim_id) else RAW_AGENTS_SQL

    def fetchall(self, query: str, params: list[Any]) -> list[tuple]:
        try:
            return self.conn.execute(query, params).fetchall()
        except duckdb.Error as e:
            raise StoreError(f"query failed: {e}") from e

    def check_agents(self, sim_id: str, agent_ids: Sequence[int]) -> None:
        """Raise NotFoundError unless every agent id exists in the run."""
        if not agent_ids:
            return
        clause, params = in_clause("agent_id", agent_ids)
        found = {
            row[0]
            for row in self.fetchall(
                f"SELECT agent_id FROM agent_entry WHERE sim_id = ? AND {clause}",
                [sim_id, *params],
            )
        }
        missing = sorted(set(agent_ids) - found)
        if missing:
            raise NotFoundError(f"agents {missing} not found in simulation {sim_id}")

    def check_resources(self, sim_id: str, resource_query: str, params: list[Any]) -> None:
        """Raise NotFoundError if a selected resource id is not in the run."""
        missing = self.fetchall(
            f"""
            SELECT q.resource_id
            FROM ({resource_query}) AS q
            LEFT JOIN resources AS r ON r.sim_id = ? AND r.resource_id = q.resource_id
            WHERE r.resource_id IS NULL
            ORDER BY q.resource_id
            LIMIT 1
            """,
            [*params, sim_id],
        )
        if missing:
            raise NotFoundError(f"resource {missing[0][0]} not found")

    # ------------------------------------------------------------------
    # On-demand lineage
    # ------------------------------------------------------------------

    def resolver(self, sim_id: str) -> LineageResolver:
        if sim_id not in self._resolvers:
            logger.info("Simulation %s is not post-processed; resolving lineage on demand", sim_id)
            self._resolvers[sim_id] = LineageResolver.load(self.conn, sim_id, rules=self.rules)
        return self._resolvers[sim_id]

    def holdings(self, sim_id: str) -> list[Holding]:
        if sim_id not in self._holdings:
            arena = self.resolver(sim_id).arena
            self._holdings[sim_id] = InventoryWalker.load(self.conn, sim_id, arena).walk()
        return self._holdings[sim_id]

    def sum_compositions(self, sim_id: str, resource_query: str, params: list[Any]) -> Composition:
        """Total nuclide masses of the resources selected by a query.

        Args:
            sim_id: Run identifier
            resource_query: SELECT whose first column is ``resource_id``; a
                resource appearing in several rows is counted once per row
            params: Parameters of resource_query

        Raises:
            NotFoundError: If a selected resource does not exist
        """
        if self.processed(sim_id):
            self.check_resources(sim_id, resource_query, params)
            rows = self.fetchall(
                f"""
                SELECT c.nuc_id, SUM(c.mass)
                FROM ({resource_query}) AS r
                JOIN post_compositions AS c ON c.resource_id = r.resource_id
                WHERE c.sim_id = ?
                GROUP BY c.nuc_id
                """,
                [*params, sim_id],
            )
            return {nuc: mass for nuc, mass in rows}

        resolver = self.resolver(sim_id)
        return add_compositions(
            resolver.resolve(row[0]) for row in self.fetchall(resource_query, params)
        )
