"""
Post-Processing Controller

Materializes the derived ``post_*`` tables that metric queries read, at most
once per simulation run.

Usage:
    prepare(conn)
    for sim_id in list_runs(conn):
        PostProcessor(conn, sim_id).walk()   # PROCESSED or ALREADY_PROCESSED
    finish(conn)

Each walk runs in a single DuckDB transaction and writes the run's
``post_state`` marker last, so a failed walk leaves nothing behind and can
simply be retried.
"""

import logging
from datetime import datetime
from enum import Enum

import duckdb

from cyan.errors import StoreError
from cyan.persistence.models import (
    DERIVED_MODELS,
    PostCompositionRecord,
    PostInventoryRecord,
    PostStateRecord,
)
from cyan.persistence.registry import get_run_info, list_simulation_runs
from cyan.persistence.schema_generator import (
    generate_create_indexes_ddl,
    generate_schema_ddl,
    table_name_of,
)
from cyan.persistence.writers import write_records
from cyan.timer import Timer

from .lineage import LineageResolver, ResourceArena, TransformRules
from .walker import InventoryWalker

logger = logging.getLogger(__name__)


class WalkStatus(str, Enum):
    """Outcome of a successful walk."""

    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"


# ============================================================================
# Session-level operations
# ============================================================================


def prepare(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the derived tables if they do not exist yet. Idempotent."""
    try:
        for statement in generate_schema_ddl(DERIVED_MODELS, include_indexes=False):
            conn.execute(statement)
    except duckdb.Error as e:
        raise StoreError(f"cannot prepare derived tables: {e}") from e


def list_runs(conn: duckdb.DuckDBPyConnection) -> list[str]:
    """Run identifiers currently present in the database."""
    return list_simulation_runs(conn)


def finish(conn: duckdb.DuckDBPyConnection) -> None:
    """Index the derived tables and flush them to disk.

    Called once after all walks of a session.
    """
    try:
        for model in DERIVED_MODELS:
            for statement in generate_create_indexes_ddl(model):
                conn.execute(statement)
        conn.execute("CHECKPOINT")
    except duckdb.Error as e:
        raise StoreError(f"cannot finalize derived tables: {e}") from e


def is_processed(conn: duckdb.DuckDBPyConnection, sim_id: str) -> bool:
    """Whether a run's post-processing marker is set."""
    try:
        row = conn.execute("SELECT 1 FROM post_state WHERE sim_id = ?", [sim_id]).fetchone()
    except duckdb.CatalogException:
        return False
    except duckdb.Error as e:
        raise StoreError(f"cannot read post-processing state: {e}") from e
    return row is not None


def clear(conn: duckdb.DuckDBPyConnection, sim_id: str) -> None:
    """Remove a run's derived rows and marker so it can be processed again."""
    conn.begin()
    try:
        # Marker first: a partial clear never leaves a marked run
        for model in reversed(DERIVED_MODELS):
            conn.execute(f"DELETE FROM {table_name_of(model)} WHERE sim_id = ?", [sim_id])
        conn.commit()
    except duckdb.Error as e:
        conn.rollback()
        raise StoreError(f"cannot clear derived tables for {sim_id}: {e}") from e
    logger.info("Cleared post-processing state for %s", sim_id)


def walk_all(
    conn: duckdb.DuckDBPyConnection,
    rules: TransformRules | None = None,
    timer: Timer | None = None,
) -> dict[str, WalkStatus]:
    """Walk every run in the database.

    Returns:
        Mapping of run id to its walk status

    Raises:
        StoreError, LineageBrokenError: From the first run that fails
    """
    return {
        sim_id: PostProcessor(conn, sim_id, rules=rules, timer=timer).walk()
        for sim_id in list_runs(conn)
    }


def post_process_all(
    conn: duckdb.DuckDBPyConnection,
    rules: TransformRules | None = None,
    timer: Timer | None = None,
) -> dict[str, WalkStatus]:
    """Prepare, walk every run, and finish: the pass run before any query."""
    prepare(conn)
    statuses = walk_all(conn, rules=rules, timer=timer)
    finish(conn)
    return statuses


# ============================================================================
# Per-run derivation
# ============================================================================


class PostProcessor:
    """Runs the derivation steps for one simulation run.

    Steps, in order:
    1. agents: join agent entry and exit events
    2. compositions: resolve every resource state through its lineage
    3. inventories: replay transactions into holding intervals
    4. mark: record the run as processed
    """

    def __init__(
        self,
        conn: duckdb.DuckDBPyConnection,
        sim_id: str,
        rules: TransformRules | None = None,
        timer: Timer | None = None,
    ):
        self.conn = conn
        self.sim_id = sim_id
        self.rules = rules
        self.timer = timer or Timer()

    def walk(self) -> WalkStatus:
        """Derive all post-processed state for the run.

        Returns:
            WalkStatus.ALREADY_PROCESSED if the marker was set before this
            call (nothing is touched), otherwise WalkStatus.PROCESSED

        Raises:
            NotFoundError: If the run does not exist
            LineageBrokenError: If the provenance graph is inconsistent
            StoreError: If reading or writing the database fails
        """
        if is_processed(self.conn, self.sim_id):
            logger.debug("Simulation %s already post-processed", self.sim_id)
            return WalkStatus.ALREADY_PROCESSED

        get_run_info(self.conn, self.sim_id)
        logger.info("Post-processing simulation %s", self.sim_id)

        self.timer.start("load")
        arena = ResourceArena.load(self.conn, self.sim_id)
        resolver = LineageResolver.load(self.conn, self.sim_id, rules=self.rules, arena=arena)
        walker = InventoryWalker.load(self.conn, self.sim_id, arena)
        self.timer.stop("load")

        self.timer.start("compositions")
        compositions = resolver.resolve_all()
        self.timer.stop("compositions")

        self.timer.start("inventories")
        holdings = walker.walk()
        self.timer.stop("inventories")

        self._discard_partial()

        self.timer.start("write")
        self.conn.begin()
        try:
            self._write_agents()
            write_records(
                self.conn,
                PostCompositionRecord,
                (
                    {"sim_id": self.sim_id, "resource_id": rid, "nuc_id": nuc, "mass": mass}
                    for rid, comp in compositions.items()
                    for nuc, mass in comp.items()
                ),
            )
            write_records(
                self.conn,
                PostInventoryRecord,
                (
                    {
                        "sim_id": self.sim_id,
                        "resource_id": h.resource_id,
                        "agent_id": h.agent_id,
                        "start_time": h.start_time,
                        "end_time": h.end_time,
                        "quantity": h.quantity,
                    }
                    for h in holdings
                ),
            )
            write_records(
                self.conn,
                PostStateRecord,
                [
                    PostStateRecord(
                        sim_id=self.sim_id,
                        processed_at=datetime.now(),
                        num_resources=len(compositions),
                        num_inventories=len(holdings),
                    )
                ],
            )
            self.conn.commit()
        except duckdb.Error as e:
            self.conn.rollback()
            raise StoreError(f"post-processing {self.sim_id} failed: {e}") from e
        except Exception:
            self.conn.rollback()
            raise
        finally:
            self.timer.stop("write")

        for label, seconds in self.timer.totals.items():
            logger.debug("  %s: %.3fs", label, seconds)
        logger.info(
            "Post-processed %s: %d resources, %d holdings",
            self.sim_id,
            len(compositions),
            len(holdings),
        )
        return WalkStatus.PROCESSED

    def _write_agents(self) -> None:
        self.conn.execute(
            """
            INSERT INTO post_agents
                (sim_id, agent_id, kind, spec, prototype, parent_id, lifetime, enter_time, exit_time)
            SELECT e.sim_id, e.agent_id, e.kind, e.spec, e.prototype, e.parent_id,
                   e.lifetime, e.enter_time, x.exit_time
            FROM agent_entry AS e
            LEFT JOIN agent_exit AS x ON x.sim_id = e.sim_id AND x.agent_id = e.agent_id
            WHERE e.sim_id = ?
            """,
            [self.sim_id],
        )

    def _discard_partial(self) -> None:
        """Drop derived rows of an unmarked run left by an interrupted session."""
        try:
            for model in DERIVED_MODELS:
                self.conn.execute(
                    f"DELETE FROM {table_name_of(model)} WHERE sim_id = ?", [self.sim_id]
                )
        except duckdb.Error as e:
            raise StoreError(f"cannot reset derived tables for {self.sim_id}: {e}") from e
