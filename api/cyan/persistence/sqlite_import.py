"""
Cyclus SQLite Import

Copies the simulator's native SQLite output into the DuckDB schema defined
in ``models.py``. Run ids (16-byte blobs) become lowercase hex strings.

Runs already present in the DuckDB database are skipped, so importing the
same file twice is harmless.
"""

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Type

import duckdb
from pydantic import BaseModel

from cyan.errors import StoreError

from .models import (
    DEFAULT_SECONDS_PER_TIMESTEP,
    AgentEntryRecord,
    AgentExitRecord,
    CompositionRecord,
    PowerRecord,
    ResCreatorRecord,
    ResourceRecord,
    SimulationInfoRecord,
    TransactionRecord,
)
from .registry import list_simulation_runs
from .writers import write_records

logger = logging.getLogger(__name__)

BATCH_SIZE = 50_000


@dataclass(frozen=True)
class TableMapping:
    """Where one simulator table lands in the DuckDB schema."""

    source: str
    model: Type[BaseModel]
    # destination field -> source column
    columns: dict[str, str]
    required: bool = True


TABLE_MAPPINGS = [
    TableMapping(
        "AgentEntry",
        AgentEntryRecord,
        {
            "agent_id": "AgentId",
            "kind": "Kind",
            "spec": "Spec",
            "prototype": "Prototype",
            "parent_id": "ParentId",
            "lifetime": "Lifetime",
            "enter_time": "EnterTime",
        },
    ),
    TableMapping(
        "AgentExit",
        AgentExitRecord,
        {"agent_id": "AgentId", "exit_time": "ExitTime"},
        required=False,
    ),
    TableMapping(
        "Resources",
        ResourceRecord,
        {
            "resource_id": "ResourceId",
            "obj_id": "ObjId",
            "type": "Type",
            "time_created": "TimeCreated",
            "quantity": "Quantity",
            "units": "Units",
            "qual_id": "QualId",
            "parent1": "Parent1",
            "parent2": "Parent2",
        },
    ),
    TableMapping(
        "Compositions",
        CompositionRecord,
        {"qual_id": "QualId", "nuc_id": "NucId", "mass_frac": "MassFrac"},
    ),
    TableMapping(
        "ResCreators",
        ResCreatorRecord,
        {"resource_id": "ResourceId", "agent_id": "AgentId"},
    ),
    TableMapping(
        "Transactions",
        TransactionRecord,
        {
            "transaction_id": "TransactionId",
            "sender_id": "SenderId",
            "receiver_id": "ReceiverId",
            "resource_id": "ResourceId",
            "commodity": "Commodity",
            "time": "Time",
        },
    ),
    TableMapping(
        "TimeSeriesPower",
        PowerRecord,
        {"agent_id": "AgentId", "time": "Time", "value": "Value"},
        required=False,
    ),
]


def sim_id_hex(value: Any) -> str:
    """Normalize a simulator run id (blob or text) to lowercase hex.

    Examples:
        >>> sim_id_hex(bytes([0xAB, 0x01]))
        'ab01'
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value).lower()


def import_cyclus_sqlite(
    sqlite_path: str | Path,
    conn: duckdb.DuckDBPyConnection,
    seconds_per_timestep: int = DEFAULT_SECONDS_PER_TIMESTEP,
) -> list[str]:
    """Import every run of a Cyclus SQLite database.

    Args:
        sqlite_path: Simulator output file
        conn: DuckDB connection with the simulator schema initialized
        seconds_per_timestep: Timestep length for runs that do not record one

    Returns:
        Hex ids of the runs imported by this call

    Raises:
        FileNotFoundError: If sqlite_path does not exist
        StoreError: If the file cannot be read as a Cyclus database or a write fails
    """
    sqlite_path = Path(sqlite_path)
    if not sqlite_path.exists():
        raise FileNotFoundError(f"SQLite database not found: {sqlite_path}")

    source = sqlite3.connect(str(sqlite_path))
    try:
        try:
            tables = {
                row[0]
                for row in source.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
            if "Info" not in tables:
                raise StoreError(f"{sqlite_path} has no Info table; not a Cyclus database")
            source_infos = _read_infos(source, tables, seconds_per_timestep)
        except sqlite3.Error as e:
            raise StoreError(f"cannot read {sqlite_path}: {e}") from e

        existing = set(list_simulation_runs(conn))
        infos = []
        for info in source_infos:
            if info.sim_id in existing:
                logger.info("Simulation %s already imported; skipping", info.sim_id)
            else:
                infos.append(info)
        if not infos:
            return []

        wanted = {info.sim_id for info in infos}
        conn.begin()
        try:
            write_records(conn, SimulationInfoRecord, infos)
            for mapping in TABLE_MAPPINGS:
                if mapping.source not in tables:
                    if mapping.required:
                        raise StoreError(f"{sqlite_path} is missing table {mapping.source}")
                    logger.debug("Optional table %s absent; skipping", mapping.source)
                    continue
                count = _copy_table(source, conn, mapping, wanted)
                logger.debug("Imported %d rows from %s", count, mapping.source)
            conn.commit()
        except (duckdb.Error, sqlite3.Error) as e:
            conn.rollback()
            raise StoreError(f"import of {sqlite_path} failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
    finally:
        source.close()

    logger.info("Imported %d simulation(s) from %s", len(infos), sqlite_path)
    return sorted(wanted)


def _read_infos(
    source: sqlite3.Connection, tables: set[str], seconds_per_timestep: int
) -> list[SimulationInfoRecord]:
    durations: dict[str, int] = {}
    if "TimeStepDur" in tables:
        for sim_id, secs in source.execute("SELECT SimId, DurationSecs FROM TimeStepDur"):
            durations[sim_id_hex(sim_id)] = secs

    infos = []
    rows = source.execute("SELECT SimId, Handle, InitialYear, InitialMonth, Duration FROM Info")
    for sim_id, handle, year, month, duration in rows:
        sim_id = sim_id_hex(sim_id)
        infos.append(
            SimulationInfoRecord(
                sim_id=sim_id,
                handle=handle,
                initial_year=year,
                initial_month=month,
                duration=duration,
                seconds_per_timestep=durations.get(sim_id, seconds_per_timestep),
            )
        )
    return infos


def _copy_table(
    source: sqlite3.Connection,
    conn: duckdb.DuckDBPyConnection,
    mapping: TableMapping,
    wanted: set[str],
) -> int:
    fields = list(mapping.columns)
    select = ", ".join(["SimId", *mapping.columns.values()])
    cursor = source.execute(f"SELECT {select} FROM {mapping.source}")

    total = 0
    while True:
        batch = cursor.fetchmany(BATCH_SIZE)
        if not batch:
            return total
        records = []
        for row in batch:
            sim_id = sim_id_hex(row[0])
            if sim_id in wanted:
                records.append({"sim_id": sim_id, **dict(zip(fields, row[1:]))})
        total += write_records(conn, mapping.model, records)
