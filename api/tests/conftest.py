"""
Pytest configuration and shared fixtures.

Provides a small synthetic simulation run that exercises every kind of
provenance edge:

    R1 (t1, 100kg, created by agent 2)
     ├── R2 (t2, 40kg split) --tx1 t2--> agent 3
     │    └── R4 (t5, decay, composition recorded)
     │         └── R5 (t6, decay, nothing recorded) --tx2 t6--> agent 4
     └── R3 (t2, 60kg split)
          └── R7 (t7, combine R3 + R6) --tx3 t8--> agent 5
    R6 (t7, 20kg, created by agent 2) ──┘

Agents: 1 region, 2 mine, 3 reactor (t1..t8), 4 repo, 5 reactor (t3..)
"""

import os
import sqlite3
from pathlib import Path
from typing import Callable, Generator

import pytest

SIM_ID = "aa01"
DURATION = 10
SECONDS_PER_TIMESTEP = 100

U235 = 922350000
U238 = 922380000
PU239 = 942390000


def _seed_run(conn, sim_id: str = SIM_ID, broken: bool = False) -> None:
    """Write the synthetic run into an initialized database."""
    from cyan.persistence.models import (
        AgentEntryRecord,
        AgentExitRecord,
        CompositionRecord,
        PowerRecord,
        ResCreatorRecord,
        ResourceRecord,
        SimulationInfoRecord,
        TransactionRecord,
    )
    from cyan.persistence.writers import write_records

    write_records(
        conn,
        SimulationInfoRecord,
        [
            SimulationInfoRecord(
                sim_id=sim_id,
                handle="synthetic",
                initial_year=2000,
                initial_month=1,
                duration=DURATION,
                seconds_per_timestep=SECONDS_PER_TIMESTEP,
            )
        ],
    )

    agents = [
        (1, "Region", "agents:agents:NullRegion", "USA", -1, 0),
        (2, "Facility", "agents:agents:Source", "mine", 1, 0),
        (3, "Facility", "cycamore:Reactor", "reactor", 1, 1),
        (4, "Facility", "agents:agents:Sink", "repo", 1, 0),
        (5, "Facility", "cycamore:Reactor", "reactor", 1, 3),
    ]
    write_records(
        conn,
        AgentEntryRecord,
        [
            AgentEntryRecord(
                sim_id=sim_id,
                agent_id=agent_id,
                kind=kind,
                spec=spec,
                prototype=proto,
                parent_id=parent,
                enter_time=enter,
            )
            for agent_id, kind, spec, proto, parent, enter in agents
        ],
    )
    write_records(conn, AgentExitRecord, [AgentExitRecord(sim_id=sim_id, agent_id=3, exit_time=8)])

    write_records(
        conn,
        CompositionRecord,
        [
            CompositionRecord(sim_id=sim_id, qual_id=1, nuc_id=U235, mass_frac=0.05),
            CompositionRecord(sim_id=sim_id, qual_id=1, nuc_id=U238, mass_frac=0.95),
            CompositionRecord(sim_id=sim_id, qual_id=2, nuc_id=U235, mass_frac=0.01),
            CompositionRecord(sim_id=sim_id, qual_id=2, nuc_id=PU239, mass_frac=0.01),
            CompositionRecord(sim_id=sim_id, qual_id=2, nuc_id=U238, mass_frac=0.98),
        ],
    )

    # resource_id, time_created, quantity, qual_id, parent1, parent2
    resources = [
        (1, 1, 100.0, 1, 0, 0),
        (2, 2, 40.0, 1, 1, 0),
        (3, 2, 60.0, 1, 1, 0),
        (4, 5, 40.0, 2, 2, 0),
        (5, 6, 40.0, 3, 4, 0),
        (6, 7, 20.0, 1, 0, 0),
        (7, 7, 80.0, 1, 3, 6),
    ]
    if broken:
        resources.append((8, 8, 10.0, 1, 99, 0))
    write_records(
        conn,
        ResourceRecord,
        [
            ResourceRecord(
                sim_id=sim_id,
                resource_id=rid,
                obj_id=rid,
                time_created=t,
                quantity=qty,
                qual_id=qual,
                parent1=p1,
                parent2=p2,
            )
            for rid, t, qty, qual, p1, p2 in resources
        ],
    )
    write_records(
        conn,
        ResCreatorRecord,
        [
            ResCreatorRecord(sim_id=sim_id, resource_id=1, agent_id=2),
            ResCreatorRecord(sim_id=sim_id, resource_id=6, agent_id=2),
        ],
    )
    write_records(
        conn,
        TransactionRecord,
        [
            TransactionRecord(
                sim_id=sim_id, transaction_id=1, sender_id=2, receiver_id=3,
                resource_id=2, commodity="fuel", time=2,
            ),
            TransactionRecord(
                sim_id=sim_id, transaction_id=2, sender_id=3, receiver_id=4,
                resource_id=5, commodity="spent", time=6,
            ),
            TransactionRecord(
                sim_id=sim_id, transaction_id=3, sender_id=2, receiver_id=5,
                resource_id=7, commodity="fuel", time=8,
            ),
        ],
    )
    write_records(
        conn,
        PowerRecord,
        [
            PowerRecord(sim_id=sim_id, agent_id=3, time=2, value=10.0),
            PowerRecord(sim_id=sim_id, agent_id=3, time=3, value=10.0),
            PowerRecord(sim_id=sim_id, agent_id=3, time=4, value=20.0),
            PowerRecord(sim_id=sim_id, agent_id=5, time=8, value=5.0),
        ],
    )


@pytest.fixture
def seed_run() -> Callable[..., None]:
    """The synthetic run writer, for tests that need extra or broken runs."""
    return _seed_run


@pytest.fixture
def db_path(request, tmp_path) -> Generator[Path, None, None]:
    """Provide database path with intelligent cleanup.

    Behavior:
    - Local dev (default): Uses api/test_databases/ for easy inspection
    - CI environment: Uses tmp_path for isolation
    - Keeps database on test failure for debugging
    - Cleans up on test success

    To inspect after test:
        $ duckdb api/test_databases/test_something.duckdb
        D SELECT * FROM post_inventories;
    """
    is_ci = os.getenv("CI") == "true" or os.getenv("GITHUB_ACTIONS") == "true"

    if is_ci:
        db_file = tmp_path / "test.duckdb"
    else:
        test_db_dir = Path(__file__).parent.parent / "test_databases"
        test_db_dir.mkdir(exist_ok=True)

        test_name = request.node.name.replace("[", "_").replace("]", "")
        db_file = test_db_dir / f"{test_name}.duckdb"

        if db_file.exists():
            db_file.unlink()
        wal_file = Path(str(db_file) + ".wal")
        if wal_file.exists():
            wal_file.unlink()

    yield db_file

    failed = hasattr(request.node, "rep_call") and request.node.rep_call.failed
    if not is_ci and not failed:
        for path in (db_file, Path(str(db_file) + ".wal")):
            if path.exists():
                path.unlink()


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Record test outcome on the item so fixtures can see it."""
    outcome = yield
    rep = outcome.get_result()
    setattr(item, f"rep_{rep.when}", rep)


@pytest.fixture
def manager(db_path):
    """Open database with the schema initialized and the synthetic run loaded."""
    from cyan.persistence.connection import DatabaseManager

    manager = DatabaseManager(db_path)
    manager.initialize_schema()
    _seed_run(manager.conn)
    yield manager
    manager.close()


@pytest.fixture
def conn(manager):
    """Connection to the seeded database."""
    return manager.conn


@pytest.fixture
def seeded_db_file(db_path) -> Path:
    """Seeded database file with no connection left open (for CLI tests)."""
    from cyan.persistence.connection import DatabaseManager

    with DatabaseManager(db_path) as manager:
        manager.initialize_schema()
        _seed_run(manager.conn)
    return db_path


@pytest.fixture
def cyclus_sqlite(tmp_path) -> Path:
    """A tiny Cyclus SQLite output file with one run."""
    path = tmp_path / "cyclus.sqlite"
    sim = bytes.fromhex("0123abcd")
    conn = sqlite3.connect(str(path))
    conn.executescript(
        """
        CREATE TABLE Info (SimId BLOB, Handle TEXT, InitialYear INTEGER,
                           InitialMonth INTEGER, Duration INTEGER);
        CREATE TABLE TimeStepDur (SimId BLOB, DurationSecs INTEGER);
        CREATE TABLE AgentEntry (SimId BLOB, AgentId INTEGER, Kind TEXT, Spec TEXT,
                                 Prototype TEXT, ParentId INTEGER, Lifetime INTEGER,
                                 EnterTime INTEGER);
        CREATE TABLE AgentExit (SimId BLOB, AgentId INTEGER, ExitTime INTEGER);
        CREATE TABLE Resources (SimId BLOB, ResourceId INTEGER, ObjId INTEGER, Type TEXT,
                                TimeCreated INTEGER, Quantity REAL, Units TEXT,
                                QualId INTEGER, Parent1 INTEGER, Parent2 INTEGER);
        CREATE TABLE Compositions (SimId BLOB, QualId INTEGER, NucId INTEGER, MassFrac REAL);
        CREATE TABLE ResCreators (SimId BLOB, ResourceId INTEGER, AgentId INTEGER);
        CREATE TABLE Transactions (SimId BLOB, TransactionId INTEGER, SenderId INTEGER,
                                   ReceiverId INTEGER, ResourceId INTEGER, Commodity TEXT,
                                   Time INTEGER);
        """
    )
    conn.execute("INSERT INTO Info VALUES (?, ?, ?, ?, ?)", (sim, "", 2010, 1, 5))
    conn.execute("INSERT INTO TimeStepDur VALUES (?, ?)", (sim, 60))
    conn.executemany(
        "INSERT INTO AgentEntry VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        [
            (sim, 10, "Facility", ":agents:Source", "src", -1, -1, 0),
            (sim, 11, "Facility", ":agents:Sink", "sink", -1, -1, 0),
        ],
    )
    conn.execute("INSERT INTO AgentExit VALUES (?, ?, ?)", (sim, 11, 4))
    conn.execute(
        "INSERT INTO Resources VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (sim, 1, 1, "Material", 0, 10.0, "kg", 7, 0, 0),
    )
    conn.execute("INSERT INTO Compositions VALUES (?, ?, ?, ?)", (sim, 7, U235, 1.0))
    conn.execute("INSERT INTO ResCreators VALUES (?, ?, ?)", (sim, 1, 10))
    conn.execute(
        "INSERT INTO Transactions VALUES (?, ?, ?, ?, ?, ?, ?)",
        (sim, 1, 10, 11, 1, "u", 2),
    )
    conn.commit()
    conn.close()
    return path
