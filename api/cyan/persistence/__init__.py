"""
Persistence layer for cyan.

Provides DuckDB-based storage for the simulator event log and the derived
tables written by post-processing.
"""

from .connection import DatabaseManager
from .models import (
    DERIVED_MODELS,
    SIMULATOR_MODELS,
    AgentEntryRecord,
    AgentExitRecord,
    CompositionRecord,
    PowerRecord,
    ResCreatorRecord,
    ResourceRecord,
    SimulationInfoRecord,
    TransactionRecord,
)
from .registry import get_run_info, list_simulation_runs, resolve_sim_id

__all__ = [
    "DERIVED_MODELS",
    "SIMULATOR_MODELS",
    "AgentEntryRecord",
    "AgentExitRecord",
    "CompositionRecord",
    "DatabaseManager",
    "PowerRecord",
    "ResCreatorRecord",
    "ResourceRecord",
    "SimulationInfoRecord",
    "TransactionRecord",
    "get_run_info",
    "list_simulation_runs",
    "resolve_sim_id",
]
