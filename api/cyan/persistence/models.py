"""
Pydantic Models for Persistence Layer

These models are the single source of truth for database schema.
All DDL generation is derived from these models.

Two groups of tables live in the same database:
- Simulator tables: the raw event log written by the fuel-cycle simulator
- Derived tables: ``post_*`` tables materialized once per run by post-processing
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# Seconds in one default simulator timestep (1/12 of a year)
DEFAULT_SECONDS_PER_TIMESTEP = 2629846

# Prefix reserved for tables written by post-processing
DERIVED_TABLE_PREFIX = "post_"


# ============================================================================
# Simulator Tables
# ============================================================================


class SimulationInfoRecord(BaseModel):
    """Run metadata, one row per simulation run in the database."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="info",
        primary_key=["sim_id"],
    )

    sim_id: str = Field(..., description="Run identifier (hex of the opaque byte id)")
    handle: str | None = Field(None, description="User supplied run label")
    initial_year: int = Field(..., description="Calendar year of timestep 0")
    initial_month: int = Field(..., description="Calendar month of timestep 0")
    duration: int = Field(..., description="Number of timesteps simulated", ge=0)
    seconds_per_timestep: int = Field(
        DEFAULT_SECONDS_PER_TIMESTEP, description="Length of one timestep in seconds", gt=0
    )


class AgentEntryRecord(BaseModel):
    """Agent deployment event."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="agent_entry",
        primary_key=["sim_id", "agent_id"],
        indexes=[("idx_agent_entry_proto", ["sim_id", "prototype"])],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    agent_id: int = Field(..., description="Agent identifier, unique within a run")
    kind: str = Field(..., description="Agent kind (Region, Inst, Facility)")
    spec: str = Field(..., description="Archetype specification")
    prototype: str = Field(..., description="Prototype name")
    parent_id: int = Field(-1, description="Parent agent (-1 for none)")
    lifetime: int = Field(-1, description="Declared lifetime in timesteps (-1 for unlimited)")
    enter_time: int = Field(..., description="Timestep the agent was deployed")


class AgentExitRecord(BaseModel):
    """Agent decommissioning event."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="agent_exit",
        primary_key=["sim_id", "agent_id"],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    agent_id: int = Field(..., description="Agent identifier")
    exit_time: int = Field(..., description="Timestep the agent was decommissioned")


class ResourceRecord(BaseModel):
    """One state of a resource object.

    Split, combine, and decay events each produce a new resource id whose
    parents point at the state(s) it was derived from. A parent id of 0 means
    no parent.
    """

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="resources",
        primary_key=["sim_id", "resource_id"],
        indexes=[("idx_resources_time", ["sim_id", "time_created"])],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    resource_id: int = Field(..., description="Resource identifier, unique within a run")
    obj_id: int = Field(0, description="Tracked object identifier")
    type: str = Field("Material", description="Resource type (Material, Product)")
    time_created: int = Field(..., description="Timestep the resource state was created")
    quantity: float = Field(..., description="Quantity in units", ge=0)
    units: str = Field("kg", description="Quantity units")
    qual_id: int = Field(..., description="Quality (composition) identifier")
    parent1: int = Field(0, description="Primary parent resource (0 for none)")
    parent2: int = Field(0, description="Secondary parent resource (0 for none)")


class CompositionRecord(BaseModel):
    """One nuclide entry of a recorded material composition."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="compositions",
        primary_key=["sim_id", "qual_id", "nuc_id"],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    qual_id: int = Field(..., description="Quality identifier")
    nuc_id: int = Field(..., description="Nuclide identifier (e.g. 922350000)")
    mass_frac: float = Field(..., description="Mass fraction of the nuclide", ge=0)


class ResCreatorRecord(BaseModel):
    """Agent that created a resource from nothing."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="res_creators",
        primary_key=["sim_id", "resource_id"],
        indexes=[("idx_res_creators_agent", ["sim_id", "agent_id"])],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    resource_id: int = Field(..., description="Created resource")
    agent_id: int = Field(..., description="Creating agent")


class TransactionRecord(BaseModel):
    """Resource moved from one agent to another."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="transactions",
        primary_key=["sim_id", "transaction_id"],
        indexes=[
            ("idx_tx_sim_time", ["sim_id", "time"]),
            ("idx_tx_resource", ["sim_id", "resource_id"]),
        ],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    transaction_id: int = Field(..., description="Transaction identifier")
    sender_id: int = Field(..., description="Sending agent")
    receiver_id: int = Field(..., description="Receiving agent")
    resource_id: int = Field(..., description="Transacted resource")
    commodity: str = Field(..., description="Commodity label")
    time: int = Field(..., description="Timestep of the transaction")


class PowerRecord(BaseModel):
    """Thermal power generated by an agent during one timestep."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="power",
        primary_key=["sim_id", "agent_id", "time"],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    agent_id: int = Field(..., description="Generating agent")
    time: int = Field(..., description="Timestep")
    value: float = Field(..., description="Power in MW")


# ============================================================================
# Derived Tables (written by post-processing only)
# ============================================================================


class PostAgentRecord(BaseModel):
    """Agent entry joined with its exit, one row per agent."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="post_agents",
        primary_key=["sim_id", "agent_id"],
        indexes=[("idx_post_agents_proto", ["sim_id", "prototype"])],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    agent_id: int = Field(..., description="Agent identifier")
    kind: str = Field(..., description="Agent kind")
    spec: str = Field(..., description="Archetype specification")
    prototype: str = Field(..., description="Prototype name")
    parent_id: int = Field(..., description="Parent agent (-1 for none)")
    lifetime: int = Field(..., description="Declared lifetime")
    enter_time: int = Field(..., description="Deployment timestep")
    exit_time: int | None = Field(None, description="Decommission timestep (None if never)")


class PostCompositionRecord(BaseModel):
    """Lineage-resolved mass of one nuclide in one resource."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="post_compositions",
        primary_key=["sim_id", "resource_id", "nuc_id"],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    resource_id: int = Field(..., description="Resource identifier")
    nuc_id: int = Field(..., description="Nuclide identifier")
    mass: float = Field(..., description="Mass of the nuclide in kg")


class PostInventoryRecord(BaseModel):
    """Interval [start_time, end_time) during which an agent held a resource."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="post_inventories",
        primary_key=["sim_id", "resource_id", "start_time"],
        indexes=[
            ("idx_post_inv_agent", ["sim_id", "agent_id"]),
            ("idx_post_inv_time", ["sim_id", "start_time", "end_time"]),
        ],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    resource_id: int = Field(..., description="Held resource")
    agent_id: int = Field(..., description="Holding agent")
    start_time: int = Field(..., description="First timestep held")
    end_time: int = Field(..., description="First timestep no longer held")
    quantity: float = Field(..., description="Resource quantity")


class PostStateRecord(BaseModel):
    """Marker written once a run has been fully post-processed."""

    model_config = ConfigDict(  # type: ignore[typeddict-unknown-key]
        table_name="post_state",
        primary_key=["sim_id"],
    )

    sim_id: str = Field(..., description="Foreign key to info table")
    processed_at: datetime = Field(..., description="When derivation completed")
    num_resources: int = Field(0, description="Resources resolved")
    num_inventories: int = Field(0, description="Holding intervals written")


SIMULATOR_MODELS: list[type[BaseModel]] = [
    SimulationInfoRecord,
    AgentEntryRecord,
    AgentExitRecord,
    ResourceRecord,
    CompositionRecord,
    ResCreatorRecord,
    TransactionRecord,
    PowerRecord,
]

DERIVED_MODELS: list[type[BaseModel]] = [
    PostAgentRecord,
    PostCompositionRecord,
    PostInventoryRecord,
    PostStateRecord,
]
