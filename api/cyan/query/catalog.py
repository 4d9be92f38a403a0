"""
Metric Catalog

The closed set of metrics the engine answers, each callable as
``evaluate(name, sim_id, **args)``. Names outside the set raise NotFoundError.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Callable

import duckdb

from cyan.errors import NotFoundError
from cyan.persistence.registry import all_agents, list_simulation_runs, sim_stat
from cyan.post.lineage import TransformRules

from .flow import FlowEngine
from .inventory import InventoryReconstructor


class MetricName(str, Enum):
    """Metrics exposed to the CLI."""

    AGENTS = "agents"
    SIMS = "sims"
    INV = "inv"
    CREATED = "created"
    DEPLOYSERIES = "deployseries"
    FLOW = "flow"
    INVSERIES = "invseries"
    FLOWGRAPH = "flowgraph"
    ENERGY = "energy"


METRIC_HELP = {
    MetricName.AGENTS: "list all agents in the simulation",
    MetricName.SIMS: "list all simulations in the database",
    MetricName.INV: "show inventory of one or more agents at a specific timestep",
    MetricName.CREATED: "show material created by one or more agents between specific timesteps",
    MetricName.DEPLOYSERIES: "print a time-series of a prototype's total active deployments",
    MetricName.FLOW: "show total transacted material between two groups of agents between specific timesteps",
    MetricName.INVSERIES: "print a time series of an agent's inventory for specified isotopes",
    MetricName.FLOWGRAPH: "print a graphviz dot graph of resource arcs between facilities",
    MetricName.ENERGY: "print thermal energy (J) generated by the simulation between 2 timesteps",
}


class MetricCatalog:
    """Uniform entry point over the metric queries of one database.

    Usage:
        catalog = MetricCatalog(conn)
        catalog.evaluate("inv", sim_id, timestep=10, agent_ids=[3])
    """

    def __init__(self, conn: duckdb.DuckDBPyConnection, rules: TransformRules | None = None):
        self.conn = conn
        self.inventory = InventoryReconstructor(conn, rules)
        self.flows = FlowEngine(conn, rules)
        self._metrics: MappingProxyType[MetricName, Callable[..., Any]] = MappingProxyType(
            {
                MetricName.AGENTS: lambda sim_id, prototype="": all_agents(conn, sim_id, prototype),
                MetricName.SIMS: lambda sim_id=None: [
                    sim_stat(conn, sid) for sid in list_simulation_runs(conn)
                ],
                MetricName.INV: self.inventory.inventory_at,
                MetricName.CREATED: self.flows.material_created,
                MetricName.DEPLOYSERIES: self.flows.deploy_cumulative,
                MetricName.FLOW: self.flows.flow,
                MetricName.INVSERIES: self.inventory.inv_series,
                MetricName.FLOWGRAPH: self.flows.flow_graph,
                MetricName.ENERGY: self.flows.energy_produced,
            }
        )

    def evaluate(self, name: str, sim_id: str | None, **args: Any) -> Any:
        """Run a metric by name.

        Raises:
            NotFoundError: If the metric name is not in the catalog
        """
        return self._metrics[_lookup(name)](sim_id, **args)


def _lookup(name: str) -> MetricName:
    try:
        return MetricName(name)
    except ValueError:
        raise NotFoundError(f"unknown metric {name!r}") from None
