"""
Flow & Aggregate Queries

Interval-scoped aggregates over a run. Every interval is inclusive
[t0, t1]; t1 == -1 means "through the final timestep".
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Sequence

from cyan.post.lineage import Composition

from .base import RunQuery, in_clause
from .series import XY

MEGAWATT = 1e6


@dataclass(frozen=True)
class Arc:
    """Aggregated material moved from one node to another for a commodity."""

    src: str
    dst: str
    commodity: str
    quantity: float


class FlowEngine(RunQuery):
    """Material creation, transfer, energy and deployment aggregates."""

    def material_created(
        self, sim_id: str, t0: int = 0, t1: int = -1, agent_ids: Sequence[int] = ()
    ) -> Composition:
        """Nuclide masses of resources created in [t0, t1].

        Args:
            sim_id: Run identifier
            t0: First timestep
            t1: Last timestep (-1 for the end of the run)
            agent_ids: Creating agents to include; empty means all agents

        Raises:
            NotFoundError: If the run or one of the agents does not exist
        """
        t0, t1 = self.interval(sim_id, t0, t1)
        self.check_agents(sim_id, agent_ids)

        query = """
            SELECT r.resource_id
            FROM resources AS r
            JOIN res_creators AS rc
                ON rc.sim_id = r.sim_id AND rc.resource_id = r.resource_id
            WHERE r.sim_id = ? AND r.time_created BETWEEN ? AND ?
        """
        params: list = [sim_id, t0, t1]
        if agent_ids:
            clause, agent_params = in_clause("rc.agent_id", agent_ids)
            query += f" AND {clause}"
            params.extend(agent_params)

        return self.sum_compositions(sim_id, query, params)

    def flow(
        self,
        sim_id: str,
        t0: int,
        t1: int,
        from_agents: Sequence[int],
        to_agents: Sequence[int],
    ) -> Composition:
        """Nuclide masses transacted from one agent group to another in [t0, t1].

        An agent may appear in both groups; its self-transfers are included.

        Raises:
            ValueError: If either group is empty
            NotFoundError: If the run or one of the agents does not exist
        """
        if not from_agents or not to_agents:
            raise ValueError("flow requires at least one sending and one receiving agent")
        t0, t1 = self.interval(sim_id, t0, t1)
        self.check_agents(sim_id, [*from_agents, *to_agents])

        senders, sender_params = in_clause("t.sender_id", from_agents)
        receivers, receiver_params = in_clause("t.receiver_id", to_agents)
        query = f"""
            SELECT t.resource_id
            FROM transactions AS t
            WHERE t.sim_id = ? AND t.time BETWEEN ? AND ?
                AND {senders} AND {receivers}
        """
        return self.sum_compositions(
            sim_id, query, [sim_id, t0, t1, *sender_params, *receiver_params]
        )

    def flow_graph(
        self, sim_id: str, t0: int = 0, t1: int = -1, by_prototype: bool = False
    ) -> list[Arc]:
        """Transacted quantity per (sender, receiver, commodity) in [t0, t1].

        Args:
            sim_id: Run identifier
            t0: First timestep
            t1: Last timestep (-1 for the end of the run)
            by_prototype: Collapse agents into their prototype names

        Returns:
            Arcs sorted by source, destination, commodity

        Raises:
            NotFoundError: If a transacted resource does not exist
        """
        t0, t1 = self.interval(sim_id, t0, t1)
        self.check_resources(
            sim_id,
            """
            SELECT t.resource_id
            FROM transactions AS t
            WHERE t.sim_id = ? AND t.time BETWEEN ? AND ?
            """,
            [sim_id, t0, t1],
        )

        if by_prototype:
            agents = self.agents_source(sim_id)
            nodes = "s.prototype, d.prototype"
            joins = f"""
                JOIN {agents} AS s ON s.sim_id = t.sim_id AND s.agent_id = t.sender_id
                JOIN {agents} AS d ON d.sim_id = t.sim_id AND d.agent_id = t.receiver_id
            """
        else:
            nodes = "CAST(t.sender_id AS VARCHAR), CAST(t.receiver_id AS VARCHAR)"
            joins = ""

        rows = self.fetchall(
            f"""
            SELECT {nodes}, t.commodity, SUM(r.quantity)
            FROM transactions AS t
            JOIN resources AS r ON r.sim_id = t.sim_id AND r.resource_id = t.resource_id
            {joins}
            WHERE t.sim_id = ? AND t.time BETWEEN ? AND ?
            GROUP BY 1, 2, 3
            ORDER BY 1, 2, 3
            """,
            [sim_id, t0, t1],
        )
        return [Arc(src, dst, commod, qty) for src, dst, commod, qty in rows]

    def energy_produced(self, sim_id: str, t0: int = 0, t1: int = -1) -> float:
        """Thermal energy in joules generated in [t0, t1].

        Each power record is a whole timestep at the recorded power in MW.
        """
        info = self.info(sim_id)
        t0, t1 = self.interval(sim_id, t0, t1)
        (total_mw,) = self.fetchall(
            """
            SELECT COALESCE(SUM(p.value), 0)
            FROM power AS p
            WHERE p.sim_id = ? AND p.time BETWEEN ? AND ?
            """,
            [sim_id, t0, t1],
        )[0]
        return float(total_mw) * MEGAWATT * info.seconds_per_timestep

    def deploy_cumulative(self, sim_id: str, prototype: str) -> list[XY]:
        """Running count of active agents of a prototype, one point per change.

        An agent counts from its enter time until its exit time, if any.
        Unknown prototypes produce an empty series.
        """
        self.info(sim_id)
        rows = self.fetchall(
            f"""
            SELECT enter_time, exit_time
            FROM {self.agents_source(sim_id)} AS a
            WHERE a.sim_id = ? AND a.prototype = ?
            """,
            [sim_id, prototype],
        )

        deltas: dict[int, int] = defaultdict(int)
        for enter, exit_ in rows:
            deltas[enter] += 1
            if exit_ is not None:
                deltas[exit_] -= 1

        series = []
        count = 0
        for t in sorted(deltas):
            if deltas[t] == 0:
                continue
            count += deltas[t]
            series.append(XY(t, count))
        return series
