"""
Inventory Walk

Replays the transaction log over the provenance graph to find which agent
held each resource state and when. The result is a list of half-open
holding intervals [start_time, end_time).

A resource state is held:
- from its creation, by its creating agent, or else by whoever held its
  primary parent at that moment
- until a transaction hands it to another agent
- until its first child state is created, or until the end of the run
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

import duckdb

from cyan.errors import StoreError

from .lineage import ResourceArena

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Holding:
    """An agent holding a resource state over [start_time, end_time)."""

    resource_id: int
    agent_id: int
    start_time: int
    end_time: int
    quantity: float

    def held_at(self, timestep: int) -> bool:
        return self.start_time <= timestep < self.end_time


@dataclass(frozen=True)
class _Transfer:
    time: int
    transaction_id: int
    sender_id: int
    receiver_id: int


class InventoryWalker:
    """Derives holding intervals for every resource state of one run."""

    def __init__(
        self,
        arena: ResourceArena,
        creators: dict[int, int],
        transfers: dict[int, list[_Transfer]],
        end_of_run: int,
    ):
        """Initialize walker.

        Args:
            arena: Provenance graph of the run
            creators: resource id -> creating agent id
            transfers: resource id -> transactions of that resource
            end_of_run: End time given to holdings still open when the run ends
        """
        self.arena = arena
        self.creators = creators
        self.transfers = {
            rid: sorted(txs, key=lambda t: (t.time, t.transaction_id))
            for rid, txs in transfers.items()
        }
        self.end_of_run = end_of_run
        # arena index -> [(agent or None, start, end)], zero-length spans included
        self._spans: dict[int, list[tuple[int | None, int, int]]] = {}

    @classmethod
    def load(
        cls, conn: duckdb.DuckDBPyConnection, sim_id: str, arena: ResourceArena
    ) -> "InventoryWalker":
        """Read creators and transactions of a run."""
        from cyan.persistence.registry import get_run_info

        info = get_run_info(conn, sim_id)
        try:
            creators = dict(
                conn.execute(
                    "SELECT resource_id, agent_id FROM res_creators WHERE sim_id = ?",
                    [sim_id],
                ).fetchall()
            )
            rows = conn.execute(
                """
                SELECT t.resource_id, t.time, t.transaction_id, t.sender_id, t.receiver_id
                FROM transactions AS t
                WHERE t.sim_id = ?
                """,
                [sim_id],
            ).fetchall()
        except duckdb.Error as e:
            raise StoreError(f"cannot load transactions for {sim_id}: {e}") from e

        transfers: dict[int, list[_Transfer]] = defaultdict(list)
        for rid, time, tx_id, sender, receiver in rows:
            transfers[rid].append(_Transfer(time, tx_id, sender, receiver))

        return cls(arena, creators, transfers, info.duration)

    def walk(self) -> list[Holding]:
        """Holding intervals of every resource state, in creation order."""
        holdings = []
        for idx in self.arena.topological_order():
            node = self.arena.nodes[idx]
            spans = self._walk_node(idx)
            self._spans[idx] = spans
            holdings.extend(
                Holding(node.resource_id, agent, start, end, node.quantity)
                for agent, start, end in spans
                if agent is not None and end > start
            )

        logger.debug("Derived %d holdings from %d resources", len(holdings), len(self.arena))
        return holdings

    def _walk_node(self, idx: int) -> list[tuple[int | None, int, int]]:
        node = self.arena.nodes[idx]

        holder = self.creators.get(node.resource_id)
        if holder is None and node.parent_ids:
            holder = self._holder_at(self.arena.parents(idx)[0], node.time_created)

        end = min(
            (self.arena.nodes[c].time_created for c in node.children),
            default=self.end_of_run,
        )
        start = node.time_created

        spans = []
        for transfer in self.transfers.get(node.resource_id, []):
            # A transfer at the split time precedes the split
            if transfer.time > end:
                break
            if holder is None:
                holder = transfer.sender_id
            spans.append((holder, start, transfer.time))
            holder, start = transfer.receiver_id, transfer.time
        spans.append((holder, start, end))
        return spans

    def _holder_at(self, idx: int, timestep: int) -> int | None:
        holder = None
        for agent, start, _ in self._spans[idx]:
            if start > timestep:
                break
            holder = agent
        return holder
