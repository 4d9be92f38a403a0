"""
Resource Lineage Resolution

Resources form a directed acyclic provenance graph: every resource state is
either an origin (created by an agent) or derived from one or two parent
states by a split, combine, or decay event. This module loads that graph
into an arena indexed by integer position and folds nuclide masses along
its edges.

Edge rules (see TransformRules):
- ORIGIN: recorded composition of the resource itself (required for
  Material resources)
- SPLIT: parent composition scaled by child/parent quantity
- COMBINE: sum of the resolved parents
- DECAY: recorded composition of the child, or the decay law applied once
  to the parent when the child has none recorded
"""

import heapq
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import duckdb

from cyan.errors import LineageBrokenError, NotFoundError, StoreError
from cyan.persistence.models import DEFAULT_SECONDS_PER_TIMESTEP

logger = logging.getLogger(__name__)

# nuclide id -> mass in kg
Composition = dict[int, float]

# Resource type whose origin states must carry a recorded composition
MATERIAL = "Material"


class TransformKind(str, Enum):
    """How a resource state came into existence."""

    ORIGIN = "origin"
    SPLIT = "split"
    COMBINE = "combine"
    DECAY = "decay"


@dataclass
class ResourceNode:
    """One resource state in the arena."""

    resource_id: int
    time_created: int
    quantity: float
    qual_id: int
    parent_ids: tuple[int, ...] = ()
    type: str = MATERIAL
    children: list[int] = field(default_factory=list)


# ============================================================================
# Arena
# ============================================================================


class ResourceArena:
    """Resource states indexed by position, with parent/child links as indexes.

    Parent references are kept as raw ids so a dangling reference only fails
    when something actually walks across it.
    """

    def __init__(self, nodes: Iterable[ResourceNode]):
        self.nodes: list[ResourceNode] = list(nodes)
        self.index: dict[int, int] = {n.resource_id: i for i, n in enumerate(self.nodes)}

        for i, node in enumerate(self.nodes):
            for pid in node.parent_ids:
                parent = self.index.get(pid)
                if parent is not None:
                    self.nodes[parent].children.append(i)

    @classmethod
    def load(cls, conn: duckdb.DuckDBPyConnection, sim_id: str) -> "ResourceArena":
        """Load every resource state of a run."""
        try:
            rows = conn.execute(
                """
                SELECT resource_id, time_created, quantity, qual_id, parent1, parent2, type
                FROM resources
                WHERE sim_id = ?
                ORDER BY resource_id
                """,
                [sim_id],
            ).fetchall()
        except duckdb.Error as e:
            raise StoreError(f"cannot load resources for {sim_id}: {e}") from e

        return cls(
            ResourceNode(
                resource_id=rid,
                time_created=t,
                quantity=qty,
                qual_id=qual,
                parent_ids=tuple(p for p in (p1, p2) if p),
                type=res_type,
            )
            for rid, t, qty, qual, p1, p2, res_type in rows
        )

    def __len__(self) -> int:
        return len(self.nodes)

    def position(self, resource_id: int) -> int:
        """Arena index of a resource id.

        Raises:
            NotFoundError: If the resource is not in the run
        """
        try:
            return self.index[resource_id]
        except KeyError:
            raise NotFoundError(f"resource {resource_id} not found") from None

    def parents(self, idx: int) -> list[int]:
        """Arena indexes of a node's parents.

        Raises:
            LineageBrokenError: If a referenced parent is absent
        """
        node = self.nodes[idx]
        result = []
        for pid in node.parent_ids:
            if pid not in self.index:
                raise LineageBrokenError(node.resource_id, f"parent {pid} is missing")
            result.append(self.index[pid])
        return result

    def kind(self, idx: int) -> TransformKind:
        node = self.nodes[idx]
        if not node.parent_ids:
            return TransformKind.ORIGIN
        if len(node.parent_ids) > 1:
            return TransformKind.COMBINE
        parent = self.nodes[self.parents(idx)[0]]
        if parent.qual_id == node.qual_id:
            return TransformKind.SPLIT
        return TransformKind.DECAY

    def topological_order(self) -> list[int]:
        """All arena indexes, parents before children.

        Ties are broken by creation time, then resource id.

        Raises:
            LineageBrokenError: On a missing parent or a cycle
        """
        pending = [len(self.parents(i)) for i in range(len(self.nodes))]
        ready = [self._order_key(i) for i, n in enumerate(pending) if n == 0]
        heapq.heapify(ready)

        order = []
        while ready:
            _, _, idx = heapq.heappop(ready)
            order.append(idx)
            for child in self.nodes[idx].children:
                pending[child] -= 1
                if pending[child] == 0:
                    heapq.heappush(ready, self._order_key(child))

        if len(order) != len(self.nodes):
            stuck = next(i for i, n in enumerate(pending) if n > 0)
            raise LineageBrokenError(self.nodes[stuck].resource_id, "provenance cycle detected")
        return order

    def _order_key(self, idx: int) -> tuple[int, int, int]:
        node = self.nodes[idx]
        return node.time_created, node.resource_id, idx


# ============================================================================
# Transformation Rules
# ============================================================================


class DecayLaw:
    """Exponential decay of individual nuclides.

    Nuclides without a configured half-life are treated as stable, so the
    default law is the identity.

    Examples:
        >>> law = DecayLaw({942410000: 10.0})
        >>> decayed = law.apply({942410000: 4.0, 922380000: 1.0}, elapsed_seconds=20.0)
        >>> round(decayed[942410000], 6), decayed[922380000]
        (1.0, 1.0)
    """

    def __init__(self, half_lives: dict[int, float] | None = None):
        self.half_lives = dict(half_lives or {})

    def apply(self, composition: Composition, elapsed_seconds: float) -> Composition:
        if elapsed_seconds <= 0 or not self.half_lives:
            return dict(composition)
        result = {}
        for nuc, mass in composition.items():
            half_life = self.half_lives.get(nuc)
            if half_life:
                mass = mass * math.exp(-math.log(2) * elapsed_seconds / half_life)
            result[nuc] = mass
        return result


class TransformRules:
    """Folding rule for each edge kind of the provenance graph.

    Subclass and override a method to change how a kind of edge is folded.
    """

    def __init__(self, decay_law: DecayLaw | None = None):
        self.decay_law = decay_law or DecayLaw()

    def origin(self, node: ResourceNode, recorded: Composition | None) -> Composition:
        if recorded is None and node.type == MATERIAL:
            raise LineageBrokenError(
                node.resource_id, f"no composition recorded for quality {node.qual_id}"
            )
        return dict(recorded or {})

    def split(
        self, node: ResourceNode, parent: ResourceNode, parent_comp: Composition
    ) -> Composition:
        if parent.quantity <= 0:
            return {}
        fraction = node.quantity / parent.quantity
        return {nuc: mass * fraction for nuc, mass in parent_comp.items()}

    def combine(self, node: ResourceNode, parent_comps: list[Composition]) -> Composition:
        return add_compositions(parent_comps)

    def decay(
        self,
        node: ResourceNode,
        parent: ResourceNode,
        parent_comp: Composition,
        recorded: Composition | None,
        elapsed_seconds: float,
    ) -> Composition:
        if recorded is not None:
            return dict(recorded)
        return self.decay_law.apply(parent_comp, elapsed_seconds)


def add_compositions(compositions: Iterable[Composition]) -> Composition:
    """Sum nuclide masses across compositions."""
    total: dict[int, float] = defaultdict(float)
    for comp in compositions:
        for nuc, mass in comp.items():
            total[nuc] += mass
    return dict(total)


# ============================================================================
# Resolver
# ============================================================================


class LineageResolver:
    """Resolves the nuclide masses of resource states through their lineage.

    Each node is folded at most once; results are cached by arena index, so
    resolving many resources costs O(nodes + edges) overall.

    Usage:
        resolver = LineageResolver.load(conn, sim_id)
        comp = resolver.resolve(42)   # {922350000: 0.04, 922380000: 0.96}
    """

    def __init__(
        self,
        arena: ResourceArena,
        qualities: dict[int, dict[int, float]],
        rules: TransformRules | None = None,
        seconds_per_timestep: int = DEFAULT_SECONDS_PER_TIMESTEP,
    ):
        """Initialize resolver.

        Args:
            arena: Provenance graph of one run
            qualities: qual_id -> {nuc_id: mass fraction}
            rules: Edge folding rules (defaults to TransformRules())
            seconds_per_timestep: Length of a timestep, used for decay
        """
        self.arena = arena
        self.qualities = {q: _normalize(fracs) for q, fracs in qualities.items()}
        self.rules = rules or TransformRules()
        self.seconds_per_timestep = seconds_per_timestep
        self._cache: dict[int, Composition] = {}

    @classmethod
    def load(
        cls,
        conn: duckdb.DuckDBPyConnection,
        sim_id: str,
        rules: TransformRules | None = None,
        arena: ResourceArena | None = None,
    ) -> "LineageResolver":
        """Build a resolver from the simulator tables of one run.

        Args:
            conn: DuckDB connection
            sim_id: Run identifier
            rules: Edge folding rules
            arena: Already loaded provenance graph of the run, if any
        """
        from cyan.persistence.registry import get_run_info

        info = get_run_info(conn, sim_id)
        if arena is None:
            arena = ResourceArena.load(conn, sim_id)

        qualities: dict[int, dict[int, float]] = defaultdict(dict)
        try:
            rows = conn.execute(
                "SELECT qual_id, nuc_id, mass_frac FROM compositions WHERE sim_id = ?",
                [sim_id],
            ).fetchall()
        except duckdb.Error as e:
            raise StoreError(f"cannot load compositions for {sim_id}: {e}") from e
        for qual_id, nuc_id, frac in rows:
            qualities[qual_id][nuc_id] = qualities[qual_id].get(nuc_id, 0.0) + frac

        logger.debug(
            "Loaded lineage for %s: %d resources, %d qualities", sim_id, len(arena), len(qualities)
        )
        return cls(arena, dict(qualities), rules, info.seconds_per_timestep)

    def recorded(self, node: ResourceNode) -> Composition | None:
        """Composition stored by the simulator for a node, if any."""
        fracs = self.qualities.get(node.qual_id)
        if fracs is None:
            return None
        return {nuc: node.quantity * frac for nuc, frac in fracs.items()}

    def resolve(self, resource_id: int) -> Composition:
        """Nuclide masses of a resource as created.

        Raises:
            NotFoundError: If the resource does not exist
            LineageBrokenError: If its ancestry is incomplete or cyclic
        """
        return dict(self._resolve_index(self.arena.position(resource_id)))

    def resolve_all(self) -> dict[int, Composition]:
        """Resolve every resource of the run, keyed by resource id."""
        for idx in self.arena.topological_order():
            self._resolve_index(idx)
        return {self.arena.nodes[i].resource_id: comp for i, comp in self._cache.items()}

    def _resolve_index(self, root: int) -> Composition:
        if root in self._cache:
            return self._cache[root]

        # Iterative post-order walk; on_path detects cycles
        on_path: set[int] = set()
        stack: list[tuple[int, bool]] = [(root, False)]
        while stack:
            idx, expanded = stack.pop()
            if idx in self._cache:
                continue
            if expanded:
                on_path.discard(idx)
                self._cache[idx] = self._fold(idx)
                continue

            if idx in on_path:
                raise LineageBrokenError(
                    self.arena.nodes[idx].resource_id, "provenance cycle detected"
                )
            on_path.add(idx)
            stack.append((idx, True))
            for parent in self.arena.parents(idx):
                if parent in on_path:
                    raise LineageBrokenError(
                        self.arena.nodes[idx].resource_id, "provenance cycle detected"
                    )
                if parent not in self._cache:
                    stack.append((parent, False))

        return self._cache[root]

    def _fold(self, idx: int) -> Composition:
        node = self.arena.nodes[idx]
        kind = self.arena.kind(idx)

        if kind is TransformKind.ORIGIN:
            return self.rules.origin(node, self.recorded(node))

        parents = self.arena.parents(idx)
        if kind is TransformKind.COMBINE:
            return self.rules.combine(node, [self._cache[p] for p in parents])

        parent = self.arena.nodes[parents[0]]
        parent_comp = self._cache[parents[0]]
        if kind is TransformKind.SPLIT:
            return self.rules.split(node, parent, parent_comp)

        elapsed = (node.time_created - parent.time_created) * self.seconds_per_timestep
        return self.rules.decay(node, parent, parent_comp, self.recorded(node), elapsed)


def _normalize(fracs: dict[int, float]) -> dict[int, float]:
    total = sum(fracs.values())
    if total <= 0:
        return {}
    return {nuc: frac / total for nuc, frac in fracs.items()}
