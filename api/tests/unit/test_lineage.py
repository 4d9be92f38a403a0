"""
Lineage resolution tests.

Compositions are folded along provenance edges:
- ORIGIN: recorded composition
- SPLIT: pro-rata by quantity
- COMBINE: sum of parents
- DECAY: recorded composition, else the decay law
"""

import pytest

from conftest import PU239, SIM_ID, U235, U238


def _arena(*nodes):
    from cyan.post.lineage import ResourceArena, ResourceNode

    return ResourceArena(
        ResourceNode(resource_id=rid, time_created=t, quantity=qty, qual_id=qual, parent_ids=parents)
        for rid, t, qty, qual, parents in nodes
    )


class TestResourceArena:
    """Arena construction, edge kinds and ordering."""

    def test_edge_kinds(self):
        from cyan.post.lineage import TransformKind

        arena = _arena(
            (1, 0, 10.0, 1, ()),
            (2, 1, 4.0, 1, (1,)),
            (3, 1, 6.0, 2, (1,)),
            (4, 2, 10.0, 1, (2, 3)),
        )

        assert arena.kind(arena.position(1)) is TransformKind.ORIGIN
        assert arena.kind(arena.position(2)) is TransformKind.SPLIT
        assert arena.kind(arena.position(3)) is TransformKind.DECAY
        assert arena.kind(arena.position(4)) is TransformKind.COMBINE

    def test_children_are_linked(self):
        arena = _arena((1, 0, 10.0, 1, ()), (2, 1, 4.0, 1, (1,)), (3, 1, 6.0, 1, (1,)))

        children = arena.nodes[arena.position(1)].children
        assert sorted(arena.nodes[c].resource_id for c in children) == [2, 3]

    def test_topological_order_puts_parents_first(self):
        # Child listed before its parent and created at the same time
        arena = _arena((5, 3, 1.0, 1, (9,)), (9, 3, 1.0, 1, ()), (2, 0, 1.0, 1, ()))

        order = [arena.nodes[i].resource_id for i in arena.topological_order()]
        assert order == [2, 9, 5]

    def test_unknown_resource_raises_not_found(self):
        from cyan.errors import NotFoundError

        arena = _arena((1, 0, 10.0, 1, ()))
        with pytest.raises(NotFoundError):
            arena.position(42)

    def test_missing_parent_raises_lineage_broken(self):
        from cyan.errors import LineageBrokenError

        arena = _arena((1, 0, 10.0, 1, ()), (2, 1, 5.0, 1, (77,)))

        with pytest.raises(LineageBrokenError) as exc_info:
            arena.topological_order()
        assert exc_info.value.resource_id == 2

    def test_cycle_raises_lineage_broken(self):
        from cyan.errors import LineageBrokenError

        arena = _arena((1, 0, 10.0, 1, (2,)), (2, 0, 10.0, 1, (1,)))

        with pytest.raises(LineageBrokenError, match="cycle"):
            arena.topological_order()


class TestLineageResolver:
    """Composition folding on hand-built arenas."""

    QUALITIES = {1: {U235: 0.05, U238: 0.95}, 2: {U235: 0.01, PU239: 0.01, U238: 0.98}}

    def _resolver(self, arena, rules=None, seconds_per_timestep=100):
        from cyan.post.lineage import LineageResolver

        return LineageResolver(arena, self.QUALITIES, rules, seconds_per_timestep)

    def test_origin_uses_recorded_composition(self):
        resolver = self._resolver(_arena((1, 0, 100.0, 1, ())))

        assert resolver.resolve(1) == pytest.approx({U235: 5.0, U238: 95.0})

    def test_material_origin_without_recorded_composition_raises(self):
        from cyan.errors import LineageBrokenError

        resolver = self._resolver(_arena((1, 0, 100.0, 42, ())))

        with pytest.raises(LineageBrokenError, match="quality 42") as exc_info:
            resolver.resolve(1)
        assert exc_info.value.resource_id == 1

    def test_product_origin_without_recorded_composition_is_empty(self):
        from cyan.post.lineage import ResourceArena, ResourceNode

        arena = ResourceArena([ResourceNode(1, 0, 3.0, 42, type="Product")])

        assert self._resolver(arena).resolve(1) == {}

    def test_split_is_pro_rata(self):
        resolver = self._resolver(_arena((1, 0, 100.0, 1, ()), (2, 1, 40.0, 1, (1,))))

        assert resolver.resolve(2) == pytest.approx({U235: 2.0, U238: 38.0})

    def test_split_of_empty_parent_is_empty(self):
        resolver = self._resolver(_arena((1, 0, 0.0, 1, ()), (2, 1, 0.0, 1, (1,))))

        assert resolver.resolve(2) == {}

    def test_combine_sums_parents(self):
        resolver = self._resolver(
            _arena((1, 0, 100.0, 1, ()), (2, 0, 50.0, 2, ()), (3, 1, 150.0, 1, (1, 2)))
        )

        assert resolver.resolve(3) == pytest.approx(
            {U235: 5.5, U238: 95.0 + 49.0, PU239: 0.5}
        )

    def test_decay_prefers_recorded_composition(self):
        resolver = self._resolver(_arena((1, 0, 40.0, 1, ()), (2, 3, 40.0, 2, (1,))))

        assert resolver.resolve(2) == pytest.approx({U235: 0.4, PU239: 0.4, U238: 39.2})

    def test_decay_without_record_is_identity_by_default(self):
        resolver = self._resolver(_arena((1, 0, 40.0, 2, ()), (2, 3, 40.0, 99, (1,))))

        assert resolver.resolve(2) == pytest.approx(resolver.resolve(1))

    def test_decay_without_record_applies_half_lives(self):
        from cyan.post.lineage import DecayLaw, TransformRules

        rules = TransformRules(DecayLaw({PU239: 100.0}))
        # One timestep of 100s is one half-life
        resolver = self._resolver(
            _arena((1, 0, 40.0, 2, ()), (2, 1, 40.0, 99, (1,))), rules=rules
        )

        comp = resolver.resolve(2)
        assert comp[PU239] == pytest.approx(0.2)
        assert comp[U238] == pytest.approx(39.2)

    def test_qualities_are_normalized(self):
        from cyan.post.lineage import LineageResolver

        resolver = LineageResolver(_arena((1, 0, 10.0, 1, ())), {1: {U235: 2.0, U238: 8.0}})

        assert resolver.resolve(1) == pytest.approx({U235: 2.0, U238: 8.0})

    def test_resolve_all_covers_every_resource(self):
        resolver = self._resolver(
            _arena((1, 0, 100.0, 1, ()), (2, 1, 40.0, 1, (1,)), (3, 1, 60.0, 1, (1,)))
        )

        resolved = resolver.resolve_all()
        assert set(resolved) == {1, 2, 3}
        assert resolved[3] == pytest.approx({U235: 3.0, U238: 57.0})

    def test_missing_parent_raises_lineage_broken(self):
        from cyan.errors import LineageBrokenError

        resolver = self._resolver(_arena((2, 1, 5.0, 1, (77,))))

        with pytest.raises(LineageBrokenError) as exc_info:
            resolver.resolve(2)
        assert exc_info.value.resource_id == 2

    def test_cycle_raises_lineage_broken(self):
        from cyan.errors import LineageBrokenError

        resolver = self._resolver(_arena((1, 0, 10.0, 1, (2,)), (2, 0, 10.0, 1, (1,))))

        with pytest.raises(LineageBrokenError):
            resolver.resolve(1)

    def test_deep_chain_does_not_recurse(self):
        depth = 5000
        nodes = [(1, 0, 100.0, 1, ())]
        nodes += [(i, i, 100.0, 1, (i - 1,)) for i in range(2, depth + 1)]
        resolver = self._resolver(_arena(*nodes))

        assert resolver.resolve(depth) == pytest.approx({U235: 5.0, U238: 95.0})


class TestLoadFromDatabase:
    """Resolver built from the simulator tables of the synthetic run."""

    def test_resolves_synthetic_run(self, conn):
        from cyan.post.lineage import LineageResolver

        resolver = LineageResolver.load(conn, SIM_ID)

        assert resolver.seconds_per_timestep == 100
        assert resolver.resolve(1) == pytest.approx({U235: 5.0, U238: 95.0})
        assert resolver.resolve(4) == pytest.approx({U235: 0.4, PU239: 0.4, U238: 39.2})
        # Nothing recorded for qual 3: decay law (identity) on R4
        assert resolver.resolve(5) == pytest.approx({U235: 0.4, PU239: 0.4, U238: 39.2})
        assert resolver.resolve(7) == pytest.approx({U235: 4.0, U238: 76.0})

    def test_split_children_conserve_parent_mass(self, conn):
        from cyan.post.lineage import LineageResolver

        resolved = LineageResolver.load(conn, SIM_ID).resolve_all()
        parent, first, second = resolved[1], resolved[2], resolved[3]

        assert set(first) | set(second) == set(parent)
        for nuc, mass in parent.items():
            assert first.get(nuc, 0.0) + second.get(nuc, 0.0) == pytest.approx(mass)

    def test_combine_equals_sum_of_parents(self, conn):
        from cyan.post.lineage import LineageResolver

        resolved = LineageResolver.load(conn, SIM_ID).resolve_all()
        combined, left, right = resolved[7], resolved[3], resolved[6]

        assert set(combined) == set(left) | set(right)
        for nuc, mass in combined.items():
            assert left.get(nuc, 0.0) + right.get(nuc, 0.0) == pytest.approx(mass)
        assert sum(combined.values()) == pytest.approx(80.0)

    def test_resource_type_is_loaded(self, conn):
        from cyan.errors import LineageBrokenError
        from cyan.persistence.models import ResourceRecord
        from cyan.persistence.writers import write_records
        from cyan.post.lineage import LineageResolver

        write_records(
            conn,
            ResourceRecord,
            [
                ResourceRecord(
                    sim_id=SIM_ID, resource_id=20, obj_id=20, type="Product",
                    time_created=3, quantity=2.0, qual_id=50, parent1=0, parent2=0,
                ),
                ResourceRecord(
                    sim_id=SIM_ID, resource_id=21, obj_id=21, type="Material",
                    time_created=3, quantity=2.0, qual_id=51, parent1=0, parent2=0,
                ),
            ],
        )
        resolver = LineageResolver.load(conn, SIM_ID)

        assert resolver.arena.nodes[resolver.arena.position(20)].type == "Product"
        assert resolver.resolve(20) == {}
        with pytest.raises(LineageBrokenError):
            resolver.resolve(21)

    def test_unknown_run_raises_not_found(self, conn):
        from cyan.errors import NotFoundError
        from cyan.post.lineage import LineageResolver

        with pytest.raises(NotFoundError):
            LineageResolver.load(conn, "ffff")


class TestDecayLaw:
    def test_identity_without_half_lives(self):
        from cyan.post.lineage import DecayLaw

        comp = {U235: 1.0}
        assert DecayLaw().apply(comp, 1e9) == comp

    def test_stable_nuclides_unchanged(self):
        from cyan.post.lineage import DecayLaw

        decayed = DecayLaw({PU239: 10.0}).apply({PU239: 8.0, U238: 1.0}, 30.0)
        assert decayed[PU239] == pytest.approx(1.0)
        assert decayed[U238] == 1.0
