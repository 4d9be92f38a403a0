"""
Inventory walk tests.

Holdings are half-open [start_time, end_time) intervals derived from
creators, transactions and child creation times.
"""

from conftest import DURATION, SIM_ID


def _holdings(conn):
    from cyan.post.lineage import ResourceArena
    from cyan.post.walker import InventoryWalker

    arena = ResourceArena.load(conn, SIM_ID)
    return InventoryWalker.load(conn, SIM_ID, arena).walk()


class TestInventoryWalker:
    """Walk over the synthetic run."""

    def test_expected_holdings(self, conn):
        holdings = {(h.resource_id, h.agent_id, h.start_time, h.end_time) for h in _holdings(conn)}

        assert holdings == {
            (1, 2, 1, 2),
            (2, 3, 2, 5),
            (3, 2, 2, 7),
            (4, 3, 5, 6),
            (5, 4, 6, DURATION),
            (7, 2, 7, 8),
            (7, 5, 8, DURATION),
        }

    def test_zero_length_holdings_are_dropped(self, conn):
        # R6 is combined into R7 in the step it is created
        assert all(h.resource_id != 6 for h in _holdings(conn))
        assert all(h.end_time > h.start_time for h in _holdings(conn))

    def test_holdings_carry_resource_quantity(self, conn):
        quantities = {h.resource_id: h.quantity for h in _holdings(conn)}

        assert quantities[1] == 100.0
        assert quantities[7] == 80.0

    def test_resource_has_one_holder_at_a_time(self, conn):
        holdings = _holdings(conn)

        for t in range(DURATION):
            held = [h.resource_id for h in holdings if h.held_at(t)]
            assert len(held) == len(set(held))

    def test_transfer_before_any_holder_uses_sender(self):
        from cyan.post.lineage import ResourceArena, ResourceNode
        from cyan.post.walker import InventoryWalker, _Transfer

        arena = ResourceArena([ResourceNode(1, 0, 5.0, 1)])
        walker = InventoryWalker(arena, {}, {1: [_Transfer(3, 1, 7, 8)]}, end_of_run=10)

        holdings = walker.walk()
        assert [(h.agent_id, h.start_time, h.end_time) for h in holdings] == [(7, 0, 3), (8, 3, 10)]

    def test_transfers_are_replayed_in_time_order(self):
        from cyan.post.lineage import ResourceArena, ResourceNode
        from cyan.post.walker import InventoryWalker, _Transfer

        arena = ResourceArena([ResourceNode(1, 0, 5.0, 1)])
        transfers = {1: [_Transfer(6, 2, 8, 9), _Transfer(2, 1, 7, 8)]}
        walker = InventoryWalker(arena, {1: 7}, transfers, end_of_run=10)

        holdings = walker.walk()
        assert [(h.agent_id, h.start_time, h.end_time) for h in holdings] == [
            (7, 0, 2),
            (8, 2, 6),
            (9, 6, 10),
        ]


class TestHolding:
    def test_held_at_is_half_open(self):
        from cyan.post.walker import Holding

        holding = Holding(resource_id=1, agent_id=2, start_time=3, end_time=5, quantity=1.0)

        assert not holding.held_at(2)
        assert holding.held_at(3)
        assert holding.held_at(4)
        assert not holding.held_at(5)
