"""Tests for the replay engine."""

import pytest
from hypothesis import given, settings, strategies as st

from logcrdt.crdt import CRDT, LWWRegister, SharedNumber
from logcrdt.log import ContractViolationError, LogSet, Operation
from logcrdt.replay import (
    ReplayEngine,
    materialize,
    materialize_history,
    replay_order,
)


@st.composite
def operation_sets(draw):
    """A finite, gap-free set of SharedNumber operations from a few authors."""
    operations = []
    for author_id in draw(st.lists(st.sampled_from("abcde"), unique=True, max_size=5)):
        amounts = draw(st.lists(st.integers(-100, 100), max_size=8))
        operations.extend(
            Operation(author_id, seq, amount) for seq, amount in enumerate(amounts)
        )
    return operations


class Trace(CRDT):
    """Records the order operations were applied in."""

    name = "trace"

    def initial_state(self) -> tuple:
        return ()

    def apply(self, state: tuple, operation: Operation) -> tuple:
        return state + (str(operation.id),)


class Fragile(SharedNumber):
    """SharedNumber whose apply fails on the payload "boom"."""

    name = "fragile"
    payload_schema = None

    def apply(self, state: int, operation: Operation) -> int:
        if operation.payload == "boom":
            raise ValueError("boom")
        return super().apply(state, operation)


@pytest.fixture
def number():
    return SharedNumber()


class TestScenario:
    """Worked example: alice and bob editing a shared number."""

    def test_two_authors_either_order(self, number):
        """Test both ingestion orders materialize 8."""
        alice = Operation("alice", 0, "+5")
        bob = Operation("bob", 0, "+3")

        first = LogSet()
        first.ingest([alice, bob])
        second = LogSet()
        second.ingest(bob)
        second.ingest(alice)

        assert materialize(first, number) == 8
        assert materialize(second, number) == 8

    def test_later_operation(self, number):
        """Test a third operation brings the value to 6."""
        log_set = LogSet()
        log_set.ingest([Operation("alice", 0, "+5"), Operation("bob", 0, "+3")])
        log_set.ingest(Operation("alice", 1, "-2"))

        assert materialize(log_set, number) == 6

    def test_empty_log_set(self, number):
        """Test an empty LogSet materializes the initial state."""
        assert materialize(LogSet(), number) == 0

    def test_buffered_operations_are_left_out(self, number):
        """Test operations behind a gap do not count until it closes."""
        log_set = LogSet()
        log_set.ingest([Operation("alice", 0, "+5"), Operation("alice", 2, "+100")])

        assert materialize(log_set, number) == 5

        log_set.ingest(Operation("alice", 1, "+1"))

        assert materialize(log_set, number) == 106


class TestOrdering:
    """Tests for the total replay order."""

    def test_default_order(self):
        """Test replay follows (sequence number, author id)."""
        log_set = LogSet()
        log_set.ingest([
            Operation("bob", 1, None),
            Operation("bob", 0, None),
            Operation("alice", 0, None),
            Operation("alice", 1, None),
        ])

        assert materialize(log_set, Trace()) == ("alice:0", "bob:0", "alice:1", "bob:1")

    def test_custom_order_key(self):
        """Test a Lamport key overrides the default order."""
        operations = [
            Operation("alice", 0, {"lamport": 1, "value": "a0"}),
            Operation("alice", 1, {"lamport": 5, "value": "a1"}),
            Operation("bob", 0, {"lamport": 2, "value": "b0"}),
        ]

        ordered = replay_order(operations, LWWRegister())

        assert [op.id for op in ordered] == [("alice", 0), ("bob", 0), ("alice", 1)]

    def test_key_that_reorders_one_author_is_rejected(self):
        """Test a key applying an author's ops out of sequence raises."""
        operations = [
            Operation("alice", 0, {"lamport": 5, "value": "a0"}),
            Operation("alice", 1, {"lamport": 1, "value": "a1"}),
        ]
        log_set = LogSet()
        log_set.ingest(operations)

        with pytest.raises(ContractViolationError):
            materialize(log_set, LWWRegister())

    def test_same_author_order_is_kept(self):
        """Test one author's operations apply in sequence order."""
        log_set = LogSet()
        log_set.ingest([Operation("alice", i, None) for i in reversed(range(5))])

        trace = materialize(log_set, Trace())

        assert trace == tuple(f"alice:{i}" for i in range(5))


class TestConvergence:
    """Properties every replica relies on."""

    @given(operation_sets(), st.randoms(use_true_random=False))
    def test_any_ingest_order_converges(self, operations, random):
        """Property: permuted ingestion yields identical state."""
        shuffled = list(operations)
        random.shuffle(shuffled)

        first = LogSet()
        first.ingest(operations)
        second = LogSet()
        for operation in shuffled:
            second.ingest(operation)

        assert materialize(first, Trace()) == materialize(second, Trace())
        assert materialize(first, SharedNumber()) == sum(op.payload for op in operations)

    @given(operation_sets())
    def test_ingesting_twice_is_idempotent(self, operations):
        """Property: duplicates never change the state."""
        once = LogSet()
        once.ingest(operations)
        twice = LogSet()
        twice.ingest(operations)
        twice.ingest(operations)

        assert once == twice
        assert materialize(once, Trace()) == materialize(twice, Trace())

    @given(operation_sets(), st.randoms(use_true_random=False))
    @settings(max_examples=50)
    def test_partial_replicas_merge_to_same_state(self, operations, random):
        """Property: replicas holding overlapping subsets converge once merged."""
        a, b = LogSet(), LogSet()
        for operation in operations:
            target = random.choice([a, b, "both"])
            if target == "both":
                a.ingest(operation)
                b.ingest(operation)
            else:
                target.ingest(operation)

        a.merge(b)
        b.merge(a)

        assert materialize(a, Trace()) == materialize(b, Trace())


class TestHistory:
    """Tests for replaying prefixes of the total order."""

    def test_history_steps(self, number):
        """Test the state after every operation."""
        log_set = LogSet()
        log_set.ingest([
            Operation("alice", 0, "+5"),
            Operation("bob", 0, "+3"),
            Operation("alice", 1, "-2"),
        ])

        steps = [(str(op.id), state) for op, state in materialize_history(log_set, number)]

        assert steps == [("alice:0", 5), ("bob:0", 8), ("alice:1", 6)]

    @given(operation_sets())
    @settings(max_examples=50)
    def test_prefix_replay_matches_history(self, operations):
        """Property: replaying a prefix equals stopping the full replay there."""
        crdt = Trace()
        full = LogSet()
        full.ingest(operations)
        history = list(materialize_history(full, crdt))

        engine = ReplayEngine(crdt)
        partial = LogSet()
        for operation, state in history:
            partial.ingest(operation)
            assert materialize(partial, crdt) == state
            assert engine.materialize(partial) == state


class TestReplayEngine:
    """Tests for incremental replay."""

    def test_incremental_when_new_ops_sort_last(self, number):
        """Test appended operations are folded onto the cached state."""
        engine = ReplayEngine(number)
        log_set = LogSet()
        log_set.ingest(Operation("alice", 0, "+5"))
        engine.materialize(log_set)

        log_set.ingest(Operation("alice", 1, "+1"))

        assert engine.materialize(log_set) == 6
        assert engine.stats.incremental_replays == 2
        assert engine.stats.full_replays == 0

    def test_full_replay_when_new_op_sorts_earlier(self):
        """Test a late operation sorting before applied ones triggers full replay."""
        engine = ReplayEngine(Trace())
        log_set = LogSet()
        log_set.ingest([Operation("bob", 0, None), Operation("bob", 1, None)])
        engine.materialize(log_set)

        log_set.ingest(Operation("alice", 0, None))

        assert engine.materialize(log_set) == ("alice:0", "bob:0", "bob:1")
        assert engine.stats.full_replays == 1

    def test_no_new_operations(self, number):
        """Test re-materializing an unchanged LogSet reuses the state."""
        engine = ReplayEngine(number)
        log_set = LogSet([Operation("alice", 0, 2)])

        assert engine.materialize(log_set) == 2
        assert engine.materialize(log_set) == 2
        assert engine.stats.applied == 1

    def test_different_log_set_replays_fully(self, number):
        """Test switching to a LogSet lacking applied ops starts over."""
        engine = ReplayEngine(number)
        engine.materialize(LogSet([Operation("alice", 0, 2)]))

        assert engine.materialize(LogSet([Operation("bob", 0, 3)])) == 3
        assert engine.stats.full_replays == 1

    def test_reset(self, number):
        """Test reset drops the cached state."""
        engine = ReplayEngine(number)
        engine.materialize(LogSet([Operation("alice", 0, 2)]))

        engine.reset()

        assert engine.state == 0

    def test_failed_incremental_apply_keeps_cache(self):
        """Test an apply error leaves the cached state usable."""
        crdt = Fragile()
        engine = ReplayEngine(crdt)
        engine.materialize(LogSet([Operation("alice", 0, 1)]))

        with pytest.raises(ValueError):
            engine.materialize(LogSet([
                Operation("alice", 0, 1),
                Operation("bob", 0, 2),
                Operation("carol", 0, "boom"),
            ]))

        log_set = LogSet([Operation("alice", 0, 1), Operation("bob", 0, 2)])
        assert engine.materialize(log_set) == materialize(log_set, crdt) == 3

    def test_failed_full_replay_keeps_cache(self):
        """Test an apply error during a full replay leaves the cache unchanged."""
        crdt = Fragile()
        engine = ReplayEngine(crdt)
        engine.materialize(LogSet([Operation("bob", 0, 4)]))

        with pytest.raises(ValueError):
            engine.materialize(LogSet([
                Operation("alice", 0, "boom"),
                Operation("bob", 0, 4),
            ]))

        assert engine.state == 4
        log_set = LogSet([Operation("alice", 0, 1), Operation("bob", 0, 4)])
        assert engine.materialize(log_set) == materialize(log_set, crdt) == 5
