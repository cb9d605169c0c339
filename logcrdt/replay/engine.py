"""Deterministic replay of a LogSet into materialized state."""

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from ..crdt.base import CRDT
from ..log.errors import ContractViolationError
from ..log.log_set import LogSet
from ..log.operation import Operation, OperationId

logger = logging.getLogger(__name__)


def sort_key(crdt: CRDT, operation: Operation) -> tuple[Any, str, int]:
    """Total replay order: CRDT key first, identity breaks ties."""
    return (crdt.order_key(operation), operation.author_id, operation.sequence_number)


def replay_order(operations: Iterable[Operation], crdt: CRDT) -> list[Operation]:
    """Sort operations into replay order.

    Raises:
        ContractViolationError: If the CRDT's ordering key would apply
            one author's operations out of sequence order.
    """
    ordered = sorted(operations, key=lambda op: sort_key(crdt, op))

    last_seen: dict[str, int] = {}
    for operation in ordered:
        previous = last_seen.get(operation.author_id)
        if previous is not None and operation.sequence_number < previous:
            raise ContractViolationError(
                f"{crdt.name or type(crdt).__name__} orders "
                f"{operation.id} after {operation.author_id}:{previous}"
            )
        last_seen[operation.author_id] = operation.sequence_number
    return ordered


def materialize(log_set: LogSet, crdt: CRDT) -> Any:
    """Fold every known operation, in replay order, over the initial state."""
    operations = replay_order(log_set.snapshot().all_operations(), crdt)

    state = crdt.initial_state()
    for operation in operations:
        state = crdt.apply(state, operation)

    logger.debug(f"Materialized {len(operations)} operations with {crdt.name}")
    return state


def materialize_history(
    log_set: LogSet, crdt: CRDT
) -> Iterator[tuple[Operation, Any]]:
    """Yield ``(operation, state)`` after each step of the replay order."""
    state = crdt.initial_state()
    for operation in replay_order(log_set.snapshot().all_operations(), crdt):
        state = crdt.apply(state, operation)
        yield operation, state


@dataclass
class ReplayStats:
    """Counters for a ReplayEngine."""

    full_replays: int = 0
    incremental_replays: int = 0
    applied: int = 0


class ReplayEngine:
    """Materializer that caches the last state between calls.

    When every newly ingested operation sorts after the last applied one,
    only the new operations are folded onto the cached state. Otherwise the
    whole LogSet is replayed from the initial state. Either way the result
    equals ``materialize(log_set, crdt)``.
    """

    def __init__(self, crdt: CRDT):
        self.crdt = crdt
        self.stats = ReplayStats()
        self.reset()

    def reset(self) -> None:
        """Drop the cached state."""
        self._state = self.crdt.initial_state()
        self._applied: set[OperationId] = set()
        self._last_key: tuple[Any, str, int] | None = None

    @property
    def state(self) -> Any:
        """State as of the last materialization."""
        return self._state

    def materialize(self, log_set: LogSet) -> Any:
        """Bring the cached state up to date with a LogSet and return it."""
        operations = log_set.snapshot().all_operations()
        new = [op for op in operations if op.id not in self._applied]

        # The LogSet must still contain everything folded so far
        if len(operations) - len(new) != len(self._applied):
            return self._replay_all(operations)

        if not new:
            return self._state

        ordered = replay_order(new, self.crdt)
        if self._last_key is not None and sort_key(self.crdt, ordered[0]) < self._last_key:
            return self._replay_all(operations)

        state = self._state
        for operation in ordered:
            state = self.crdt.apply(state, operation)

        # Commit only once every apply succeeded
        self._state = state
        self._applied.update(op.id for op in ordered)
        self._last_key = sort_key(self.crdt, ordered[-1])

        self.stats.incremental_replays += 1
        self.stats.applied += len(ordered)
        logger.debug(f"Incrementally applied {len(ordered)} operations")
        return self._state

    def _replay_all(self, operations: list[Operation]) -> Any:
        ordered = replay_order(operations, self.crdt)

        state = self.crdt.initial_state()
        for operation in ordered:
            state = self.crdt.apply(state, operation)

        self._state = state
        self._applied = {op.id for op in ordered}
        self._last_key = sort_key(self.crdt, ordered[-1]) if ordered else None

        self.stats.full_replays += 1
        self.stats.applied += len(ordered)
        logger.debug(f"Replayed {len(ordered)} operations from initial state")
        return self._state
