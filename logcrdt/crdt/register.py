"""Last-Writer-Wins register ordered by Lamport timestamps.

Each payload carries the writer's Lamport timestamp, which doubles as the
replay ordering key. Concurrent writes are resolved by keeping the greatest
``(lamport, author_id, sequence_number)`` stamp.
"""

from dataclasses import dataclass
from typing import Any

from ..log.log_set import LogSet
from ..log.operation import Operation
from .base import CRDT, register_crdt

Stamp = tuple[int, str, int]

ZERO_STAMP: Stamp = (-1, "", -1)


@dataclass(frozen=True)
class RegisterState:
    """Current value and the stamp of the write that produced it."""

    stamp: Stamp = ZERO_STAMP
    value: Any = None


class LamportClock:
    """Logical clock an author uses to stamp register writes."""

    def __init__(self, time: int = 0):
        self.time = time

    @classmethod
    def from_log_set(cls, log_set: LogSet) -> "LamportClock":
        """Clock that is ahead of every stamped write in the LogSet."""
        clock = cls()
        for operation in log_set.all_operations():
            payload = operation.payload
            if isinstance(payload, dict) and isinstance(payload.get("lamport"), int):
                clock.observe(payload["lamport"])
        return clock

    def tick(self) -> int:
        """Increment and return the clock."""
        self.time += 1
        return self.time

    def observe(self, remote_time: int) -> None:
        """Advance past a timestamp seen from another author."""
        self.time = max(self.time, remote_time)

    def stamp(self, value: Any) -> dict[str, Any]:
        """Build a register payload for a new write."""
        return {"lamport": self.tick(), "value": value}


@register_crdt
class LWWRegister(CRDT):
    """Single value register; the write with the greatest stamp wins.

    Example:
        clock = LamportClock()
        op = Operation("alice", 0, clock.stamp("hello"))
        register = LWWRegister()
        print(register.apply(register.initial_state(), op).value)  # hello
    """

    name = "lww-register"
    payload_schema = {
        "type": "object",
        "properties": {
            "lamport": {"type": "integer", "minimum": 0},
            "value": {},
        },
        "required": ["lamport", "value"],
    }

    def initial_state(self) -> RegisterState:
        return RegisterState()

    def apply(self, state: RegisterState, operation: Operation) -> RegisterState:
        stamp = (
            operation.payload["lamport"],
            operation.author_id,
            operation.sequence_number,
        )
        if stamp > state.stamp:
            return RegisterState(stamp=stamp, value=operation.payload["value"])
        return state

    def order_key(self, operation: Operation) -> tuple[int]:
        return (operation.payload["lamport"],)

    def make_payload(self, value: Any, log_set: LogSet) -> dict[str, Any]:
        return LamportClock.from_log_set(log_set).stamp(value)

    def describe(self, state: RegisterState) -> str:
        return repr(state.value)
