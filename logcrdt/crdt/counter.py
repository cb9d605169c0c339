"""Counter CRDTs.

SharedNumber: incremented and decremented by any author
GrowOnlyNat: non-negative increments, saturating at 2**32 - 1
"""

from typing import Any

from ..log.operation import Operation
from .base import CRDT, register_crdt

NAT_MAX = 2**32 - 1


def parse_amount(payload: Any) -> int:
    """Read an increment from ``5``, ``-2``, ``"+5"`` or ``"-2"``."""
    if isinstance(payload, bool):
        raise ValueError(f"Not an amount: {payload!r}")
    if isinstance(payload, int):
        return payload
    if isinstance(payload, str):
        return int(payload.strip())
    raise ValueError(f"Not an amount: {payload!r}")


@register_crdt
class SharedNumber(CRDT):
    """A number every author can add to or subtract from.

    Payloads are signed amounts; apply is addition, which commutes.

    Example:
        number = SharedNumber()
        state = number.apply(number.initial_state(), Operation("alice", 0, "+5"))
        print(state)  # 5
    """

    name = "shared-number"
    payload_schema = {
        "oneOf": [
            {"type": "integer"},
            {"type": "string", "pattern": r"^\s*[+-]?[0-9]+\s*$"},
        ]
    }

    def initial_state(self) -> int:
        return 0

    def apply(self, state: int, operation: Operation) -> int:
        return state + parse_amount(operation.payload)


@register_crdt
class GrowOnlyNat(CRDT):
    """Natural number that only grows.

    Saturating addition of non-negative amounts stays commutative.
    """

    name = "nat"
    payload_schema = {"type": "integer", "minimum": 0}

    def initial_state(self) -> int:
        return 0

    def apply(self, state: int, operation: Operation) -> int:
        amount = parse_amount(operation.payload)
        if amount < 0:
            raise ValueError(f"{self.name} only supports non-negative increments")
        return min(state + amount, NAT_MAX)
