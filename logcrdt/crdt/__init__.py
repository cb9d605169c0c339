"""CRDT contract, registry and the bundled data types."""

from .base import CRDT, CRDTRegistry, check_commutativity, get_crdt, register_crdt, registry
from .counter import GrowOnlyNat, NAT_MAX, SharedNumber, parse_amount
from .register import LamportClock, LWWRegister, RegisterState

__all__ = [
    # Contract
    "CRDT",
    "CRDTRegistry",
    "check_commutativity",
    "get_crdt",
    "register_crdt",
    "registry",
    # Types
    "GrowOnlyNat",
    "LWWRegister",
    "LamportClock",
    "NAT_MAX",
    "RegisterState",
    "SharedNumber",
    "parse_amount",
]
