"""logcrdt - replicated data types built on per-author operation logs.

Every replica appends its own changes to its own log. Any collection of
logs, merged in any order, replays to the same state.
"""

from logcrdt.crdt import (
    CRDT,
    GrowOnlyNat,
    LamportClock,
    LWWRegister,
    SharedNumber,
    check_commutativity,
    get_crdt,
    register_crdt,
)
from logcrdt.log import (
    ConflictingOperationError,
    ContractViolationError,
    CorruptRecordError,
    IngestResult,
    InvalidAuthorError,
    Log,
    LogCRDTError,
    LogSet,
    Operation,
    OperationId,
    SequenceGapError,
    WrongAuthorError,
    default_order_key,
)
from logcrdt.replay import ReplayEngine, materialize, materialize_history, replay_order

__version__ = "0.1.0"

__all__ = [
    # Operations and logs
    "Operation",
    "OperationId",
    "Log",
    "LogSet",
    "IngestResult",
    "default_order_key",
    # CRDT contract
    "CRDT",
    "check_commutativity",
    "get_crdt",
    "register_crdt",
    # CRDT types
    "SharedNumber",
    "GrowOnlyNat",
    "LWWRegister",
    "LamportClock",
    # Replay
    "ReplayEngine",
    "materialize",
    "materialize_history",
    "replay_order",
    # Errors
    "LogCRDTError",
    "SequenceGapError",
    "WrongAuthorError",
    "InvalidAuthorError",
    "ConflictingOperationError",
    "ContractViolationError",
    "CorruptRecordError",
]
