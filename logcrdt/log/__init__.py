"""Operation identity, per-author logs and log sets."""

from .author_log import Log, OperationsView
from .errors import (
    ConflictingOperationError,
    ContractViolationError,
    CorruptRecordError,
    InvalidAuthorError,
    LogCRDTError,
    SequenceGapError,
    WrongAuthorError,
)
from .log_set import IngestResult, LogSet
from .operation import Operation, OperationId, default_order_key, validate_identity

__all__ = [
    "ConflictingOperationError",
    "ContractViolationError",
    "CorruptRecordError",
    "IngestResult",
    "InvalidAuthorError",
    "Log",
    "LogCRDTError",
    "LogSet",
    "Operation",
    "OperationId",
    "OperationsView",
    "SequenceGapError",
    "WrongAuthorError",
    "default_order_key",
    "validate_identity",
]
