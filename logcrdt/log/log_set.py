"""Union of per-author logs as known to one replica.

Operations may arrive in any order, more than once, and from any subset of
authors. The LogSet keeps each author's contiguous prefix and holds back
operations that arrive ahead of a gap until the gap is filled.
"""

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from .author_log import Log
from .errors import ConflictingOperationError
from .operation import Operation, OperationId, validate_identity

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Summary of one ingest call."""

    accepted: int = 0  # Joined a contiguous prefix, including released buffered ops
    duplicates: int = 0  # Already known, ignored
    buffered: int = 0  # New but held back behind a gap

    @property
    def changed(self) -> bool:
        return self.accepted > 0 or self.buffered > 0


Ingestible = Union[Log, "LogSet", Operation, Iterable[Operation]]


class LogSet:
    """Mapping from author id to that author's known log prefix.

    Ingestion takes an exclusive lock for the whole call and is
    all-or-nothing: a conflicting operation rejects the batch before
    anything is mutated. Readers take a consistent snapshot first.
    """

    def __init__(self, sources: Iterable[Ingestible] = ()):
        self._lock = threading.RLock()
        self._logs: dict[str, Log] = {}
        self._pending: dict[str, dict[int, Operation]] = {}
        for source in sources:
            self.ingest(source)

    def _flatten(self, source: Ingestible) -> list[Operation]:
        if isinstance(source, Operation):
            return [source]
        if isinstance(source, Log):
            return list(source)
        if isinstance(source, LogSet):
            with source._lock:
                operations = source.all_operations()
                for pending in source._pending.values():
                    operations.extend(pending.values())
            return operations
        return list(source)

    def _known(self, op_id: OperationId) -> Operation | None:
        log = self._logs.get(op_id.author_id)
        if log is not None and op_id.sequence_number < log.length():
            return log[op_id.sequence_number]
        return self._pending.get(op_id.author_id, {}).get(op_id.sequence_number)

    def ingest(self, source: Ingestible) -> IngestResult:
        """Merge operations into the per-author prefixes.

        Args:
            source: A Log, another LogSet, one Operation, or any iterable
                of Operations, in any order.

        Returns:
            IngestResult counting accepted, duplicate and buffered ops.

        Raises:
            InvalidAuthorError: If an operation has an unusable author id.
            CorruptRecordError: If an operation has an invalid sequence number.
            ConflictingOperationError: If an operation reuses a known
                identity with a different payload.
        """
        operations = self._flatten(source)
        result = IngestResult()

        with self._lock:
            staged: dict[OperationId, Operation] = {}
            for operation in operations:
                if not isinstance(operation, Operation):
                    raise TypeError(
                        f"Cannot ingest {type(operation).__name__}, expected Operation"
                    )
                validate_identity(operation.author_id, operation.sequence_number)

                existing = staged.get(operation.id) or self._known(operation.id)
                if existing is not None:
                    if existing.payload != operation.payload:
                        raise ConflictingOperationError(
                            operation.author_id, operation.sequence_number
                        )
                    result.duplicates += 1
                    continue
                staged[operation.id] = operation

            touched: set[str] = set()
            for op_id, operation in staged.items():
                if op_id.author_id not in self._logs:
                    self._logs[op_id.author_id] = Log(op_id.author_id)
                self._pending.setdefault(op_id.author_id, {})[
                    op_id.sequence_number
                ] = operation
                touched.add(op_id.author_id)

            for author_id in touched:
                result.accepted += self._release(author_id)

            result.buffered = sum(
                1
                for op_id in staged
                if op_id.sequence_number in self._pending.get(op_id.author_id, {})
            )

        if result.changed:
            logger.debug(
                f"Ingested {result.accepted} accepted, {result.buffered} buffered, "
                f"{result.duplicates} duplicate operations"
            )
        return result

    def _release(self, author_id: str) -> int:
        """Move buffered operations that are now contiguous into the log."""
        log = self._logs[author_id]
        pending = self._pending.get(author_id, {})
        released = 0
        while log.length() in pending:
            log.append(pending.pop(log.length()))
            released += 1
        if not pending:
            self._pending.pop(author_id, None)
        return released

    def merge(self, other: "LogSet") -> IngestResult:
        """Ingest everything another LogSet knows, buffered ops included."""
        return self.ingest(other)

    def all_operations(self) -> list[Operation]:
        """Operations of every author's contiguous prefix.

        The result is grouped by author and not in replay order; buffered
        operations are left out until their gap closes.
        """
        with self._lock:
            operations: list[Operation] = []
            for log in self._logs.values():
                operations.extend(log)
            return operations

    def known_authors(self) -> dict[str, int]:
        """Map author id to the length of its known contiguous prefix."""
        with self._lock:
            return {author_id: log.length() for author_id, log in self._logs.items()}

    def log(self, author_id: str) -> Log:
        """Copy of the known prefix for an author (empty if unknown)."""
        with self._lock:
            log = self._logs.get(author_id)
            return log.copy() if log is not None else Log(author_id)

    def pending(self) -> dict[str, list[Operation]]:
        """Buffered operations per author, in sequence order."""
        with self._lock:
            return {
                author_id: [ops[seq] for seq in sorted(ops)]
                for author_id, ops in self._pending.items()
            }

    def missing_for(
        self, known: Mapping[str, int], limit: int | None = None
    ) -> list[Operation]:
        """Operations a peer with the given author vector does not have.

        Args:
            known: Peer's map of author id to prefix length.
            limit: Maximum operations to return.
        """
        with self._lock:
            missing: list[Operation] = []
            for author_id in sorted(self._logs):
                start = known.get(author_id, 0)
                for operation in self._logs[author_id].operations_from(start):
                    if limit is not None and len(missing) >= limit:
                        return missing
                    missing.append(operation)
            return missing

    def snapshot(self) -> "LogSet":
        """Consistent, independent copy of the current content."""
        with self._lock:
            copy = LogSet()
            copy._logs = {author_id: log.copy() for author_id, log in self._logs.items()}
            copy._pending = {
                author_id: dict(ops) for author_id, ops in self._pending.items()
            }
            return copy

    def __contains__(self, item: Any) -> bool:
        op_id = item.id if isinstance(item, Operation) else OperationId(*item)
        with self._lock:
            log = self._logs.get(op_id.author_id)
            return log is not None and op_id.sequence_number < log.length()

    def __len__(self) -> int:
        with self._lock:
            return sum(log.length() for log in self._logs.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LogSet):
            return NotImplemented
        return (
            self.known_authors() == other.known_authors()
            and sorted(self.all_operations(), key=_identity) == sorted(
                other.all_operations(), key=_identity
            )
            and self.pending() == other.pending()
        )

    def __repr__(self) -> str:
        return f"LogSet(authors={self.known_authors()!r})"


def _identity(operation: Operation) -> tuple[str, int]:
    return (operation.author_id, operation.sequence_number)
