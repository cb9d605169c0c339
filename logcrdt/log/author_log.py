"""Per-author append-only operation log."""

import logging
from collections.abc import Iterable, Iterator

from .errors import SequenceGapError, WrongAuthorError
from .operation import Operation, validate_identity

logger = logging.getLogger(__name__)


class OperationsView:
    """Restartable view over a log's operations from a sequence number on.

    Every call to ``iter()`` starts again at ``start``. The view is bounded
    by the log length at the time iteration begins.
    """

    def __init__(self, operations: list[Operation], start: int):
        self._operations = operations
        self._start = max(start, 0)

    def __iter__(self) -> Iterator[Operation]:
        end = len(self._operations)
        for index in range(self._start, end):
            yield self._operations[index]

    def __len__(self) -> int:
        return max(len(self._operations) - self._start, 0)


class Log:
    """Append-only, gap-free sequence of one author's operations.

    Sequence numbers start at 0, so the log length is always the next
    expected sequence number.
    """

    def __init__(self, author_id: str, operations: Iterable[Operation] = ()):
        """Initialize the log.

        Args:
            author_id: Author owning this log.
            operations: Operations to append in order, e.g. when
                restoring a persisted log.
        """
        validate_identity(author_id, 0)
        self.author_id = author_id
        self._operations: list[Operation] = []
        for operation in operations:
            self.append(operation)

    @classmethod
    def from_operations(
        cls, author_id: str, operations: Iterable[Operation]
    ) -> "Log":
        """Rebuild a log exactly from an ordered sequence of operations."""
        return cls(author_id, operations)

    def append(self, operation: Operation) -> None:
        """Append the next operation.

        Raises:
            WrongAuthorError: If the operation belongs to another author.
            SequenceGapError: If the sequence number is not the log length.
        """
        if operation.author_id != self.author_id:
            raise WrongAuthorError(self.author_id, operation.author_id)

        expected = len(self._operations)
        if operation.sequence_number != expected:
            raise SequenceGapError(
                self.author_id, expected, operation.sequence_number
            )

        self._operations.append(operation)
        logger.debug(f"Appended {operation.id} to log of {self.author_id}")

    def length(self) -> int:
        """Number of operations, which is also the next sequence number."""
        return len(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def operations_from(self, n: int = 0) -> OperationsView:
        """Operations with sequence number >= n, in ascending order."""
        return OperationsView(self._operations, n)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations_from(0))

    def __getitem__(self, sequence_number: int) -> Operation:
        if sequence_number < 0:
            raise IndexError(sequence_number)
        return self._operations[sequence_number]

    @property
    def last_sequence_number(self) -> int | None:
        """Sequence number of the newest operation, or None if empty."""
        if not self._operations:
            return None
        return len(self._operations) - 1

    def copy(self) -> "Log":
        """Independent copy sharing the (immutable) operations."""
        clone = Log(self.author_id)
        clone._operations = list(self._operations)
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Log):
            return NotImplemented
        return (
            self.author_id == other.author_id
            and self._operations == other._operations
        )

    def __repr__(self) -> str:
        return f"Log(author_id={self.author_id!r}, length={len(self)})"
