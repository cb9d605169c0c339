"""Storage boundary for per-author logs."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field

from ..crdt.base import CRDT
from ..log.author_log import Log
from ..log.errors import CorruptRecordError
from ..log.log_set import LogSet
from ..log.operation import Operation

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """LogSet restored from a store, plus any corrupt records met."""

    log_set: LogSet
    errors: list[CorruptRecordError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class LogStore(ABC):
    """Append-only store of operations, one independent unit per author.

    Records are only ever added, never rewritten, so stores synced by
    external tools merge without content conflicts.
    """

    def __init__(self, crdt: CRDT | None = None):
        """Initialize the store.

        Args:
            crdt: If given, payloads are validated when read back.
        """
        self.crdt = crdt

    @abstractmethod
    def append(self, operation: Operation) -> bool:
        """Persist one operation.

        Returns:
            True if written, False if the same record was already stored.

        Raises:
            ConflictingOperationError: If a different record is stored
                under the same identity.
        """
        pass

    @abstractmethod
    def authors(self) -> list[str]:
        """Author ids with at least one stored record."""
        pass

    @abstractmethod
    def read_log(self, author_id: str) -> Iterator[Operation]:
        """Yield an author's records in sequence order.

        Raises:
            CorruptRecordError: On the first record that cannot be decoded.
        """
        pass

    def save_log(self, log: Log) -> int:
        """Persist every operation of a log.

        Returns:
            Number of records newly written.
        """
        return sum(1 for operation in log if self.append(operation))

    def save_log_set(self, log_set: LogSet) -> int:
        """Persist every operation a LogSet holds, buffered ones included."""
        operations = log_set.all_operations()
        for pending in log_set.pending().values():
            operations.extend(pending)
        return sum(1 for operation in operations if self.append(operation))

    def load(self, log_set: LogSet | None = None, strict: bool = False) -> LoadResult:
        """Ingest every stored log into a LogSet.

        Each author's records are read up to the first corrupt one; the
        valid prefix is still ingested and the error is reported.

        Args:
            log_set: LogSet to ingest into; a new one if None.
            strict: Raise the first CorruptRecordError after ingesting.

        Returns:
            LoadResult with the LogSet and the corrupt records found.
        """
        if log_set is None:
            log_set = LogSet()
        result = LoadResult(log_set=log_set)

        for author_id in self.authors():
            operations: list[Operation] = []
            try:
                for operation in self.read_log(author_id):
                    operations.append(operation)
            except CorruptRecordError as e:
                logger.warning(
                    f"Log of {author_id} stops at {len(operations)} records: {e}"
                )
                result.errors.append(e)
            log_set.ingest(operations)

        logger.info(
            f"Loaded {len(log_set)} operations from {len(log_set.known_authors())} authors"
        )
        if strict and result.errors:
            raise result.errors[0]
        return result
