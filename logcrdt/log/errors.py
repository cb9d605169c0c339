"""Exception hierarchy for logs, log sets and persisted records."""

from typing import Any


class LogCRDTError(Exception):
    """Base class for all logcrdt errors."""


class SequenceGapError(LogCRDTError):
    """An operation was appended out of sequence order."""

    def __init__(self, author_id: str, expected: int, got: int):
        self.author_id = author_id
        self.expected = expected
        self.got = got
        super().__init__(
            f"Log for {author_id!r} expects sequence number {expected}, got {got}"
        )


class WrongAuthorError(LogCRDTError):
    """An operation was appended to another author's log."""

    def __init__(self, expected: str, got: str):
        self.expected = expected
        self.got = got
        super().__init__(
            f"Log belongs to {expected!r}, refusing operation from {got!r}"
        )


class InvalidAuthorError(LogCRDTError):
    """An operation carries an author id that is not a usable identity."""

    def __init__(self, author_id: Any):
        self.author_id = author_id
        super().__init__(f"Invalid author id: {author_id!r}")


class ConflictingOperationError(LogCRDTError):
    """Two operations share an identity but carry different payloads.

    Each author writes a single gap-free log, so this only happens when an
    author id was reused by two writers.
    """

    def __init__(self, author_id: str, sequence_number: int):
        self.author_id = author_id
        self.sequence_number = sequence_number
        super().__init__(
            f"Operation {author_id}:{sequence_number} already known "
            "with a different payload"
        )


class ContractViolationError(LogCRDTError):
    """A CRDT implementation broke the replay contract."""


class CorruptRecordError(LogCRDTError):
    """A persisted or transported record could not be decoded."""

    def __init__(
        self,
        message: str,
        author_id: str | None = None,
        sequence_number: int | None = None,
        source: str | None = None,
    ):
        self.author_id = author_id
        self.sequence_number = sequence_number
        self.source = source
        detail = message
        if source:
            detail = f"{detail} (in {source})"
        super().__init__(detail)
