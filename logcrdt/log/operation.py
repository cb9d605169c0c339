"""Operations and their identity.

An operation is identified by ``(author_id, sequence_number)``. That pair
never depends on payload or arrival order, which is what lets every
replica sort the same set of operations into the same order.
"""

from dataclasses import dataclass
from typing import Any, NamedTuple

from .errors import CorruptRecordError, InvalidAuthorError


class OperationId(NamedTuple):
    """Identity of an operation."""

    author_id: str
    sequence_number: int

    def __str__(self) -> str:
        return f"{self.author_id}:{self.sequence_number}"


@dataclass(frozen=True)
class Operation:
    """One atomic change made by one author."""

    author_id: str
    sequence_number: int
    payload: Any = None

    @property
    def id(self) -> OperationId:
        return OperationId(self.author_id, self.sequence_number)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted record shape."""
        return {
            "author_id": self.author_id,
            "sequence_number": self.sequence_number,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Any, source: str | None = None) -> "Operation":
        """Create from a persisted record.

        Raises:
            CorruptRecordError: If the record is missing fields or has
                invalid identity fields.
        """
        if not isinstance(data, dict):
            raise CorruptRecordError(
                f"Expected an object, got {type(data).__name__}", source=source
            )

        missing = [
            key for key in ("author_id", "sequence_number", "payload")
            if key not in data
        ]
        if missing:
            raise CorruptRecordError(
                f"Record is missing {', '.join(missing)}",
                author_id=data.get("author_id"),
                source=source,
            )

        author_id = data["author_id"]
        sequence_number = data["sequence_number"]
        try:
            validate_identity(author_id, sequence_number)
        except (InvalidAuthorError, CorruptRecordError) as e:
            raise CorruptRecordError(str(e), source=source) from e

        return cls(
            author_id=author_id,
            sequence_number=sequence_number,
            payload=data["payload"],
        )


def validate_identity(author_id: Any, sequence_number: Any) -> None:
    """Check that an identity pair is well formed.

    Raises:
        InvalidAuthorError: If the author id is not a non-empty string.
        CorruptRecordError: If the sequence number is not a non-negative int.
    """
    if not isinstance(author_id, str) or not author_id:
        raise InvalidAuthorError(author_id)
    # bool is an int subclass
    if (
        isinstance(sequence_number, bool)
        or not isinstance(sequence_number, int)
        or sequence_number < 0
    ):
        raise CorruptRecordError(
            f"Invalid sequence number {sequence_number!r}",
            author_id=author_id,
        )


def default_order_key(operation: Operation) -> tuple[int, str]:
    """Fallback replay order: sequence number first, author id as tie-break.

    Total and deterministic, but blind to causality between authors.
    """
    return (operation.sequence_number, operation.author_id)
