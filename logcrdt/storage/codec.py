"""JSON record format for persisted and transported operations."""

import json
from typing import Any

from ..crdt.base import CRDT
from ..log.errors import CorruptRecordError
from ..log.operation import Operation


def encode_operation(operation: Operation) -> str:
    """Serialize one operation as a JSON record."""
    return json.dumps(operation.to_dict(), sort_keys=True)


def decode_record(
    data: Any, source: str | None = None, crdt: CRDT | None = None
) -> Operation:
    """Build an operation from an already parsed record.

    Raises:
        CorruptRecordError: If the record shape or the payload is invalid.
    """
    operation = Operation.from_dict(data, source=source)
    if crdt is not None:
        try:
            crdt.validate_payload(operation.payload)
        except CorruptRecordError as e:
            raise CorruptRecordError(
                str(e),
                author_id=operation.author_id,
                sequence_number=operation.sequence_number,
                source=source,
            ) from e
    return operation


def decode_operation(
    text: str | bytes, source: str | None = None, crdt: CRDT | None = None
) -> Operation:
    """Parse one JSON record.

    Args:
        text: Record contents.
        source: Where the record came from, for error messages.
        crdt: If given, the payload is validated against its schema.

    Raises:
        CorruptRecordError: If the record cannot be parsed or is invalid.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorruptRecordError(f"Unparsable record: {e}", source=source) from e
    return decode_record(data, source=source, crdt=crdt)
