"""One file per operation, one directory per author.

Layout::

    <root>/operations/<encoded author id>/<sequence number>.op.json

Appends only ever create new files, so directories merged by folder sync
or version control never produce content conflicts.
"""

import base64
import binascii
import logging
import re
from collections.abc import Iterator
from pathlib import Path

from ..crdt.base import CRDT
from ..log.errors import ConflictingOperationError, CorruptRecordError
from ..log.operation import Operation
from .base import LogStore
from .codec import decode_operation, encode_operation

logger = logging.getLogger(__name__)

OPERATIONS_DIR = "operations"
RECORD_SUFFIX = ".op.json"
AUTHOR_DIR_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def encode_author_dir(author_id: str) -> str:
    """URL-safe, unpadded base64 of the author id."""
    return base64.urlsafe_b64encode(author_id.encode("utf-8")).decode("ascii").rstrip("=")


def decode_author_dir(name: str) -> str:
    """Inverse of ``encode_author_dir``.

    Raises:
        ValueError: If the name is not a valid encoded author id.
    """
    if not AUTHOR_DIR_PATTERN.fullmatch(name):
        raise ValueError(f"{name!r} is not an encoded author id")

    padded = name + "=" * (-len(name) % 4)
    try:
        author_id = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError) as e:
        raise ValueError(f"{name!r} is not an encoded author id") from e

    if not author_id or encode_author_dir(author_id) != name:
        raise ValueError(f"{name!r} is not an encoded author id")
    return author_id


class DirectoryLogStore(LogStore):
    """Log store laid out as plain files."""

    def __init__(self, root: str | Path, crdt: CRDT | None = None):
        """Initialize the store.

        Args:
            root: Project directory holding the ``operations`` folder.
            crdt: If given, payloads are validated when read back.
        """
        super().__init__(crdt)
        self.root = Path(root).expanduser()
        self.operations_dir = self.root / OPERATIONS_DIR

    def author_dir(self, author_id: str) -> Path:
        return self.operations_dir / encode_author_dir(author_id)

    def record_path(self, operation: Operation) -> Path:
        return self.author_dir(operation.author_id) / (
            f"{operation.sequence_number}{RECORD_SUFFIX}"
        )

    def append(self, operation: Operation) -> bool:
        path = self.record_path(operation)
        path.parent.mkdir(parents=True, exist_ok=True)
        record = encode_operation(operation)

        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(record)
        except FileExistsError:
            existing = decode_operation(path.read_bytes(), source=str(path))
            if existing != operation:
                raise ConflictingOperationError(
                    operation.author_id, operation.sequence_number
                ) from None
            return False

        logger.debug(f"Wrote {operation.id} to {path}")
        return True

    def authors(self) -> list[str]:
        if not self.operations_dir.exists():
            return []

        authors = []
        for entry in sorted(self.operations_dir.iterdir()):
            if not entry.is_dir():
                logger.warning(f"Ignoring unexpected file {entry}")
                continue
            try:
                authors.append(decode_author_dir(entry.name))
            except ValueError as e:
                logger.warning(f"Ignoring directory {entry}: {e}")
        return authors

    def _record_files(self, author_id: str) -> list[tuple[int, Path]]:
        files = []
        for path in self.author_dir(author_id).glob(f"*{RECORD_SUFFIX}"):
            stem = path.name[: -len(RECORD_SUFFIX)]
            if not stem.isdigit():
                logger.warning(f"Ignoring unexpected file {path}")
                continue
            files.append((int(stem), path))
        return sorted(files)

    def read_log(self, author_id: str) -> Iterator[Operation]:
        expected = 0
        for sequence_number, path in self._record_files(author_id):
            if sequence_number != expected:
                logger.info(
                    f"Log of {author_id} has a gap at {expected}, "
                    f"next record is {sequence_number}"
                )
                return

            try:
                text = path.read_bytes()
            except OSError as e:
                raise CorruptRecordError(
                    f"Unreadable record: {e}",
                    author_id=author_id,
                    sequence_number=sequence_number,
                    source=str(path),
                ) from e

            operation = decode_operation(text, source=str(path), crdt=self.crdt)
            if operation.id != (author_id, sequence_number):
                raise CorruptRecordError(
                    f"Record claims to be {operation.id}",
                    author_id=author_id,
                    sequence_number=sequence_number,
                    source=str(path),
                )

            yield operation
            expected += 1
