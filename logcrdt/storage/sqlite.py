"""SQLite-backed append-only operation store."""

import json
import logging
import sqlite3
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path
from typing import Any

from ..crdt.base import CRDT
from ..log.errors import ConflictingOperationError, CorruptRecordError
from ..log.operation import Operation
from .base import LogStore
from .codec import decode_record

logger = logging.getLogger(__name__)

# Schema for the operation log
SCHEMA = """
-- Operation log: append-only, one row per (author, sequence number)
CREATE TABLE IF NOT EXISTS operations (
    author_id TEXT NOT NULL,
    sequence_number INTEGER NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (author_id, sequence_number)
);

CREATE INDEX IF NOT EXISTS idx_operations_author ON operations(author_id);
"""


class SQLiteLogStore(LogStore):
    """Log store in a single SQLite database.

    Use ``":memory:"`` as the path for a throwaway store.
    """

    def __init__(self, db_path: str | Path, crdt: CRDT | None = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file.
            crdt: If given, payloads are validated when read back.
        """
        super().__init__(crdt)
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        logger.info(f"SQLiteLogStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    def append(self, operation: Operation) -> bool:
        conn = self._ensure_connected()
        payload = json.dumps(operation.payload, sort_keys=True)

        try:
            conn.execute(
                """
                INSERT INTO operations (author_id, sequence_number, payload, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    operation.author_id,
                    operation.sequence_number,
                    payload,
                    datetime.now().isoformat(),
                ),
            )
        except sqlite3.IntegrityError:
            row = conn.execute(
                """
                SELECT payload FROM operations
                WHERE author_id = ? AND sequence_number = ?
                """,
                (operation.author_id, operation.sequence_number),
            ).fetchone()
            if row is None or json.loads(row["payload"]) != operation.payload:
                raise ConflictingOperationError(
                    operation.author_id, operation.sequence_number
                ) from None
            return False

        conn.commit()
        logger.debug(f"Stored {operation.id}")
        return True

    def authors(self) -> list[str]:
        conn = self._ensure_connected()
        cursor = conn.execute(
            "SELECT DISTINCT author_id FROM operations ORDER BY author_id"
        )
        return [row["author_id"] for row in cursor]

    def read_log(self, author_id: str) -> Iterator[Operation]:
        conn = self._ensure_connected()
        cursor = conn.execute(
            """
            SELECT author_id, sequence_number, payload
            FROM operations
            WHERE author_id = ?
            ORDER BY sequence_number ASC
            """,
            (author_id,),
        )

        expected = 0
        for row in cursor.fetchall():
            if row["sequence_number"] != expected:
                logger.info(f"Log of {author_id} has a gap at {expected}")
                return

            source = f"{self.db_path}:{author_id}:{row['sequence_number']}"
            try:
                payload = json.loads(row["payload"])
            except json.JSONDecodeError as e:
                raise CorruptRecordError(
                    f"Unparsable payload: {e}",
                    author_id=author_id,
                    sequence_number=row["sequence_number"],
                    source=source,
                ) from e

            yield decode_record(
                {
                    "author_id": row["author_id"],
                    "sequence_number": row["sequence_number"],
                    "payload": payload,
                },
                source=source,
                crdt=self.crdt,
            )
            expected += 1

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics.

        Returns:
            Dictionary with record counts per author and database size.
        """
        conn = self._ensure_connected()

        stats: dict[str, Any] = {"db_path": str(self.db_path)}

        cursor = conn.execute("SELECT COUNT(*) FROM operations")
        stats["total_operations"] = cursor.fetchone()[0]

        cursor = conn.execute(
            "SELECT author_id, COUNT(*) FROM operations GROUP BY author_id"
        )
        stats["operations_by_author"] = {row[0]: row[1] for row in cursor}

        if isinstance(self.db_path, Path) and self.db_path.exists():
            stats["db_size_mb"] = round(
                self.db_path.stat().st_size / (1024 * 1024), 2
            )

        return stats
