"""Tests for the record codec and log stores."""

import json

import pytest

from logcrdt.crdt import SharedNumber
from logcrdt.log import ConflictingOperationError, CorruptRecordError, Log, LogSet, Operation
from logcrdt.replay import materialize
from logcrdt.storage import (
    DirectoryLogStore,
    SQLiteLogStore,
    decode_author_dir,
    decode_operation,
    encode_author_dir,
    encode_operation,
)


@pytest.fixture
def directory_store(tmp_path):
    """Create a directory store with SharedNumber validation."""
    return DirectoryLogStore(tmp_path, crdt=SharedNumber())


@pytest.fixture
def sqlite_store():
    """Create an in-memory SQLite store."""
    store = SQLiteLogStore(":memory:", crdt=SharedNumber())
    store.connect()
    yield store
    store.close()


@pytest.fixture(params=["directory", "sqlite"])
def store(request, tmp_path):
    """Each store implementation."""
    if request.param == "directory":
        yield DirectoryLogStore(tmp_path, crdt=SharedNumber())
    else:
        store = SQLiteLogStore(tmp_path / "ops.db", crdt=SharedNumber())
        store.connect()
        yield store
        store.close()


class TestCodec:
    """Tests for encoding and decoding records."""

    def test_encode(self):
        """Test records are JSON with stable key order."""
        record = encode_operation(Operation("alice", 0, "+5"))

        assert record == '{"author_id": "alice", "payload": "+5", "sequence_number": 0}'

    def test_decode(self):
        """Test decoding a record."""
        record = encode_operation(Operation("bob", 3, {"lamport": 1, "value": [1]}))

        assert decode_operation(record) == Operation("bob", 3, {"lamport": 1, "value": [1]})

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            b"\xff\xfe",
            "[1, 2, 3]",
            '{"author_id": "alice", "sequence_number": 0}',
        ],
    )
    def test_decode_corrupt(self, text):
        """Test unparsable or incomplete records."""
        with pytest.raises(CorruptRecordError):
            decode_operation(text, source="test")

    def test_decode_validates_payload(self):
        """Test a payload the CRDT rejects is a corrupt record."""
        record = encode_operation(Operation("alice", 2, "lots"))

        with pytest.raises(CorruptRecordError) as exc_info:
            decode_operation(record, crdt=SharedNumber())

        assert exc_info.value.author_id == "alice"
        assert exc_info.value.sequence_number == 2
        assert exc_info.value.source is None

    def test_decode_payload_error_keeps_source(self):
        """Test schema failures name the record they came from."""
        record = encode_operation(Operation("alice", 0, 5.0))

        with pytest.raises(CorruptRecordError) as exc_info:
            decode_operation(record, source="alice/0.op.json", crdt=SharedNumber())

        assert exc_info.value.source == "alice/0.op.json"
        assert str(exc_info.value).count("alice/0.op.json") == 1

    @pytest.mark.parametrize("author_id", ["alice", "ünïcødé", "a/b\\c", "x" * 100])
    def test_author_dir_roundtrip(self, author_id):
        """Test author ids map to safe directory names and back."""
        name = encode_author_dir(author_id)

        assert "/" not in name
        assert "=" not in name
        assert decode_author_dir(name) == author_id

    def test_author_dir_invalid(self):
        """Test decoding a name that is not base64."""
        with pytest.raises(ValueError):
            decode_author_dir("@@@")


class TestLogStore:
    """Behaviour shared by every store."""

    def test_save_and_load(self, store):
        """Test a saved log is restored exactly."""
        log = Log("alice", [Operation("alice", 0, "+5"), Operation("alice", 1, "-2")])

        assert store.save_log(log) == 2
        result = store.load()

        assert result.ok
        assert result.log_set.log("alice") == log
        assert store.authors() == ["alice"]

    def test_append_is_idempotent(self, store):
        """Test re-appending an identical record writes nothing."""
        operation = Operation("alice", 0, "+5")

        assert store.append(operation) is True
        assert store.append(operation) is False

    def test_append_never_rewrites(self, store):
        """Test a different record under a stored identity is refused."""
        store.append(Operation("alice", 0, "+5"))

        with pytest.raises(ConflictingOperationError):
            store.append(Operation("alice", 0, "+6"))

        assert store.load().log_set.log("alice")[0].payload == "+5"

    def test_load_into_existing_log_set(self, store):
        """Test loading merges into a LogSet that already has operations."""
        store.append(Operation("alice", 0, 5))
        log_set = LogSet([Operation("bob", 0, 3)])

        store.load(log_set)

        assert materialize(log_set, SharedNumber()) == 8

    def test_load_stops_at_gap(self, store):
        """Test records after a gap are not loaded."""
        store.append(Operation("alice", 0, 1))
        store.append(Operation("alice", 2, 1))

        result = store.load()

        assert result.ok
        assert result.log_set.known_authors() == {"alice": 1}

    def test_save_log_set(self, store):
        """Test saving a LogSet includes buffered operations."""
        log_set = LogSet([Operation("alice", 0, 1), Operation("bob", 1, 2)])

        assert store.save_log_set(log_set) == 2
        assert store.save_log_set(log_set) == 0

    def test_empty_store(self, store):
        """Test loading an empty store."""
        result = store.load()

        assert result.ok
        assert len(result.log_set) == 0


class TestDirectoryLogStore:
    """Tests for the file-per-operation layout."""

    def test_layout(self, directory_store, tmp_path):
        """Test one directory per author and one file per operation."""
        directory_store.append(Operation("alice", 0, 1))
        directory_store.append(Operation("alice", 1, 1))

        author_dir = tmp_path / "operations" / encode_author_dir("alice")
        assert sorted(p.name for p in author_dir.iterdir()) == ["0.op.json", "1.op.json"]
        assert json.loads((author_dir / "1.op.json").read_text())["sequence_number"] == 1

    def test_corrupt_record_stops_prefix(self, directory_store):
        """Test a corrupt record ends the author's prefix and is reported."""
        for seq in range(4):
            directory_store.append(Operation("alice", seq, 1))
        directory_store.append(Operation("bob", 0, 10))
        directory_store.record_path(Operation("alice", 2, None)).write_text("{garbage")

        result = directory_store.load()

        assert not result.ok
        assert len(result.errors) == 1
        assert "2.op.json" in str(result.errors[0])
        assert result.log_set.known_authors() == {"alice": 2, "bob": 1}
        assert materialize(result.log_set, SharedNumber()) == 12

    def test_strict_load_raises_after_ingesting(self, directory_store):
        """Test strict mode raises but keeps the valid prefix."""
        directory_store.append(Operation("alice", 0, 1))
        directory_store.append(Operation("alice", 1, 1))
        directory_store.record_path(Operation("alice", 1, None)).write_text('"x"')
        log_set = LogSet()

        with pytest.raises(CorruptRecordError):
            directory_store.load(log_set, strict=True)

        assert log_set.known_authors() == {"alice": 1}

    def test_record_with_wrong_identity(self, directory_store):
        """Test a record moved to the wrong file is corrupt."""
        directory_store.append(Operation("alice", 0, 1))
        path = directory_store.record_path(Operation("alice", 1, None))
        path.write_text(encode_operation(Operation("mallory", 1, 1)))

        result = directory_store.load()

        assert len(result.errors) == 1
        assert result.log_set.known_authors() == {"alice": 1}

    def test_payload_rejected_by_crdt(self, directory_store):
        """Test payloads failing the CRDT schema are corrupt records."""
        directory_store.append(Operation("alice", 0, "not a number"))

        result = directory_store.load()

        assert len(result.errors) == 1
        assert result.log_set.known_authors() == {}

    def test_float_payload_is_corrupt(self, directory_store):
        """Test an integral float written by another tool is reported, not replayed."""
        directory_store.append(Operation("alice", 0, 2))
        directory_store.append(Operation("alice", 1, 5.0))

        result = directory_store.load()

        assert len(result.errors) == 1
        assert result.errors[0].sequence_number == 1
        assert materialize(result.log_set, SharedNumber()) == 2

    def test_unexpected_entries_are_ignored(self, directory_store, tmp_path):
        """Test stray files and undecodable directories are skipped."""
        directory_store.append(Operation("alice", 0, 1))
        (tmp_path / "operations" / "README").write_text("hi")
        (tmp_path / "operations" / "@@@").mkdir()
        (directory_store.author_dir("alice") / "notes.op.json").write_text("x")

        result = directory_store.load()

        assert result.ok
        assert directory_store.authors() == ["alice"]
        assert result.log_set.known_authors() == {"alice": 1}

    def test_two_replicas_union(self, tmp_path):
        """Test copying one replica's author directories into another merges them."""
        ours = DirectoryLogStore(tmp_path / "ours")
        theirs = DirectoryLogStore(tmp_path / "theirs")
        ours.append(Operation("alice", 0, "+5"))
        theirs.append(Operation("bob", 0, "+3"))

        for operation in theirs.load().log_set.all_operations():
            ours.append(operation)

        assert materialize(ours.load().log_set, SharedNumber()) == 8


class TestSQLiteLogStore:
    """Tests specific to the SQLite store."""

    def test_connect_creates_table(self):
        """Test that connect() creates the operations table."""
        store = SQLiteLogStore(":memory:")
        store.connect()

        tables = store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()

        assert "operations" in [t[0] for t in tables]
        store.close()

    def test_connect_is_idempotent(self, sqlite_store):
        """Test calling connect() again is safe."""
        sqlite_store.connect()

        assert sqlite_store.get_stats()["total_operations"] == 0

    def test_get_stats(self, sqlite_store):
        """Test store statistics."""
        sqlite_store.append(Operation("alice", 0, 1))
        sqlite_store.append(Operation("alice", 1, 1))
        sqlite_store.append(Operation("bob", 0, 1))

        stats = sqlite_store.get_stats()

        assert stats["total_operations"] == 3
        assert stats["operations_by_author"] == {"alice": 2, "bob": 1}

    def test_corrupt_payload(self, sqlite_store):
        """Test an unparsable stored payload is reported."""
        sqlite_store.append(Operation("alice", 0, 1))
        sqlite_store.append(Operation("alice", 1, 1))
        sqlite_store._conn.execute(
            "UPDATE operations SET payload = ? WHERE sequence_number = 1", ("{oops",)
        )
        sqlite_store._conn.commit()

        result = sqlite_store.load()

        assert len(result.errors) == 1
        assert result.errors[0].sequence_number == 1
        assert result.log_set.known_authors() == {"alice": 1}

    def test_persists_across_connections(self, tmp_path):
        """Test records survive reopening the database."""
        path = tmp_path / "ops.db"
        store = SQLiteLogStore(path)
        store.append(Operation("alice", 0, 4))
        store.close()

        reopened = SQLiteLogStore(path)
        assert reopened.load().log_set.known_authors() == {"alice": 1}
        reopened.close()
