"""Project directories: a CRDT type, its operation logs and a local author."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .config import Config
from .crdt import CRDT, get_crdt
from .identity import IdentityStore
from .log import LogSet, Operation
from .replay import ReplayEngine, materialize_history
from .storage import DirectoryLogStore, LoadResult, LogStore, SQLiteLogStore

logger = logging.getLogger(__name__)

PROJECT_FILE = "project.yaml"


@dataclass
class ProjectInfo:
    """Contents of ``project.yaml``."""

    project_id: str
    crdt: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "crdt": self.crdt,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProjectInfo":
        return cls(
            project_id=data["project_id"],
            crdt=data["crdt"],
            created_at=datetime.fromisoformat(data["created_at"]),
        )


class Project:
    """A shared CRDT whose history lives in a directory.

    Every collaborator appends to their own log inside the directory, so
    the directory can be synced with any file-level tool.
    """

    def __init__(
        self,
        path: str | Path,
        info: ProjectInfo,
        author_id: str,
        store: LogStore,
        crdt: CRDT,
    ):
        self.path = Path(path)
        self.info = info
        self.author_id = author_id
        self.store = store
        self.crdt = crdt
        self.log_set = LogSet()
        self.engine = ReplayEngine(crdt)

    @classmethod
    def create(
        cls, path: str | Path, crdt_name: str, project_id: str | None = None
    ) -> ProjectInfo:
        """Create a new project directory.

        Raises:
            FileExistsError: If the directory already holds a project.
            KeyError: If the CRDT type is unknown.
        """
        get_crdt(crdt_name)

        path = Path(path).expanduser()
        project_file = path / PROJECT_FILE
        if project_file.exists():
            raise FileExistsError(f"A project already exists at {project_file}")

        info = ProjectInfo(
            project_id=project_id or uuid.uuid4().hex,
            crdt=crdt_name,
            created_at=datetime.now(),
        )
        path.mkdir(parents=True, exist_ok=True)
        with open(project_file, "w") as f:
            yaml.safe_dump(info.to_dict(), f, sort_keys=False)

        logger.info(f"Created {crdt_name} project {info.project_id} at {path}")
        return info

    @classmethod
    def open(
        cls,
        path: str | Path,
        config: Config | None = None,
        author_id: str | None = None,
    ) -> "Project":
        """Open an existing project.

        Args:
            path: Project directory.
            config: Configuration; defaults are used if None.
            author_id: Local author; otherwise taken from config or the
                identity store.

        Raises:
            FileNotFoundError: If the directory holds no project.
        """
        config = config or Config()
        path = Path(path).expanduser()
        project_file = path / PROJECT_FILE
        with open(project_file) as f:
            info = ProjectInfo.from_dict(yaml.safe_load(f))

        crdt = get_crdt(info.crdt)

        if config.storage.backend == "sqlite":
            db_path = Path(config.storage.sqlite_path).expanduser()
            if not db_path.is_absolute():
                db_path = path / db_path
            store: LogStore = SQLiteLogStore(db_path, crdt=crdt)
        else:
            store = DirectoryLogStore(path, crdt=crdt)

        if not author_id:
            author_id = config.node.author_id or IdentityStore(
                config.node.identity_dir
            ).author_for(path)

        return cls(path, info, author_id, store, crdt)

    def load(self, strict: bool = False) -> LoadResult:
        """Ingest everything persisted in the project."""
        return self.store.load(self.log_set, strict=strict)

    def record(self, value: Any) -> Operation:
        """Append a new local operation and persist it.

        The CRDT turns the value into a payload, e.g. adding a Lamport stamp.

        Raises:
            CorruptRecordError: If the payload does not fit the CRDT.
        """
        payload = self.crdt.make_payload(value, self.log_set)
        self.crdt.validate_payload(payload)
        sequence_number = self.log_set.known_authors().get(self.author_id, 0)
        operation = Operation(self.author_id, sequence_number, payload)

        self.store.append(operation)
        self.log_set.ingest(operation)
        logger.debug(f"Recorded {operation.id}")
        return operation

    def state(self) -> Any:
        """Materialized state of everything ingested so far."""
        return self.engine.materialize(self.log_set)

    def value(self) -> str:
        """Human-readable rendering of the state."""
        return self.crdt.describe(self.state())

    def history(self) -> list[tuple[Operation, Any]]:
        return list(materialize_history(self.log_set, self.crdt))

    def close(self) -> None:
        if isinstance(self.store, SQLiteLogStore):
            self.store.close()
