"""Local author identities, one per project directory."""

import hashlib
import logging
import threading
import uuid
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

IDENTITIES_FILE = "identities.yaml"


def project_key(project_dir: str | Path) -> str:
    """Stable key for a project directory, from its canonical path."""
    canonical = str(Path(project_dir).expanduser().resolve())
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:32]


class IdentityStore:
    """Persists which author id this machine uses for each project.

    Opening the same project from two directories yields two authors,
    each with its own log.
    """

    def __init__(self, config_dir: str | Path):
        self.config_dir = Path(config_dir).expanduser()
        self.path = self.config_dir / IDENTITIES_FILE
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = yaml.safe_load(f) or {}
        return dict(data.get("projects", {}))

    def _write(self, projects: dict[str, str]) -> None:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump({"projects": projects}, f, sort_keys=True)

    def author_for(self, project_dir: str | Path) -> str:
        """Author id for a project directory, created on first use."""
        key = project_key(project_dir)
        with self._lock:
            projects = self._read()
            if key not in projects:
                projects[key] = uuid.uuid4().hex
                self._write(projects)
                logger.info(f"Created author {projects[key]} for {project_dir}")
            return projects[key]
