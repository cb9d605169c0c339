"""Configuration loading for logcrdt."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class NodeConfig:
    name: str = "logcrdt-node"
    author_id: str = ""  # Empty: one is generated per project directory
    identity_dir: str = "~/.logcrdt"


@dataclass
class StorageConfig:
    """Where operations are persisted."""

    backend: str = "directory"  # "directory" or "sqlite"
    sqlite_path: str = "operations.db"  # Relative paths resolve against the project
    strict: bool = False  # Fail on corrupt records instead of reporting them


@dataclass
class SyncConfig:
    """Configuration for HTTP sync with a peer."""

    enabled: bool = False
    remote_url: str = ""
    sync_interval_seconds: int = 60
    retry_max_attempts: int = 3
    batch_size: int = 500
    timeout_seconds: float = 30.0


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    default_crdt: str = "shared-number"


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with LOGCRDT_ prefix."""
    return os.environ.get(f"LOGCRDT_{key}", default)


def _is_true(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Node overrides
    if name := _get_env("NODE_NAME"):
        config.node.name = name
    if author_id := _get_env("AUTHOR_ID"):
        config.node.author_id = author_id
    if identity_dir := _get_env("IDENTITY_DIR"):
        config.node.identity_dir = identity_dir

    # Storage overrides
    if backend := _get_env("STORAGE_BACKEND"):
        config.storage.backend = backend
    if sqlite_path := _get_env("STORAGE_SQLITE_PATH"):
        config.storage.sqlite_path = sqlite_path
    if strict := _get_env("STORAGE_STRICT"):
        config.storage.strict = _is_true(strict)

    # Sync overrides
    if sync_enabled := _get_env("SYNC_ENABLED"):
        config.sync.enabled = _is_true(sync_enabled)
    if remote_url := _get_env("SYNC_REMOTE_URL"):
        config.sync.remote_url = remote_url
    if sync_interval := _get_env("SYNC_INTERVAL"):
        config.sync.sync_interval_seconds = int(sync_interval)

    # Server overrides
    if host := _get_env("SERVER_HOST"):
        config.server.host = host
    if port := _get_env("SERVER_PORT"):
        config.server.port = int(port)

    if default_crdt := _get_env("DEFAULT_CRDT"):
        config.default_crdt = default_crdt

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse node config
            if "node" in data:
                node_data = data["node"]
                config.node = NodeConfig(
                    name=node_data.get("name", config.node.name),
                    author_id=node_data.get("author_id", config.node.author_id),
                    identity_dir=node_data.get(
                        "identity_dir", config.node.identity_dir
                    ),
                )

            # Parse storage config
            if "storage" in data:
                storage_data = data["storage"]
                config.storage = StorageConfig(
                    backend=storage_data.get("backend", config.storage.backend),
                    sqlite_path=storage_data.get(
                        "sqlite_path", config.storage.sqlite_path
                    ),
                    strict=storage_data.get("strict", config.storage.strict),
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    enabled=sync_data.get("enabled", config.sync.enabled),
                    remote_url=sync_data.get("remote_url", config.sync.remote_url),
                    sync_interval_seconds=sync_data.get(
                        "sync_interval_seconds", config.sync.sync_interval_seconds
                    ),
                    retry_max_attempts=sync_data.get(
                        "retry_max_attempts", config.sync.retry_max_attempts
                    ),
                    batch_size=sync_data.get("batch_size", config.sync.batch_size),
                    timeout_seconds=sync_data.get(
                        "timeout_seconds", config.sync.timeout_seconds
                    ),
                )

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                )

            config.default_crdt = data.get("default_crdt", config.default_crdt)

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    if config.storage.backend not in ("directory", "sqlite"):
        raise ValueError(
            f"Unknown storage backend {config.storage.backend!r}, "
            "expected 'directory' or 'sqlite'"
        )

    return config
