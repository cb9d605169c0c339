"""CLI entry point for logcrdt."""

import argparse
import asyncio
import inspect
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

import yaml

from .config import Config, load_config
from .crdt import registry
from .log import LogCRDTError
from .project import Project

logger = logging.getLogger("logcrdt")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            # Fallback for non-serializable objects
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.WARNING)
    else:
        level = logging.DEBUG if verbose else logging.WARNING

    # Configure handler with appropriate formatter
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def parse_value(text: str) -> object:
    """Read a CLI value as a YAML scalar: ``+5`` -> 5, ``hello`` -> 'hello'."""
    return yaml.safe_load(text)


def _open_project(args: argparse.Namespace) -> tuple[Config, Project]:
    """Load config, open the project and ingest its stored logs."""
    config = load_config(args.config)
    project = Project.open(args.project, config, author_id=getattr(args, "author", None))
    result = project.load(strict=config.storage.strict)
    for error in result.errors:
        print(f"Warning: {error}", file=sys.stderr)
    return config, project


def cmd_init(args: argparse.Namespace) -> int:
    """Create a new project."""
    config = load_config(args.config)
    crdt_name = args.crdt or config.default_crdt

    info = Project.create(args.project, crdt_name)
    print(f"Created {info.crdt} project {info.project_id} at {args.project}")
    return 0


def cmd_record(args: argparse.Namespace) -> int:
    """Record one local operation."""
    _, project = _open_project(args)
    try:
        operation = project.record(parse_value(args.value))
        print(f"Recorded {operation.id}")
        print(f"Current value: {project.value()}")
    finally:
        project.close()
    return 0


def cmd_value(args: argparse.Namespace) -> int:
    """Print the materialized value."""
    _, project = _open_project(args)
    try:
        print(project.value())
    finally:
        project.close()
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Print every operation in replay order with the state after it."""
    _, project = _open_project(args)
    try:
        for operation, state in project.history():
            print(
                f"{operation.id}\t{json.dumps(operation.payload)}\t"
                f"{project.crdt.describe(state)}"
            )
    finally:
        project.close()
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show project status."""
    config, project = _open_project(args)
    try:
        status_data = {
            "timestamp": datetime.now().isoformat(),
            "project": {
                "path": str(project.path),
                "project_id": project.info.project_id,
                "crdt": project.info.crdt,
                "storage": config.storage.backend,
            },
            "author_id": project.author_id,
            "value": project.value(),
            "operations": len(project.log_set),
            "authors": project.log_set.known_authors(),
            "pending": {
                author_id: [op.sequence_number for op in ops]
                for author_id, ops in project.log_set.pending().items()
            },
        }
    finally:
        project.close()

    if args.json:
        print(json.dumps(status_data, indent=2))
    else:
        print("logcrdt Status")
        print("==============")
        print(f"Project: {status_data['project']['path']} ({status_data['project']['crdt']})")
        print(f"Author: {status_data['author_id']}")
        print(f"Value: {status_data['value']}")
        print(f"Operations: {status_data['operations']}")
        for author_id, length in sorted(status_data["authors"].items()):
            print(f"  - {author_id}: {length}")
        if status_data["pending"]:
            print("Waiting for missing operations:")
            for author_id, seqs in sorted(status_data["pending"].items()):
                print(f"  - {author_id}: holding {seqs}")

    return 0


def cmd_repl(args: argparse.Namespace) -> int:
    """Interactive loop recording one operation per line."""
    _, project = _open_project(args)
    print(f"Editing the {project.crdt.name} at {project.path}, empty line to quit")
    try:
        while True:
            print(f"Current value: {project.value()}")
            try:
                line = input("Operation: ").strip()
            except EOFError:
                break
            if not line:
                break
            try:
                project.record(parse_value(line))
            except (LogCRDTError, ValueError, yaml.YAMLError) as e:
                print(f"Error: {e}", file=sys.stderr)
    finally:
        project.close()
    return 0


async def cmd_sync(args: argparse.Namespace) -> int:
    """Sync once with a peer."""
    from .sync import SyncClient, SyncStatus

    config, project = _open_project(args)
    remote_url = args.remote or config.sync.remote_url
    if not remote_url:
        print("Error: no remote URL (use --remote or sync.remote_url)", file=sys.stderr)
        project.close()
        return 1

    client = SyncClient(
        project.log_set,
        remote_url,
        crdt=project.crdt,
        store=project.store,
        batch_size=config.sync.batch_size,
        max_retries=config.sync.retry_max_attempts,
        timeout=config.sync.timeout_seconds,
    )
    try:
        result = await client.full_sync()
        print(
            f"Sync {result.status.value}: pushed={result.operations_pushed}, "
            f"pulled={result.operations_pulled}"
        )
        if result.error:
            print(f"Error: {result.error}", file=sys.stderr)
        print(f"Current value: {project.value()}")
    finally:
        project.close()

    return 0 if result.status == SyncStatus.SUCCESS else 1


async def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the project's logs to peers."""
    try:
        import uvicorn

        from .server import create_app
        from .sync import SyncClient
    except ImportError as e:
        print(f"Server dependencies not installed: {e}", file=sys.stderr)
        return 1

    config, project = _open_project(args)
    host = args.host or config.server.host
    port = args.port or config.server.port

    app = create_app(project.log_set, project.crdt, store=project.store, config=config)

    stop_event = asyncio.Event()
    sync_task = None
    if config.sync.enabled and config.sync.remote_url:
        client = SyncClient(
            project.log_set,
            config.sync.remote_url,
            crdt=project.crdt,
            store=project.store,
            batch_size=config.sync.batch_size,
            max_retries=config.sync.retry_max_attempts,
            timeout=config.sync.timeout_seconds,
        )
        sync_task = asyncio.create_task(
            client.sync_loop(config.sync.sync_interval_seconds, stop_event)
        )

    print(f"Serving {project.info.crdt} project {project.info.project_id}")
    print(f"URL: http://{host}:{port}")

    try:
        uvicorn_config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if args.verbose else "warning",
        )
        server = uvicorn.Server(uvicorn_config)
        await server.serve()
    finally:
        stop_event.set()
        if sync_task is not None:
            await sync_task
        project.close()

    return 0


def cmd_crdts(args: argparse.Namespace) -> int:
    """List registered CRDT types."""
    for name in registry.names:
        print(name)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="logcrdt",
        description="Replicated data types built on per-author operation logs",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    def project_parser(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("project", type=Path, help="Project directory")
        return sub

    def with_author(sub: argparse.ArgumentParser) -> argparse.ArgumentParser:
        sub.add_argument(
            "--author",
            type=str,
            default=None,
            help="Author id to act as (default: per-directory identity)",
        )
        return sub

    init_parser = project_parser("init", "Create a new project")
    init_parser.add_argument(
        "--crdt",
        type=str,
        default=None,
        help=f"CRDT type ({', '.join(registry.names)})",
    )
    init_parser.set_defaults(func=cmd_init)

    record_parser = with_author(project_parser("record", "Record one operation"))
    record_parser.add_argument("value", type=str, help="Operation value, e.g. +5")
    record_parser.set_defaults(func=cmd_record)

    value_parser = with_author(project_parser("value", "Print the current value"))
    value_parser.set_defaults(func=cmd_value)

    history_parser = with_author(project_parser("history", "Print operations in replay order"))
    history_parser.set_defaults(func=cmd_history)

    status_parser = with_author(project_parser("status", "Show project status"))
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    repl_parser = with_author(project_parser("repl", "Record operations interactively"))
    repl_parser.set_defaults(func=cmd_repl)

    sync_parser = with_author(project_parser("sync", "Sync once with a peer"))
    sync_parser.add_argument(
        "--remote",
        type=str,
        default=None,
        help="Peer URL (default: sync.remote_url)",
    )
    sync_parser.set_defaults(func=cmd_sync)

    serve_parser = with_author(project_parser("serve", "Serve logs to peers"))
    serve_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to listen on (default: server.port)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: server.host)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    crdts_parser = subparsers.add_parser("crdts", help="List CRDT types")
    crdts_parser.set_defaults(func=cmd_crdts)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    try:
        if inspect.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except (LogCRDTError, FileExistsError, FileNotFoundError, KeyError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
