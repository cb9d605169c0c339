"""FastAPI application exposing a LogSet to peers."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..config import Config
from ..crdt import CRDT
from ..log import (
    ConflictingOperationError,
    CorruptRecordError,
    InvalidAuthorError,
    LogSet,
)
from ..replay import ReplayEngine
from ..storage import LogStore, decode_record

logger = logging.getLogger(__name__)


class PullRequest(BaseModel):
    known: dict[str, int] = Field(default_factory=dict)
    limit: int | None = None


class PushRequest(BaseModel):
    operations: list[Any] = Field(default_factory=list)


def create_app(
    log_set: LogSet,
    crdt: CRDT,
    store: LogStore | None = None,
    config: Config | None = None,
) -> FastAPI:
    """Create the sync application.

    Args:
        log_set: LogSet served to and extended by peers.
        crdt: CRDT used to validate payloads and materialize state.
        store: Optional store that pushed operations are persisted to.
        config: Application configuration.

    Returns:
        Configured FastAPI application.
    """
    config = config or Config()
    engine = ReplayEngine(crdt)

    app = FastAPI(
        title="logcrdt",
        description="Operation log exchange for a replicated data type",
        version="0.1.0",
    )

    # Store references for route handlers
    app.state.config = config
    app.state.log_set = log_set
    app.state.store = store
    app.state.engine = engine

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "node_name": config.node.name,
            "crdt": crdt.name,
            "components": {"store": store is not None},
        }

    @app.get("/api/state")
    async def api_state() -> dict[str, Any]:
        """Materialized value of everything this peer knows."""
        state = engine.materialize(log_set)
        return {
            "crdt": crdt.name,
            "value": crdt.describe(state),
            "operations": len(log_set),
            "authors": log_set.known_authors(),
            "pending": {
                author_id: len(ops) for author_id, ops in log_set.pending().items()
            },
        }

    @app.get("/api/sync/vector")
    async def api_vector() -> dict[str, Any]:
        """Known prefix length per author."""
        return {"known": log_set.known_authors()}

    @app.post("/api/sync/pull")
    async def api_pull(request: PullRequest) -> dict[str, Any]:
        """Operations the caller is missing, given its author vector."""
        limit = request.limit
        operations = log_set.missing_for(
            request.known, limit=limit + 1 if limit is not None else None
        )
        more = limit is not None and len(operations) > limit
        if more:
            operations = operations[:limit]
        return {
            "operations": [op.to_dict() for op in operations],
            "more": more,
        }

    @app.post("/api/sync/push")
    async def api_push(request: PushRequest) -> dict[str, Any]:
        """Ingest operations sent by a peer."""
        try:
            operations = [decode_record(record, crdt=crdt) for record in request.operations]
            result = log_set.ingest(operations)
        except (CorruptRecordError, InvalidAuthorError) as e:
            logger.warning(f"Rejected push: {e}")
            raise HTTPException(status_code=422, detail=str(e)) from e
        except ConflictingOperationError as e:
            logger.warning(f"Rejected push: {e}")
            raise HTTPException(status_code=409, detail=str(e)) from e

        if store is not None:
            for operation in operations:
                store.append(operation)

        logger.info(
            f"Push: accepted={result.accepted}, buffered={result.buffered}, "
            f"duplicates={result.duplicates}"
        )
        return {
            "accepted": result.accepted,
            "duplicates": result.duplicates,
            "buffered": result.buffered,
            "known": log_set.known_authors(),
        }

    return app
