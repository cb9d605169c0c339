"""Sync client exchanging operations with a peer over HTTP.

Handles network synchronization with retry logic and batching. Delivery
order and completeness do not matter: the LogSet buffers and deduplicates
whatever arrives.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from ..crdt import CRDT
from ..log import ConflictingOperationError, CorruptRecordError, LogSet
from ..storage import LogStore, decode_record

logger = logging.getLogger(__name__)


class SyncStatus(Enum):
    """Status of a sync operation."""

    SUCCESS = "success"
    FAILED = "failed"
    OFFLINE = "offline"  # Remote unavailable


@dataclass
class SyncResult:
    """Result of a sync operation."""

    status: SyncStatus
    operations_pushed: int = 0
    operations_pulled: int = 0
    error: str | None = None
    timestamp: datetime | None = None


class SyncClient:
    """Client for synchronizing a LogSet with one peer.

    Supports:
    - Push: Send operations the peer is missing
    - Pull: Fetch operations this replica is missing
    - Full sync: Bidirectional sync

    Uses exponential backoff for retries and batching for efficiency.
    """

    def __init__(
        self,
        log_set: LogSet,
        remote_url: str | None = None,
        crdt: CRDT | None = None,
        store: LogStore | None = None,
        batch_size: int = 500,
        max_retries: int = 3,
        timeout: float = 30.0,
    ):
        """Initialize the sync client.

        Args:
            log_set: Local LogSet to sync.
            remote_url: Base URL of the peer (e.g., "http://peer:8765").
            crdt: If given, pulled payloads are validated against it.
            store: If given, pulled operations are persisted to it.
            batch_size: Maximum operations per request.
            max_retries: Maximum retry attempts.
            timeout: Request timeout in seconds.
        """
        self.log_set = log_set
        self.remote_url = remote_url
        self.crdt = crdt
        self.store = store
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.timeout = timeout
        self._last_sync: datetime | None = None
        self._consecutive_failures = 0

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json_data: Any = None,
    ) -> tuple[Any, str | None]:
        """Make HTTP request with exponential backoff retry.

        Args:
            method: HTTP method (GET, POST).
            path: URL path to append to remote_url.
            json_data: Optional JSON body.

        Returns:
            Tuple of (response_data, error_message).
        """
        if not self.remote_url:
            return None, "No remote URL configured"

        url = f"{self.remote_url.rstrip('/')}{path}"
        backoff = 1.0

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    if method == "GET":
                        response = await client.get(url)
                    elif method == "POST":
                        response = await client.post(url, json=json_data)
                    else:
                        return None, f"Unsupported method: {method}"

                    if response.status_code == 200:
                        self._consecutive_failures = 0
                        return response.json(), None
                    elif response.status_code >= 500:
                        # Server error, retry
                        logger.warning(
                            f"Server error {response.status_code}, "
                            f"attempt {attempt + 1}/{self.max_retries}"
                        )
                    else:
                        # Client error, don't retry
                        return None, f"HTTP {response.status_code}: {response.text}"

                except httpx.ConnectError:
                    logger.warning(
                        f"Connection failed, attempt {attempt + 1}/{self.max_retries}"
                    )
                except httpx.TimeoutException:
                    logger.warning(
                        f"Request timeout, attempt {attempt + 1}/{self.max_retries}"
                    )
                except httpx.HTTPError as e:
                    logger.error(f"Request error: {e}")
                    return None, str(e)

                # Exponential backoff
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(backoff)
                    backoff *= 2

        self._consecutive_failures += 1
        return None, f"Max retries ({self.max_retries}) exceeded"

    @staticmethod
    def _failure(error: str) -> SyncResult:
        return SyncResult(
            status=SyncStatus.OFFLINE if "Max retries" in error else SyncStatus.FAILED,
            error=error,
        )

    async def push_operations(self) -> SyncResult:
        """Push operations the peer does not have yet.

        Returns:
            SyncResult with push statistics.
        """
        if not self.remote_url:
            return SyncResult(status=SyncStatus.FAILED, error="No remote URL configured")

        data, error = await self._request_with_retry("GET", "/api/sync/vector")
        if error:
            return self._failure(error)

        remote_known = data.get("known", {})
        pushed = 0
        while True:
            missing = self.log_set.missing_for(remote_known, limit=self.batch_size)
            if not missing:
                break

            data, error = await self._request_with_retry(
                "POST",
                "/api/sync/push",
                {"operations": [op.to_dict() for op in missing]},
            )
            if error:
                result = self._failure(error)
                result.operations_pushed = pushed
                return result

            pushed += len(missing)
            new_known = data.get("known", {})
            if new_known == remote_known:
                # Peer is buffering what we sent; nothing more to learn
                break
            remote_known = new_known

        self._last_sync = datetime.now()
        return SyncResult(
            status=SyncStatus.SUCCESS,
            operations_pushed=pushed,
            timestamp=self._last_sync,
        )

    async def pull_operations(self) -> SyncResult:
        """Pull operations this replica is missing.

        Returns:
            SyncResult with pull statistics.
        """
        if not self.remote_url:
            return SyncResult(status=SyncStatus.FAILED, error="No remote URL configured")

        pulled = 0
        while True:
            data, error = await self._request_with_retry(
                "POST",
                "/api/sync/pull",
                {"known": self.log_set.known_authors(), "limit": self.batch_size},
            )
            if error:
                result = self._failure(error)
                result.operations_pulled = pulled
                return result

            try:
                operations = [
                    decode_record(record, source=self.remote_url, crdt=self.crdt)
                    for record in data.get("operations", [])
                ]
                ingested = self.log_set.ingest(operations)
            except (CorruptRecordError, ConflictingOperationError) as e:
                logger.error(f"Rejected operations from {self.remote_url}: {e}")
                return SyncResult(
                    status=SyncStatus.FAILED,
                    operations_pulled=pulled,
                    error=str(e),
                )

            if self.store is not None:
                for operation in operations:
                    self.store.append(operation)

            pulled += ingested.accepted + ingested.buffered
            if not data.get("more") or not ingested.changed:
                break

        self._last_sync = datetime.now()
        return SyncResult(
            status=SyncStatus.SUCCESS,
            operations_pulled=pulled,
            timestamp=self._last_sync,
        )

    async def full_sync(self) -> SyncResult:
        """Perform bidirectional sync.

        Returns:
            Combined SyncResult.
        """
        # Push first
        push_result = await self.push_operations()
        if push_result.status == SyncStatus.OFFLINE:
            return push_result

        # Then pull
        pull_result = await self.pull_operations()

        return SyncResult(
            status=(
                push_result.status
                if pull_result.status == SyncStatus.SUCCESS
                else pull_result.status
            ),
            operations_pushed=push_result.operations_pushed,
            operations_pulled=pull_result.operations_pulled,
            error=pull_result.error or push_result.error,
            timestamp=datetime.now(),
        )

    async def sync_loop(
        self,
        interval_seconds: int = 60,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Run continuous sync loop.

        Args:
            interval_seconds: Seconds between sync attempts.
            stop_event: Event to signal loop should stop.
        """
        logger.info(f"Starting sync loop with {interval_seconds}s interval")

        while True:
            if stop_event and stop_event.is_set():
                break

            result = await self.full_sync()
            logger.info(
                f"Sync: {result.status.value}, "
                f"pushed={result.operations_pushed}, "
                f"pulled={result.operations_pulled}"
            )

            # Adaptive interval: back off if consecutive failures
            wait_time = interval_seconds
            if self._consecutive_failures > 0:
                wait_time = min(
                    interval_seconds * (2 ** self._consecutive_failures),
                    3600,  # Max 1 hour
                )
                logger.debug(f"Backing off sync for {wait_time}s")

            if stop_event:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=wait_time)
                    break  # Stop event was set
                except asyncio.TimeoutError:
                    pass  # Normal timeout, continue loop
            else:
                await asyncio.sleep(wait_time)

        logger.info("Sync loop stopped")

    @property
    def last_sync(self) -> datetime | None:
        """Get timestamp of last successful sync."""
        return self._last_sync

    def get_sync_status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dictionary with sync statistics.
        """
        return {
            "remote_url": self.remote_url,
            "last_sync": self._last_sync.isoformat() if self._last_sync else None,
            "consecutive_failures": self._consecutive_failures,
            "known_authors": self.log_set.known_authors(),
            "total_operations": len(self.log_set),
            "pending_operations": sum(
                len(ops) for ops in self.log_set.pending().values()
            ),
        }
