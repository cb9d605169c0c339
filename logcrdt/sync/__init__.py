"""HTTP sync between replicas.

The core never depends on this package; it is one transport that feeds
operations into a LogSet.
"""

from .sync_client import SyncClient, SyncResult, SyncStatus

__all__ = ["SyncClient", "SyncResult", "SyncStatus"]
