"""Replay engine: turns a LogSet into materialized state."""

from .engine import (
    ReplayEngine,
    ReplayStats,
    materialize,
    materialize_history,
    replay_order,
    sort_key,
)

__all__ = [
    "ReplayEngine",
    "ReplayStats",
    "materialize",
    "materialize_history",
    "replay_order",
    "sort_key",
]
