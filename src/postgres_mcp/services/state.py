"""Typed lifecycle state for the connection pool.

Internal module providing strongly-typed lifecycle state for
`ConnectionManager`. Not exposed outside the process.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Final


class PoolPhase(Enum):
    """Lifecycle phase of the connection pool."""

    INITIALIZING = auto()
    READY = auto()
    DRAINING = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class PoolState:
    """Snapshot of pool state with timestamps and error details."""

    phase: PoolPhase
    started_at: float | None = None
    ready_at: float | None = None
    closed_at: float | None = None
    active_leases: int = 0
    error_message: str | None = None


# Phases in which new work is refused
POOL_UNAVAILABLE_PHASES: Final[set[PoolPhase]] = {
    PoolPhase.INITIALIZING,
    PoolPhase.DRAINING,
    PoolPhase.CLOSED,
}
