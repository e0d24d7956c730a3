"""
Reconciler component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from leadpulse.components.aggregates import Scope, TimeRange

# --- Configuration ---


@dataclass(frozen=True)
class ReconcilerConfig:
    """Reconciler configuration."""

    # Seconds to wait for a scope's exclusive hold before giving up
    exclusive_timeout_seconds: float = 10.0

    # Background worker
    poll_interval_seconds: float = 30.0
    batch_size: int = 50


DEFAULT_CONFIG = ReconcilerConfig()


# --- Errors ---


@dataclass(frozen=True)
class ReconcileError:
    """Why a reconcile run did not overwrite anything."""

    code: str
    message: str
    scope: Scope | None = None


# --- Input/Output ---


@dataclass(frozen=True)
class ReconcileInput:
    """Input for reconciling one scope."""

    scope: Scope
    time_range: TimeRange | None = None


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of reconciling one scope."""

    scope: Scope
    time_range: TimeRange
    buckets_written: int = 0
    events_scanned: int = 0
    success: bool = True
    errors: list[ReconcileError] = field(default_factory=list)


@dataclass(frozen=True)
class ReconcileBatchResult:
    """Outcome of draining the pending queue."""

    total_processed: int
    succeeded: int
    failed: int
    results: list[ReconcileResult] = field(default_factory=list)
