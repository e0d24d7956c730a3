"""
Reconciler component - Recompute-and-replace of aggregate buckets.
"""

from ._impl import ReconcileQueue, Reconciler
from .component import run_reconcile, run_reconcile_pending
from .models import (
    DEFAULT_CONFIG,
    ReconcileBatchResult,
    ReconcileError,
    ReconcileInput,
    ReconcileResult,
    ReconcilerConfig,
)
from .worker import ReconcileWorker

__all__ = [
    # Entry points
    "run_reconcile",
    "run_reconcile_pending",
    # Service
    "ReconcileQueue",
    "ReconcileWorker",
    "Reconciler",
    # Models
    "DEFAULT_CONFIG",
    "ReconcileBatchResult",
    "ReconcileError",
    "ReconcileInput",
    "ReconcileResult",
    "ReconcilerConfig",
]
