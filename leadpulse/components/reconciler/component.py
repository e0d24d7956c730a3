"""
Reconciler component - Heal aggregates from the event store.

Invariants:
- After a successful run, every bucket in the widened range equals the
  exact count of stored events in that bucket
- A failed run overwrites nothing
- Live increments for the scope are refused while it is held
"""

from __future__ import annotations

from ._impl import Reconciler
from .models import ReconcileBatchResult, ReconcileInput, ReconcileResult


def run_reconcile(inp: ReconcileInput, *, reconciler: Reconciler) -> ReconcileResult:
    """
    Reconcile one scope.

    Args:
        inp: Scope and optional time range (all history when None).
        reconciler: Reconciler bound to the event and aggregate stores.

    Returns:
        ReconcileResult with counts written, or errors on failure.
    """
    return reconciler.reconcile(inp.scope, inp.time_range)


def run_reconcile_pending(
    *,
    reconciler: Reconciler,
    max_items: int | None = None,
) -> ReconcileBatchResult:
    """Drain up to `max_items` scopes from the pending queue."""
    return reconciler.reconcile_pending(max_items)
