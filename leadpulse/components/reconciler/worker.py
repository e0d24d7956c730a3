"""
Background reconcile worker.

Polls the pending queue on a daemon thread and reconciles whatever
ingestion could not count live. For tests and the admin endpoint,
`trigger_now` runs one batch synchronously.
"""

from __future__ import annotations

import logging
import threading

from ._impl import Reconciler
from .models import ReconcileBatchResult

logger = logging.getLogger(__name__)


class ReconcileWorker:
    """Drains the reconciler's pending queue at a fixed interval."""

    def __init__(
        self,
        reconciler: Reconciler,
        poll_interval_seconds: float = 30.0,
        batch_size: int = 50,
    ) -> None:
        self._reconciler = reconciler
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

    def start(self) -> None:
        """Start the background worker."""
        if self._running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name="reconcile-worker", daemon=True
        )
        self._thread.start()
        self._running = True
        logger.info("Reconcile worker started (poll interval: %.1fs)", self._poll_interval)

    def stop(self) -> None:
        """Stop the worker gracefully."""
        if not self._running:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self._running = False
        logger.info("Reconcile worker stopped")

    def trigger_now(self) -> ReconcileBatchResult:
        """Reconcile one batch immediately."""
        return self._reconciler.reconcile_pending(self._batch_size)

    @property
    def is_running(self) -> bool:
        return self._running

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._poll_interval):
            try:
                result = self.trigger_now()
                if result.total_processed > 0:
                    logger.info(
                        "Reconcile worker processed %d scopes: %d succeeded, %d failed",
                        result.total_processed,
                        result.succeeded,
                        result.failed,
                    )
            except Exception:
                logger.exception("Error in reconcile worker poll loop")
