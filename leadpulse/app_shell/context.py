from __future__ import annotations

from dataclasses import dataclass

from leadpulse.adapters.clock import SystemClock
from leadpulse.adapters.sqlite_db import SQLiteCounterStore, SQLiteDirectory, SQLiteEventStore
from leadpulse.components.aggregates import AggregateStore, CounterStorePort, InMemoryCounterStore
from leadpulse.components.events import EventStorePort, InMemoryEventStore
from leadpulse.components.ingestion import (
    DirectoryPort,
    InMemoryDirectory,
    InMemoryIdempotencyStore,
    IngestionService,
)
from leadpulse.components.reconciler import ReconcileQueue, Reconciler, ReconcileWorker
from leadpulse.core.ports.time import TimePort
from leadpulse.rules.models import Rules


@dataclass
class ServiceContext:
    """
    One process-wide wiring of the pipeline.

    The aggregate store's scope guard and the reconcile queue are in-memory
    state shared by ingestion and reconciliation, so a process must build
    exactly one context and hand it to every caller.
    """

    directory: DirectoryPort
    event_store: EventStorePort
    counter_store: CounterStorePort
    aggregates: AggregateStore
    queue: ReconcileQueue
    ingestion: IngestionService
    reconciler: Reconciler
    worker: ReconcileWorker
    rules: Rules
    clock: TimePort

    @classmethod
    def create(
        cls,
        db_path: str,
        rules: Rules,
        clock: TimePort | None = None,
    ) -> ServiceContext:
        timeout = rules.ops.busy_timeout_seconds
        return cls._assemble(
            directory=SQLiteDirectory(db_path, busy_timeout_seconds=timeout),
            event_store=SQLiteEventStore(db_path, busy_timeout_seconds=timeout),
            counter_store=SQLiteCounterStore(db_path, busy_timeout_seconds=timeout),
            rules=rules,
            clock=clock or SystemClock(),
        )

    @classmethod
    def create_in_memory(
        cls,
        rules: Rules,
        clock: TimePort | None = None,
        directory: DirectoryPort | None = None,
    ) -> ServiceContext:
        """Context over in-memory stores (for testing/dev)."""
        return cls._assemble(
            directory=directory or InMemoryDirectory(),
            event_store=InMemoryEventStore(),
            counter_store=InMemoryCounterStore(),
            rules=rules,
            clock=clock or SystemClock(),
        )

    @classmethod
    def _assemble(
        cls,
        directory: DirectoryPort,
        event_store: EventStorePort,
        counter_store: CounterStorePort,
        rules: Rules,
        clock: TimePort,
    ) -> ServiceContext:
        aggregates = AggregateStore(counter_store, config=rules.aggregates.to_config())
        queue = ReconcileQueue()
        reconciler_config = rules.reconciler.to_config()
        reconciler = Reconciler(event_store, aggregates, queue, reconciler_config)
        ingestion = IngestionService(
            directory=directory,
            event_store=event_store,
            aggregates=aggregates,
            queue=queue,
            time_port=clock,
            idempotency_store=InMemoryIdempotencyStore(clock),
            config=rules.ingestion.to_config(),
            scoring_config=rules.scoring.to_config(),
        )
        worker = ReconcileWorker(
            reconciler,
            poll_interval_seconds=reconciler_config.poll_interval_seconds,
            batch_size=reconciler_config.batch_size,
        )
        return cls(
            directory=directory,
            event_store=event_store,
            counter_store=counter_store,
            aggregates=aggregates,
            queue=queue,
            ingestion=ingestion,
            reconciler=reconciler,
            worker=worker,
            rules=rules,
            clock=clock,
        )
