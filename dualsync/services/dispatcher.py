"""
Live Hook Dispatcher

Mirrors source-store mutations into the target store off the caller's
critical path. Each mutation signal becomes one task on a bounded thread
pool; the originating operation never waits for it and never sees its
errors.

Key Features:
- Subscribes to the blinker mutation signals in ``dualsync.signals``
- Gated by the dual-write feature flag plus target availability; when the
  gate is closed dispatch is a silent no-op
- Bounded in-flight tasks: when the queue is full the mutation is counted as
  a failure instead of blocking the caller
- Every task outcome is drained through a done-callback into the injected
  FailureCounters, keyed ``"{entity_type}:{operation}"``
- Bulk update/delete are not observable per record; ``reconcile_after_bulk_update``
  and ``reconcile_after_bulk_delete`` must be called explicitly after them
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set

import structlog

from dualsync import signals
from dualsync.services.failure_counters import FailureCounters
from dualsync.services.source_store import normalize_document
from dualsync.services.target_store import TargetStore
from dualsync.services.upsert_writer import UpsertWriter, WriteOutcome, WriteResult
from dualsync.services.verifier import ReconcileResult, ReconciliationVerifier

logger = structlog.get_logger(__name__)

OP_SAVE = 'save'
OP_UPDATE = 'update'
OP_INSERT_MANY = 'insertMany'
OP_DELETE = 'delete'
OP_BULK_UPDATE = 'bulkUpdate'
OP_BULK_DELETE = 'bulkDelete'


class LiveHookDispatcher:
    """
    Args:
        writer: Upsert writer bound to the live target store
        target: Target store consulted for availability
        enabled: Feature flag, a bool or a zero-argument callable
        counters: Failure counter map; a fresh one is created if omitted
        max_workers: Thread pool size
        queue_size: Maximum in-flight tasks before mutations are dropped
        verifier: Used by the explicit bulk reconciliation calls
    """

    def __init__(self, writer: UpsertWriter, target: TargetStore,
                 enabled: Any = False, counters: Optional[FailureCounters] = None,
                 max_workers: int = 4, queue_size: int = 1000,
                 verifier: Optional[ReconciliationVerifier] = None):
        self.writer = writer
        self.target = target
        self.counters = counters if counters is not None else FailureCounters()
        self.verifier = verifier
        self._enabled = enabled
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='dual-write')
        self._slots = threading.BoundedSemaphore(queue_size)
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Condition()
        self._connected = False

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        value = self._enabled() if callable(self._enabled) else self._enabled
        return bool(value)

    @enabled.setter
    def enabled(self, value: Any) -> None:
        self._enabled = value

    def is_active(self) -> bool:
        """Flag and cached target availability; never pings the target on the calling thread."""
        return self.enabled and self.target.known_availability()

    # ------------------------------------------------------------------
    # Signal wiring
    # ------------------------------------------------------------------

    def connect(self) -> 'LiveHookDispatcher':
        if not self._connected:
            signals.record_saved.connect(self.on_saved)
            signals.record_updated.connect(self.on_updated)
            signals.records_inserted.connect(self.on_inserted)
            signals.record_deleted.connect(self.on_deleted)
            self._connected = True
        return self

    def disconnect(self) -> None:
        if self._connected:
            signals.record_saved.disconnect(self.on_saved)
            signals.record_updated.disconnect(self.on_updated)
            signals.records_inserted.disconnect(self.on_inserted)
            signals.record_deleted.disconnect(self.on_deleted)
            self._connected = False

    def on_saved(self, entity_type: str, document: Mapping[str, Any] = None, **extra) -> None:
        if document is not None:
            self.dispatch_write(entity_type, document, OP_SAVE)

    def on_updated(self, entity_type: str, document: Mapping[str, Any] = None, **extra) -> None:
        # find-one-and-update yields None when nothing matched.
        if document is not None:
            self.dispatch_write(entity_type, document, OP_UPDATE)

    def on_inserted(self, entity_type: str, documents: Iterable[Mapping[str, Any]] = (), **extra) -> None:
        try:
            documents = list(documents or ())
        except TypeError as e:
            if self.is_active():
                self.counters.increment(entity_type, OP_INSERT_MANY)
                logger.error("dual_write_dispatch_failed", entity_type=entity_type,
                             operation=OP_INSERT_MANY, error=str(e)[:500])
            return
        for document in documents:
            self.dispatch_write(entity_type, document, OP_INSERT_MANY)

    def on_deleted(self, entity_type: str, source_id: Any = None, **extra) -> None:
        if source_id is not None:
            self.dispatch_delete(entity_type, source_id)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch_write(self, entity_type: str, document: Mapping[str, Any],
                       operation: str = OP_SAVE) -> Optional[Future]:
        return self._submit(entity_type, operation, self.writer.write,
                            lambda: (entity_type, normalize_document(dict(document))))

    def dispatch_delete(self, entity_type: str, source_id: Any) -> Optional[Future]:
        return self._submit(entity_type, OP_DELETE, self.writer.delete,
                            lambda: (entity_type, normalize_document(source_id)))

    def _submit(self, entity_type: str, operation: str, fn: Callable,
                prepare: Callable[[], tuple]) -> Optional[Future]:
        """
        Queue ``fn(*prepare())`` on the pool. Payload preparation runs inside
        the guard, after the gate, so a malformed payload is counted rather
        than raised into the signal sender.
        """
        try:
            if not self.is_active():
                return None
            args = prepare()
            if not self._slots.acquire(blocking=False):
                self.counters.increment(entity_type, operation)
                logger.warning("dual_write_queue_full", entity_type=entity_type, operation=operation)
                return None
            try:
                future = self._executor.submit(fn, *args)
            except RuntimeError:
                self._slots.release()
                raise
        except Exception as e:
            self.counters.increment(entity_type, operation)
            logger.error("dual_write_dispatch_failed", entity_type=entity_type,
                         operation=operation, error=str(e)[:500])
            return None

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(partial(self._record_outcome, entity_type, operation))
        return future

    def _record_outcome(self, entity_type: str, operation: str, future: Future) -> None:
        self._slots.release()
        try:
            self._log_outcome(entity_type, operation, future)
        finally:
            # Released last so drain() only returns once counters are current.
            with self._pending_lock:
                self._pending.discard(future)
                self._pending_lock.notify_all()

    def _log_outcome(self, entity_type: str, operation: str, future: Future) -> None:
        if future.cancelled():
            self.counters.increment(entity_type, operation)
            logger.warning("dual_write_cancelled", entity_type=entity_type, operation=operation)
            return

        error = future.exception()
        if error is not None:
            self.counters.increment(entity_type, operation)
            logger.error("dual_write_failed", entity_type=entity_type,
                         operation=operation, error=str(error)[:500])
            return

        result: WriteResult = future.result()
        if result.outcome is WriteOutcome.DEFERRED:
            logger.info("dual_write_deferred", entity_type=entity_type,
                        operation=operation, source_id=result.source_id)

    # ------------------------------------------------------------------
    # Bulk reconciliation
    # ------------------------------------------------------------------

    def reconcile_after_bulk_update(self, entity_type: str, source_filter: Mapping[str, Any],
                              limit: Optional[int] = None) -> Optional[ReconcileResult]:
        """
        Re-sync records touched by a bulk update. Runs synchronously; a closed
        gate makes it a no-op returning None.
        """
        return self._reconcile(entity_type, OP_BULK_UPDATE,
                               lambda: self.verifier.reconcile_after_bulk_update(entity_type, source_filter, limit))

    def reconcile_after_bulk_delete(self, entity_type: str) -> Optional[ReconcileResult]:
        """Remove target rows orphaned by a bulk delete."""
        return self._reconcile(entity_type, OP_BULK_DELETE,
                               lambda: self.verifier.reconcile_after_bulk_delete(entity_type))

    def _reconcile(self, entity_type: str, operation: str,
                   run: Callable[[], ReconcileResult]) -> Optional[ReconcileResult]:
        if self.verifier is None or not self.is_active():
            return None
        try:
            result = run()
        except Exception as e:
            self.counters.increment(entity_type, operation)
            logger.error("dual_write_reconcile_failed", entity_type=entity_type,
                         operation=operation, error=str(e)[:500])
            return None
        if result.failed:
            self.counters.increment(entity_type, operation, result.failed)
        return result

    # ------------------------------------------------------------------
    # Monitoring and lifecycle
    # ------------------------------------------------------------------

    def get_failure_counters(self) -> Dict[str, int]:
        return self.counters.snapshot()

    def reset_failure_counters(self) -> None:
        self.counters.reset()
        logger.info("dual_write_counters_reset")

    @property
    def pending(self) -> int:
        with self._pending_lock:
            return len(self._pending)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight tasks; True when none remain."""
        with self._pending_lock:
            return self._pending_lock.wait_for(lambda: not self._pending, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self.disconnect()
        self._executor.shutdown(wait=wait)
