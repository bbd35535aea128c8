"""
Work dispatcher for aucomp.

A fixed pool of worker threads drains one shared FIFO queue of
independent operations.  The queue is filled before the workers start;
each worker takes the next item (the queue lock is held only for the
dequeue), runs it, and exits once the queue is empty.

A TranscodeFailure affects only the operation that raised it.  Any other
exception stops the remaining workers from picking up new work and is
re-raised from ``run()`` once every worker has returned.
"""

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from aucomp.diff_engine import SyncOperation
from aucomp.errors import TranscodeFailure
from aucomp.platform_utils import host_parallelism

logger = logging.getLogger(__name__)

# Outcomes reported by the executor
OUTCOME_APPLIED = "applied"
OUTCOME_DELETED = "deleted"
OUTCOME_SKIPPED = "skipped"


@dataclass
class OperationRecord:
    """Record of a single executed operation."""
    operation: SyncOperation
    worker: str = ""
    outcome: str = ""
    started: float = 0.0
    finished: float = 0.0
    success: bool = False
    error: str = ""

    @property
    def relative_path(self) -> str:
        return self.operation.relative_path

    @property
    def duration(self) -> float:
        if self.finished and self.started:
            return self.finished - self.started
        return 0.0


@dataclass
class DispatchStats:
    """Aggregated results of one dispatch run."""
    total_applied: int = 0
    total_deleted: int = 0
    total_skipped: int = 0
    total_failed: int = 0
    history: list[OperationRecord] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, rec: OperationRecord) -> None:
        with self._lock:
            self.history.append(rec)
            if not rec.success:
                self.total_failed += 1
            elif rec.outcome == OUTCOME_SKIPPED:
                self.total_skipped += 1
            elif rec.outcome == OUTCOME_DELETED:
                self.total_deleted += 1
            else:
                self.total_applied += 1

    @property
    def total_executed(self) -> int:
        with self._lock:
            return len(self.history)

    @property
    def failed_paths(self) -> set[str]:
        with self._lock:
            return {r.relative_path for r in self.history if not r.success}

    def summary(self) -> str:
        with self._lock:
            return (
                f"{self.total_applied} converted/copied, {self.total_deleted} deleted, "
                f"{self.total_skipped} skipped, {self.total_failed} failed"
            )


class WorkDispatcher:
    """
    Runs operations on a pool of worker threads.

    Parameters
    ----------
    execute : callable
        Called with each SyncOperation on a worker thread.  Returns one of
        the ``OUTCOME_*`` strings; raises TranscodeFailure for a per-file
        failure.
    workers : int
        Pool size; 0 means host parallelism.
    on_operation_complete : callable, optional
        Callback invoked after each operation with its OperationRecord.
    """

    def __init__(
        self,
        execute: Callable[[SyncOperation], str],
        workers: int = 0,
        on_operation_complete: Callable[[OperationRecord], None] | None = None,
    ):
        self._execute = execute
        self._workers = workers if workers > 0 else host_parallelism()
        self._on_operation_complete = on_operation_complete
        self._queue: "queue.Queue[SyncOperation]" = queue.Queue()
        self._abort = threading.Event()
        self._fatal: BaseException | None = None
        self._fatal_lock = threading.Lock()
        self.stats = DispatchStats()

    @property
    def workers(self) -> int:
        return self._workers

    def run(self, operations: Iterable[SyncOperation]) -> DispatchStats:
        """Execute every operation and wait for all workers to finish."""
        for op in operations:
            self._queue.put(op)
        pending = self._queue.qsize()
        if not pending:
            return self.stats

        count = min(self._workers, pending)
        logger.info("Dispatching %d operations to %d workers", pending, count)
        threads = [
            threading.Thread(target=self._worker, name=f"Worker-{n}", daemon=True)
            for n in range(1, count + 1)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        if self._fatal is not None:
            raise self._fatal
        logger.info("Dispatch complete: %s", self.stats.summary())
        return self.stats

    def _worker(self) -> None:
        name = threading.current_thread().name
        while not self._abort.is_set():
            try:
                op = self._queue.get_nowait()
            except queue.Empty:
                return
            self._run_one(op, name)

    def _run_one(self, op: SyncOperation, worker: str) -> None:
        rec = OperationRecord(operation=op, worker=worker, started=time.time())
        try:
            rec.outcome = self._execute(op)
            rec.success = True
        except TranscodeFailure as exc:
            rec.error = str(exc)
            logger.error("Failed: %s", exc)
        except BaseException as exc:
            rec.error = str(exc) or type(exc).__name__
            logger.error(
                "Aborting run: %s on %s: %s",
                type(exc).__name__, op.relative_path, exc,
            )
            with self._fatal_lock:
                if self._fatal is None:
                    self._fatal = exc
            self._abort.set()
        finally:
            rec.finished = time.time()
            self.stats.record(rec)
            if rec.success:
                logger.debug("%s: %s (%.1fs)", rec.outcome, op.relative_path, rec.duration)
            if self._on_operation_complete:
                try:
                    self._on_operation_complete(rec)
                except Exception:
                    logger.exception("Error in on_operation_complete callback")
