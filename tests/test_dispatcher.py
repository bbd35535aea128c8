"""Tests for the worker pool."""

import threading
import time
from collections import Counter

import pytest

from aucomp.diff_engine import ChangeKind, SyncAction, SyncOperation
from aucomp.dispatcher import (
    OUTCOME_APPLIED,
    OUTCOME_DELETED,
    OUTCOME_SKIPPED,
    WorkDispatcher,
)
from aucomp.errors import TranscodeFailure
from aucomp.manifest import ManifestEntry


def _ops(n, action=SyncAction.APPLY):
    change = ChangeKind.REMOVED if action is SyncAction.DELETE else ChangeKind.ADDED
    return [SyncOperation(action, change, ManifestEntry(f"f{i:04d}", 0, 0)) for i in range(n)]


class TestExactlyOnce:

    @pytest.mark.parametrize("workers", [1, 2, 3, 8, 32])
    @pytest.mark.parametrize("count", [0, 1, 7, 200])
    def test_every_operation_runs_once(self, workers, count):
        seen = Counter()
        lock = threading.Lock()

        def execute(op):
            with lock:
                seen[op.relative_path] += 1
            return OUTCOME_APPLIED

        stats = WorkDispatcher(execute, workers=workers).run(_ops(count))
        assert stats.total_executed == count
        assert len(seen) == count
        assert all(v == 1 for v in seen.values())

    def test_runs_concurrently(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def execute(op):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.05)
            with lock:
                active -= 1
            return OUTCOME_APPLIED

        WorkDispatcher(execute, workers=4).run(_ops(8))
        assert peak > 1

    def test_default_pool_size(self):
        assert WorkDispatcher(lambda op: OUTCOME_APPLIED).workers >= 1


class TestFailures:

    def test_transcode_failure_is_isolated(self):
        def execute(op):
            if op.relative_path == "f0003":
                raise TranscodeFailure(op.relative_path, exit_code=1)
            return OUTCOME_APPLIED

        stats = WorkDispatcher(execute, workers=3).run(_ops(10))
        assert stats.total_failed == 1
        assert stats.total_applied == 9
        assert stats.failed_paths == {"f0003"}

    def test_filesystem_error_aborts_and_propagates(self):
        def execute(op):
            if op.relative_path == "f0000":
                raise PermissionError("denied")
            return OUTCOME_APPLIED

        dispatcher = WorkDispatcher(execute, workers=1)
        with pytest.raises(PermissionError):
            dispatcher.run(_ops(5))
        # Single worker stopped after the first operation
        assert dispatcher.stats.total_executed == 1

    def test_outcomes_counted(self):
        def execute(op):
            if op.action is SyncAction.DELETE:
                return OUTCOME_DELETED
            return OUTCOME_SKIPPED

        ops = _ops(3) + [
            SyncOperation(SyncAction.DELETE, ChangeKind.REMOVED, ManifestEntry("x", 0, 0))
        ]
        stats = WorkDispatcher(execute, workers=2).run(ops)
        assert stats.total_skipped == 3
        assert stats.total_deleted == 1
        assert stats.total_failed == 0


class TestCallback:

    def test_callback_receives_records(self):
        records = []
        lock = threading.Lock()

        def on_done(rec):
            with lock:
                records.append(rec)

        WorkDispatcher(lambda op: OUTCOME_APPLIED, workers=2, on_operation_complete=on_done).run(_ops(5))
        assert sorted(r.relative_path for r in records) == [f"f{i:04d}" for i in range(5)]
        assert all(r.success and r.worker.startswith("Worker-") for r in records)

    def test_callback_errors_do_not_break_run(self):
        def on_done(rec):
            raise RuntimeError("boom")

        stats = WorkDispatcher(lambda op: OUTCOME_APPLIED, workers=2, on_operation_complete=on_done).run(_ops(4))
        assert stats.total_applied == 4
