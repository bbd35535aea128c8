"""
Diff Engine - Computes the sync plan between the input folder and the
manifest left by the previous run.

Change detection is timestamp-only: a file whose creation or last-write
time differs from the recorded one is treated as modified, even if its
content is identical.

Flow:
1. Scan input folder → candidate entries (any order)
2. Binary-search each candidate in the sorted manifest
3. Found, same timestamps → UNCHANGED (no operation)
4. Found, different timestamps → MODIFIED (slot replaced, APPLY)
5. Not found → ADDED (pending list, APPLY)
6. Manifest entries never matched → REMOVED (DELETE)

Classification runs on a single thread and finishes before any
operation executes.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto

from aucomp.manifest import Manifest, ManifestEntry

logger = logging.getLogger(__name__)

# Recorded for a file whose re-apply failed; never equal to a real stat
STALE_TIMES = (0, 0)


class SyncAction(Enum):
    """What the worker pool should do for a file."""
    APPLY = auto()    # Convert/copy the source file into the output tree
    DELETE = auto()   # Remove the output file of a vanished source


class ChangeKind(Enum):
    """Why an operation was emitted."""
    ADDED = auto()
    MODIFIED = auto()
    REMOVED = auto()


@dataclass(frozen=True)
class SyncOperation:
    """A single independent unit of work."""
    action: SyncAction
    change: ChangeKind
    entry: ManifestEntry

    @property
    def relative_path(self) -> str:
        return self.entry.relative_path


@dataclass
class SyncPlan:
    """Complete result of one diff."""

    operations: list[SyncOperation] = field(default_factory=list)

    added: list[ManifestEntry] = field(default_factory=list)
    modified: list[ManifestEntry] = field(default_factory=list)
    removed: list[ManifestEntry] = field(default_factory=list)
    unchanged_count: int = 0

    # Working state needed to build the next manifest
    _previous: Manifest = field(default_factory=Manifest, repr=False)
    _working: Manifest = field(default_factory=Manifest, repr=False)
    _matched: list[bool] = field(default_factory=list, repr=False)

    @property
    def has_changes(self) -> bool:
        """Check if any operations are needed."""
        return bool(self.operations)

    @property
    def total_files(self) -> int:
        """Number of distinct files found by the scan."""
        return self.unchanged_count + len(self.added) + len(self.modified)

    def summary(self) -> str:
        return (
            f"{len(self.added)} added, {len(self.modified)} modified, "
            f"{len(self.removed)} removed, {self.unchanged_count} unchanged"
        )

    def live_entries(self) -> list[ManifestEntry]:
        """Entries for every file the scan found, in any order."""
        live = [e for i, e in enumerate(self._working) if self._matched[i]]
        live.extend(self.added)
        return live

    def next_manifest(self, failed: Collection[str] = ()) -> Manifest:
        """
        Return the manifest to persist once the operations have run.

        Paths in *failed* are not recorded as done.  An added file is left
        out.  A matched file keeps its previous timestamps, or gets the
        stale marker when those equal the current ones (a forced or
        regenerating apply), so the next run picks it up again.
        """
        kept: list[ManifestEntry] = []
        for i, entry in enumerate(self._working):
            if not self._matched[i]:
                continue
            if entry.relative_path in failed:
                previous = self._previous[i]
                if previous.same_times(entry):
                    previous = ManifestEntry(previous.relative_path, *STALE_TIMES)
                kept.append(previous)
            else:
                kept.append(entry)
        kept.extend(e for e in self.added if e.relative_path not in failed)
        return Manifest.from_entries(kept)


def compute_diff(
    manifest: Manifest,
    candidates: Iterable[ManifestEntry],
    force: bool = False,
) -> SyncPlan:
    """Classify every candidate against *manifest*.

    With *force*, files whose timestamps match are reported as modified
    instead of unchanged, so everything is applied again while removed
    files still get deleted.  *manifest* itself is left untouched; the
    plan works on a copy.
    """
    working = manifest.copy()
    plan = SyncPlan(
        _previous=manifest,
        _working=working,
        _matched=[False] * len(working),
    )
    new_keys: set[str] = set()

    for cand in candidates:
        key = cand.relative_path
        i = working.find(key)

        if i is not None:
            if plan._matched[i]:
                logger.warning("Ignoring duplicate scan result: %s", key)
                continue
            plan._matched[i] = True
            if not force and working[i].same_times(cand):
                plan.unchanged_count += 1
                continue
            working.replace(i, cand)
            plan.modified.append(cand)
            plan.operations.append(
                SyncOperation(SyncAction.APPLY, ChangeKind.MODIFIED, cand)
            )
            logger.debug("Modified: %s", key)
            continue

        if key in new_keys:
            logger.warning("Ignoring duplicate scan result: %s", key)
            continue
        new_keys.add(key)
        plan.added.append(cand)
        plan.operations.append(SyncOperation(SyncAction.APPLY, ChangeKind.ADDED, cand))
        logger.debug("Added: %s", key)

    for i, entry in enumerate(working):
        if not plan._matched[i]:
            plan.removed.append(entry)
            plan.operations.append(
                SyncOperation(SyncAction.DELETE, ChangeKind.REMOVED, entry)
            )
            logger.debug("Removed: %s", entry.relative_path)

    logger.info("Diff: %s", plan.summary())
    return plan
