"""
Sync engine for aucomp.

Ties the pieces of one run together:

1. Load the manifest from the output folder (or start empty)
2. Scan the input folder
3. Diff the scan against the manifest
4. Run the resulting operations on the worker pool
5. Save the new manifest, only after every operation was attempted

A run that dies part-way leaves the previous manifest in place; the
next run simply recomputes the diff.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path, PurePosixPath
from typing import Protocol

from aucomp.config import (
    DEFAULT_AUDIO_EXTENSIONS,
    DEFAULT_LYRIC_EXTENSIONS,
    UNHANDLED_COPY,
    UNHANDLED_POLICIES,
    UNHANDLED_SKIP,
    Config,
)
from aucomp.diff_engine import (
    ChangeKind,
    SyncAction,
    SyncOperation,
    SyncPlan,
    compute_diff,
)
from aucomp.dispatcher import (
    OUTCOME_APPLIED,
    OUTCOME_DELETED,
    OUTCOME_SKIPPED,
    DispatchStats,
    OperationRecord,
    WorkDispatcher,
)
from aucomp.errors import CorruptManifest
from aucomp.manifest import (
    Manifest,
    ManifestEntry,
    load_manifest,
    manifest_path,
    save_manifest,
)
from aucomp.scanner import scan_tree
from aucomp.transcoder import Transcoder, copy_verbatim, reencode_text

logger = logging.getLogger(__name__)


class FileKind(Enum):
    AUDIO = auto()
    LYRIC = auto()
    OTHER = auto()


class AudioConverter(Protocol):
    """Anything that can turn one audio file into another."""

    def transcode(self, input_path: str | Path, output_path: str | Path) -> None:
        """Convert *input_path* to *output_path*; raise TranscodeFailure on error."""
        ...


@dataclass
class SyncReport:
    """Outcome of one run."""
    plan: SyncPlan
    stats: DispatchStats
    manifest: Manifest
    manifest_saved: bool

    @property
    def failed(self) -> int:
        return self.stats.total_failed

    def summary(self) -> str:
        return f"{self.plan.summary()}; {self.stats.summary()}"


def _is_within(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True


class SyncEngine:
    """
    Mirrors *input_root* into *output_root*.

    Parameters
    ----------
    input_root, output_root : path
        Absolute folders.  The output folder holds the manifest.
    converter : AudioConverter
        Used for audio files; normally a Transcoder.
    output_extension : str
        Extension given to converted audio files.
    audio_extensions, lyric_extensions : iterable of str
        Lowercase extensions with leading dot.
    lyric_source_encoding, lyric_target_encoding : str
        Codecs used when re-encoding lyric files.
    unhandled_policy : str
        ``skip`` or ``copy`` for all other files.
    workers : int
        Worker pool size; 0 means host parallelism.
    on_operation_complete : callable, optional
        Callback invoked (from worker threads) after each operation.
    """

    def __init__(
        self,
        input_root: str | Path,
        output_root: str | Path,
        converter: AudioConverter,
        output_extension: str = ".mp3",
        audio_extensions: Iterable[str] = DEFAULT_AUDIO_EXTENSIONS,
        lyric_extensions: Iterable[str] = DEFAULT_LYRIC_EXTENSIONS,
        lyric_source_encoding: str = "utf-8-sig",
        lyric_target_encoding: str = "gb18030",
        unhandled_policy: str = UNHANDLED_SKIP,
        workers: int = 0,
        on_operation_complete: Callable[[OperationRecord], None] | None = None,
    ):
        if unhandled_policy not in UNHANDLED_POLICIES:
            raise ValueError(f"Unknown unhandled-file policy: {unhandled_policy!r}")
        self.input_root = Path(input_root).absolute()
        self.output_root = Path(output_root).absolute()
        self.manifest_path = manifest_path(self.output_root)
        self._converter = converter
        self._output_extension = output_extension
        self._audio_extensions = frozenset(e.lower() for e in audio_extensions)
        self._lyric_extensions = frozenset(e.lower() for e in lyric_extensions)
        self._lyric_source_encoding = lyric_source_encoding
        self._lyric_target_encoding = lyric_target_encoding
        self._unhandled_policy = unhandled_policy
        self._workers = workers
        self._on_operation_complete = on_operation_complete

    @classmethod
    def from_config(
        cls,
        cfg: Config,
        input_root: str | Path,
        output_root: str | Path,
        arguments: str,
        ffmpeg: str,
        on_operation_complete: Callable[[OperationRecord], None] | None = None,
    ) -> "SyncEngine":
        """Build an engine that converts audio with ffmpeg at *ffmpeg*."""
        transcoder = Transcoder(
            executable=ffmpeg,
            arguments=arguments,
            overwrite=cfg.overwrite_output,
            show_output=cfg.show_transcoder_output,
        )
        return cls(
            input_root,
            output_root,
            transcoder,
            output_extension=cfg.output_extension,
            audio_extensions=cfg.audio_extensions,
            lyric_extensions=cfg.lyric_extensions,
            lyric_source_encoding=cfg.lyric_source_encoding,
            lyric_target_encoding=cfg.lyric_target_encoding,
            unhandled_policy=cfg.unhandled_policy,
            workers=cfg.workers,
            on_operation_complete=on_operation_complete,
        )

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def classify(self, relative_path: str) -> FileKind:
        ext = PurePosixPath(relative_path).suffix.lower()
        if ext in self._audio_extensions:
            return FileKind.AUDIO
        if ext in self._lyric_extensions:
            return FileKind.LYRIC
        return FileKind.OTHER

    def source_path(self, relative_path: str) -> Path:
        return self.input_root.joinpath(*PurePosixPath(relative_path).parts)

    def destination_path(self, relative_path: str) -> Path:
        """Where the output for *relative_path* goes."""
        dest = self.output_root.joinpath(*PurePosixPath(relative_path).parts)
        if self.classify(relative_path) is FileKind.AUDIO:
            dest = dest.with_suffix(self._output_extension)
        return dest

    # ------------------------------------------------------------------
    # Operations (run on worker threads)
    # ------------------------------------------------------------------

    def execute(self, op: SyncOperation) -> str:
        """Carry out one operation and return its outcome."""
        rel = op.relative_path
        dest = self.destination_path(rel)

        if op.action is SyncAction.DELETE:
            dest.unlink(missing_ok=True)
            logger.info("Deleted %s", dest)
            return OUTCOME_DELETED

        kind = self.classify(rel)
        if kind is FileKind.OTHER and self._unhandled_policy != UNHANDLED_COPY:
            logger.debug("Skipping unhandled file type: %s", rel)
            return OUTCOME_SKIPPED

        src = self.source_path(rel)
        dest.parent.mkdir(parents=True, exist_ok=True)

        if kind is FileKind.AUDIO:
            self._converter.transcode(src, dest)
            logger.info("Converted %s -> %s", rel, dest.name)
        elif kind is FileKind.LYRIC:
            reencode_text(
                src, dest, self._lyric_source_encoding, self._lyric_target_encoding
            )
            logger.info("Re-encoded %s", rel)
        else:
            copy_verbatim(src, dest)
            logger.info("Copied %s", rel)
        return OUTCOME_APPLIED

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def plan(self, full: bool = False) -> SyncPlan:
        """
        Load the manifest, scan the input folder and diff the two.

        With *full* every file found is applied again.  Files missing
        from the input still get deleted, and a corrupt manifest is
        logged and treated as empty instead of raising CorruptManifest.
        """
        try:
            manifest = load_manifest(self.manifest_path)
        except CorruptManifest as exc:
            if not full:
                raise
            logger.warning("Ignoring corrupt manifest %s: %s", self.manifest_path, exc)
            manifest = Manifest()
        exclude = []
        if _is_within(self.output_root, self.input_root):
            exclude.append(self.output_root)
        return compute_diff(manifest, scan_tree(self.input_root, exclude), force=full)

    def _produces_output(self, relative_path: str) -> bool:
        return (
            self.classify(relative_path) is not FileKind.OTHER
            or self._unhandled_policy == UNHANDLED_COPY
        )

    def _output_key(self, relative_path: str) -> str:
        return os.path.normcase(str(self.destination_path(relative_path)))

    def operations_for(self, plan: SyncPlan) -> list[SyncOperation]:
        """
        Return the operations to run for *plan*.

        Input files that differ only in their audio extension share one
        output file.  A delete of such an output is dropped while another
        input file still maps to it, and that file is applied again so the
        output matches the survivor.
        """
        owners: dict[str, list[ManifestEntry]] = {}
        for entry in plan.live_entries():
            if self._produces_output(entry.relative_path):
                owners.setdefault(self._output_key(entry.relative_path), []).append(entry)
        for key, entries in owners.items():
            if len(entries) > 1:
                logger.warning(
                    "Output collision, %s all write %s",
                    ", ".join(sorted(e.relative_path for e in entries)),
                    key,
                )

        applying = {
            op.relative_path for op in plan.operations if op.action is SyncAction.APPLY
        }
        operations: list[SyncOperation] = []
        for op in plan.operations:
            if op.action is SyncAction.DELETE:
                survivors = owners.get(self._output_key(op.relative_path))
                if survivors:
                    logger.info(
                        "Keeping output of removed %s; still produced by %s",
                        op.relative_path,
                        survivors[0].relative_path,
                    )
                    for entry in survivors:
                        if entry.relative_path not in applying:
                            applying.add(entry.relative_path)
                            operations.append(
                                SyncOperation(SyncAction.APPLY, ChangeKind.MODIFIED, entry)
                            )
                    continue
            operations.append(op)
        return operations

    def run(self, full: bool = False) -> SyncReport:
        """
        Bring the output folder up to date.

        *full* applies every input file again (see plan()).  Raises
        CorruptManifest if the saved manifest is unreadable, and lets
        filesystem errors propagate (the manifest is then left untouched).
        """
        logger.info("Sync %s -> %s", self.input_root, self.output_root)
        plan = self.plan(full=full)

        dispatcher = WorkDispatcher(
            self.execute,
            workers=self._workers,
            on_operation_complete=self._on_operation_complete,
        )
        if not plan.has_changes and not full:
            logger.info("Nothing to do.")
            return SyncReport(plan, dispatcher.stats, plan.next_manifest(), False)

        stats = dispatcher.run(self.operations_for(plan))
        failed = stats.failed_paths
        manifest = plan.next_manifest(failed)
        save_manifest(manifest, self.manifest_path)
        if failed:
            logger.warning(
                "%d file(s) failed and will be retried on the next run.", len(failed)
            )
        logger.info("Sync complete: %s", stats.summary())
        return SyncReport(plan, stats, manifest, True)
