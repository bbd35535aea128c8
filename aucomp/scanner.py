"""Directory scanner for aucomp.

Walks the input folder and produces one candidate ManifestEntry per
file.  No ordering is guaranteed.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from aucomp.manifest import ManifestEntry

logger = logging.getLogger(__name__)


def scan_files(root: str | Path, exclude: Iterable[str | Path] = ()) -> Iterator[Path]:
    """Yield the absolute path of every file below *root*.

    Directories listed in *exclude* are not descended into.
    """
    root = Path(root).absolute()
    skip = {os.path.normcase(str(Path(p).absolute())) for p in exclude}

    def _on_error(exc: OSError) -> None:
        logger.warning("Cannot list %s: %s", exc.filename, exc.strerror)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        if skip:
            dirnames[:] = [
                d for d in dirnames
                if os.path.normcase(os.path.join(dirpath, d)) not in skip
            ]
        for name in filenames:
            yield Path(dirpath, name)


def relative_key(root: str | Path, path: str | Path) -> str:
    """Return *path* relative to *root* with ``/`` separators."""
    return Path(path).relative_to(root).as_posix()


def creation_time_ns(st: os.stat_result) -> int:
    """Return the file's birth time where the platform has one, else ctime."""
    birth_ns = getattr(st, "st_birthtime_ns", None)
    if birth_ns is not None:
        return birth_ns
    birth = getattr(st, "st_birthtime", None)
    if birth is not None:
        return int(birth * 1_000_000_000)
    return st.st_ctime_ns


def snapshot(root: str | Path, path: str | Path) -> ManifestEntry:
    """Build the candidate entry for *path* from its current timestamps."""
    st = os.stat(path)
    return ManifestEntry(
        relative_path=relative_key(root, path),
        creation_time=creation_time_ns(st),
        last_write_time=st.st_mtime_ns,
    )


def scan_tree(root: str | Path, exclude: Iterable[str | Path] = ()) -> Iterator[ManifestEntry]:
    """Yield a candidate entry for every file below *root*.

    Files whose names are not valid UTF-8 cannot be stored in the
    manifest; they are logged and left out.
    """
    root = Path(root).absolute()
    for path in scan_files(root, exclude):
        try:
            entry = snapshot(root, path)
        except FileNotFoundError:
            # Deleted between listing and stat
            logger.warning("File vanished during scan: %s", path)
            continue
        try:
            entry.relative_path.encode("utf-8")
        except UnicodeEncodeError:
            logger.warning(
                "Skipping file with a name that is not valid UTF-8: %r",
                os.fsencode(path),
            )
            continue
        yield entry
