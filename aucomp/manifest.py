"""
Manifest store for aucomp.

The manifest remembers every source file that a previous run handled,
keyed by its path relative to the input folder, together with the two
timestamps used for change detection.  It is kept sorted so lookups
are a binary search.

On-disk format (version 1, little-endian)::

    u32 count
    count records of:
        relative path, UTF-8, terminated by a single 0x00
        i64 creation time    (nanoseconds since 1970-01-01 UTC)
        i64 last-write time  (nanoseconds since 1970-01-01 UTC)
        0x00                 (record terminator)

The file is rewritten in full on every save.
"""

from __future__ import annotations

import bisect
import logging
import os
import struct
import tempfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from aucomp.errors import CorruptManifest

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1
MANIFEST_FILENAME = ".aucomp-manifest"

_COUNT = struct.Struct("<I")
_TIMES = struct.Struct("<qq")


@dataclass(frozen=True)
class ManifestEntry:
    """One previously processed source file."""

    relative_path: str
    creation_time: int
    last_write_time: int

    def same_times(self, other: "ManifestEntry") -> bool:
        return (
            self.creation_time == other.creation_time
            and self.last_write_time == other.last_write_time
        )


class Manifest:
    """
    Sorted, duplicate-free sequence of ManifestEntry.

    Entries are ordered by ``relative_path``.  Python compares strings by
    code point, which orders the same way as comparing their UTF-8 bytes.
    """

    def __init__(self) -> None:
        self._entries: list[ManifestEntry] = []
        self._keys: list[str] = []

    @classmethod
    def from_entries(cls, entries: Iterable[ManifestEntry]) -> "Manifest":
        """Build a manifest from entries in any order.

        Raises ValueError if two entries share a path.
        """
        ordered = sorted(entries, key=lambda e: e.relative_path)
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.relative_path == cur.relative_path:
                raise ValueError(f"Duplicate manifest path: {cur.relative_path!r}")
        manifest = cls()
        manifest._entries = ordered
        manifest._keys = [e.relative_path for e in ordered]
        return manifest

    # ---- lookup ----

    def find(self, relative_path: str) -> int | None:
        """Return the index of *relative_path*, or None if absent."""
        i = bisect.bisect_left(self._keys, relative_path)
        if i < len(self._keys) and self._keys[i] == relative_path:
            return i
        return None

    def get(self, relative_path: str) -> ManifestEntry | None:
        i = self.find(relative_path)
        return None if i is None else self._entries[i]

    def __getitem__(self, index: int) -> ManifestEntry:
        return self._entries[index]

    def __contains__(self, relative_path: object) -> bool:
        return isinstance(relative_path, str) and self.find(relative_path) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"Manifest({len(self._entries)} entries)"

    # ---- mutation ----

    def replace(self, index: int, entry: ManifestEntry) -> None:
        """Replace the slot at *index*; the path must not change."""
        if self._keys[index] != entry.relative_path:
            raise ValueError(
                f"Cannot replace {self._keys[index]!r} with {entry.relative_path!r}"
            )
        self._entries[index] = entry

    def copy(self) -> "Manifest":
        clone = Manifest()
        clone._entries = list(self._entries)
        clone._keys = list(self._keys)
        return clone


# ======================================================================
# Binary codec
# ======================================================================

def encode_manifest(manifest: Manifest) -> bytes:
    """Serialise *manifest* to the version-1 binary format."""
    parts = [_COUNT.pack(len(manifest))]
    for entry in manifest:
        raw = entry.relative_path.encode("utf-8")
        if b"\x00" in raw:
            raise ValueError(f"Path contains a NUL byte: {entry.relative_path!r}")
        parts.append(raw)
        parts.append(b"\x00")
        parts.append(_TIMES.pack(entry.creation_time, entry.last_write_time))
        parts.append(b"\x00")
    return b"".join(parts)


def decode_manifest(data: bytes) -> Manifest:
    """Parse the version-1 binary format.

    Raises CorruptManifest on any truncation or framing error.
    """
    if len(data) < _COUNT.size:
        raise CorruptManifest(
            f"Manifest is {len(data)} bytes, too short for a record count"
        )
    (count,) = _COUNT.unpack_from(data, 0)
    pos = _COUNT.size
    entries: list[ManifestEntry] = []
    prev_key: str | None = None

    for n in range(count):
        end = data.find(b"\x00", pos)
        if end < 0:
            raise CorruptManifest(f"Record {n}: end of data before path terminator")
        try:
            key = data[pos:end].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptManifest(f"Record {n}: path is not valid UTF-8") from exc
        pos = end + 1

        if pos + _TIMES.size + 1 > len(data):
            raise CorruptManifest(f"Record {n} ({key!r}): truncated timestamps")
        created, modified = _TIMES.unpack_from(data, pos)
        pos += _TIMES.size
        if data[pos] != 0:
            raise CorruptManifest(
                f"Record {n} ({key!r}): bad record terminator 0x{data[pos]:02x}"
            )
        pos += 1

        if prev_key is not None and key <= prev_key:
            raise CorruptManifest(f"Record {n} ({key!r}): paths out of order")
        prev_key = key
        entries.append(ManifestEntry(key, created, modified))

    if pos != len(data):
        raise CorruptManifest(
            f"{len(data) - pos} unexpected trailing bytes after {count} records"
        )

    manifest = Manifest()
    manifest._entries = entries
    manifest._keys = [e.relative_path for e in entries]
    return manifest


# ======================================================================
# Persistence
# ======================================================================

def manifest_path(output_root: str | Path) -> Path:
    """Return where the manifest lives for *output_root*."""
    return Path(output_root) / MANIFEST_FILENAME


def load_manifest(path: str | Path) -> Manifest:
    """Load the manifest at *path*; a missing file yields an empty manifest."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        logger.info("No manifest at %s; starting fresh.", path)
        return Manifest()
    manifest = decode_manifest(data)
    logger.info("Loaded manifest with %d entries from %s", len(manifest), path)
    return manifest


def save_manifest(manifest: Manifest, path: str | Path) -> None:
    """Write *manifest* to *path*, replacing any previous file atomically."""
    path = Path(path)
    data = encode_manifest(manifest)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    logger.info("Saved manifest with %d entries to %s", len(manifest), path)
