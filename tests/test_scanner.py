"""Tests for the directory scanner."""

import os
import sys

import pytest
from conftest import write

from aucomp.scanner import relative_key, scan_files, scan_tree, snapshot


class TestScanFiles:

    def test_recursive_absolute(self, tmp_path):
        write(tmp_path / "a.mp3")
        write(tmp_path / "x" / "y" / "b.flac")
        (tmp_path / "empty").mkdir()
        found = sorted(scan_files(tmp_path))
        assert found == sorted([tmp_path / "a.mp3", tmp_path / "x" / "y" / "b.flac"])
        assert all(p.is_absolute() for p in found)

    def test_exclude_prunes_directory(self, tmp_path):
        write(tmp_path / "keep.mp3")
        write(tmp_path / "out" / "skip.mp3")
        found = list(scan_files(tmp_path, exclude=[tmp_path / "out"]))
        assert found == [tmp_path / "keep.mp3"]

    def test_empty_tree(self, tmp_path):
        assert list(scan_files(tmp_path)) == []


class TestSnapshot:

    def test_relative_key_uses_forward_slashes(self, tmp_path):
        path = tmp_path / "Artist" / "Album" / "01.flac"
        assert relative_key(tmp_path, path) == "Artist/Album/01.flac"

    def test_snapshot_timestamps(self, tmp_path):
        p = write(tmp_path / "sub" / "t.mp3")
        os.utime(p, ns=(1_000_000_000, 2_000_000_000))
        entry = snapshot(tmp_path, p)
        assert entry.relative_path == "sub/t.mp3"
        assert entry.last_write_time == 2_000_000_000
        assert isinstance(entry.creation_time, int)

    @pytest.mark.skipif(not sys.platform.startswith("linux"), reason="needs raw byte filenames")
    def test_non_utf8_name_skipped(self, tmp_path):
        write(tmp_path / "ok.mp3")
        with open(os.path.join(os.fsencode(tmp_path), b"caf\xe9.mp3"), "wb") as fh:
            fh.write(b"x")
        keys = [e.relative_path for e in scan_tree(tmp_path)]
        assert keys == ["ok.mp3"]

    def test_scan_tree(self, tmp_path):
        write(tmp_path / "一" / "歌.lrc")
        write(tmp_path / "b.wav")
        keys = {e.relative_path for e in scan_tree(tmp_path)}
        assert keys == {"一/歌.lrc", "b.wav"}
