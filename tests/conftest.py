"""Shared fixtures for aucomp tests."""

import threading
from pathlib import Path

import pytest

from aucomp.errors import TranscodeFailure


class FakeConverter:
    """Stands in for ffmpeg: writes a marker plus the source bytes."""

    def __init__(self, fail_names=()):
        self.fail_names = set(fail_names)
        self.calls = []
        self._lock = threading.Lock()

    def transcode(self, input_path, output_path):
        input_path = Path(input_path)
        with self._lock:
            self.calls.append((input_path, Path(output_path)))
        if input_path.name in self.fail_names:
            raise TranscodeFailure(input_path, exit_code=1)
        Path(output_path).write_bytes(b"converted:" + input_path.read_bytes())


@pytest.fixture
def converter():
    return FakeConverter()


@pytest.fixture
def dirs(tmp_path):
    """Return an (input, output) folder pair."""
    src = tmp_path / "in"
    dst = tmp_path / "out"
    src.mkdir()
    dst.mkdir()
    return src, dst


def write(path: Path, data=b"data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        path.write_text(data, encoding="utf-8")
    else:
        path.write_bytes(data)
    return path
