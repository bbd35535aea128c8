"""
Cross-platform utilities for aucomp.

Centralises all OS-detection logic so every other module can import
a single canonical set of helpers rather than scattering ``sys.platform``
checks throughout the codebase.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - Windows : ``%APPDATA%\\aucomp``
    - macOS   : ``~/Library/Application Support/aucomp``
    - Linux   : ``$XDG_CONFIG_HOME/aucomp`` (default ``~/.config``)
    """
    if IS_WINDOWS:
        base = os.environ.get("APPDATA", str(Path.home()))
    elif IS_MACOS:
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))

    config_dir = Path(base) / "aucomp"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the config directory)."""
    return get_config_dir() / "aucomp.log"


# ---- host resources ----------------------------------------------------


def host_parallelism() -> int:
    """Return the number of CPUs usable by this process (at least 1)."""
    if hasattr(os, "sched_getaffinity"):
        try:
            return max(1, len(os.sched_getaffinity(0)))
        except OSError:
            pass
    return max(1, os.cpu_count() or 1)


# ---- external tools ----------------------------------------------------

_FFMPEG_LOCATIONS = (
    # Windows
    r"C:\Program Files\ffmpeg\bin\ffmpeg.exe",
    r"C:\ffmpeg\bin\ffmpeg.exe",
    # macOS (Homebrew)
    "/usr/local/bin/ffmpeg",
    "/opt/homebrew/bin/ffmpeg",
    # Linux
    "/usr/bin/ffmpeg",
)


def find_ffmpeg(preferred: str = "ffmpeg") -> str | None:
    """
    Locate the ffmpeg binary.

    *preferred* may be a bare command name (looked up on ``PATH``) or a
    full path.  Only the default name falls back to the usual install
    locations; an explicit path that does not exist yields None.
    """
    found = shutil.which(preferred)
    if found:
        return found
    if Path(preferred).is_file():
        return str(Path(preferred))
    if preferred != "ffmpeg":
        return None

    for path in _FFMPEG_LOCATIONS:
        if Path(path).is_file():
            logger.debug("Using ffmpeg from %s", path)
            return path

    return None
