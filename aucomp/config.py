"""Configuration management for aucomp.

Stores and retrieves user settings from a JSON config file
in the platform-appropriate application data directory.
Command-line flags override these values for a single run.
"""

import codecs
import json
import logging
from pathlib import Path
from typing import Any

from aucomp.platform_utils import (
    get_config_dir as _platform_config_dir,
)
from aucomp.platform_utils import (
    get_log_path as _platform_log_path,
)

logger = logging.getLogger(__name__)

# What to do with files that are neither audio nor lyrics
UNHANDLED_SKIP = "skip"
UNHANDLED_COPY = "copy"
UNHANDLED_POLICIES = (UNHANDLED_SKIP, UNHANDLED_COPY)

DEFAULT_AUDIO_EXTENSIONS = [
    ".aac", ".ape", ".flac", ".m4a", ".mp3", ".ogg", ".wav", ".wma",
]
DEFAULT_LYRIC_EXTENSIONS = [".lrc"]

DEFAULT_CONFIG: dict[str, Any] = {
    # ---- transcoder ----
    "ffmpeg_path": "ffmpeg",
    "output_extension": ".mp3",
    "overwrite_output": True,  # pass -y so re-conversions never prompt
    "show_transcoder_output": False,
    # ---- file classes ----
    "audio_extensions": list(DEFAULT_AUDIO_EXTENSIONS),
    "lyric_extensions": list(DEFAULT_LYRIC_EXTENSIONS),
    "lyric_source_encoding": "utf-8-sig",
    "lyric_target_encoding": "gb18030",
    "unhandled_policy": UNHANDLED_SKIP,  # skip | copy
    # ---- worker pool ----
    "workers": 0,  # 0 = host parallelism
    # ---- watch mode ----
    "watch_stable_seconds": 10,
    # ---- logging ----
    "log_level": "INFO",
    "max_log_size_mb": 10,  # rotate log when it exceeds this size
    "log_backup_count": 3,  # number of rotated log files to keep
}


def get_config_dir() -> Path:
    """Return the platform-appropriate application config directory."""
    return _platform_config_dir()


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return get_config_dir() / "config.json"


def get_log_path() -> Path:
    """Return the path to the log file."""
    return _platform_log_path()


def _normalise_extensions(value: list[str]) -> list[str]:
    exts = []
    for ext in value:
        ext = ext.strip().lower()
        if not ext:
            continue
        exts.append(ext if ext.startswith(".") else "." + ext)
    return exts


def _check_encoding(name: str) -> str:
    """Return the canonical codec name, or raise ValueError."""
    try:
        return codecs.lookup(name).name
    except LookupError:
        raise ValueError(f"Unknown text encoding: {name!r}") from None


class Config:
    """Configuration manager backed by a JSON file."""

    def __init__(self, path: Path | None = None):
        """Load config from *path*, falling back to the platform default."""
        self._path = path or get_config_path()
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as fh:
                    stored = json.load(fh)
                # Merge stored values over defaults so new keys get defaults
                self._data = {**DEFAULT_CONFIG, **stored}
                logger.debug("Configuration loaded from %s", self._path)
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Could not read config (%s); using defaults.", exc)
                self._data = dict(DEFAULT_CONFIG)
        else:
            self._data = dict(DEFAULT_CONFIG)
            self.save()
            logger.info("Created default configuration at %s", self._path)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2)
            logger.debug("Configuration saved.")
        except OSError as exc:
            logger.error("Failed to save configuration: %s", exc)

    # ---- transcoder ----

    @property
    def ffmpeg_path(self) -> str:
        """Return the ffmpeg command name or path."""
        return self._data.get("ffmpeg_path") or "ffmpeg"

    @ffmpeg_path.setter
    def ffmpeg_path(self, value: str) -> None:
        self._data["ffmpeg_path"] = value.strip() or "ffmpeg"

    @property
    def output_extension(self) -> str:
        """Return the extension given to converted audio files."""
        ext = self._data.get("output_extension", ".mp3")
        return ext if ext.startswith(".") else "." + ext

    @property
    def overwrite_output(self) -> bool:
        return bool(self._data.get("overwrite_output", True))

    @property
    def show_transcoder_output(self) -> bool:
        return bool(self._data.get("show_transcoder_output", False))

    # ---- file classes ----

    @property
    def audio_extensions(self) -> list[str]:
        """Return lowercase audio extensions, each with a leading dot."""
        return _normalise_extensions(
            self._data.get("audio_extensions", DEFAULT_AUDIO_EXTENSIONS)
        )

    @audio_extensions.setter
    def audio_extensions(self, value: list[str]) -> None:
        self._data["audio_extensions"] = _normalise_extensions(value)

    @property
    def lyric_extensions(self) -> list[str]:
        """Return lowercase lyric extensions, each with a leading dot."""
        return _normalise_extensions(
            self._data.get("lyric_extensions", DEFAULT_LYRIC_EXTENSIONS)
        )

    @lyric_extensions.setter
    def lyric_extensions(self, value: list[str]) -> None:
        self._data["lyric_extensions"] = _normalise_extensions(value)

    @property
    def lyric_source_encoding(self) -> str:
        return self._data.get("lyric_source_encoding", "utf-8-sig")

    @lyric_source_encoding.setter
    def lyric_source_encoding(self, value: str) -> None:
        self._data["lyric_source_encoding"] = _check_encoding(value)

    @property
    def lyric_target_encoding(self) -> str:
        return self._data.get("lyric_target_encoding", "gb18030")

    @lyric_target_encoding.setter
    def lyric_target_encoding(self, value: str) -> None:
        self._data["lyric_target_encoding"] = _check_encoding(value)

    @property
    def unhandled_policy(self) -> str:
        """Return the policy for files that are neither audio nor lyrics."""
        value = self._data.get("unhandled_policy", UNHANDLED_SKIP)
        return value if value in UNHANDLED_POLICIES else UNHANDLED_SKIP

    @unhandled_policy.setter
    def unhandled_policy(self, value: str) -> None:
        if value not in UNHANDLED_POLICIES:
            raise ValueError(f"Unknown unhandled-file policy: {value!r}")
        self._data["unhandled_policy"] = value

    # ---- worker pool ----

    @property
    def workers(self) -> int:
        """Return the configured worker count (0 = host parallelism)."""
        return max(0, int(self._data.get("workers", 0)))

    @workers.setter
    def workers(self, value: int) -> None:
        self._data["workers"] = max(0, int(value))

    # ---- watch mode ----

    @property
    def watch_stable_seconds(self) -> int:
        """Return how long the source tree must be quiet before a re-run."""
        return int(self._data.get("watch_stable_seconds", 10))

    @watch_stable_seconds.setter
    def watch_stable_seconds(self, value: int) -> None:
        self._data["watch_stable_seconds"] = max(0, int(value))

    # ---- logging ----

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return self._data.get("log_level", "INFO")

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._data["log_level"] = value.upper()

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return int(self._data.get("max_log_size_mb", 10))

    @max_log_size_mb.setter
    def max_log_size_mb(self, value: int) -> None:
        self._data["max_log_size_mb"] = max(1, int(value))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return int(self._data.get("log_backup_count", 3))

    @log_backup_count.setter
    def log_backup_count(self, value: int) -> None:
        self._data["log_backup_count"] = max(0, int(value))
