"""Error types raised by aucomp.

Filesystem failures are not wrapped: they surface as ``OSError`` and
abort the run.
"""

from __future__ import annotations

from pathlib import Path


class AucompError(Exception):
    """Base class for all aucomp errors."""


class ConfigurationError(AucompError):
    """Invalid or missing command-line input or settings."""


class CorruptManifest(AucompError):
    """The persisted manifest is truncated or malformed."""


ManifestCorruption = CorruptManifest


class TranscodeFailure(AucompError):
    """A single file could not be converted.

    Only ever affects the file it names; the run carries on.
    """

    def __init__(
        self,
        path: str | Path,
        exit_code: int | None = None,
        reason: str = "",
    ):
        self.path = str(path)
        self.exit_code = exit_code
        self.reason = reason
        if exit_code is not None:
            msg = f"{self.path}: transcoder exited with code {exit_code}"
        else:
            msg = f"{self.path}: {reason or 'conversion failed'}"
        super().__init__(msg)
