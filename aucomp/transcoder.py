"""
Transcoder - Convert audio files with FFmpeg, and re-encode or copy
everything else.

The ffmpeg command line is::

    ffmpeg [-y] -i "<input>" <user arguments> "<output>"

where ``<user arguments>`` is the string given on the command line,
split into words but otherwise passed through untouched.  Only the
exit code of ffmpeg is looked at, never its output.
"""

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from aucomp.errors import TranscodeFailure
from aucomp.platform_utils import IS_WINDOWS

logger = logging.getLogger(__name__)


def split_arguments(arguments: str) -> list[str]:
    """Split a user-supplied argument string into words."""
    return shlex.split(arguments, posix=not IS_WINDOWS)


def build_command(
    executable: str,
    input_path: str | Path,
    output_path: str | Path,
    arguments: str,
    overwrite: bool = True,
) -> list[str]:
    """Compose the ffmpeg argument vector for one conversion."""
    cmd = [executable]
    if overwrite:
        cmd.append("-y")
    cmd += ["-i", str(input_path)]
    cmd += split_arguments(arguments)
    cmd.append(str(output_path))
    return cmd


@dataclass
class Transcoder:
    """
    Runs the external transcoder for one file at a time.

    Instances hold no per-call state and can be shared between worker
    threads.
    """

    executable: str
    arguments: str
    overwrite: bool = True
    show_output: bool = False

    def command_for(self, input_path: str | Path, output_path: str | Path) -> list[str]:
        return build_command(
            self.executable, input_path, output_path, self.arguments, self.overwrite
        )

    def run(self, input_path: str | Path, output_path: str | Path) -> int:
        """Run the transcoder to completion and return its exit code."""
        cmd = self.command_for(input_path, output_path)
        logger.info("Running: %s", shlex.join(cmd))
        sink = None if self.show_output else subprocess.DEVNULL
        proc = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=sink,
            stderr=sink,
            check=False,
        )
        return proc.returncode

    def transcode(self, input_path: str | Path, output_path: str | Path) -> None:
        """Convert one file, raising TranscodeFailure on a non-zero exit."""
        try:
            code = self.run(input_path, output_path)
        except OSError as exc:
            # The executable itself could not be started
            raise TranscodeFailure(input_path, reason=f"cannot run transcoder: {exc}") from exc
        if code != 0:
            raise TranscodeFailure(input_path, exit_code=code)


def reencode_text(
    source_path: str | Path,
    output_path: str | Path,
    source_encoding: str = "utf-8-sig",
    target_encoding: str = "gb18030",
) -> None:
    """
    Copy a text file, converting it from *source_encoding* to
    *target_encoding*.  Line endings are kept as they are.

    Raises TranscodeFailure when the text cannot be decoded or encoded.
    """
    try:
        with open(source_path, encoding=source_encoding, newline="") as fh:
            text = fh.read()
        data = text.encode(target_encoding)
    except UnicodeError as exc:
        raise TranscodeFailure(source_path, reason=f"text re-encode failed: {exc}") from exc
    Path(output_path).write_bytes(data)


def copy_verbatim(source_path: str | Path, output_path: str | Path) -> None:
    """Copy a file byte for byte, keeping its timestamps."""
    shutil.copy2(str(source_path), str(output_path))
