"""
Command-line interface for aucomp.

    aucomp -i <input folder> -o <output folder> -a "<ffmpeg arguments>"

Exit status is 0 when the run completes, even if individual files
failed to convert (use ``--strict`` to get 1 in that case), 2 for bad
command-line input, and 1 when the run was aborted.
"""

from __future__ import annotations

import argparse
import logging
import logging.handlers
import signal
import sys
import threading
from dataclasses import dataclass
from pathlib import Path

from aucomp import __app_name__, __version__
from aucomp.config import UNHANDLED_POLICIES, Config, get_log_path
from aucomp.engine import SyncEngine, SyncReport
from aucomp.errors import ConfigurationError, CorruptManifest
from aucomp.platform_utils import find_ffmpeg
from aucomp.transcoder import split_arguments

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class RunSettings:
    """Validated command-line input for one invocation."""
    input_dir: Path
    output_dir: Path
    arguments: str


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description=(
            "Mirror a music folder, converting audio with ffmpeg and "
            "re-encoding lyric files. Only changed files are processed."
        ),
    )
    parser.add_argument("-i", dest="input_dir", required=True, metavar="DIR",
                        help="input folder (must exist)")
    parser.add_argument("-o", dest="output_dir", required=True, metavar="DIR",
                        help="output folder (created if missing)")
    parser.add_argument("-a", dest="arguments", required=True, metavar="ARGS",
                        help="ffmpeg arguments placed between input and output")
    parser.add_argument("-j", "--workers", type=int, metavar="N",
                        help="number of worker threads (default: CPU count)")
    parser.add_argument("--unhandled", choices=UNHANDLED_POLICIES,
                        help="what to do with files that are neither audio nor lyrics")
    parser.add_argument("--full", action="store_true",
                        help="process every file again (removed files are still deleted)")
    parser.add_argument("--watch", action="store_true",
                        help="keep running and sync again whenever the input changes")
    parser.add_argument("--ffmpeg", metavar="PATH", help="ffmpeg executable")
    parser.add_argument("--config", metavar="PATH", help="settings file")
    parser.add_argument("--log-level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        type=str.upper, help="logging level")
    parser.add_argument("--strict", action="store_true",
                        help="exit with status 1 if any file failed")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    return parser


def resolve_settings(input_dir: str, output_dir: str, arguments: str) -> RunSettings:
    """
    Validate the three required inputs.

    The input folder must exist; the output folder is created if absent.
    Raises ConfigurationError before anything else happens.
    """
    if not arguments or not arguments.strip():
        raise ConfigurationError("Transcoder arguments (-a) must not be empty")
    try:
        split_arguments(arguments)
    except ValueError as exc:
        raise ConfigurationError(f"Cannot parse transcoder arguments (-a): {exc}") from None

    src = Path(input_dir).expanduser()
    if not src.is_dir():
        raise ConfigurationError(f"Input directory not found: {input_dir}")
    src = src.resolve()

    dst = Path(output_dir).expanduser().resolve()
    if dst == src:
        raise ConfigurationError("Input and output directories must differ")
    if dst.exists() and not dst.is_dir():
        raise ConfigurationError(f"Output path is not a directory: {output_dir}")
    try:
        dst.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(f"Cannot create output directory {output_dir}: {exc}") from exc

    return RunSettings(src, dst, arguments)


def apply_overrides(cfg: Config, args: argparse.Namespace) -> None:
    """Copy command-line overrides into *cfg* (not saved to disk)."""
    if args.workers is not None:
        if args.workers < 1:
            raise ConfigurationError("--workers must be at least 1")
        cfg.workers = args.workers
    if args.unhandled:
        cfg.unhandled_policy = args.unhandled
    if args.ffmpeg:
        cfg.ffmpeg_path = args.ffmpeg
    if args.log_level:
        cfg.log_level = args.log_level


def setup_logging(cfg: Config) -> None:
    """Configure rotating file log and stderr handler."""
    level = getattr(logging, cfg.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    fmt = logging.Formatter(_LOG_FORMAT)

    try:
        fh = logging.handlers.RotatingFileHandler(
            str(get_log_path()),
            maxBytes=cfg.max_log_size_mb * 1024 * 1024,
            backupCount=cfg.log_backup_count,
            encoding="utf-8",
        )
    except OSError as exc:
        print(f"Warning: cannot open log file: {exc}", file=sys.stderr)
    else:
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root_logger.addHandler(fh)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)


def _watch(engine: SyncEngine, cfg: Config) -> None:
    """Re-run *engine* whenever the input folder changes, until interrupted."""
    from aucomp.watcher import FolderWatcher

    def _sync() -> None:
        report = engine.run()
        logger.info("%s", report.summary())

    watcher = FolderWatcher(
        str(engine.input_root),
        on_change=_sync,
        stable_seconds=cfg.watch_stable_seconds,
        exclude=[str(engine.output_root)],
    )
    stop = threading.Event()

    def _handler(sig, frame):
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)

    watcher.start()
    print(f"{__app_name__} watching {engine.input_root} (press Ctrl-C to stop)…")
    try:
        while not stop.wait(1):
            pass
    finally:
        watcher.stop()
    print(f"{__app_name__} stopped.")


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run one sync (or watch), and return an exit status."""
    args = build_parser().parse_args(argv)

    try:
        cfg = Config(Path(args.config)) if args.config else Config()
        apply_overrides(cfg, args)
    except (ConfigurationError, ValueError) as exc:
        print(f"{__app_name__}: {exc}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(cfg)
    logger.info("%s %s starting.", __app_name__, __version__)

    try:
        settings = resolve_settings(args.input_dir, args.output_dir, args.arguments)
        ffmpeg = find_ffmpeg(cfg.ffmpeg_path)
        if ffmpeg is None:
            raise ConfigurationError(f"ffmpeg not found: {cfg.ffmpeg_path}")
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return EXIT_USAGE

    engine = SyncEngine.from_config(
        cfg, settings.input_dir, settings.output_dir, settings.arguments, ffmpeg
    )

    try:
        report: SyncReport = engine.run(full=args.full)
        logger.info("%s", report.summary())
        if args.watch:
            _watch(engine, cfg)
    except CorruptManifest as exc:
        logger.error("Manifest is corrupt, run aborted: %s", exc)
        logger.error("Delete %s or re-run with --full.", engine.manifest_path)
        return EXIT_FAILED
    except OSError as exc:
        logger.error("Run aborted by filesystem error: %s", exc)
        return EXIT_FAILED

    if args.strict and report.failed:
        return EXIT_FAILED
    return EXIT_OK
