"""
Logging configuration for the installer entrypoint.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    --debug / --verbose / --quiet  >  KODEGEN_LOG_LEVEL  >  WARNING

KODEGEN_LOG_FILE adds a file handler (own level via
KODEGEN_LOG_FILE_LEVEL).  A bare file name is placed in the diagnostics
directory next to the failure bundles, so one directory holds
everything worth attaching to a bug report.

User-facing progress lines do not go through logging; they are printed
by the console (``ui/cli/console.py``).  Logging is the diagnostic channel.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

# Console format per threshold, most verbose first: (max level, fmt, datefmt).
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_FMT_MINIMAL = "%(message)s"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


def setup_logging(
    level: str = "WARNING",
    *,
    log_file: str | None = None,
    log_file_level: str | None = None,
    log_dir: Path | None = None,
) -> Path | None:
    """Configure Python logging for the entire process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional log file.  A bare name goes into *log_dir*;
            a path is used as given (``~`` expanded).
        log_file_level: Separate level for the log file.  Defaults to
            ``level``.
        log_dir: Diagnostics directory for bare log file names.

    Returns:
        The log file actually opened, or None.  A file that cannot be
        opened is reported as a warning and skipped.
    """
    numeric_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(_console_formatter(numeric_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(numeric_level)
    logging.raiseExceptions = False

    if not log_file:
        return None

    path = resolve_log_file(log_file, log_dir)
    file_level = _parse_level(log_file_level) if log_file_level else numeric_level
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
    except OSError as e:
        logger.warning("Cannot write log file %s: %s", path, e)
        return None

    fh.setLevel(file_level)
    fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
    root.addHandler(fh)
    root.setLevel(min(numeric_level, file_level))
    return path


def resolve_log_file(log_file: str, log_dir: Path | None) -> Path:
    """Where KODEGEN_LOG_FILE points: bare names live in *log_dir*."""
    path = Path(os.path.expanduser(log_file))
    if log_dir is not None and not path.is_absolute() and path.parent == Path("."):
        return Path(log_dir) / path
    return path


def _console_formatter(numeric_level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if numeric_level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_FMT_MINIMAL)


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
