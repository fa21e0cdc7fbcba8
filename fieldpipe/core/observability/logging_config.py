"""
Logging setup for the fieldpipe CLI and embedding applications.

Library code only ever does ``logger = logging.getLogger(__name__)``;
handlers are attached here, once, by whoever owns the process.

Level precedence:
    explicit argument  >  FIELDPIPE_LOG_LEVEL  >  WARNING

A log file is added when ``log_file`` or FIELDPIPE_LOG_FILE is set. It
records at FIELDPIPE_LOG_FILE_LEVEL (default: the console level) and
always uses the detailed format.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LEVEL_ENV = "FIELDPIPE_LOG_LEVEL"
FILE_ENV = "FIELDPIPE_LOG_FILE"
FILE_LEVEL_ENV = "FIELDPIPE_LOG_FILE_LEVEL"

# ── Formats ─────────────────────────────────────────────────────

_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FMT_PLAIN = "%(levelname)s: %(message)s"

_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Loaded plugin modules may pull these in; keep them quiet below DEBUG
_NOISY_LOGGERS = ("matplotlib", "PIL", "fontTools", "urllib3")


def resolve_level(level: str | None = None) -> str:
    """Pick the console level name from the argument or environment."""
    return (level or os.environ.get(LEVEL_ENV) or "WARNING").upper()


def setup_logging(
    level: str | None = None,
    log_file: str | Path | None = None,
    log_file_level: str | None = None,
) -> int:
    """Configure the root logger. Returns the console level.

    Safe to call repeatedly; previous handlers are replaced.
    """
    console_level = _parse_level(resolve_level(level))

    if console_level <= logging.DEBUG:
        fmt, datefmt = _CONSOLE_FORMATS[logging.DEBUG]
    elif console_level <= logging.INFO:
        fmt, datefmt = _CONSOLE_FORMATS[logging.INFO]
    else:
        fmt, datefmt = _FMT_PLAIN, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)
    root_level = console_level

    log_file = log_file or os.environ.get(FILE_ENV)
    if log_file:
        file_level = _parse_level(
            log_file_level or os.environ.get(FILE_LEVEL_ENV) or logging.getLevelName(console_level)
        )
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
        root.addHandler(fh)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return console_level


def _parse_level(level: str | None) -> int:
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
