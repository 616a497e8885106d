"""
Logging for the provisioner process.

``configure_from_cli`` is called once by main.py.  Modules log through
``logging.getLogger(__name__)`` and inherit the handlers set up here.

Console level precedence:
    --debug / --verbose / --quiet  >  PROVISIONER_LOG_LEVEL  >  WARNING

A second, file-backed handler is attached when PROVISIONER_LOG_FILE is
set; PROVISIONER_LOG_FILE_LEVEL gives it an independent threshold so a
quiet terminal can still leave a detailed trace of a run on disk.

Generated credentials are registered with ``mask_secrets`` as soon as
they are known.  Every handler installed here carries the masking
filter, so a password echoed in subprocess stderr never reaches a log.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterable, Mapping

ENV_LEVEL = "PROVISIONER_LOG_LEVEL"
ENV_FILE = "PROVISIONER_LOG_FILE"
ENV_FILE_LEVEL = "PROVISIONER_LOG_FILE_LEVEL"

MASK = "**********"

_CONSOLE_FORMATS: dict[int, tuple[str, str | None]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
}
_FILE_FORMAT = ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%Y-%m-%d %H:%M:%S")

# Libraries that chatter below WARNING
_NOISY_LOGGERS = ("urllib3", "asyncio")


class SecretMaskFilter(logging.Filter):
    """Replace registered secret values in the rendered message."""

    def __init__(self) -> None:
        super().__init__()
        self._secrets: set[str] = set()

    def add(self, values: Iterable[str]) -> None:
        # Very short values would mask ordinary words
        self._secrets.update(v for v in values if v and len(v) >= 6)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, MASK)
        if masked != message:
            record.msg, record.args = masked, None
        return True


_mask_filter = SecretMaskFilter()


def mask_secrets(values: Iterable[str]) -> None:
    """Register values that must never appear in log output."""
    _mask_filter.add(values)


def resolve_level(
    verbose: bool = False,
    quiet: bool = False,
    debug: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the console level name from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    env = os.environ if environ is None else environ
    return env.get(ENV_LEVEL, "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install console (and optionally file) handlers on the root logger.

    Safe to call more than once; previous handlers are replaced.
    """
    console_level = _parse_level(level)
    fmt, datefmt = _console_format(console_level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(_mask_filter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    root_level = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(*_FILE_FORMAT))
        file_handler.addFilter(_mask_filter)
        root.addHandler(file_handler)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def configure_from_cli(
    verbose: bool = False,
    quiet: bool = False,
    debug: bool = False,
    environ: Mapping[str, str] | None = None,
) -> None:
    """Entry point used by the CLI group callback."""
    env = os.environ if environ is None else environ
    setup_logging(
        level=resolve_level(verbose, quiet, debug, env),
        log_file=env.get(ENV_FILE),
        log_file_level=env.get(ENV_FILE_LEVEL),
        quiet_third_party=not debug,
    )


def _console_format(level: int) -> tuple[str, str | None]:
    if level <= logging.DEBUG:
        return _CONSOLE_FORMATS[logging.DEBUG]
    if level <= logging.INFO:
        return _CONSOLE_FORMATS[logging.INFO]
    return "%(message)s", None


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    return numeric if isinstance(numeric, int) else logging.WARNING
