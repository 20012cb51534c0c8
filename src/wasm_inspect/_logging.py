"""Logging for wasm_inspect.

The library logger carries only a NullHandler; handlers are the
application's job. ``WASM_INSPECT_LOG_LEVEL`` (e.g. "DEBUG") sets the level,
and ``configure_logging()`` gives the command line a stderr handler.

CLI output format:
    DEBUG [2026-02-25 10:02:54] wasm_inspect.sections - message
"""

import logging
import os

import click

LIBRARY_LOGGER_NAME: str = "wasm_inspect"

logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())

# Honor WASM_INSPECT_LOG_LEVEL env var
_env_level = os.environ.get("WASM_INSPECT_LOG_LEVEL", "").strip().upper()
_env_level_value = logging.getLevelNamesMapping().get(_env_level)
if _env_level_value:  # excludes NOTSET (0) and missing keys (None)
    logging.getLogger(LIBRARY_LOGGER_NAME).setLevel(_env_level_value)

_FMT = "%(levelname)s [%(asctime)s] %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _ClickHandler(logging.Handler):
    """Writes records to stderr via click.echo with dim styling."""

    def __init__(self) -> None:
        super().__init__()
        self.formatter = logging.Formatter(fmt=_FMT, datefmt=_DATEFMT)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(click.style(self.format(record), dim=True), err=True)
        except Exception:  # noqa: BLE001
            self.handleError(record)


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    All wasm_inspect modules use this instead of logging.getLogger()
    directly for a consistent logger hierarchy.
    """
    return logging.getLogger(name)


def configure_logging(
    *,
    level: int | str | None = None,
    quiet: bool = False,
) -> None:
    """Configure library logging for the command line.

    Adds a _ClickHandler if none exists (idempotent), then sets the level.
    ``quiet`` sets ERROR and takes precedence over ``level``.
    """
    lib_logger = logging.getLogger(LIBRARY_LOGGER_NAME)

    if not any(isinstance(h, _ClickHandler) for h in lib_logger.handlers):
        lib_logger.addHandler(_ClickHandler())

    if quiet:
        lib_logger.setLevel(logging.ERROR)
    elif level is not None:
        lib_logger.setLevel(level)
