# log.py
# SPDX-License-Identifier: MIT
"""Package-wide logging helpers.

The package logger carries a NullHandler so library users see nothing
unless they configure logging. :meth:`LoggingConfig.apply` (used by the
CLI) calls :func:`configure_logging` to attach a stream handler.

Batch task bodies run on ``spdxflow-batch`` worker threads, so the default
format names the thread a record came from.
"""

from __future__ import annotations

import logging
import sys

__all__ = [
    "PACKAGE_LOGGER_NAME",
    "DEFAULT_LOG_FORMAT",
    "get_logger",
    "resolve_level",
    "configure_logging",
]

PACKAGE_LOGGER_NAME = "spdxflow"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"

# Set on the handler configure_logging installs; other handlers are left alone.
_HANDLER_MARK = "_spdxflow_handler"

logging.getLogger(PACKAGE_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a named logger scoped to spdxflow.

    Args:
        name (str | None): Fully qualified logger name. Defaults to the
            package logger when omitted.

    Returns:
        logging.Logger: Logger instance for the requested name.
    """
    return logging.getLogger(name or PACKAGE_LOGGER_NAME)


def resolve_level(level: int | str) -> int:
    """Return the numeric value of a level given by number or name.

    Raises:
        ValueError: If ``level`` names no logging level.
    """
    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    if name.isdigit():
        return int(name)
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(
            f"Unknown log level {level!r}; expected DEBUG, INFO, WARNING, ERROR or CRITICAL."
        )
    return value


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream=None,
    fmt: str | None = None,
    datefmt: str | None = None,
    propagate: bool | None = None,
    logger_name: str = PACKAGE_LOGGER_NAME,
) -> logging.Logger:
    """Attach one spdxflow stream handler to a logger.

    Repeated calls reuse the handler installed by the first one: it is
    pointed at ``stream`` and, when ``fmt`` or ``datefmt`` is given, gets a
    new formatter. Handlers added by the host application are never touched.

    Args:
        level (int | str): Logging level or level name.
        stream (IO[str] | None): Target stream; defaults to the current
            ``sys.stderr``.
        fmt (str | None): Log format string; :data:`DEFAULT_LOG_FORMAT` for
            a new handler.
        datefmt (str | None): Date format string for the handler.
        propagate (bool | None): Whether records bubble up to ancestor
            loggers. None keeps propagation on so root handlers (pytest
            caplog) still see records.
        logger_name (str): Logger to configure.

    Returns:
        logging.Logger: The configured logger.

    Raises:
        ValueError: If ``level`` is not a known level.
    """
    logger = get_logger(logger_name or PACKAGE_LOGGER_NAME)
    logger.setLevel(resolve_level(level))
    logger.propagate = True if propagate is None else bool(propagate)

    if stream is None:
        stream = sys.stderr

    handler = next((h for h in logger.handlers if getattr(h, _HANDLER_MARK, False)), None)
    if handler is None:
        handler = logging.StreamHandler(stream)
        setattr(handler, _HANDLER_MARK, True)
        handler.setFormatter(logging.Formatter(fmt=fmt or DEFAULT_LOG_FORMAT, datefmt=datefmt))
        logger.addHandler(handler)
        return logger

    if handler.stream is not stream:
        if getattr(handler.stream, "closed", False):
            # setStream() would flush the closed stream and fail.
            handler.stream = stream
        else:
            handler.setStream(stream)
    if fmt is not None or datefmt is not None:
        handler.setFormatter(logging.Formatter(fmt=fmt or DEFAULT_LOG_FORMAT, datefmt=datefmt))
    return logger
