"""
Log module for transformation scripts: info, warn, error, debug.
"""

import logging
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

logger = logging.getLogger("dstransform.script")


def make_log_module(
    *,
    logger_instance: logging.Logger | None = None,
    extra: Callable[[], dict[str, Any]] | dict[str, Any] | None = None,
) -> SimpleNamespace:
    """
    Build the ``log`` object: info, warn, error, debug. ``extra`` is passed to
    the logger as context; a callable is evaluated per record (e.g. to pick
    up the current phase).
    """
    log = logger_instance or logger

    def _extra() -> dict[str, Any]:
        if callable(extra):
            return extra()
        return extra or {}

    def _log(level: int, msg: str, *args: Any) -> None:
        ext = _extra()
        if ext:
            log.log(level, msg, *args, extra=ext)
        else:
            log.log(level, msg, *args)

    def info(msg: str, *args: Any) -> None:
        _log(logging.INFO, msg, *args)

    def warn(msg: str, *args: Any) -> None:
        _log(logging.WARNING, msg, *args)

    def error(msg: str, *args: Any) -> None:
        _log(logging.ERROR, msg, *args)

    def debug(msg: str, *args: Any) -> None:
        _log(logging.DEBUG, msg, *args)

    return SimpleNamespace(info=info, warn=warn, error=error, debug=debug)
