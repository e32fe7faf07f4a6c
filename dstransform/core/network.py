"""
Network guard: a per-run on/off switch consulted by every network-capable
host callable.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from dstransform.core.errors import NetworkDisabledError

_log = logging.getLogger(__name__)


class NetworkGuard:
    """Starts disabled. Use ``enabled()`` so the switch is always turned back off."""

    def __init__(self) -> None:
        self._enabled = False

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def is_enabled(self) -> bool:
        return self._enabled

    def require(self, action: str = "network request") -> None:
        if not self._enabled:
            raise NetworkDisabledError(f"{action} refused: network access is disabled")

    @contextmanager
    def enabled(self) -> Iterator["NetworkGuard"]:
        self.enable()
        _log.debug("network enabled")
        try:
            yield self
        finally:
            self.disable()
            _log.debug("network disabled")
