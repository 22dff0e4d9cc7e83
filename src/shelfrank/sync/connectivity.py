"""Reachability signal for the remote store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class Connectivity:
    """Tracks whether the remote store is believed reachable.

    The UI layer (or a network monitor) calls :meth:`set_online`; callbacks
    registered with :meth:`subscribe` run when the state goes from offline to
    online.
    """

    def __init__(self, *, online: bool = True) -> None:
        self._online = online
        self._subscribers: list[Callable[[], None]] = []

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        if not online:
            logger.info("Remote store is unreachable")
            return
        logger.info("Remote store is reachable again")
        for callback in list(self._subscribers):
            callback()

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe
