from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .events import ConnectivityChanged, EventDispatcher

if TYPE_CHECKING:
    from .remote import RemoteTransactionService

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Tracks online/offline and announces transitions as ConnectivityChanged events."""

    def __init__(self, dispatcher: EventDispatcher, online: bool = True) -> None:
        self._dispatcher = dispatcher
        self._online = online

    @property
    def is_online(self) -> bool:
        return self._online

    async def set_online(self, online: bool) -> bool:
        """Record the new state; returns True if it was a transition."""
        if online == self._online:
            return False
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        await self._dispatcher.dispatch(ConnectivityChanged(online=online))
        return True

    async def probe(self, remote: "RemoteTransactionService") -> bool:
        reachable = await remote.health()
        await self.set_online(reachable)
        return reachable
