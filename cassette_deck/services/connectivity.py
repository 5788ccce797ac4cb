"""Connectivity signal with edge-triggered change notifications.

WHY: Transcription and summarization are deferred while offline and
replayed when the device comes back online. The rest of the package only
needs a boolean and a way to hear about flips.

HOW: ConnectivityMonitor keeps the last known state. set_connected()
records a new observation and notifies subscribers only when the state
actually changes. check() probes a URL with httpx and feeds the result
into set_connected().

RULES:
- Listeners are called synchronously, in subscription order
- A raising listener is logged and does not stop the others
- subscribe() returns an unsubscribe callable; calling it twice is harmless
- Listeners must not run long work inline; schedule a task instead
"""

from __future__ import annotations

import logging
from typing import Callable, List

import httpx

from cassette_deck.config import CONNECTIVITY_PROBE_URL

logger = logging.getLogger(__name__)

ConnectionListener = Callable[[bool], None]

_PROBE_TIMEOUT_S = 5.0


class ConnectivityMonitor:
    """Last-known connectivity state plus change subscriptions."""

    def __init__(self, initial: bool = True, probe_url: str | None = None) -> None:
        self._connected = initial
        self._listeners: List[ConnectionListener] = []
        self._probe_url = probe_url or CONNECTIVITY_PROBE_URL

    def is_connected(self) -> bool:
        return self._connected

    def subscribe(self, listener: ConnectionListener) -> Callable[[], None]:
        """Register a listener for connectivity flips.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set_connected(self, connected: bool) -> None:
        """Record an observation; notify listeners only on a change."""
        if connected == self._connected:
            return

        self._connected = connected
        logger.info("Network state changed: %s", "ONLINE" if connected else "OFFLINE")

        for listener in list(self._listeners):
            try:
                listener(connected)
            except Exception:
                logger.exception("Error in connection change listener")

    async def check(self, url: str | None = None) -> bool:
        """Probe the network and update the state from the result.

        HOW: Sends a HEAD request. Any HTTP response, even an error status,
        means the network is reachable; any httpx.HTTPError means offline.
        """
        try:
            async with httpx.AsyncClient(timeout=_PROBE_TIMEOUT_S) as client:
                await client.head(url or self._probe_url)
            connected = True
        except httpx.HTTPError:
            logger.warning("Connectivity probe failed for %s", url or self._probe_url)
            connected = False

        self.set_connected(connected)
        return connected
