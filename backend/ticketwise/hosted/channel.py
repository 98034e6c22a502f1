from __future__ import annotations

import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[Optional[str], Any], Any]


class HostChannel:
    """Inbound message channel from the host window.

    Attaching the same listener twice keeps a single registration, so a
    remounted pod never handles a message more than once.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._closed = False

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, listener: Listener) -> None:
        if self._closed:
            raise RuntimeError("Host channel is closed.")
        if listener in self._listeners:
            return
        self._listeners.append(listener)

    def detach(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def deliver(self, origin: Optional[str], data: Any) -> int:
        """Hand one message to every listener; returns how many received it."""

        if self._closed:
            return 0
        listeners = list(self._listeners)
        for listener in listeners:
            listener(origin, data)
        return len(listeners)

    def close(self) -> None:
        self._listeners.clear()
        self._closed = True
        logger.debug("Host channel closed")
