"""
Fan-out of scan state snapshots to connected observers.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Any, Callable, Optional, Protocol


class ProgressObserver(Protocol):
    """Anything that can receive a JSON-ready message."""

    def send(self, message: dict[str, Any]) -> None:
        ...


StateSource = Callable[[], Optional[dict]]


class ProgressBroadcaster:
    """Registry of live observers; broadcasts are best effort."""

    def __init__(
        self,
        state_source: Optional[StateSource] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.state_source = state_source
        self.logger = logger or logging.getLogger("gallery")
        self._clients: dict[str, ProgressObserver] = {}
        self._lock = threading.Lock()
        self._counter = itertools.count(1)

    def register(self, client: ProgressObserver) -> str:
        """Add a client and greet it with an ack plus the last persisted state.

        Greeting and registration share the broadcast lock, so no snapshot
        published in between can be missed.
        """
        client_id = f"client-{int(time.time() * 1000)}-{next(self._counter)}"
        with self._lock:
            try:
                client.send({"type": "connected", "client_id": client_id})
                state = self.state_source() if self.state_source is not None else None
                if state is not None:
                    client.send(state)
            except Exception as exc:
                self.logger.debug("Observer %s failed during handshake: %s", client_id, exc)
                return client_id
            self._clients[client_id] = client
            count = len(self._clients)
        self.logger.info("Progress observer connected: %s (total: %s)", client_id, count)
        return client_id

    def unregister(self, client_id: str) -> None:
        with self._lock:
            removed = self._clients.pop(client_id, None)
            count = len(self._clients)
        if removed is not None:
            self.logger.info("Progress observer disconnected: %s (remaining: %s)", client_id, count)

    def broadcast(self, state: dict[str, Any]) -> None:
        # Sends happen under the lock so every observer sees snapshots in write order.
        with self._lock:
            dead = []
            for client_id, client in self._clients.items():
                try:
                    client.send(state)
                except Exception:
                    dead.append(client_id)
            for client_id in dead:
                self._clients.pop(client_id, None)

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)
