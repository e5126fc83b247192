"""
Live transport handles and the registry of currently connected ones.

The registry is owned by the application (see `main.create_app`) and handed
to the session engine; sessions reference subscribers but never own them.
"""

import logging
import uuid
from typing import Any, Callable, Dict, FrozenSet, List, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from pingmon.errors import TransportError

log = logging.getLogger(__name__)

CloseCallback = Callable[[], None]


class WebSocketSubscriber:
    """Wraps one accepted WebSocket behind send()/on_close()."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.id = uuid.uuid4().hex[:12]
        self._close_callbacks: List[CloseCallback] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Dict[str, Any]) -> None:
        if (
            self._closed
            or self.websocket.client_state != WebSocketState.CONNECTED
            or self.websocket.application_state != WebSocketState.CONNECTED
        ):
            raise TransportError(f"Subscriber {self.id} is not connected")
        try:
            await self.websocket.send_json(message)
        except Exception as e:
            raise TransportError(f"Send to subscriber {self.id} failed: {e}") from e

    def on_close(self, callback: CloseCallback) -> None:
        if self._closed:
            callback()
            return
        self._close_callbacks.append(callback)

    def discard_close_callback(self, callback: CloseCallback) -> None:
        try:
            self._close_callbacks.remove(callback)
        except ValueError:
            pass

    def close(self) -> None:
        """Mark closed and fire close callbacks exactly once."""
        if self._closed:
            return
        self._closed = True
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                log.exception("Close callback failed for subscriber %s", self.id)

    def __repr__(self) -> str:
        return f"WebSocketSubscriber(id={self.id!r}, closed={self._closed})"


class SubscriberRegistry:
    """Set of live subscribers; new sessions broadcast to a snapshot of it."""

    def __init__(self):
        self._subscribers: Set[Any] = set()

    def add(self, subscriber: Any) -> None:
        self._subscribers.add(subscriber)
        log.info("Subscriber %s connected (%d live)", getattr(subscriber, "id", subscriber), len(self._subscribers))

    def remove(self, subscriber: Any) -> None:
        self._subscribers.discard(subscriber)
        log.info("Subscriber %s disconnected (%d live)", getattr(subscriber, "id", subscriber), len(self._subscribers))

    def snapshot(self) -> FrozenSet[Any]:
        return frozenset(self._subscribers)

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: Any) -> bool:
        return subscriber in self._subscribers
