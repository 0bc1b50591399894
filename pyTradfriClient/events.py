"""Event dispatch for client notifications.

The client reports everything that happens asynchronously (domain
updates, removals, connection progress and errors) through an
:class:`EventDispatcher`: a callback table keyed by
:class:`ClientEvent`.  Handlers run in registration order; a handler
that raises is logged and does not prevent the remaining handlers from
running.  Coroutine handlers are scheduled as tasks on the running
loop.

Usage::

    client.on(ClientEvent.DEVICE_UPDATED, lambda acc: print(acc.name))
    client.on("device removed", on_removed)   # plain strings work too
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Union

logger = logging.getLogger(__name__)

#: Signature of an event handler.
EventHandler = Callable[..., Any]


class ClientEvent(str, enum.Enum):
    """Events emitted by :class:`~pyTradfriClient.TradfriClient`."""

    # -- connection ----------------------------------------------------
    CONNECTION_FAILED = "connection failed"
    """``(attempt, max_attempts)``: one connection attempt failed."""

    # -- domain --------------------------------------------------------
    DEVICE_UPDATED = "device updated"
    DEVICE_REMOVED = "device removed"
    GROUP_UPDATED = "group updated"
    GROUP_REMOVED = "group removed"
    SCENE_UPDATED = "scene updated"
    SCENE_REMOVED = "scene removed"
    GATEWAY_UPDATED = "gateway updated"

    # -- errors --------------------------------------------------------
    ERROR = "error"

    # -- connection watcher --------------------------------------------
    PING_SUCCEEDED = "ping succeeded"
    PING_FAILED = "ping failed"
    CONNECTION_ALIVE = "connection alive"
    CONNECTION_LOST = "connection lost"
    RECONNECTING = "reconnecting"
    GIVE_UP = "give up"


EventKey = Union[ClientEvent, str]


class EventDispatcher:
    """Callback table keyed by :class:`ClientEvent`."""

    def __init__(self) -> None:
        self._handlers: Dict[ClientEvent, List[EventHandler]] = {}
        self._tasks: Set[asyncio.Task] = set()

    @staticmethod
    def _key(event: EventKey) -> ClientEvent:
        return ClientEvent(event)

    # ---- registration ------------------------------------------------

    def on(self, event: EventKey, handler: EventHandler) -> "EventDispatcher":
        """Register *handler* for *event*.  Returns ``self`` for chaining."""
        self._handlers.setdefault(self._key(event), []).append(handler)
        return self

    def off(self, event: EventKey, handler: EventHandler) -> "EventDispatcher":
        """Remove one registration of *handler* for *event* (if any)."""
        handlers = self._handlers.get(self._key(event))
        if handlers and handler in handlers:
            handlers.remove(handler)
        return self

    def remove_all_listeners(
        self, event: Optional[EventKey] = None
    ) -> "EventDispatcher":
        """Forget all handlers of *event*, or of every event."""
        if event is None:
            self._handlers.clear()
        else:
            self._handlers.pop(self._key(event), None)
        return self

    def listener_count(self, event: EventKey) -> int:
        """Number of handlers registered for *event*."""
        return len(self._handlers.get(self._key(event), ()))

    # ---- emission ----------------------------------------------------

    def emit(self, event: EventKey, *args: Any) -> bool:
        """Call every handler of *event* with *args*.

        Returns ``True`` if at least one handler was registered.  An
        ``"error"`` event without handlers is logged instead.
        """
        key = self._key(event)
        handlers = list(self._handlers.get(key, ()))
        if not handlers:
            if key is ClientEvent.ERROR:
                logger.warning("Unhandled client error: %s", args[0] if args else None)
            return False

        for handler in handlers:
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    self._schedule(key, result)
            except Exception:  # noqa: BLE001
                logger.exception("Error in handler for %r", key.value)
        return True

    def _schedule(self, key: ClientEvent, awaitable: Any) -> None:
        """Run a coroutine handler as a task and log its failure."""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Error in async handler for %r",
                    key.value,
                    exc_info=t.exception(),
                )

        task.add_done_callback(_done)
