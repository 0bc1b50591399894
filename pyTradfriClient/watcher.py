"""Connection watcher.

Pings the gateway periodically and reports the health of the DTLS
session through client events:

* ``"ping succeeded"`` / ``"ping failed" (failed_count)`` after each ping,
* ``"connection lost"`` once ``failed_ping_count_until_offline``
  consecutive pings failed,
* ``"connection alive"`` when a ping succeeds again after that,
* ``"reconnecting" (attempt, max)`` every
  ``offline_ping_count_until_reconnect`` failed pings while offline,
* ``"give up"`` when ``maximum_reconnects`` reconnects did not help.

While pings fail the interval grows by ``failed_ping_backoff_factor``
per failure (capped at five steps) and snaps back on success.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Optional

from pyTradfriClient.errors import TradfriError
from pyTradfriClient.events import ClientEvent
from pyTradfriClient.options import WatcherOptions

logger = logging.getLogger(__name__)

#: Maximum number of backoff steps applied to the ping interval.
MAX_BACKOFF_STEPS: int = 5


class ConnectionWatcher:
    """Periodic ping loop with offline detection and reconnects.

    Parameters
    ----------
    ping:
        Coroutine function returning ``True`` when the gateway answered.
    reconnect:
        Coroutine function re-establishing the session.
    emit:
        Emits a :class:`ClientEvent` with arguments.
    options:
        Watcher settings.
    """

    def __init__(
        self,
        ping: Callable[[], Awaitable[bool]],
        reconnect: Callable[[], Awaitable[Any]],
        emit: Callable[..., Any],
        options: Optional[WatcherOptions] = None,
    ) -> None:
        self._ping = ping
        self._reconnect = reconnect
        self._emit = emit
        self._options = options or WatcherOptions()
        self._task: Optional[asyncio.Task] = None
        self._connection_alive = True
        self._failed_pings = 0
        self._offline_pings = 0
        self._reconnect_attempts = 0

    # ---- properties --------------------------------------------------

    @property
    def options(self) -> WatcherOptions:
        return self._options

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def connection_alive(self) -> bool:
        return self._connection_alive

    @property
    def failed_pings(self) -> int:
        return self._failed_pings

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # ---- lifecycle ---------------------------------------------------

    def start(self) -> None:
        """Start the ping loop on the running event loop."""
        if self.is_running:
            logger.debug("Connection watcher already running")
            return
        self._connection_alive = True
        self._failed_pings = 0
        self._offline_pings = 0
        self._reconnect_attempts = 0
        self._task = asyncio.ensure_future(self._run())
        logger.info("Connection watcher started")

    def stop(self) -> None:
        """Stop the ping loop."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("Connection watcher stopped")

    # ---- loop --------------------------------------------------------

    def next_interval(self) -> float:
        """Seconds until the next ping."""
        steps = min(MAX_BACKOFF_STEPS, max(0, self._failed_pings - 1))
        return self._options.ping_interval * (
            self._options.failed_ping_backoff_factor ** steps
        )

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.next_interval())
            if not await self.check():
                break

    async def check(self) -> bool:
        """Run one ping round.  Returns ``False`` once the watcher gave up."""
        try:
            alive = await self._ping()
        except TradfriError as exc:
            logger.debug("Ping raised %s", exc)
            alive = False

        if alive:
            self._on_ping_succeeded()
            return True
        return await self._on_ping_failed()

    def _on_ping_succeeded(self) -> None:
        if not self._connection_alive:
            logger.info("Connection to the gateway is alive again")
            self._connection_alive = True
            self._emit(ClientEvent.CONNECTION_ALIVE)
        self._failed_pings = 0
        self._offline_pings = 0
        self._reconnect_attempts = 0
        self._emit(ClientEvent.PING_SUCCEEDED)

    async def _on_ping_failed(self) -> bool:
        self._failed_pings += 1
        self._emit(ClientEvent.PING_FAILED, self._failed_pings)

        if self._connection_alive:
            if self._failed_pings < self._options.failed_ping_count_until_offline:
                return True
            logger.warning("Connection to the gateway lost")
            self._connection_alive = False
            self._emit(ClientEvent.CONNECTION_LOST)
            return True

        if not self._options.reconnection_enabled:
            return True

        self._offline_pings += 1
        if self._offline_pings < self._options.offline_ping_count_until_reconnect:
            return True
        self._offline_pings = 0

        if self._reconnect_attempts >= self._options.maximum_reconnects:
            logger.warning(
                "Giving up after %d reconnect attempt(s)",
                self._reconnect_attempts,
            )
            self._emit(ClientEvent.GIVE_UP)
            return False

        self._reconnect_attempts += 1
        maximum = self._options.maximum_reconnects
        self._emit(
            ClientEvent.RECONNECTING,
            self._reconnect_attempts,
            maximum if not math.isinf(maximum) else None,
        )
        logger.info("Reconnecting (attempt %d)", self._reconnect_attempts)
        try:
            await self._reconnect()
        except TradfriError as exc:
            logger.warning("Reconnect failed: %s", exc)
        return True
