"""Connection/retry engine.

Drives the transport handshake for one ``connect()`` call::

    IDLE ──► RESETTING ──► CONNECTING ──► SUCCESS
                               │  ▲
                               ▼  │
                            RETRYING ──► EXHAUSTED

Every failed attempt is reported through ``on_attempt_failed(attempt,
max_attempts)``, including the last one.  Between attempts the engine
waits ``connection_interval`` seconds; :meth:`ConnectionRetryEngine.cancel`
aborts that wait.  Once every attempt has failed the outcome of the last
attempt selects the :class:`~pyTradfriClient.errors.TradfriError` that
is raised.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pyTradfriClient.errors import TradfriError, TradfriErrorCode
from pyTradfriClient.options import ClientOptions
from pyTradfriClient.transport import CoapTransport, ConnectResult

logger = logging.getLogger(__name__)


class ConnectState(enum.Enum):
    """States of :class:`ConnectionRetryEngine`."""

    IDLE = "idle"
    RESETTING = "resetting"
    CONNECTING = "connecting"
    RETRYING = "retrying"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass
class RetryState:
    """Progress of one ``connect()`` call."""

    attempt: int
    max_attempts: int
    interval: float

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


def connect_error(result: ConnectResult) -> TradfriError:
    """Translate an unsuccessful handshake outcome into an error."""
    if result == "timeout":
        return TradfriError(
            "The gateway did not respond in time.",
            TradfriErrorCode.CONNECTION_TIMED_OUT,
        )
    if result == "auth failed":
        return TradfriError(
            "The provided credentials are not valid.",
            TradfriErrorCode.AUTHENTICATION_FAILED,
        )
    if result == "error":
        return TradfriError(
            "An unknown error occurred while connecting to the gateway",
            TradfriErrorCode.CONNECTION_FAILED,
        )
    return TradfriError(
        f"The CoAP client returned an unexpected response: {result}",
        TradfriErrorCode.CONNECTION_FAILED,
    )


class ConnectionRetryEngine:
    """Bounded connect-with-retry loop around a transport.

    Parameters
    ----------
    transport:
        The transport to connect.
    hostname:
        Gateway hostname the security parameters are registered for.
    url:
        URL handed to :meth:`CoapTransport.try_to_connect`.
    options:
        Supplies ``maximum_connection_attempts`` and
        ``connection_interval``.
    on_attempt_failed:
        Called with ``(attempt, max_attempts)`` after each failure.
    """

    def __init__(
        self,
        transport: CoapTransport,
        hostname: str,
        url: str,
        options: ClientOptions,
        on_attempt_failed: Optional[Callable[[int, int], Any]] = None,
    ) -> None:
        self._transport = transport
        self._hostname = hostname
        self._url = url
        self._options = options
        self._on_attempt_failed = on_attempt_failed
        self._state = ConnectState.IDLE
        self._retry: Optional[RetryState] = None
        self._cancelled: Optional[asyncio.Event] = None

    @property
    def state(self) -> ConnectState:
        return self._state

    @property
    def retry_state(self) -> Optional[RetryState]:
        """Progress of the running ``connect()``, ``None`` when idle."""
        return self._retry

    # ---- public API --------------------------------------------------

    async def connect(self, identity: str, psk: str) -> bool:
        """Connect with *identity* / *psk*.  Returns ``True``.

        Raises
        ------
        TradfriError
            When every attempt failed, or with
            :attr:`TradfriErrorCode.NETWORK_RESET` when :meth:`cancel`
            was called while waiting between attempts.
        """
        cancelled = asyncio.Event()
        self._cancelled = cancelled
        self._retry = RetryState(
            attempt=0,
            max_attempts=self._options.maximum_connection_attempts,
            interval=self._options.connection_interval,
        )
        try:
            self._state = ConnectState.RESETTING
            self._transport.reset()
            self._transport.set_security_params(
                self._hostname, {"psk": {identity: psk}}
            )

            while True:
                self._state = ConnectState.CONNECTING
                self._retry.attempt += 1
                result = await self._try_once()
                if result is True:
                    self._state = ConnectState.SUCCESS
                    logger.info(
                        "Connected to %s (attempt %d/%d)",
                        self._hostname,
                        self._retry.attempt,
                        self._retry.max_attempts,
                    )
                    return True

                logger.warning(
                    "Connection attempt %d/%d to %s failed: %r",
                    self._retry.attempt,
                    self._retry.max_attempts,
                    self._hostname,
                    result,
                )
                if self._on_attempt_failed is not None:
                    self._on_attempt_failed(
                        self._retry.attempt, self._retry.max_attempts
                    )

                if self._retry.exhausted:
                    self._state = ConnectState.EXHAUSTED
                    raise connect_error(result)

                self._state = ConnectState.RETRYING
                await self._wait(cancelled, self._retry.interval)
        finally:
            self._retry = None
            if self._cancelled is cancelled:
                self._cancelled = None
            if self._state is not ConnectState.SUCCESS:
                self._state = ConnectState.IDLE

    def cancel(self) -> None:
        """Abort a running retry wait."""
        if self._cancelled is not None:
            self._cancelled.set()
        self._state = ConnectState.IDLE

    # ---- internals ---------------------------------------------------

    async def _try_once(self) -> ConnectResult:
        try:
            result = self._transport.try_to_connect(self._url)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # noqa: BLE001
            logger.debug("try_to_connect raised", exc_info=True)
            return exc
        return result

    @staticmethod
    async def _wait(cancelled: asyncio.Event, interval: float) -> None:
        try:
            await asyncio.wait_for(cancelled.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return
        raise TradfriError(
            "The connection attempt was cancelled by a reset.",
            TradfriErrorCode.NETWORK_RESET,
        )
