"""CoAP/DTLS transport built on ``aiocoap``.

:class:`AiocoapTransport` implements :class:`~pyTradfriClient.transport.CoapTransport`
with one ``aiocoap`` client context per session.  DTLS credentials are
registered with the context's credential map for every URI below the
gateway::

    transport = AiocoapTransport()
    transport.set_security_params("192.168.1.20", {"psk": {identity: psk}})
    await transport.try_to_connect("coaps://192.168.1.20:5684/")

``aiocoap`` failures are mapped onto the transport error hierarchy:
a shut-down context (after :meth:`AiocoapTransport.reset`) becomes
:class:`TransportResetError`, a request that timed out becomes
:class:`TransportTimeoutError` and every other ``aiocoap`` error becomes
:class:`TransportError`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Dict, Optional, Set

from aiocoap import DELETE, GET, POST, PUT, Context, Message
from aiocoap import error as coap_error

from pyTradfriClient.endpoints import COAP_SCHEME, DEFAULT_COAP_PORT
from pyTradfriClient.transport import (
    CoapResponse,
    CoapTransport,
    ConnectResult,
    ResponseCallback,
    TransportError,
    TransportResetError,
    TransportTimeoutError,
)

logger = logging.getLogger(__name__)

#: Seconds a ping or a connection probe may take.
DEFAULT_REQUEST_TIMEOUT: float = 5.0

_METHODS = {
    "get": GET,
    "post": POST,
    "put": PUT,
    "delete": DELETE,
}


def _dotted(code: Any) -> str:
    """Render an ``aiocoap`` response code as ``"2.05"``."""
    value = int(code)
    return f"{value >> 5}.{value & 0x1F:02d}"


def to_response(message: Message) -> CoapResponse:
    """Convert an ``aiocoap`` message into a :class:`CoapResponse`."""
    content_format = message.opt.content_format
    return CoapResponse(
        code=_dotted(message.code),
        payload=bytes(message.payload),
        format=int(content_format) if content_format is not None else None,
    )


def map_error(exc: BaseException) -> TransportError:
    """Map an ``aiocoap`` failure onto :class:`TransportError`."""
    if isinstance(exc, coap_error.LibraryShutdown):
        return TransportResetError(str(exc) or "transport was reset")
    if isinstance(exc, (coap_error.RequestTimedOut, asyncio.TimeoutError)):
        return TransportTimeoutError(str(exc) or "request timed out")
    return TransportError(str(exc) or type(exc).__name__)


class AiocoapTransport(CoapTransport):
    """:class:`CoapTransport` backed by an ``aiocoap`` client context.

    Parameters
    ----------
    port:
        Gateway port used for the credential patterns.
    request_timeout:
        Seconds allowed for pings and connection probes.
    """

    def __init__(
        self,
        port: int = DEFAULT_COAP_PORT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._port = port
        self._request_timeout = request_timeout
        self._context: Optional[Context] = None
        self._context_lock: Optional[asyncio.Lock] = None
        self._credentials: Dict[str, Any] = {}
        self._observations: Dict[str, Any] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ---- session -----------------------------------------------------

    def reset(self) -> None:
        for url in list(self._observations):
            self.stop_observing(url)
        context, self._context = self._context, None
        if context is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, dropping CoAP context")
            return
        self._track(loop.create_task(context.shutdown()))
        logger.debug("CoAP context shut down")

    def set_security_params(
        self, hostname: str, params: Dict[str, Dict[str, str]]
    ) -> None:
        psk_map = params.get("psk") or {}
        if not psk_map:
            raise ValueError("Security parameters need a psk entry")
        identity, psk = next(iter(psk_map.items()))
        host = f"[{hostname}]" if ":" in hostname else hostname
        dtls = {
            "dtls": {
                "psk": psk.encode("utf-8"),
                "client-identity": identity.encode("utf-8"),
            }
        }
        self._credentials = {
            f"{COAP_SCHEME}://{host}/*": dtls,
            f"{COAP_SCHEME}://{host}:{self._port}/*": dtls,
        }
        if self._context is not None:
            self._context.client_credentials.load_from_dict(self._credentials)

    async def _ensure_context(self) -> Context:
        if self._context_lock is None:
            self._context_lock = asyncio.Lock()
        async with self._context_lock:
            if self._context is None:
                context = await Context.create_client_context()
                if self._credentials:
                    context.client_credentials.load_from_dict(self._credentials)
                self._context = context
                logger.debug("Created CoAP client context")
        return self._context

    # ---- operations --------------------------------------------------

    async def try_to_connect(self, url: str) -> ConnectResult:
        try:
            await self._probe(url)
        except (coap_error.RequestTimedOut, asyncio.TimeoutError):
            return "timeout"
        except coap_error.NetworkError as exc:
            logger.debug("Handshake with %s failed: %s", url, exc)
            return "error"
        except coap_error.Error as exc:
            return exc
        return True

    async def ping(self, url: str, timeout: Optional[float] = None) -> bool:
        try:
            await self._probe(url, timeout)
        except (coap_error.Error, asyncio.TimeoutError) as exc:
            logger.debug("Ping of %s failed: %s", url, exc)
            return False
        return True

    async def _probe(self, url: str, timeout: Optional[float] = None) -> Message:
        context = await self._ensure_context()
        request = context.request(Message(code=GET, uri=url))
        return await asyncio.wait_for(
            request.response,
            timeout if timeout is not None else self._request_timeout,
        )

    async def request(
        self,
        url: str,
        method: str,
        payload: Optional[bytes] = None,
    ) -> CoapResponse:
        code = _METHODS.get(method.lower())
        if code is None:
            raise ValueError(f"Unsupported CoAP method: {method!r}")
        context = await self._ensure_context()
        message = Message(code=code, uri=url, payload=payload or b"")
        try:
            response = await context.request(message).response
        except coap_error.Error as exc:
            raise map_error(exc) from exc
        return to_response(response)

    async def observe(
        self,
        url: str,
        method: str,
        callback: ResponseCallback,
    ) -> None:
        context = await self._ensure_context()
        code = _METHODS.get(method.lower(), GET)
        request = context.request(Message(code=code, uri=url, observe=0))
        self._observations[url] = request

        def _notify(message: Message) -> None:
            self._deliver(callback, to_response(message))

        def _failed(exc: BaseException) -> None:
            logger.warning("Observation of %s ended: %s", url, exc)

        request.observation.register_callback(_notify)
        request.observation.register_errback(_failed)

        try:
            first = await request.response
        except coap_error.Error as exc:
            self._observations.pop(url, None)
            raise map_error(exc) from exc
        result = callback(to_response(first))
        if inspect.isawaitable(result):
            await result

    def stop_observing(self, url: str) -> None:
        request = self._observations.pop(url, None)
        if request is not None:
            request.observation.cancel()

    # ---- helpers -----------------------------------------------------

    def _deliver(self, callback: ResponseCallback, response: CoapResponse) -> None:
        result = callback(response)
        if inspect.isawaitable(result):
            self._track(asyncio.ensure_future(result))

    def _track(self, task: "asyncio.Future[Any]") -> None:
        self._tasks.add(task)

        def _done(t: "asyncio.Future[Any]") -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error("CoAP callback failed", exc_info=t.exception())

        task.add_done_callback(_done)
