"""Abstract CoAP/DTLS transport consumed by the client.

The client never talks to the network itself.  It drives a
:class:`CoapTransport` which owns the DTLS session to one gateway and
offers the primitive operations the client needs: connect, ping,
request, observe and stop-observe.

:mod:`pyTradfriClient.coap_transport` provides an implementation on top
of ``aiocoap``; tests use an in-memory fake.

Connection outcomes
~~~~~~~~~~~~~~~~~~~

:meth:`CoapTransport.try_to_connect` does not raise for an unsuccessful
handshake.  It returns one of

* ``True``: the session is established,
* ``"timeout"``: the gateway did not answer,
* ``"auth failed"``: the credentials were rejected,
* ``"error"``: some other failure,

or any other value (including an exception object), which the client
treats as an unexpected outcome.

Failures of pending requests
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

``request`` and ``observe`` raise a :class:`TransportError` subclass
when the session fails underneath them:
:class:`TransportResetError` when :meth:`CoapTransport.reset` was
called while the request was pending and :class:`TransportTimeoutError`
when the DTLS handshake timed out.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

#: Signature of an observation callback handed to the transport.  It is
#: called with every notification of the observed resource and may be a
#: plain function or a coroutine function.
ResponseCallback = Callable[["CoapResponse"], Union[None, Awaitable[None]]]

#: Possible results of :meth:`CoapTransport.try_to_connect`.
ConnectResult = Union[bool, str, BaseException, Any]


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------


@dataclass
class CoapResponse:
    """A single CoAP response or notification.

    Attributes
    ----------
    code:
        Response code in dotted notation (``"2.05"``).
    payload:
        Raw payload bytes (may be empty).
    format:
        CoAP content-format number, ``None`` if the option is absent.
    """

    code: str
    payload: bytes = b""
    format: Optional[int] = None

    @property
    def is_success(self) -> bool:
        """``True`` for 2.xx codes."""
        return str(self.code).startswith("2.")


# ---------------------------------------------------------------------------
# Transport errors
# ---------------------------------------------------------------------------


class TransportError(Exception):
    """Base class of failures raised by a transport adapter."""


class TransportResetError(TransportError):
    """The transport was reset while a request was pending."""


class TransportTimeoutError(TransportError):
    """The DTLS handshake timed out while a request was pending."""


# ---------------------------------------------------------------------------
# Transport interface
# ---------------------------------------------------------------------------


class CoapTransport(abc.ABC):
    """Interface of the network transport used by the client."""

    @abc.abstractmethod
    def reset(self) -> None:
        """Tear down the session and every active observation."""

    @abc.abstractmethod
    def set_security_params(
        self, hostname: str, params: Dict[str, Dict[str, str]]
    ) -> None:
        """Provide DTLS credentials for *hostname*.

        *params* has the shape ``{"psk": {identity: psk}}``.
        """

    @abc.abstractmethod
    async def try_to_connect(self, url: str) -> ConnectResult:
        """Try to establish the session to *url* (see module docs)."""

    @abc.abstractmethod
    async def ping(self, url: str, timeout: Optional[float] = None) -> bool:
        """Return ``True`` when the endpoint answers within *timeout*."""

    @abc.abstractmethod
    async def request(
        self,
        url: str,
        method: str,
        payload: Optional[bytes] = None,
    ) -> CoapResponse:
        """Send one request and return its response."""

    @abc.abstractmethod
    async def observe(
        self,
        url: str,
        method: str,
        callback: ResponseCallback,
    ) -> None:
        """Start observing *url*; *callback* receives every notification."""

    @abc.abstractmethod
    def stop_observing(self, url: str) -> None:
        """Cancel the observation of *url*."""
