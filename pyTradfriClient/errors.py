"""Error taxonomy of the TRÅDFRI client.

Every failure that the client reports, either by raising or on the
``"error"`` event channel, is a :class:`TradfriError` carrying a
machine-readable :class:`TradfriErrorCode` and a human-readable
message.

Transport adapters signal their own failures with the
:class:`~pyTradfriClient.transport.TransportError` hierarchy; those are
mapped onto this taxonomy by
:func:`~pyTradfriClient.classifier.classify_transport_error`.
"""

from __future__ import annotations

from enum import IntEnum, unique


@unique
class TradfriErrorCode(IntEnum):
    """Machine-readable kind of a :class:`TradfriError`."""

    CONNECTION_FAILED = 0
    """Generic or unrecognised failure while connecting."""

    AUTHENTICATION_FAILED = 1
    """The gateway rejected the credentials or the security code."""

    CONNECTION_TIMED_OUT = 2
    """The gateway did not answer the handshake or attempt in time."""

    NETWORK_RESET = 3
    """The transport was torn down while a request was pending."""

    UNEXPECTED_RESPONSE = 4
    """The gateway answered with a non-success response code."""


class TradfriError(Exception):
    """Error raised or emitted by :class:`~pyTradfriClient.TradfriClient`.

    Parameters
    ----------
    message:
        Human-readable description.
    code:
        The :class:`TradfriErrorCode` classifying the failure.
    """

    def __init__(self, message: str, code: TradfriErrorCode) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __repr__(self) -> str:
        return f"TradfriError({self.message!r}, {self.code.name})"
