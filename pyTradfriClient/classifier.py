"""Classification of transport outcomes.

Every response delivered to an observation or request callback, and
every failure raised by the transport, passes through this module
before it can touch the domain model.  The rules, in priority order:

1. ``4.04`` for a known member of an observed collection means the
   member was deleted on the gateway: :attr:`ResponseKind.MEMBER_REMOVED`.
   This is a lifecycle event, not an error.
2. Any other non-success code is a reported error
   (:attr:`ResponseKind.REPORTED_ERROR`).  The error message starts with
   ``"unexpected response"`` and names the code and what was being done.
3. A transport reset while a request was pending becomes
   :attr:`TradfriErrorCode.NETWORK_RESET`; a DTLS handshake timeout
   becomes :attr:`TradfriErrorCode.CONNECTION_TIMED_OUT`.
4. Everything else is a domain update carrying the decoded payload.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pyTradfriClient.codec import decode_payload
from pyTradfriClient.enums import MessageCode
from pyTradfriClient.errors import TradfriError, TradfriErrorCode
from pyTradfriClient.transport import (
    CoapResponse,
    TransportError,
    TransportResetError,
    TransportTimeoutError,
)

logger = logging.getLogger(__name__)

#: Labels for the response codes the gateway is known to produce.
#: Codes missing from this table are reported as ``"unknown"``.
RESPONSE_CODE_LABELS: Dict[str, str] = {
    MessageCode.BAD_REQUEST.value: "bad request",
    MessageCode.UNAUTHORIZED.value: "unauthorized",
    MessageCode.BAD_OPTION.value: "bad option",
    MessageCode.FORBIDDEN.value: "forbidden",
    MessageCode.NOT_FOUND.value: "not found",
    MessageCode.METHOD_NOT_ALLOWED.value: "method not allowed",
    MessageCode.NOT_ACCEPTABLE.value: "not acceptable",
    MessageCode.REQUEST_ENTITY_INCOMPLETE.value: "request entity incomplete",
    MessageCode.PRECONDITION_FAILED.value: "precondition failed",
    MessageCode.REQUEST_ENTITY_TOO_LARGE.value: "request entity too large",
    MessageCode.UNSUPPORTED_CONTENT_FORMAT.value: "unsupported content format",
    MessageCode.INTERNAL_SERVER_ERROR.value: "internal server error",
    MessageCode.NOT_IMPLEMENTED.value: "not implemented",
    MessageCode.BAD_GATEWAY.value: "bad gateway",
    MessageCode.SERVICE_UNAVAILABLE.value: "service unavailable",
    MessageCode.GATEWAY_TIMEOUT.value: "gateway timeout",
    MessageCode.PROXYING_NOT_SUPPORTED.value: "proxying not supported",
}


class ResponseKind(enum.Enum):
    """Outcome of :func:`classify_response`."""

    UPDATE = enum.auto()
    MEMBER_REMOVED = enum.auto()
    REPORTED_ERROR = enum.auto()


@dataclass(frozen=True)
class ClassifiedResponse:
    """Result of classifying one response.

    Attributes
    ----------
    kind:
        What the response means for the domain model.
    payload:
        Decoded payload for :attr:`ResponseKind.UPDATE`, else ``None``.
    error:
        The error to report for :attr:`ResponseKind.REPORTED_ERROR`.
    """

    kind: ResponseKind
    payload: Any = None
    error: Optional[TradfriError] = None


def unexpected_response_error(code: str, context: str) -> TradfriError:
    """Build the error reported for a non-success *code*."""
    code = str(code.value if isinstance(code, MessageCode) else code)
    label = RESPONSE_CODE_LABELS.get(code, "unknown")
    return TradfriError(
        f"unexpected response ({code} {label}) to {context}.",
        TradfriErrorCode.UNEXPECTED_RESPONSE,
    )


def classify_response(
    response: CoapResponse,
    context: str,
    *,
    member_known: bool = False,
) -> ClassifiedResponse:
    """Classify an observation notification or request response.

    Parameters
    ----------
    response:
        The response delivered by the transport.
    context:
        Description of the operation, used in error messages
        (e.g. ``"observe_device(65536)"``).
    member_known:
        ``True`` when the response belongs to a member of an observed
        collection that is currently known.  Only then is ``4.04``
        interpreted as a removal.
    """
    code = str(response.code)

    if code == MessageCode.NOT_FOUND and member_known:
        logger.debug("%s answered 4.04, member removed", context)
        return ClassifiedResponse(ResponseKind.MEMBER_REMOVED)

    if not response.is_success:
        error = unexpected_response_error(code, context)
        logger.warning("%s", error)
        return ClassifiedResponse(ResponseKind.REPORTED_ERROR, error=error)

    try:
        payload = decode_payload(response)
    except ValueError as exc:
        error = TradfriError(
            f"unexpected payload in response to {context}: {exc}",
            TradfriErrorCode.UNEXPECTED_RESPONSE,
        )
        logger.warning("%s", error)
        return ClassifiedResponse(ResponseKind.REPORTED_ERROR, error=error)
    return ClassifiedResponse(ResponseKind.UPDATE, payload=payload)


def classify_transport_error(exc: TransportError) -> TradfriError:
    """Map a transport failure onto the domain error taxonomy."""
    if isinstance(exc, TransportResetError):
        return TradfriError(
            "The network connection was reset while a request was pending.",
            TradfriErrorCode.NETWORK_RESET,
        )
    if isinstance(exc, TransportTimeoutError):
        return TradfriError(
            "The DTLS handshake timed out while a request was pending.",
            TradfriErrorCode.CONNECTION_TIMED_OUT,
        )
    return TradfriError(
        f"The transport failed: {exc}",
        TradfriErrorCode.CONNECTION_FAILED,
    )
