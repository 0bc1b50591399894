"""Payload encoding and decoding.

The gateway speaks JSON with numeric string keys.  Responses are
decoded according to their declared content format:

=======================  ==================================
Content format            Decoded as
=======================  ==================================
absent / ``text/plain``   ``str`` (UTF-8)
``application/json``      parsed JSON (``None`` when empty)
anything else             raw ``bytes``, untouched
=======================  ==================================
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pyTradfriClient.enums import ContentFormat
from pyTradfriClient.transport import CoapResponse

logger = logging.getLogger(__name__)


def decode_payload(response: CoapResponse) -> Any:
    """Decode the payload of *response* according to its content format.

    Raises
    ------
    ValueError
        If a JSON payload cannot be parsed.
    """
    payload = response.payload or b""
    fmt = response.format

    if fmt is None or fmt == ContentFormat.TEXT_PLAIN:
        if isinstance(payload, str):
            return payload
        return bytes(payload).decode("utf-8", errors="replace")

    if fmt != ContentFormat.APPLICATION_JSON:
        return payload

    if not payload:
        return None
    try:
        return json.loads(bytes(payload).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Invalid JSON payload: {exc}") from exc


def encode_payload(obj: Any) -> Optional[bytes]:
    """Serialize *obj* to compact JSON bytes (``None`` stays ``None``)."""
    if obj is None:
        return None
    return json.dumps(obj, separators=(",", ":")).encode("utf-8")
