"""Resource addressing for the TRÅDFRI gateway.

The gateway exposes a fixed tree of CoAP resources::

    15001                       devices (list of ids)
    15001/<id>                  one device (accessory)
    15004                       groups (list of ids)
    15004/<id>                  one group
    15005/<groupId>             scenes of a group (list of ids)
    15005/<groupId>/<sceneId>   one scene
    15011/15012                 gateway details

Paths may be spelled many ways (absolute URL, leading or trailing
slash, …).  :func:`canonicalize` maps every spelling onto a single
identity key which the observation registry uses to guarantee at most
one subscription per resource.
"""

from __future__ import annotations

import re
from typing import Optional

#: URI scheme used by the gateway (CoAP over DTLS).
COAP_SCHEME: str = "coaps"

#: Default CoAP-over-DTLS port.
DEFAULT_COAP_PORT: int = 5684

_SCHEME_AND_AUTHORITY = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://[^/]*")


class CoapEndpoint:
    """Root resources of the gateway."""

    DEVICES = "15001"
    GROUPS = "15004"
    SCENES = "15005"
    NOTIFICATIONS = "15006"
    SMART_TASKS = "15010"
    GATEWAY = "15011"


class GatewayEndpoint:
    """Sub-resources below :attr:`CoapEndpoint.GATEWAY`."""

    DETAILS = "15012"
    REBOOT = "9030"
    RESET = "9031"
    AUTHENTICATE = "9063"


# ---------------------------------------------------------------------------
# Canonicalization
# ---------------------------------------------------------------------------


def canonicalize(path: Optional[str]) -> str:
    """Return the canonical resource id for *path*.

    Strips a ``scheme://host[:port]`` prefix and any leading or trailing
    slashes, so that ``"coaps://gw:5684/15001/"``, ``"/15001"`` and
    ``"15001"`` all map to ``"15001"``.  Never raises: ``None`` maps to
    the empty string and anything unparseable is used as-is.
    """
    if not path:
        return ""
    result = _SCHEME_AND_AUTHORITY.sub("", str(path).strip(), count=1)
    return result.strip("/")


# ---------------------------------------------------------------------------
# Path builders
# ---------------------------------------------------------------------------


def device_path(instance_id: int) -> str:
    """Path of one device."""
    return f"{CoapEndpoint.DEVICES}/{instance_id}"


def group_path(instance_id: int) -> str:
    """Path of one group."""
    return f"{CoapEndpoint.GROUPS}/{instance_id}"


def scenes_path(group_id: int) -> str:
    """Path of the scene list of a group."""
    return f"{CoapEndpoint.SCENES}/{group_id}"


def scene_path(group_id: int, scene_id: int) -> str:
    """Path of one scene of a group."""
    return f"{CoapEndpoint.SCENES}/{group_id}/{scene_id}"


def gateway_path(endpoint: str) -> str:
    """Path of a gateway sub-resource (see :class:`GatewayEndpoint`)."""
    return f"{CoapEndpoint.GATEWAY}/{endpoint}"


def is_hierarchical(resource_id: str) -> bool:
    """``True`` if *resource_id* belongs to a tree the client manages.

    Those resources are re-created by the hierarchical observe calls
    when observers are restored; everything else is a custom
    observation that is restored verbatim.
    """
    if resource_id == gateway_path(GatewayEndpoint.DETAILS):
        return True
    for root in (CoapEndpoint.DEVICES, CoapEndpoint.GROUPS, CoapEndpoint.SCENES):
        if resource_id == root or resource_id.startswith(root + "/"):
            return True
    return False


def base_url(host: str, port: int = DEFAULT_COAP_PORT) -> str:
    """Return ``coaps://<host>:<port>/`` (IPv6 literals bracketed)."""
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"{COAP_SCHEME}://{host}:{port}/"
