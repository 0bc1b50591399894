"""Observation registry.

Maps canonical resource ids (see :func:`~pyTradfriClient.endpoints.canonicalize`)
to the single active subscription the client holds for that resource.
Asking to observe a resource that is already observed never reaches the
transport; the first callback stays authoritative.

Each client owns its own registry, so several clients in one process
never share subscriptions.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from pyTradfriClient.classifier import classify_transport_error
from pyTradfriClient.endpoints import canonicalize
from pyTradfriClient.errors import TradfriError
from pyTradfriClient.transport import (
    CoapResponse,
    CoapTransport,
    ResponseCallback,
    TransportError,
)

logger = logging.getLogger(__name__)


@dataclass
class ObservationEntry:
    """One active (or stashed) observation.

    Attributes
    ----------
    resource_id:
        Canonical id of the observed resource.
    url:
        Absolute URL handed to the transport.
    callback:
        Receives every notification; may be ``None``.
    active:
        ``False`` once the observation has been stopped.
    """

    resource_id: str
    url: str
    callback: Optional[ResponseCallback]
    active: bool = True


class ObservationRegistry:
    """At most one observation per canonical resource id.

    Parameters
    ----------
    transport:
        The transport that carries the observations.
    url_for:
        Builds the absolute URL of a canonical id.
    on_error:
        Receives the classified error when the transport refuses an
        observation.
    """

    def __init__(
        self,
        transport: CoapTransport,
        url_for: Callable[[str], str],
        on_error: Optional[Callable[[TradfriError], None]] = None,
    ) -> None:
        self._transport = transport
        self._url_for = url_for
        self._on_error = on_error
        self._entries: Dict[str, ObservationEntry] = {}
        self._preserved: List[ObservationEntry] = []
        #: Classified error of the last :meth:`observe` call, if it was refused.
        self.last_error: Optional[TradfriError] = None

    # ---- queries -----------------------------------------------------

    def is_observing(self, path: str) -> bool:
        entry = self._entries.get(canonicalize(path))
        return entry is not None and entry.active

    def entries(self) -> List[ObservationEntry]:
        """Snapshot of the active entries in registration order."""
        return [e for e in self._entries.values() if e.active]

    def __len__(self) -> int:
        return len(self._entries)

    # ---- observe / stop ----------------------------------------------

    async def observe(
        self, path: str, callback: Optional[ResponseCallback]
    ) -> bool:
        """Observe *path* unless it is already observed.

        Returns ``True`` if a new observation was registered with the
        transport.
        """
        self.last_error = None
        resource_id = canonicalize(path)
        if resource_id in self._entries:
            logger.debug("Already observing %s", resource_id)
            return False

        url = self._url_for(resource_id)
        entry = ObservationEntry(resource_id, url, callback)
        # The entry exists before the transport call so that a
        # notification delivered during registration finds it.
        self._entries[resource_id] = entry

        async def dispatch(response: CoapResponse) -> None:
            await self._dispatch(entry, response)

        try:
            await self._transport.observe(url, "get", dispatch)
        except TransportError as exc:
            if self._entries.get(resource_id) is entry:
                del self._entries[resource_id]
            error = classify_transport_error(exc)
            self.last_error = error
            logger.warning("Could not observe %s: %s", resource_id, error)
            if self._on_error is not None:
                self._on_error(error)
            return False

        logger.debug("Observing %s", resource_id)
        return True

    def stop_observing(self, path: str) -> bool:
        """Stop the observation of *path*.  Returns ``False`` if none."""
        resource_id = canonicalize(path)
        entry = self._entries.pop(resource_id, None)
        if entry is None:
            return False
        entry.active = False
        self._transport.stop_observing(entry.url)
        logger.debug("Stopped observing %s", resource_id)
        return True

    # ---- reset / restore ---------------------------------------------

    def clear(self, preserve: bool = False) -> None:
        """Forget every entry without contacting the transport.

        Used after the transport has been reset, which already dropped
        the subscriptions.  With *preserve* the entries are stashed for
        :meth:`take_preserved`.
        """
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.active = False
        if preserve:
            self._preserved = entries
        else:
            self._preserved = []
        logger.debug(
            "Cleared %d observation(s)%s",
            len(entries),
            " (preserved)" if preserve else "",
        )

    def take_preserved(self) -> List[ObservationEntry]:
        """Return and forget the entries stashed by :meth:`clear`."""
        preserved, self._preserved = self._preserved, []
        return preserved

    # ---- dispatch ----------------------------------------------------

    @staticmethod
    async def _dispatch(
        entry: ObservationEntry, response: CoapResponse
    ) -> None:
        if not entry.active or entry.callback is None:
            return
        result = entry.callback(response)
        if inspect.isawaitable(result):
            await result
