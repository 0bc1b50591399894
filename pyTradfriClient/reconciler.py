"""Hierarchical observation and reconciliation.

A *collection* resource (``15001``, ``15004``, ``15005/<groupId>``)
answers with the list of its member ids.  A :class:`CollectionReconciler`
observes such a collection and keeps one detail observation per member:

1. ``added = new - previous`` and ``removed = previous - new``.
2. Removed members lose their detail observation and every nested
   collection below them, then ``on_remove`` runs.
3. Every member of the new snapshot that is not observed yet gets a
   detail observation (after a restore this is the whole snapshot).
4. The new snapshot replaces the previous one.

Collections can nest: when :attr:`CollectionSpec.nested` is set, each
member's first successful response starts a child reconciler for the
member's own collection (groups → scenes).

The *fan-out future* returned by :meth:`CollectionReconciler.observe`
resolves once every member, and every member of every nested
collection, has answered at least once.  A member whose detail
observation fails rejects it; the other members stay observed.
Futures are settled from done-callbacks and never awaited inside an
observation callback, so notifications keep flowing while a fan-out is
pending.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set

from pyTradfriClient.classifier import ResponseKind, classify_response
from pyTradfriClient.errors import TradfriError, TradfriErrorCode
from pyTradfriClient.registry import ObservationRegistry
from pyTradfriClient.transport import CoapResponse

logger = logging.getLogger(__name__)


def parse_id_list(payload: Any) -> List[int]:
    """Return the member ids of a collection payload.

    Raises
    ------
    ValueError
        If *payload* is not a list of integers.
    """
    if not isinstance(payload, list):
        raise ValueError(f"expected a list of ids, got {type(payload).__name__}")
    ids: List[int] = []
    for item in payload:
        if isinstance(item, bool) or not isinstance(item, int):
            raise ValueError(f"invalid member id {item!r}")
        if item not in ids:
            ids.append(item)
    return ids


@dataclass
class CollectionSpec:
    """What a :class:`CollectionReconciler` observes.

    Attributes
    ----------
    kind:
        Member kind used in messages (``"device"``, ``"group"``, ...).
    path:
        Path of the collection resource.
    member_path:
        Builds the detail path of a member id.
    context:
        Description of the collection observation used in error
        messages (``"observe_devices()"``).
    on_update:
        ``(member_id, payload)``; parses, caches and emits the update.
        Raises :class:`ValueError` for an unusable payload.
    on_remove:
        ``(member_id)``; drops the member and emits its removal.
    nested:
        Builds the spec of a member's own collection, if members have
        one.
    """

    kind: str
    path: str
    member_path: Callable[[int], str]
    context: str
    on_update: Callable[[int, Any], None]
    on_remove: Callable[[int], None]
    nested: Optional[Callable[[int], "CollectionSpec"]] = None


class CollectionReconciler:
    """Observes one collection and the detail resources of its members.

    Parameters
    ----------
    spec:
        The collection to observe.
    registry:
        Registry that owns every observation.
    emit_error:
        Reports errors on the client's error channel.
    """

    def __init__(
        self,
        spec: CollectionSpec,
        registry: ObservationRegistry,
        emit_error: Callable[[TradfriError], Any],
    ) -> None:
        self._spec = spec
        self._registry = registry
        self._emit_error = emit_error
        self._known: Set[int] = set()
        self._pending: Dict[int, asyncio.Future] = {}
        self._children: Dict[int, CollectionReconciler] = {}
        self._outstanding: Set[asyncio.Future] = set()
        self._initial: Optional[asyncio.Future] = None
        self._applying = 0

    # ---- properties --------------------------------------------------

    @property
    def spec(self) -> CollectionSpec:
        return self._spec

    @property
    def known(self) -> FrozenSet[int]:
        """Member ids of the last snapshot."""
        return frozenset(self._known)

    @property
    def is_observing(self) -> bool:
        return self._registry.is_observing(self._spec.path)

    def child(self, member_id: int) -> Optional["CollectionReconciler"]:
        """The nested reconciler of *member_id*, if any."""
        return self._children.get(member_id)

    # ---- lifecycle ---------------------------------------------------

    async def observe(self) -> Optional[asyncio.Future]:
        """Start observing the collection.

        Returns the fan-out future, or ``None`` when the collection is
        already observed.
        """
        if self.is_observing:
            return None
        loop = asyncio.get_running_loop()
        initial = loop.create_future()
        initial.add_done_callback(_consume)
        self._initial = initial

        logger.info("Observing %s collection %s", self._spec.kind, self._spec.path)
        if not await self._registry.observe(self._spec.path, self._on_collection):
            self._fail_initial(
                self._registry.last_error
                or TradfriError(
                    f"{self._spec.context} could not be started",
                    TradfriErrorCode.CONNECTION_FAILED,
                )
            )
        return initial

    def stop(self) -> None:
        """Stop the collection, its members and nested collections."""
        self._registry.stop_observing(self._spec.path)
        for member_id in sorted(self._known):
            self._registry.stop_observing(self._spec.member_path(member_id))
        for child in self._children.values():
            child.stop()
        self._children.clear()
        self._known.clear()
        self._resolve_pending()
        logger.info("Stopped observing %s collection %s", self._spec.kind, self._spec.path)

    def detach(self, preserve: bool = False) -> None:
        """Forget every subscription after a transport reset.

        Pending fan-outs fail with ``NETWORK_RESET``.  With *preserve*
        the last snapshot (and those of nested collections) is kept so
        that a later :meth:`observe` reconciles against it.
        """
        error = TradfriError(
            f"The transport was reset while {self._spec.context} was pending.",
            TradfriErrorCode.NETWORK_RESET,
        )
        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        self._outstanding.clear()
        self._fail_initial(error)
        for child in self._children.values():
            child.detach(preserve)
        if not preserve:
            self._children.clear()
            self._known.clear()

    # ---- collection ----------------------------------------------------

    async def _on_collection(self, response: CoapResponse) -> None:
        result = classify_response(response, self._spec.context)
        if result.kind is ResponseKind.REPORTED_ERROR:
            self._emit_error(result.error)
            self._fail_initial(result.error)
            return
        try:
            ids = parse_id_list(result.payload)
        except ValueError as exc:
            error = TradfriError(
                f"unexpected payload in response to {self._spec.context}: {exc}",
                TradfriErrorCode.UNEXPECTED_RESPONSE,
            )
            self._emit_error(error)
            self._fail_initial(error)
            return
        await self.apply_snapshot(ids)

    async def apply_snapshot(self, ids: List[int]) -> None:
        """Reconcile the members against a new snapshot."""
        new_ids = set(ids)
        removed = self._known - new_ids
        added = new_ids - self._known
        self._known = new_ids
        if removed or added:
            logger.info(
                "%s collection %s: +%s -%s",
                self._spec.kind.capitalize(),
                self._spec.path,
                sorted(added),
                sorted(removed),
            )

        for member_id in sorted(removed):
            self._remove_member(member_id)

        loop = asyncio.get_running_loop()
        self._applying += 1
        try:
            for member_id in ids:
                path = self._spec.member_path(member_id)
                if member_id not in self._known or self._registry.is_observing(path):
                    continue
                future = loop.create_future()
                future.add_done_callback(_consume)
                self._pending[member_id] = future
                self._track(future)

                async def callback(
                    response: CoapResponse, member_id: int = member_id
                ) -> None:
                    await self._on_member(member_id, response)

                if not await self._registry.observe(path, callback):
                    self._fail_member(member_id, self._registry.last_error)
        finally:
            self._applying -= 1
        self._check_initial()

    # ---- members -------------------------------------------------------

    async def _on_member(self, member_id: int, response: CoapResponse) -> None:
        if member_id not in self._known:
            return
        context = f"observe_{self._spec.kind}({member_id})"
        result = classify_response(response, context, member_known=True)

        if result.kind is ResponseKind.MEMBER_REMOVED:
            self._known.discard(member_id)
            self._remove_member(member_id)
            return

        if result.kind is ResponseKind.REPORTED_ERROR:
            self._emit_error(result.error)
            self._fail_member(member_id, result.error)
            return

        try:
            self._spec.on_update(member_id, result.payload)
        except ValueError as exc:
            error = TradfriError(
                f"unexpected payload in response to {context}: {exc}",
                TradfriErrorCode.UNEXPECTED_RESPONSE,
            )
            self._emit_error(error)
            self._fail_member(member_id, error)
            return

        nested: Optional[asyncio.Future] = None
        if self._spec.nested is not None and member_id in self._known:
            child = self._children.get(member_id)
            if child is None:
                child = CollectionReconciler(
                    self._spec.nested(member_id), self._registry, self._emit_error
                )
                self._children[member_id] = child
            nested = await child.observe()

        future = self._pending.pop(member_id, None)
        if future is None or future.done():
            return
        if nested is None:
            future.set_result(None)
        else:
            _chain(nested, future)

    def _remove_member(self, member_id: int) -> None:
        self._registry.stop_observing(self._spec.member_path(member_id))
        child = self._children.pop(member_id, None)
        if child is not None:
            child.stop()
        future = self._pending.pop(member_id, None)
        if future is not None and not future.done():
            future.set_result(None)
        logger.info("%s %d removed", self._spec.kind.capitalize(), member_id)
        self._spec.on_remove(member_id)

    def _fail_member(self, member_id: int, cause: Optional[TradfriError]) -> None:
        future = self._pending.pop(member_id, None)
        if future is None or future.done():
            return
        code = cause.code if cause is not None else TradfriErrorCode.CONNECTION_FAILED
        future.set_exception(
            TradfriError(
                f"The {self._spec.kind} with ID {member_id} could not be observed",
                code,
            )
        )

    def _resolve_pending(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_result(None)
        self._pending.clear()
        self._outstanding.clear()
        if self._initial is not None and not self._initial.done():
            self._initial.set_result(None)

    # ---- initial fan-out -------------------------------------------------

    def _track(self, future: asyncio.Future) -> None:
        """Count *future* as outstanding until it is settled.

        A member with a nested collection leaves :attr:`_pending` when it
        first answers but stays outstanding until the nested fan-out is
        settled.
        """
        self._outstanding.add(future)

        def _done(f: asyncio.Future) -> None:
            if f not in self._outstanding:
                return
            self._outstanding.discard(f)
            exc = f.exception() if not f.cancelled() else None
            if exc is not None:
                self._fail_initial(exc)
            else:
                self._check_initial()

        future.add_done_callback(_done)

    def _check_initial(self) -> None:
        """Resolve the initial future once no member is outstanding."""
        initial = self._initial
        if initial is None or initial.done():
            return
        if self._applying or self._outstanding:
            return
        initial.set_result(None)

    def _fail_initial(self, error: BaseException) -> None:
        if self._initial is not None and not self._initial.done():
            self._initial.set_exception(error)


def _consume(future: asyncio.Future) -> None:
    """Mark a future's exception as retrieved."""
    if not future.cancelled():
        future.exception()


def _chain(source: asyncio.Future, target: asyncio.Future) -> None:
    """Settle *target* like *source* once *source* is done."""

    def _done(f: asyncio.Future) -> None:
        if target.done():
            return
        exc = f.exception() if not f.cancelled() else None
        if exc is not None:
            target.set_exception(exc)
        else:
            target.set_result(None)

    if source.done():
        _done(source)
    else:
        source.add_done_callback(_done)
