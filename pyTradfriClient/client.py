"""TRÅDFRI gateway client.

:class:`TradfriClient` is the public entry point.  It owns one
transport session, one observation registry and the reconcilers for the
device and group trees, and reports everything that happens through
events::

    client = TradfriClient("192.168.1.20")
    creds = await client.authenticate(security_code)
    await client.connect(creds.identity, creds.psk)

    client.on("device updated", lambda acc: print(acc.name))
    await client.observe_devices()

    light = client.devices[65536]
    await client.operate_light(light, {"on_off": True, "dimmer": 254})

Update and operate methods validate their arguments immediately and
return an awaitable, so misuse raises :class:`ValueError` at the call
site before any request is issued.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Dict,
    Mapping,
    Optional,
    Union,
)

from pyTradfriClient.accessory import Accessory
from pyTradfriClient.classifier import (
    ResponseKind,
    classify_response,
    classify_transport_error,
)
from pyTradfriClient.coap_transport import AiocoapTransport
from pyTradfriClient.codec import decode_payload, encode_payload
from pyTradfriClient.endpoints import (
    CoapEndpoint,
    GatewayEndpoint,
    base_url,
    canonicalize,
    device_path,
    gateway_path,
    group_path,
    is_hierarchical,
    scene_path,
    scenes_path,
)
from pyTradfriClient.enums import MessageCode
from pyTradfriClient.errors import TradfriError, TradfriErrorCode
from pyTradfriClient.events import (
    ClientEvent,
    EventDispatcher,
    EventHandler,
    EventKey,
)
from pyTradfriClient.gateway import GatewayDetails
from pyTradfriClient.group import Group, GroupInfo, Scene
from pyTradfriClient.options import ClientOptions
from pyTradfriClient.patch import (
    Patch,
    build_operation_patch,
    build_patch,
    normalize_accessory,
)
from pyTradfriClient.persistence import CredentialStore, Credentials
from pyTradfriClient.reconciler import CollectionReconciler, CollectionSpec
from pyTradfriClient.registry import ObservationRegistry
from pyTradfriClient.retry import ConnectionRetryEngine
from pyTradfriClient.transport import (
    CoapResponse,
    CoapTransport,
    ResponseCallback,
    TransportError,
)
from pyTradfriClient.watcher import ConnectionWatcher

logger = logging.getLogger(__name__)

#: Identity used for the security-code handshake.
AUTH_IDENTITY: str = "Client_identity"

#: Prefix of the identities this client requests from the gateway.
IDENTITY_PREFIX: str = "tradfri_"


@dataclass
class RequestResult:
    """Result of :meth:`TradfriClient.request`."""

    code: str
    payload: Any = None


class TradfriClient:
    """Stateful client for one TRÅDFRI gateway.

    Parameters
    ----------
    hostname:
        Host name or IP address of the gateway.
    options:
        :class:`ClientOptions` or a plain mapping of option values.
        Defaults to the options stored in *state_path*, else the
        defaults.
    transport:
        Transport to use.  Defaults to
        :class:`~pyTradfriClient.coap_transport.AiocoapTransport`.
    state_path:
        Optional YAML file holding the credentials issued by
        :meth:`authenticate`.  When set, :meth:`connect` can be called
        without arguments.
    """

    def __init__(
        self,
        hostname: str,
        options: Union[ClientOptions, Mapping[str, Any], None] = None,
        *,
        transport: Optional[CoapTransport] = None,
        state_path: Union[str, Path, None] = None,
    ) -> None:
        self._hostname = hostname
        self._store: Optional[CredentialStore] = (
            CredentialStore(state_path) if state_path else None
        )
        if options is None and self._store is not None:
            options = self._store.load_options()
        if not isinstance(options, ClientOptions):
            options = ClientOptions.from_dict(options)
        self._options = options

        if transport is None:
            transport = AiocoapTransport(port=options.port)
        self._transport = transport

        self._events = EventDispatcher()
        self._registry = ObservationRegistry(
            transport, self._url_for, on_error=self._emit_error
        )
        self._retry = ConnectionRetryEngine(
            transport,
            hostname,
            self._base_url,
            options,
            on_attempt_failed=self._on_attempt_failed,
        )
        self._credentials: Optional[Credentials] = None
        self._watcher: Optional[ConnectionWatcher] = None
        self._restore_task: Optional[asyncio.Task] = None

        # --- observed state -------------------------------------------
        self.devices: Dict[int, Accessory] = {}
        self.groups: Dict[int, GroupInfo] = {}
        self.gateway_details: Optional[GatewayDetails] = None
        self._gateway_future: Optional[asyncio.Future] = None

        self._devices = CollectionReconciler(
            CollectionSpec(
                kind="device",
                path=CoapEndpoint.DEVICES,
                member_path=device_path,
                context="observe_devices()",
                on_update=self._on_device_update,
                on_remove=self._on_device_remove,
            ),
            self._registry,
            self._emit_error,
        )
        self._groups = CollectionReconciler(
            CollectionSpec(
                kind="group",
                path=CoapEndpoint.GROUPS,
                member_path=group_path,
                context="observe_groups_and_scenes()",
                on_update=self._on_group_update,
                on_remove=self._on_group_remove,
                nested=self._scenes_spec,
            ),
            self._registry,
            self._emit_error,
        )

    # ---- properties --------------------------------------------------

    @property
    def hostname(self) -> str:
        return self._hostname

    @property
    def options(self) -> ClientOptions:
        return self._options

    @property
    def transport(self) -> CoapTransport:
        return self._transport

    @property
    def registry(self) -> ObservationRegistry:
        """The observation registry (one entry per observed resource)."""
        return self._registry

    @property
    def watcher(self) -> Optional[ConnectionWatcher]:
        return self._watcher

    @property
    def _base_url(self) -> str:
        return base_url(self._hostname, self._options.port)

    def _url_for(self, resource_id: str) -> str:
        return self._base_url + resource_id

    # ---- events ------------------------------------------------------

    def on(self, event: EventKey, handler: EventHandler) -> "TradfriClient":
        """Register *handler* for *event* (see :class:`ClientEvent`)."""
        self._events.on(event, handler)
        return self

    def off(self, event: EventKey, handler: EventHandler) -> "TradfriClient":
        self._events.off(event, handler)
        return self

    def remove_all_listeners(
        self, event: Optional[EventKey] = None
    ) -> "TradfriClient":
        self._events.remove_all_listeners(event)
        return self

    def _emit(self, event: EventKey, *args: Any) -> bool:
        return self._events.emit(event, *args)

    def _emit_error(self, error: TradfriError) -> None:
        self._events.emit(ClientEvent.ERROR, error)

    def _on_attempt_failed(self, attempt: int, max_attempts: int) -> None:
        self._events.emit(ClientEvent.CONNECTION_FAILED, attempt, max_attempts)

    # ---- connection --------------------------------------------------

    async def connect(
        self, identity: Optional[str] = None, psk: Optional[str] = None
    ) -> bool:
        """Connect to the gateway with an identity / PSK pair.

        Without arguments the credentials stored in the state file are
        used.

        Raises
        ------
        ValueError
            If no credentials are given or stored.
        TradfriError
            When every connection attempt failed.
        """
        if identity is None or psk is None:
            stored = (
                self._store.load_credentials(self._hostname)
                if self._store is not None
                else None
            )
            if stored is None:
                raise ValueError(
                    "No credentials given and none stored for "
                    f"{self._hostname}"
                )
            identity, psk = stored.identity, stored.psk

        await self._retry.connect(identity, psk)
        self._credentials = Credentials(identity, psk)

        watcher_options = self._options.watcher
        if watcher_options is not None:
            if self._watcher is None:
                self._watcher = ConnectionWatcher(
                    self.ping, self._reconnect, self._emit, watcher_options
                )
            self._watcher.start()
        return True

    async def authenticate(self, security_code: str) -> Credentials:
        """Exchange the gateway's security code for an identity / PSK.

        Raises
        ------
        TradfriError
            ``AUTHENTICATION_FAILED`` when the gateway rejects the
            request, or the connection error of the handshake.
        """
        await self._retry.connect(AUTH_IDENTITY, security_code)

        identity = f"{IDENTITY_PREFIX}{int(time.time() * 1000)}"
        url = self._url_for(
            gateway_path(GatewayEndpoint.AUTHENTICATE)
        )
        try:
            response = await self._transport.request(
                url, "post", encode_payload({"9090": identity})
            )
        except TransportError as exc:
            raise classify_transport_error(exc) from exc

        if response.code != MessageCode.CREATED:
            raise TradfriError(
                f"unexpected response ({response.code}) to authenticate().",
                TradfriErrorCode.AUTHENTICATION_FAILED,
            )
        try:
            body = decode_payload(response)
            psk = body["9091"]
        except (ValueError, KeyError, TypeError) as exc:
            raise TradfriError(
                "The gateway did not return a pre-shared key.",
                TradfriErrorCode.AUTHENTICATION_FAILED,
            ) from exc

        credentials = Credentials(identity, str(psk))
        logger.info("Authenticated as %s", identity)
        if self._store is not None:
            self._store.save_credentials(self._hostname, credentials)
        return credentials

    async def ping(self, timeout: Optional[float] = None) -> bool:
        """Return ``True`` if the gateway answers."""
        return await self._transport.ping(self._base_url, timeout)

    def reset(self, preserve_observers: bool = False) -> None:
        """Tear down the session and every observation.

        With *preserve_observers* the observations are remembered and
        :meth:`restore_observers` re-creates them after a reconnect.
        Without it the observed-state caches are cleared as well.
        """
        logger.info("Resetting client (preserve_observers=%s)", preserve_observers)
        self._retry.cancel()
        if self._restore_task is not None:
            self._restore_task.cancel()
            self._restore_task = None
        self._transport.reset()
        self._registry.clear(preserve=preserve_observers)
        self._devices.detach(preserve_observers)
        self._groups.detach(preserve_observers)
        self._fail_gateway_future(
            TradfriError(
                "The transport was reset while observe_gateway() was pending.",
                TradfriErrorCode.NETWORK_RESET,
            )
        )
        if not preserve_observers:
            self.devices.clear()
            self.groups.clear()
            self.gateway_details = None

    async def restore_observers(self) -> None:
        """Re-create the observations remembered by ``reset(True)``."""
        entries = self._registry.take_preserved()
        ids = [entry.resource_id for entry in entries]
        root = CoapEndpoint.DEVICES
        if any(i == root or i.startswith(root + "/") for i in ids):
            await self.observe_devices()
        if any(
            i.split("/")[0] in (CoapEndpoint.GROUPS, CoapEndpoint.SCENES)
            for i in ids
        ):
            await self.observe_groups_and_scenes()
        if gateway_path(GatewayEndpoint.DETAILS) in ids:
            await self.observe_gateway()
        for entry in entries:
            if not is_hierarchical(entry.resource_id):
                await self._registry.observe(entry.resource_id, entry.callback)
        logger.info("Restored %d observation(s)", len(entries))

    def destroy(self) -> None:
        """Reset the client for good and stop the connection watcher."""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self.reset()

    async def _reconnect(self) -> None:
        if self._credentials is None:
            raise TradfriError(
                "Cannot reconnect before the first connect().",
                TradfriErrorCode.CONNECTION_FAILED,
            )
        self.reset(preserve_observers=True)
        await self.connect(self._credentials.identity, self._credentials.psk)
        self._restore_task = asyncio.ensure_future(self._restore_after_reconnect())

    async def _restore_after_reconnect(self) -> None:
        try:
            await self.restore_observers()
        except TradfriError as exc:
            logger.warning("Restoring observations after reconnect failed: %s", exc)

    # ---- raw resources -----------------------------------------------

    async def observe_resource(
        self, path: str, callback: Optional[ResponseCallback]
    ) -> bool:
        """Observe an arbitrary resource; ``False`` if already observed."""
        return await self._registry.observe(path, callback)

    def stop_observing_resource(self, path: str) -> bool:
        return self._registry.stop_observing(path)

    async def request(
        self,
        path: str,
        method: str,
        payload: Any = None,
    ) -> RequestResult:
        """Send one request to *path* and decode the response.

        *payload* is serialized as JSON.  Transport failures are
        reported on the error channel and raised as
        :class:`TradfriError`.
        """
        url = self._url_for(canonicalize(path))
        logger.debug("%s %s %r", method.upper(), url, payload)
        try:
            response = await self._transport.request(
                url, method, encode_payload(payload)
            )
        except TransportError as exc:
            error = classify_transport_error(exc)
            self._emit_error(error)
            raise error from exc
        return RequestResult(str(response.code), decode_payload(response))

    # ---- devices -----------------------------------------------------

    async def observe_devices(self) -> None:
        """Observe every device; returns once each one answered."""
        future = await self._devices.observe()
        if future is not None:
            await future

    def stop_observing_devices(self) -> None:
        self._devices.stop()

    def _on_device_update(self, device_id: int, payload: Any) -> None:
        accessory = normalize_accessory(Accessory.parse(payload))
        if accessory.instance_id is None:
            accessory.instance_id = device_id
        self.devices[device_id] = accessory
        logger.debug("Device %d updated", device_id)
        self._emit(ClientEvent.DEVICE_UPDATED, accessory.clone())

    def _on_device_remove(self, device_id: int) -> None:
        self.devices.pop(device_id, None)
        self._emit(ClientEvent.DEVICE_REMOVED, device_id)

    def _known_device(self, accessory: Accessory) -> Accessory:
        known = self.devices.get(accessory.instance_id)  # type: ignore[arg-type]
        if known is None:
            raise ValueError(
                f"The device with ID {accessory.instance_id} is not known "
                "and cannot be updated!"
            )
        return known

    def update_device(self, accessory: Accessory) -> Awaitable[bool]:
        """Send the changes of *accessory* against the observed state.

        Resolves ``True`` if a request was sent, ``False`` if nothing
        changed.

        Raises
        ------
        ValueError
            Immediately, if the device is not observed.
        """
        reference = self._known_device(accessory)
        patch = build_patch(accessory, reference)
        return self._send_patch(device_path(reference.instance_id), patch)

    def operate_light(
        self,
        accessory: Accessory,
        operation: Mapping[str, Any],
        light_index: int = 0,
    ) -> Awaitable[bool]:
        """Apply *operation* (light attribute → value) to one light.

        Raises
        ------
        ValueError
            Immediately, if *accessory* has no lights or *operation*
            names an unknown attribute.
        """
        if not accessory.is_light:
            raise ValueError("The parameter accessory must be a lightbulb!")
        light = accessory.light_list[light_index]
        patch = build_operation_patch(light, operation)
        return self._send_sub_patch(accessory, "3311", light_index, patch)

    def operate_plug(
        self,
        accessory: Accessory,
        operation: Mapping[str, Any],
        plug_index: int = 0,
    ) -> Awaitable[bool]:
        """Apply *operation* (plug attribute → value) to one outlet."""
        if not accessory.is_plug:
            raise ValueError("The parameter accessory must be a plug!")
        plug = accessory.plug_list[plug_index]
        patch = build_operation_patch(plug, operation)
        return self._send_sub_patch(accessory, "3312", plug_index, patch)

    def _send_sub_patch(
        self, accessory: Accessory, key: str, index: int, patch: Patch
    ) -> Awaitable[bool]:
        if accessory.instance_id is None:
            raise ValueError("The accessory has no instance id")
        body: Patch = {key: [{}] * index + [patch]} if patch else {}
        return self._send_patch(device_path(accessory.instance_id), body)

    # ---- groups and scenes -------------------------------------------

    async def observe_groups_and_scenes(self) -> None:
        """Observe every group and its scenes.

        Returns once every group and every scene of every group
        answered.
        """
        future = await self._groups.observe()
        if future is not None:
            await future

    def stop_observing_groups(self) -> None:
        self._groups.stop()

    def _scenes_spec(self, group_id: int) -> CollectionSpec:
        return CollectionSpec(
            kind="scene",
            path=scenes_path(group_id),
            member_path=partial(scene_path, group_id),
            context=f"observe_scenes({group_id})",
            on_update=partial(self._on_scene_update, group_id),
            on_remove=partial(self._on_scene_remove, group_id),
        )

    def _on_group_update(self, group_id: int, payload: Any) -> None:
        group = Group.parse(payload)
        if group.instance_id is None:
            group.instance_id = group_id
        info = self.groups.get(group_id)
        if info is None:
            self.groups[group_id] = GroupInfo(group)
        else:
            info.group = group
        logger.debug("Group %d updated", group_id)
        self._emit(ClientEvent.GROUP_UPDATED, group.clone())

    def _on_group_remove(self, group_id: int) -> None:
        self.groups.pop(group_id, None)
        self._emit(ClientEvent.GROUP_REMOVED, group_id)

    def _on_scene_update(self, group_id: int, scene_id: int, payload: Any) -> None:
        scene = Scene.parse(payload)
        if scene.instance_id is None:
            scene.instance_id = scene_id
        info = self.groups.get(group_id)
        if info is None:
            logger.debug("Scene %d of unknown group %d ignored", scene_id, group_id)
            return
        info.scenes[scene_id] = scene
        self._emit(ClientEvent.SCENE_UPDATED, scene.clone())

    def _on_scene_remove(self, group_id: int, scene_id: int) -> None:
        info = self.groups.get(group_id)
        if info is not None:
            info.scenes.pop(scene_id, None)
        self._emit(ClientEvent.SCENE_REMOVED, scene_id)

    def update_group(self, group: Group) -> Awaitable[bool]:
        """Send the changes of *group* against the observed state.

        Raises
        ------
        ValueError
            Immediately, if the group is not observed.
        """
        info = self.groups.get(group.instance_id)  # type: ignore[arg-type]
        if info is None:
            raise ValueError(
                f"The group with ID {group.instance_id} is not known "
                "and cannot be updated!"
            )
        patch = build_patch(group, info.group)
        return self._send_patch(group_path(info.group.instance_id), patch)

    def operate_group(
        self,
        group: Group,
        operation: Mapping[str, Any],
        force: bool = False,
    ) -> Awaitable[bool]:
        """Apply *operation* to every light of *group*.

        With *force* the operation is sent even if the group already
        reports the requested values (the group state is not always in
        sync with its lights).
        """
        if group.instance_id is None:
            raise ValueError("The group has no instance id")
        patch = build_operation_patch(group, operation, force=force)
        return self._send_patch(group_path(group.instance_id), patch)

    # ---- gateway -----------------------------------------------------

    async def observe_gateway(self) -> None:
        """Observe the gateway details; returns after the first answer."""
        path = gateway_path(GatewayEndpoint.DETAILS)
        if self._registry.is_observing(path):
            return
        future = asyncio.get_running_loop().create_future()
        self._gateway_future = future
        if not await self._registry.observe(path, self._on_gateway):
            self._fail_gateway_future(
                self._registry.last_error
                or TradfriError(
                    "The gateway could not be observed",
                    TradfriErrorCode.CONNECTION_FAILED,
                )
            )
        await future

    def stop_observing_gateway(self) -> None:
        self._registry.stop_observing(gateway_path(GatewayEndpoint.DETAILS))
        future = self._gateway_future
        if future is not None and not future.done():
            future.set_result(None)

    async def _on_gateway(self, response: CoapResponse) -> None:
        result = classify_response(response, "observe_gateway()")
        if result.kind is ResponseKind.REPORTED_ERROR:
            self._emit_error(result.error)
            self._fail_gateway_future(
                TradfriError(
                    "The gateway could not be observed",
                    result.error.code,
                )
            )
            return
        try:
            details = GatewayDetails.parse(result.payload)
        except ValueError as exc:
            error = TradfriError(
                f"unexpected payload in response to observe_gateway(): {exc}",
                TradfriErrorCode.UNEXPECTED_RESPONSE,
            )
            self._emit_error(error)
            self._fail_gateway_future(error)
            return
        self.gateway_details = details
        self._emit(ClientEvent.GATEWAY_UPDATED, details.clone())
        future = self._gateway_future
        if future is not None and not future.done():
            future.set_result(None)

    def _fail_gateway_future(self, error: TradfriError) -> None:
        future = self._gateway_future
        if future is not None and not future.done():
            future.set_exception(error)

    async def reboot_gateway(self) -> bool:
        """Reboot the gateway.  ``True`` if the gateway accepted."""
        result = await self.request(gateway_path(GatewayEndpoint.REBOOT), "post")
        return result.code == MessageCode.CREATED

    async def reset_gateway(self) -> bool:
        """Factory-reset the gateway.  ``True`` if the gateway accepted."""
        result = await self.request(gateway_path(GatewayEndpoint.RESET), "post")
        return result.code == MessageCode.CREATED

    # ---- helpers -----------------------------------------------------

    async def _send_patch(self, path: str, patch: Patch) -> bool:
        if not patch:
            logger.debug("No changes for %s, skipping request", path)
            return False
        await self.request(path, "put", patch)
        return True

    def __repr__(self) -> str:
        return (
            f"TradfriClient({self._hostname!r}, "
            f"devices={len(self.devices)}, groups={len(self.groups)})"
        )
