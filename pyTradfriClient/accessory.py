"""Devices (accessories) and their light / plug sub-objects.

An :class:`Accessory` is one device paired with the gateway, observed
at ``15001/<instance_id>``.  Depending on its type it carries zero or
more :class:`Light` entries (key ``3311``) or :class:`Plug` entries
(key ``3312``).  Operating a light always goes through its enclosing
accessory because the gateway only accepts writes on the device
resource.

Brightness (``dimmer``) is kept in the gateway's raw range 0–254.
Transition times are stored in seconds and sent in tenths of a second.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from pyTradfriClient.enums import AccessoryType, PowerSource
from pyTradfriClient.ipso import IpsoObject, enum_or_value, ipso_field

#: Default transition time in seconds for light operations.
DEFAULT_TRANSITION_TIME: float = 0.5


def seconds_from_wire(value: int) -> float:
    return value / 10


def seconds_to_wire(value: float) -> int:
    return int(round(value * 10))


@dataclass
class DeviceInfo(IpsoObject):
    """Static information about a device (key ``3``)."""

    manufacturer: Optional[str] = ipso_field("0", read_only=True)
    model_number: Optional[str] = ipso_field("1", read_only=True)
    serial_number: Optional[str] = ipso_field("2", read_only=True)
    firmware_version: Optional[str] = ipso_field("3", read_only=True)
    power_source: Optional[PowerSource] = ipso_field(
        "6", read_only=True, from_wire=enum_or_value(PowerSource)
    )
    battery: Optional[int] = ipso_field("9", read_only=True)


@dataclass
class Light(IpsoObject):
    """State of one light of a lightbulb accessory."""

    instance_id: Optional[int] = ipso_field("9003", read_only=True)
    on_off: Optional[bool] = ipso_field("5850", from_wire=bool, to_wire=int)
    dimmer: Optional[int] = ipso_field("5851")
    color: Optional[str] = ipso_field("5706")
    hue: Optional[int] = ipso_field("5707")
    saturation: Optional[int] = ipso_field("5708")
    color_x: Optional[int] = ipso_field("5709")
    color_y: Optional[int] = ipso_field("5710")
    color_temperature: Optional[int] = ipso_field("5711")
    transition_time: float = ipso_field(
        "5712",
        default=DEFAULT_TRANSITION_TIME,
        required=True,
        from_wire=seconds_from_wire,
        to_wire=seconds_to_wire,
    )

    @property
    def is_dimmable(self) -> bool:
        return self.dimmer is not None

    @property
    def supports_color(self) -> bool:
        return self.hue is not None or self.color_x is not None


@dataclass
class Plug(IpsoObject):
    """State of one outlet of a smart plug accessory."""

    instance_id: Optional[int] = ipso_field("9003", read_only=True)
    on_off: Optional[bool] = ipso_field("5850", from_wire=bool, to_wire=int)
    dimmer: Optional[int] = ipso_field("5851")


@dataclass
class Accessory(IpsoObject):
    """A device paired with the gateway."""

    instance_id: Optional[int] = ipso_field("9003", read_only=True)
    name: Optional[str] = ipso_field("9001")
    created_at: Optional[int] = ipso_field("9002", read_only=True)
    type: Optional[AccessoryType] = ipso_field(
        "5750", read_only=True, from_wire=enum_or_value(AccessoryType)
    )
    alive: Optional[bool] = ipso_field("9019", read_only=True, from_wire=bool)
    last_seen: Optional[int] = ipso_field("9020", read_only=True)
    ota_update_state: Optional[int] = ipso_field("9054", read_only=True)
    device_info: Optional[DeviceInfo] = ipso_field(
        "3", read_only=True, nested=DeviceInfo
    )
    light_list: List[Light] = ipso_field(
        "3311", default_factory=list, nested=Light, many=True
    )
    plug_list: List[Plug] = ipso_field(
        "3312", default_factory=list, nested=Plug, many=True
    )

    @property
    def is_light(self) -> bool:
        """``True`` when the accessory carries at least one light."""
        return bool(self.light_list)

    @property
    def is_plug(self) -> bool:
        return bool(self.plug_list)
