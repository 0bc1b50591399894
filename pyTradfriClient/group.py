"""Groups and scenes.

Groups are observed at ``15004/<id>``; the scenes ("moods") of a group
form a nested collection at ``15005/<groupId>`` with one resource per
scene at ``15005/<groupId>/<sceneId>``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pyTradfriClient.accessory import (
    DEFAULT_TRANSITION_TIME,
    seconds_from_wire,
    seconds_to_wire,
)
from pyTradfriClient.ipso import IpsoObject, ipso_field


def _device_ids_from_wire(value: Any) -> List[int]:
    """Unpack ``{"15002": {"9003": [ids]}}``."""
    try:
        return [int(i) for i in value["15002"]["9003"]]
    except (KeyError, TypeError):
        return []


def _device_ids_to_wire(value: List[int]) -> Dict[str, Any]:
    return {"15002": {"9003": list(value)}}


@dataclass
class Group(IpsoObject):
    """A group of devices."""

    instance_id: Optional[int] = ipso_field("9003", read_only=True)
    name: Optional[str] = ipso_field("9001")
    created_at: Optional[int] = ipso_field("9002", read_only=True)
    on_off: Optional[bool] = ipso_field("5850", from_wire=bool, to_wire=int)
    dimmer: Optional[int] = ipso_field("5851")
    scene_id: Optional[int] = ipso_field("9039")
    device_ids: List[int] = ipso_field(
        "9018",
        default_factory=list,
        read_only=True,
        from_wire=_device_ids_from_wire,
        to_wire=_device_ids_to_wire,
    )
    transition_time: float = ipso_field(
        "5712",
        default=DEFAULT_TRANSITION_TIME,
        required=True,
        from_wire=seconds_from_wire,
        to_wire=seconds_to_wire,
    )


@dataclass
class LightSetting(IpsoObject):
    """The state a scene applies to one light (key ``15013``)."""

    instance_id: Optional[int] = ipso_field("9003")
    on_off: Optional[bool] = ipso_field("5850", from_wire=bool, to_wire=int)
    dimmer: Optional[int] = ipso_field("5851")
    color: Optional[str] = ipso_field("5706")
    color_temperature: Optional[int] = ipso_field("5711")


@dataclass
class Scene(IpsoObject):
    """A scene (mood) of a group."""

    instance_id: Optional[int] = ipso_field("9003", read_only=True)
    name: Optional[str] = ipso_field("9001")
    created_at: Optional[int] = ipso_field("9002", read_only=True)
    scene_index: Optional[int] = ipso_field("9057")
    is_active: Optional[bool] = ipso_field("9058", from_wire=bool, to_wire=int)
    is_predefined: Optional[bool] = ipso_field(
        "9068", read_only=True, from_wire=bool
    )
    use_current_light_settings: Optional[bool] = ipso_field(
        "9070", from_wire=bool, to_wire=int
    )
    light_settings: List[LightSetting] = ipso_field(
        "15013", default_factory=list, nested=LightSetting, many=True
    )


@dataclass
class GroupInfo:
    """A group together with the scenes observed below it."""

    group: Group
    scenes: Dict[int, Scene] = field(default_factory=dict)
