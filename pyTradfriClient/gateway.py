"""Gateway details (``15011/15012``)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pyTradfriClient.ipso import IpsoObject, ipso_field


@dataclass
class GatewayDetails(IpsoObject):
    """Metadata and status of the gateway itself."""

    ntp_server: Optional[str] = ipso_field("9023")
    version: Optional[str] = ipso_field("9029", read_only=True)
    update_state: Optional[int] = ipso_field("9054", read_only=True)
    update_progress: Optional[int] = ipso_field("9055", read_only=True)
    update_details_url: Optional[str] = ipso_field("9056", read_only=True)
    current_time_unix: Optional[int] = ipso_field("9059", read_only=True)
    current_time_iso8601: Optional[str] = ipso_field("9060", read_only=True)
    commissioning_mode: Optional[int] = ipso_field("9061", read_only=True)
    ota_type: Optional[int] = ipso_field("9066", read_only=True)
    ota_update_state: Optional[int] = ipso_field("9082", read_only=True)
    certificate_provisioned: Optional[bool] = ipso_field(
        "9092", read_only=True, from_wire=bool
    )
    alexa_pair_status: Optional[bool] = ipso_field(
        "9093", read_only=True, from_wire=bool
    )
    google_home_pair_status: Optional[bool] = ipso_field(
        "9105", read_only=True, from_wire=bool
    )
    gateway_time_source: Optional[int] = ipso_field("9071", read_only=True)
