"""TRÅDFRI gateway enumerations.

Protocol-level values (CoAP response codes and content formats) and
the device-level enums used by the IPSO payload schema of the gateway.
"""

from enum import Enum, IntEnum, unique


# ---------------------------------------------------------------------------
#  Protocol-level enums (CoAP, RFC 7252)
# ---------------------------------------------------------------------------


@unique
class MessageCode(str, Enum):
    """CoAP response codes in their dotted ``class.detail`` notation.

    Transport adapters report codes as plain strings; because this enum
    derives from ``str`` its members compare equal to those strings.
    """

    CREATED = "2.01"
    DELETED = "2.02"
    VALID = "2.03"
    CHANGED = "2.04"
    CONTENT = "2.05"
    CONTINUE = "2.31"

    BAD_REQUEST = "4.00"
    UNAUTHORIZED = "4.01"
    BAD_OPTION = "4.02"
    FORBIDDEN = "4.03"
    NOT_FOUND = "4.04"
    METHOD_NOT_ALLOWED = "4.05"
    NOT_ACCEPTABLE = "4.06"
    REQUEST_ENTITY_INCOMPLETE = "4.08"
    PRECONDITION_FAILED = "4.12"
    REQUEST_ENTITY_TOO_LARGE = "4.13"
    UNSUPPORTED_CONTENT_FORMAT = "4.15"

    INTERNAL_SERVER_ERROR = "5.00"
    NOT_IMPLEMENTED = "5.01"
    BAD_GATEWAY = "5.02"
    SERVICE_UNAVAILABLE = "5.03"
    GATEWAY_TIMEOUT = "5.04"
    PROXYING_NOT_SUPPORTED = "5.05"


@unique
class ContentFormat(IntEnum):
    """CoAP content-format identifiers."""

    TEXT_PLAIN = 0
    APPLICATION_LINK_FORMAT = 40
    APPLICATION_XML = 41
    APPLICATION_OCTET_STREAM = 42
    APPLICATION_EXI = 47
    APPLICATION_JSON = 50
    APPLICATION_CBOR = 60


# ---------------------------------------------------------------------------
#  Device-level enums
# ---------------------------------------------------------------------------


@unique
class AccessoryType(IntEnum):
    """Kind of device reported under IPSO key ``5750``."""

    REMOTE = 0
    SLAVE_REMOTE = 1
    LIGHTBULB = 2
    PLUG = 3
    MOTION_SENSOR = 4
    SIGNAL_REPEATER = 6
    BLIND = 7
    SOUND_REMOTE = 8


@unique
class PowerSource(IntEnum):
    """Power source of a device (``DeviceInfo`` key ``6``)."""

    UNKNOWN = 0
    INTERNAL_BATTERY = 1
    EXTERNAL_BATTERY = 2
    BATTERY = 3
    POWER_OVER_ETHERNET = 4
    USB = 5
    AC_POWER = 6
    SOLAR = 7
