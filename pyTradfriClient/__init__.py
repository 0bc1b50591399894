"""pyTradfriClient - asyncio client for the IKEA TRÅDFRI gateway."""

__version__ = "0.1.0"

from pyTradfriClient.enums import (  # noqa: F401 – re-export for convenience
    AccessoryType,
    ContentFormat,
    MessageCode,
    PowerSource,
)

from pyTradfriClient.errors import (  # noqa: F401
    TradfriError,
    TradfriErrorCode,
)

from pyTradfriClient.endpoints import (  # noqa: F401
    DEFAULT_COAP_PORT,
    CoapEndpoint,
    GatewayEndpoint,
    canonicalize,
)

from pyTradfriClient.transport import (  # noqa: F401
    CoapResponse,
    CoapTransport,
    TransportError,
    TransportResetError,
    TransportTimeoutError,
)

from pyTradfriClient.events import ClientEvent, EventDispatcher  # noqa: F401

from pyTradfriClient.accessory import (  # noqa: F401
    Accessory,
    DeviceInfo,
    Light,
    Plug,
)

from pyTradfriClient.group import (  # noqa: F401
    Group,
    GroupInfo,
    LightSetting,
    Scene,
)

from pyTradfriClient.gateway import GatewayDetails  # noqa: F401

from pyTradfriClient.options import ClientOptions, WatcherOptions  # noqa: F401

from pyTradfriClient.persistence import (  # noqa: F401
    CredentialStore,
    Credentials,
)

from pyTradfriClient.registry import (  # noqa: F401
    ObservationEntry,
    ObservationRegistry,
)

from pyTradfriClient.retry import (  # noqa: F401
    ConnectionRetryEngine,
    ConnectState,
    RetryState,
)

from pyTradfriClient.watcher import ConnectionWatcher  # noqa: F401

from pyTradfriClient.coap_transport import AiocoapTransport  # noqa: F401

from pyTradfriClient.client import RequestResult, TradfriClient  # noqa: F401
