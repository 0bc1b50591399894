"""Client configuration.

Both option classes are plain dataclasses that can also be built from
the ``options`` mapping of the YAML state file (see
:mod:`pyTradfriClient.persistence`)::

    options:
      connection_interval: 5
      maximum_connection_attempts: 3
      watch_connection:
        ping_interval: 10
        maximum_reconnects: 5

All durations are in seconds.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from pyTradfriClient.endpoints import DEFAULT_COAP_PORT


def _known_keys(cls: Any, data: Mapping[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in dataclasses.fields(cls)}
    unknown = set(data) - names
    if unknown:
        raise ValueError(
            f"Unknown {cls.__name__} option(s): {', '.join(sorted(unknown))}"
        )
    return dict(data)


@dataclass
class WatcherOptions:
    """Settings of the :class:`~pyTradfriClient.watcher.ConnectionWatcher`.

    Attributes
    ----------
    ping_interval:
        Seconds between two pings while the gateway answers.
    failed_ping_count_until_offline:
        Consecutive failed pings before ``"connection lost"`` fires.
    failed_ping_backoff_factor:
        Growth factor of the ping interval while pings fail.
    reconnection_enabled:
        Try to reconnect while offline.
    offline_ping_count_until_reconnect:
        Failed pings while offline between two reconnect attempts.
    maximum_reconnects:
        Reconnect attempts before ``"give up"`` fires.
    """

    ping_interval: float = 10.0
    failed_ping_count_until_offline: int = 1
    failed_ping_backoff_factor: float = 1.5
    reconnection_enabled: bool = True
    offline_ping_count_until_reconnect: int = 3
    maximum_reconnects: float = float("inf")

    def __post_init__(self) -> None:
        if self.ping_interval <= 0:
            raise ValueError("ping_interval must be positive")
        if self.failed_ping_count_until_offline < 1:
            raise ValueError("failed_ping_count_until_offline must be >= 1")
        if self.failed_ping_backoff_factor < 1:
            raise ValueError("failed_ping_backoff_factor must be >= 1")
        if self.offline_ping_count_until_reconnect < 1:
            raise ValueError("offline_ping_count_until_reconnect must be >= 1")
        if self.maximum_reconnects < 1:
            raise ValueError("maximum_reconnects must be >= 1")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WatcherOptions":
        return cls(**_known_keys(cls, data))

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class ClientOptions:
    """Settings of :class:`~pyTradfriClient.TradfriClient`.

    Attributes
    ----------
    port:
        CoAP-over-DTLS port of the gateway.
    connection_interval:
        Seconds to wait between two connection attempts.
    maximum_connection_attempts:
        Attempts per :meth:`~pyTradfriClient.TradfriClient.connect`
        call.
    watch_connection:
        Enables the connection watcher when set.  ``True`` means
        default :class:`WatcherOptions`.
    """

    port: int = DEFAULT_COAP_PORT
    connection_interval: float = 10.0
    maximum_connection_attempts: int = 1
    watch_connection: Union[None, bool, WatcherOptions] = None

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")
        if self.connection_interval < 0:
            raise ValueError("connection_interval must not be negative")
        if self.maximum_connection_attempts < 1:
            raise ValueError("maximum_connection_attempts must be >= 1")
        if self.watch_connection is True:
            self.watch_connection = WatcherOptions()
        elif self.watch_connection is False:
            self.watch_connection = None
        elif isinstance(self.watch_connection, Mapping):
            self.watch_connection = WatcherOptions.from_dict(
                self.watch_connection
            )

    @property
    def watcher(self) -> Optional[WatcherOptions]:
        """The effective watcher settings, ``None`` if disabled."""
        return self.watch_connection  # type: ignore[return-value]

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ClientOptions":
        """Build options from a plain mapping (``None`` → defaults).

        Raises
        ------
        ValueError
            For unknown keys or invalid values.
        """
        return cls(**_known_keys(cls, data or {}))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "port": self.port,
            "connection_interval": self.connection_interval,
            "maximum_connection_attempts": self.maximum_connection_attempts,
        }
        if self.watcher is not None:
            result["watch_connection"] = self.watcher.to_dict()
        return result
