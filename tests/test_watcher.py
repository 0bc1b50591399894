"""Tests for the ConnectionWatcher."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from pyTradfriClient.errors import TradfriError, TradfriErrorCode
from pyTradfriClient.events import ClientEvent
from pyTradfriClient.options import WatcherOptions
from pyTradfriClient.watcher import ConnectionWatcher

from conftest import settle


class Gateway:
    """Scripted ping results and a reconnect counter."""

    def __init__(self, results=()):
        self.results = list(results)
        self.reconnects = 0
        self.reconnect_error = None

    async def ping(self):
        result = self.results.pop(0) if self.results else True
        if isinstance(result, Exception):
            raise result
        return result

    async def reconnect(self):
        self.reconnects += 1
        if self.reconnect_error is not None:
            raise self.reconnect_error


def _watcher(gateway, **options):
    emitted = []
    watcher = ConnectionWatcher(
        gateway.ping,
        gateway.reconnect,
        lambda event, *args: emitted.append((event, args)),
        WatcherOptions(**options),
    )
    return watcher, emitted


def _events(emitted):
    return [event for event, _ in emitted]


class TestPing:

    @pytest.mark.asyncio
    async def test_success(self):
        watcher, emitted = _watcher(Gateway([True]))
        assert await watcher.check() is True
        assert emitted == [(ClientEvent.PING_SUCCEEDED, ())]
        assert watcher.connection_alive

    @pytest.mark.asyncio
    async def test_failure_goes_offline(self):
        watcher, emitted = _watcher(Gateway([False]))
        await watcher.check()
        assert emitted == [
            (ClientEvent.PING_FAILED, (1,)),
            (ClientEvent.CONNECTION_LOST, ()),
        ]
        assert not watcher.connection_alive

    @pytest.mark.asyncio
    async def test_offline_threshold(self):
        watcher, emitted = _watcher(
            Gateway([False, False]), failed_ping_count_until_offline=2
        )
        await watcher.check()
        assert _events(emitted) == [ClientEvent.PING_FAILED]
        await watcher.check()
        assert _events(emitted)[-1] is ClientEvent.CONNECTION_LOST

    @pytest.mark.asyncio
    async def test_raising_ping_counts_as_failure(self):
        error = TradfriError("gone", TradfriErrorCode.NETWORK_RESET)
        watcher, emitted = _watcher(Gateway([error]))
        await watcher.check()
        assert watcher.failed_pings == 1

    @pytest.mark.asyncio
    async def test_alive_again(self):
        watcher, emitted = _watcher(Gateway([False, True]))
        await watcher.check()
        emitted.clear()

        await watcher.check()
        assert _events(emitted) == [
            ClientEvent.CONNECTION_ALIVE,
            ClientEvent.PING_SUCCEEDED,
        ]
        assert watcher.failed_pings == 0


class TestBackoff:

    def test_interval_grows_and_caps(self):
        watcher, _ = _watcher(Gateway(), ping_interval=10, failed_ping_backoff_factor=2)
        assert watcher.next_interval() == 10
        watcher._failed_pings = 2
        assert watcher.next_interval() == 20
        watcher._failed_pings = 50
        assert watcher.next_interval() == 10 * 2 ** 5


class TestReconnect:

    @pytest.mark.asyncio
    async def test_reconnects_every_n_offline_pings(self):
        gateway = Gateway([False] * 4)
        watcher, emitted = _watcher(
            gateway, offline_ping_count_until_reconnect=3, maximum_reconnects=2
        )
        for _ in range(4):
            await watcher.check()

        assert gateway.reconnects == 1
        assert (ClientEvent.RECONNECTING, (1, 2)) in emitted

    @pytest.mark.asyncio
    async def test_unlimited_reconnects_report_none(self):
        gateway = Gateway([False, False])
        watcher, emitted = _watcher(gateway, offline_ping_count_until_reconnect=1)
        await watcher.check()
        await watcher.check()
        assert (ClientEvent.RECONNECTING, (1, None)) in emitted

    @pytest.mark.asyncio
    async def test_gives_up(self):
        gateway = Gateway([False] * 3)
        watcher, emitted = _watcher(
            gateway, offline_ping_count_until_reconnect=1, maximum_reconnects=1
        )
        assert await watcher.check() is True
        assert await watcher.check() is True
        assert await watcher.check() is False

        assert gateway.reconnects == 1
        assert _events(emitted)[-1] is ClientEvent.GIVE_UP

    @pytest.mark.asyncio
    async def test_failed_reconnect_keeps_watching(self):
        gateway = Gateway([False, False])
        gateway.reconnect_error = TradfriError("no", TradfriErrorCode.CONNECTION_TIMED_OUT)
        watcher, _ = _watcher(gateway, offline_ping_count_until_reconnect=1)
        await watcher.check()
        assert await watcher.check() is True
        assert watcher.reconnect_attempts == 1

    @pytest.mark.asyncio
    async def test_disabled(self):
        gateway = Gateway([False] * 5)
        watcher, emitted = _watcher(
            gateway, reconnection_enabled=False, offline_ping_count_until_reconnect=1
        )
        for _ in range(5):
            await watcher.check()
        assert gateway.reconnects == 0
        assert ClientEvent.RECONNECTING not in _events(emitted)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_stop(self):
        watcher, _ = _watcher(Gateway(), ping_interval=60)
        watcher.start()
        assert watcher.is_running
        watcher.start()
        watcher.stop()
        await settle()
        assert not watcher.is_running

    @pytest.mark.asyncio
    async def test_loop_pings(self):
        gateway = Gateway([True, True])
        watcher, emitted = _watcher(gateway, ping_interval=0.001)
        watcher.start()
        for _ in range(50):
            if len(emitted) >= 2:
                break
            await asyncio.sleep(0.005)
        watcher.stop()
        assert _events(emitted)[:2] == [
            ClientEvent.PING_SUCCEEDED,
            ClientEvent.PING_SUCCEEDED,
        ]

    @pytest.mark.asyncio
    async def test_client_callables(self):
        ping = AsyncMock(return_value=False)
        reconnect = AsyncMock()
        emit = MagicMock()
        watcher = ConnectionWatcher(
            ping, reconnect, emit,
            WatcherOptions(offline_ping_count_until_reconnect=1),
        )

        await watcher.check()
        await watcher.check()

        assert ping.await_count == 2
        reconnect.assert_awaited_once()
        emit.assert_any_call(ClientEvent.CONNECTION_LOST)
        emit.assert_any_call(ClientEvent.RECONNECTING, 1, None)
