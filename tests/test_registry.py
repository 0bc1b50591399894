"""Tests for the ObservationRegistry."""

import pytest

from pyTradfriClient.errors import TradfriErrorCode
from pyTradfriClient.registry import ObservationRegistry
from pyTradfriClient.transport import (
    CoapResponse,
    TransportResetError,
    TransportTimeoutError,
)

from conftest import BASE_URL, FakeTransport


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def errors():
    return []


@pytest.fixture
def registry(transport, errors):
    return ObservationRegistry(
        transport, lambda rid: BASE_URL + rid, on_error=errors.append
    )


# ---------------------------------------------------------------------------
# At most one subscription per resource
# ---------------------------------------------------------------------------

class TestObserve:

    @pytest.mark.asyncio
    async def test_observe_twice_issues_one_transport_call(self, registry, transport):
        assert await registry.observe("15001", None) is True
        assert await registry.observe("15001", None) is False
        assert transport.observe_calls == [BASE_URL + "15001"]

    @pytest.mark.asyncio
    async def test_spellings_share_one_entry(self, registry, transport):
        await registry.observe("coaps://localhost:5684/15001/", None)
        await registry.observe("/15001", None)
        await registry.observe("15001", None)
        assert transport.observe_count("15001") == 1
        assert [e.resource_id for e in registry.entries()] == ["15001"]

    @pytest.mark.asyncio
    async def test_first_callback_stays_authoritative(self, registry, transport):
        first, second = [], []
        await registry.observe("15001", first.append)
        await registry.observe("15001", second.append)

        await transport.notify("15001", [1])

        assert len(first) == 1
        assert second == []

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self, registry, transport):
        received = []

        async def callback(response):
            received.append(response.code)

        await registry.observe("15006", callback)
        await transport.notify("15006", [], code="2.05")
        assert received == ["2.05"]

    @pytest.mark.asyncio
    async def test_none_callback_is_allowed(self, registry, transport):
        await registry.observe("15006", None)
        await transport.notify("15006", [])
        assert registry.is_observing("15006")

    @pytest.mark.asyncio
    async def test_distinct_resources(self, registry, transport):
        await registry.observe("15001", None)
        await registry.observe("15001/65536", None)
        assert transport.observe_count("15001") == 1
        assert transport.observe_count("15001/65536") == 1
        assert len(registry) == 2


# ---------------------------------------------------------------------------
# Stop observing
# ---------------------------------------------------------------------------

class TestStopObserving:

    @pytest.mark.asyncio
    async def test_stop_removes_entry(self, registry, transport):
        await registry.observe("15001", None)
        assert registry.stop_observing("/15001/") is True
        assert not registry.is_observing("15001")
        assert transport.stopped == [BASE_URL + "15001"]

    def test_stop_unknown_is_noop(self, registry, transport):
        assert registry.stop_observing("15001") is False
        assert transport.stopped == []

    @pytest.mark.asyncio
    async def test_observe_again_after_stop(self, registry, transport):
        await registry.observe("15001", None)
        registry.stop_observing("15001")
        assert await registry.observe("15001", None) is True
        assert transport.observe_count("15001") == 2

    @pytest.mark.asyncio
    async def test_stopped_entry_ignores_late_notifications(self, registry, transport):
        received = []
        await registry.observe("15001", received.append)
        callback = transport.observers[BASE_URL + "15001"]
        registry.stop_observing("15001")

        await callback(CoapResponse("2.05"))
        assert received == []


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------

class TestTransportErrors:

    @pytest.mark.asyncio
    async def test_reset_during_observe(self, registry, transport, errors):
        transport.observe_errors["15001"] = TransportResetError("reset")

        assert await registry.observe("15001", None) is False
        assert not registry.is_observing("15001")
        assert len(errors) == 1
        assert errors[0].code is TradfriErrorCode.NETWORK_RESET
        assert registry.last_error is errors[0]

    @pytest.mark.asyncio
    async def test_last_error_is_per_call(self, registry, transport):
        transport.observe_errors["15001"] = TransportResetError("reset")
        await registry.observe("15001", None)
        assert registry.last_error is not None

        assert await registry.observe("15004", None) is True
        assert registry.last_error is None
        assert await registry.observe("15004", None) is False
        assert registry.last_error is None

    @pytest.mark.asyncio
    async def test_handshake_timeout_during_observe(self, registry, transport, errors):
        transport.observe_errors["15001"] = TransportTimeoutError("timeout")

        await registry.observe("15001", None)
        assert errors[0].code is TradfriErrorCode.CONNECTION_TIMED_OUT

    @pytest.mark.asyncio
    async def test_can_retry_after_failure(self, registry, transport):
        transport.observe_errors["15001"] = TransportResetError("reset")
        await registry.observe("15001", None)
        del transport.observe_errors["15001"]

        assert await registry.observe("15001", None) is True


# ---------------------------------------------------------------------------
# Clear / preserve
# ---------------------------------------------------------------------------

class TestClear:

    @pytest.mark.asyncio
    async def test_clear_forgets_everything(self, registry, transport):
        await registry.observe("15001", None)
        await registry.observe("15004", None)
        registry.clear()

        assert registry.entries() == []
        assert registry.take_preserved() == []
        assert transport.stopped == []

    @pytest.mark.asyncio
    async def test_clear_preserve_stashes_entries(self, registry):
        callback = lambda response: None  # noqa: E731
        await registry.observe("15001", None)
        await registry.observe("custom/resource", callback)
        registry.clear(preserve=True)

        preserved = registry.take_preserved()
        assert [e.resource_id for e in preserved] == ["15001", "custom/resource"]
        assert preserved[1].callback is callback
        assert registry.take_preserved() == []

    @pytest.mark.asyncio
    async def test_cleared_entries_ignore_notifications(self, registry, transport):
        received = []
        await registry.observe("15001", received.append)
        callback = transport.observers[BASE_URL + "15001"]
        registry.clear(preserve=True)

        await callback(CoapResponse("2.05"))
        assert received == []
