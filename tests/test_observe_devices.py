"""Tests for observe_devices() and device reconciliation."""

import asyncio

import pytest

from pyTradfriClient.accessory import Accessory
from pyTradfriClient.errors import TradfriError, TradfriErrorCode
from pyTradfriClient.transport import TransportResetError

from conftest import device_payload, settle


async def _start(client):
    task = asyncio.ensure_future(client.observe_devices())
    await settle()
    return task


async def _observe(client, transport, ids):
    """Run observe_devices() to completion for *ids*."""
    task = await _start(client)
    await transport.notify("15001", ids)
    for device_id in ids:
        await transport.notify(f"15001/{device_id}", device_payload(device_id))
    await settle()
    await task


def _names(events):
    return [name for name, _ in events]


# ---------------------------------------------------------------------------
# Initial fan-out
# ---------------------------------------------------------------------------

class TestInitialFanOut:

    @pytest.mark.asyncio
    async def test_observes_root_then_members(self, client, transport):
        task = await _start(client)
        assert transport.observed_paths() == ["15001"]

        await transport.notify("15001", [65536, 65537])
        assert transport.observed_paths() == [
            "15001", "15001/65536", "15001/65537"
        ]
        task.cancel()

    @pytest.mark.asyncio
    async def test_resolves_after_every_member_answered(self, client, transport):
        task = await _start(client)
        await transport.notify("15001", [65536, 65537])

        await transport.notify("15001/65536", device_payload(65536))
        await settle()
        assert not task.done()

        await transport.notify("15001/65537", device_payload(65537))
        await settle()
        assert task.done()
        assert task.result() is None

    @pytest.mark.asyncio
    async def test_empty_collection_resolves(self, client, transport):
        task = await _start(client)
        await transport.notify("15001", [])
        await settle()
        assert task.done()

    @pytest.mark.asyncio
    async def test_device_updated_events(self, client, transport, events):
        await _observe(client, transport, [65536, 65537])

        updated = [args[0] for name, args in events if name == "device updated"]
        assert [a.instance_id for a in updated] == [65536, 65537]
        assert all(isinstance(a, Accessory) for a in updated)
        assert set(client.devices) == {65536, 65537}

    @pytest.mark.asyncio
    async def test_events_carry_copies(self, client, transport, events):
        await _observe(client, transport, [65536])
        emitted = events[0][1][0]

        emitted.name = "Changed by caller"
        assert client.devices[65536].name == "Lamp"

    @pytest.mark.asyncio
    async def test_idempotent(self, client, transport):
        await _observe(client, transport, [65536])

        await client.observe_devices()
        assert transport.observe_count("15001") == 1
        assert transport.observe_count("15001/65536") == 1

    @pytest.mark.asyncio
    async def test_member_added_during_fan_out(self, client, transport):
        task = await _start(client)
        await transport.notify("15001", [65536])
        await transport.notify("15001", [65536, 65537])

        await transport.notify("15001/65536", device_payload(65536))
        await settle()
        assert not task.done()

        await transport.notify("15001/65537", device_payload(65537))
        await settle()
        assert task.done()


# ---------------------------------------------------------------------------
# Membership changes
# ---------------------------------------------------------------------------

class TestReconciliation:

    @pytest.mark.asyncio
    async def test_added_and_removed(self, client, transport, events):
        await _observe(client, transport, [65536, 65537])
        events.clear()

        await transport.notify("15001", [65537, 65538])

        assert events == [("device removed", (65536,))]
        assert not transport.is_observed("15001/65536")
        assert transport.is_observed("15001/65538")
        assert 65536 not in client.devices

        await transport.notify("15001/65538", device_payload(65538))
        assert _names(events) == ["device removed", "device updated"]
        assert events[1][1][0].instance_id == 65538

    @pytest.mark.asyncio
    async def test_unchanged_member_is_not_reobserved(self, client, transport):
        await _observe(client, transport, [65536, 65537])
        await transport.notify("15001", [65537, 65538])
        assert transport.observe_count("15001/65537") == 1

    @pytest.mark.asyncio
    async def test_same_snapshot_is_noop(self, client, transport, events):
        await _observe(client, transport, [65536])
        events.clear()
        await transport.notify("15001", [65536])
        assert events == []

    @pytest.mark.asyncio
    async def test_member_updates_emit_events(self, client, transport, events):
        await _observe(client, transport, [65536])
        events.clear()

        await transport.notify(
            "15001/65536", device_payload(65536, name="Renamed")
        )
        assert _names(events) == ["device updated"]
        assert client.devices[65536].name == "Renamed"


# ---------------------------------------------------------------------------
# Member responses
# ---------------------------------------------------------------------------

class TestMemberResponses:

    @pytest.mark.asyncio
    async def test_not_found_removes_member(self, client, transport, events):
        await _observe(client, transport, [65536, 65537])
        events.clear()

        await transport.notify("15001/65536", code="4.04")

        assert events == [("device removed", (65536,))]
        assert not transport.is_observed("15001/65536")

    @pytest.mark.asyncio
    async def test_not_found_during_fan_out_settles(self, client, transport, events):
        task = await _start(client)
        await transport.notify("15001", [65536, 65537])
        await transport.notify("15001/65536", code="4.04")
        await transport.notify("15001/65537", device_payload(65537))
        await settle()

        assert task.done()
        await task
        assert "error" not in _names(events)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code, label", [("4.03", "forbidden"), ("4.01", "unauthorized")])
    async def test_error_code_emits_one_error(self, client, transport, events, code, label):
        await _observe(client, transport, [65536])
        events.clear()

        await transport.notify("15001/65536", code=code)

        assert _names(events) == ["error"]
        error = events[0][1][0]
        assert error.code is TradfriErrorCode.UNEXPECTED_RESPONSE
        assert error.message.startswith("unexpected response")
        assert f"{code} {label}" in error.message
        assert 65536 in client.devices

    @pytest.mark.asyncio
    async def test_fatal_member_rejects_fan_out(self, client, transport, events):
        task = await _start(client)
        await transport.notify("15001", [65536, 65537])
        await transport.notify("15001/65536", code="4.03")
        await transport.notify("15001/65537", device_payload(65537))
        await settle()

        with pytest.raises(TradfriError) as exc_info:
            await task
        assert "The device with ID 65536 could not be observed" in str(exc_info.value)
        # the sibling is still tracked
        assert transport.is_observed("15001/65537")
        assert 65537 in client.devices

    @pytest.mark.asyncio
    async def test_unparseable_member_payload(self, client, transport, events):
        task = await _start(client)
        await transport.notify("15001", [65536])
        await transport.notify("15001/65536", [1, 2, 3])
        await settle()

        with pytest.raises(TradfriError):
            await task
        assert _names(events) == ["error"]

    @pytest.mark.asyncio
    async def test_member_observe_refused(self, client, transport, events):
        transport.observe_errors["15001/65536"] = TransportResetError("reset")
        task = await _start(client)
        await transport.notify("15001", [65536])
        await settle()

        with pytest.raises(TradfriError) as exc_info:
            await task
        assert exc_info.value.code is TradfriErrorCode.NETWORK_RESET


# ---------------------------------------------------------------------------
# Collection responses
# ---------------------------------------------------------------------------

class TestCollectionErrors:

    @pytest.mark.asyncio
    async def test_collection_error_rejects(self, client, transport, events):
        task = await _start(client)
        await transport.notify("15001", code="4.01")
        await settle()

        with pytest.raises(TradfriError) as exc_info:
            await task
        assert exc_info.value.code is TradfriErrorCode.UNEXPECTED_RESPONSE
        assert _names(events) == ["error"]

    @pytest.mark.asyncio
    async def test_collection_not_found_is_an_error(self, client, transport, events):
        task = await _start(client)
        await transport.notify("15001", code="4.04")
        await settle()

        with pytest.raises(TradfriError):
            await task
        assert "device removed" not in _names(events)

    @pytest.mark.asyncio
    async def test_collection_payload_must_be_a_list(self, client, transport, events):
        task = await _start(client)
        await transport.notify("15001", {"not": "a list"})
        await settle()

        with pytest.raises(TradfriError):
            await task

    @pytest.mark.asyncio
    async def test_root_observe_refused(self, client, transport):
        transport.observe_errors["15001"] = TransportResetError("reset")
        with pytest.raises(TradfriError) as exc_info:
            await client.observe_devices()
        assert exc_info.value.code is TradfriErrorCode.NETWORK_RESET


# ---------------------------------------------------------------------------
# Stop
# ---------------------------------------------------------------------------

class TestStopObservingDevices:

    @pytest.mark.asyncio
    async def test_stops_root_and_members(self, client, transport, events):
        await _observe(client, transport, [65536, 65537])
        events.clear()

        client.stop_observing_devices()

        assert transport.observed_paths() == []
        assert client.registry.entries() == []
        assert events == []

    @pytest.mark.asyncio
    async def test_observe_again_after_stop(self, client, transport):
        await _observe(client, transport, [65536])
        client.stop_observing_devices()

        await _observe(client, transport, [65536])
        assert transport.observe_count("15001") == 2
