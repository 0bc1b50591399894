"""Shared fixtures: an in-memory transport and a client wired to it."""

import asyncio
import json

import pytest

from pyTradfriClient.client import TradfriClient
from pyTradfriClient.enums import ContentFormat
from pyTradfriClient.options import ClientOptions
from pyTradfriClient.transport import CoapResponse, CoapTransport

HOST = "localhost"
BASE_URL = "coaps://localhost:5684/"


# ---------------------------------------------------------------------------
# Helpers: in-memory transport
# ---------------------------------------------------------------------------


def json_response(payload, code="2.05"):
    """A JSON response as the gateway would send it."""
    return CoapResponse(
        code=code,
        payload=json.dumps(payload).encode("utf-8"),
        format=ContentFormat.APPLICATION_JSON,
    )


async def settle(rounds=10):
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeTransport(CoapTransport):
    """Records every call and keeps observation callbacks per URL."""

    def __init__(self):
        self.reset_count = 0
        self.security_params = []
        self.connect_results = []
        self.connect_urls = []
        self.ping_result = True
        self.ping_calls = []
        self.requests = []
        self.observe_calls = []
        self.stopped = []
        self.observers = {}
        self.observe_errors = {}
        self.request_error = None
        self.responses = {}

    # ---- CoapTransport -----------------------------------------------

    def reset(self):
        self.reset_count += 1
        self.observers.clear()

    def set_security_params(self, hostname, params):
        self.security_params.append((hostname, params))

    async def try_to_connect(self, url):
        self.connect_urls.append(url)
        if self.connect_results:
            return self.connect_results.pop(0)
        return True

    async def ping(self, url, timeout=None):
        self.ping_calls.append((url, timeout))
        return self.ping_result

    async def request(self, url, method, payload=None):
        self.requests.append((url, method, payload))
        if self.request_error is not None:
            raise self.request_error
        response = self.responses.get((url[len(BASE_URL):], method))
        if response is not None:
            return response
        return CoapResponse(code="2.04")

    async def observe(self, url, method, callback):
        self.observe_calls.append(url)
        error = self.observe_errors.get(url[len(BASE_URL):])
        if error is not None:
            raise error
        self.observers[url] = callback

    def stop_observing(self, url):
        self.stopped.append(url)
        self.observers.pop(url, None)

    # ---- test helpers ------------------------------------------------

    def is_observed(self, path):
        return BASE_URL + path in self.observers

    def observed_paths(self):
        return sorted(url[len(BASE_URL):] for url in self.observers)

    def observe_count(self, path):
        return self.observe_calls.count(BASE_URL + path)

    async def notify(self, path, payload=None, code="2.05"):
        """Deliver a notification for *path* to its observer."""
        callback = self.observers[BASE_URL + path]
        if payload is None:
            response = CoapResponse(code=code)
        else:
            response = json_response(payload, code)
        await callback(response)

    def sent_json(self, index=-1):
        """Decoded payload of a recorded request."""
        return json.loads(self.requests[index][2].decode("utf-8"))


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def device_payload(instance_id, name="Lamp", on_off=True, dimmer=254):
    return {
        "9003": instance_id,
        "9001": name,
        "9002": 1550000000,
        "5750": 2,
        "9019": 1,
        "3": {"0": "IKEA of Sweden", "1": "TRADFRI bulb E27", "6": 1},
        "3311": [{"9003": 0, "5850": int(on_off), "5851": dimmer}],
    }


def plug_payload(instance_id, name="Plug", on_off=False):
    return {
        "9003": instance_id,
        "9001": name,
        "5750": 3,
        "3312": [{"9003": 0, "5850": int(on_off)}],
    }


def group_payload(instance_id, name="Living room", device_ids=()):
    return {
        "9003": instance_id,
        "9001": name,
        "5850": 1,
        "5851": 200,
        "9039": 196608,
        "9018": {"15002": {"9003": list(device_ids)}},
    }


def scene_payload(instance_id, name="Relax"):
    return {
        "9003": instance_id,
        "9001": name,
        "9057": 1,
        "9068": 1,
        "15013": [{"9003": 65536, "5850": 1, "5851": 100}],
    }


def gateway_payload(version="1.10.36"):
    return {"9029": version, "9023": "pool.ntp.org", "9059": 1550000000}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def client(transport):
    return TradfriClient(
        HOST,
        ClientOptions(connection_interval=0.001),
        transport=transport,
    )


@pytest.fixture
def events(client):
    """Every emitted event as ``(name, args)`` tuples."""
    recorded = []
    for name in (
        "connection failed",
        "device updated",
        "device removed",
        "group updated",
        "group removed",
        "scene updated",
        "scene removed",
        "gateway updated",
        "error",
    ):
        client.on(name, lambda *args, _name=name: recorded.append((_name, args)))
    return recorded
