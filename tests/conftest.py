"""pytest configuration and shared fakes for RTLS-Link tests."""

import asyncio
import json
from unittest.mock import MagicMock

import aiohttp
import pytest


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


# ------------------------------------------------------------------ #
# WebSocket fakes
# ------------------------------------------------------------------ #

def ws_msg(msg_type, data=None) -> MagicMock:
    """Create a mock aiohttp WSMessage."""
    msg = MagicMock()
    msg.type = msg_type
    msg.data = data
    return msg


def text_msg(text: str) -> MagicMock:
    return ws_msg(aiohttp.WSMsgType.TEXT, text)


class FakeWS:
    """Fake aiohttp client WebSocket.

    ``script`` holds frames delivered in order regardless of what is sent.
    ``responder`` maps each sent command to a reply text (None for no reply).
    With nothing queued, receive() blocks like a silent device, or returns a
    CLOSE frame when ``close_when_empty`` is set.
    """

    def __init__(self, script=None, responder=None, close_when_empty=False):
        self._queue = list(script or [])
        self._responder = responder
        self._close_when_empty = close_when_empty
        self._arrived = asyncio.Event()
        self.sent = []
        self.closed = False
        self.send_error = None

    async def send_str(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)
        if self._responder is not None:
            reply = self._responder(data)
            if reply is not None:
                self._queue.append(text_msg(reply))
                self._arrived.set()

    async def receive(self):
        while not self._queue:
            if self._close_when_empty:
                return ws_msg(aiohttp.WSMsgType.CLOSE)
            self._arrived.clear()
            await self._arrived.wait()
        return self._queue.pop(0)

    def exception(self):
        return None

    async def close(self) -> None:
        self.closed = True


class FakeSession:
    """Fake aiohttp.ClientSession handing out FakeWS connections."""

    def __init__(self, ws=None, connect_error=None, hang=False):
        self.ws = ws if ws is not None else FakeWS()
        self.connect_error = connect_error
        self.hang = hang
        self.urls = []
        self.closed = False

    async def ws_connect(self, url, **kwargs):
        self.urls.append(url)
        if self.hang:
            await asyncio.sleep(3600)
        if self.connect_error is not None:
            raise self.connect_error
        return self.ws

    async def close(self) -> None:
        self.closed = True


# ------------------------------------------------------------------ #
# HTTP fakes (OTA)
# ------------------------------------------------------------------ #

class FakeResponse:
    def __init__(self, status=200, body="OK"):
        self.status = status
        self._body = body

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        return False


class FakeHttpSession:
    """Fake aiohttp.ClientSession for multipart uploads.

    ``results`` maps IP to a status code or an exception to raise.
    """

    def __init__(self, results=None):
        self.results = results or {}
        self.posts = []
        self.closed = False

    def post(self, url, data=None, **kwargs):
        self.posts.append((url, data))
        ip = url.split("//", 1)[1].split("/", 1)[0]
        outcome = self.results.get(ip, 200)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome, "OK" if outcome < 300 else "update rejected")

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        await self.close()


# ------------------------------------------------------------------ #
# Heartbeats
# ------------------------------------------------------------------ #

def make_heartbeat(**overrides) -> bytes:
    """Build a heartbeat datagram for a TDoA tag, keys overridable (None removes)."""
    payload = {
        "id": "tag-01",
        "role": "tag_tdoa",
        "mac": "AA:BB:CC:DD:EE:01",
        "uwb_short": "11",
        "mav_sysid": 2,
        "fw": "1.4.2",
        "sending_pos": True,
        "anchors_seen": 4,
        "origin_sent": True,
        "rf_enabled": False,
        "rf_healthy": False,
        "avg_rate_cHz": 1000,
        "min_rate_cHz": 950,
        "max_rate_cHz": 1050,
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return json.dumps(payload).encode("utf-8")


@pytest.fixture
def heartbeat():
    return make_heartbeat
