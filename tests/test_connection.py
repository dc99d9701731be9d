"""Tests for the WebSocket command channel."""

from unittest.mock import AsyncMock, patch

import aiohttp
import pytest

from rtls_link.device import connection
from rtls_link.device.connection import (DeviceConnection, send_command, send_command_parsed,
                                         send_command_with_retry, send_commands_parsed)
from rtls_link.errors import (CommandFailedError, DeviceTimeoutError, InvalidResponseError,
                              TransportError)

from conftest import FakeSession, FakeWS, text_msg, ws_msg


def _echo_ok(command):
    return "OK"


class TestConnect:

    @pytest.mark.asyncio
    async def test_connects_to_device_ws_url(self):
        session = FakeSession(FakeWS(responder=_echo_ok))
        conn = await DeviceConnection.connect("10.0.0.7", session=session)
        assert session.urls == ["ws://10.0.0.7/ws"]
        await conn.close()

    @pytest.mark.asyncio
    async def test_connect_failure_is_transport_error(self):
        session = FakeSession(connect_error=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(TransportError) as exc:
            await DeviceConnection.connect("10.0.0.7", session=session)
        assert exc.value.ip == "10.0.0.7"

    @pytest.mark.asyncio
    async def test_connect_timeout(self):
        session = FakeSession(hang=True)
        with patch.object(connection, "CONNECT_TIMEOUT", 0.05):
            with pytest.raises(DeviceTimeoutError):
                await DeviceConnection.connect("10.0.0.7", session=session)

    @pytest.mark.asyncio
    async def test_owned_session_closed_on_failure(self):
        session = FakeSession(connect_error=aiohttp.ClientConnectionError("refused"))
        with patch.object(connection, "create_device_session", return_value=session):
            with pytest.raises(TransportError):
                await DeviceConnection.connect("10.0.0.7")
        assert session.closed


class TestSendRaw:

    @pytest.mark.asyncio
    async def test_returns_first_text_frame(self):
        ws = FakeWS(script=[
            ws_msg(aiohttp.WSMsgType.BINARY, b"\x00"),
            ws_msg(aiohttp.WSMsgType.PONG),
            text_msg("OK"),
        ])
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        assert await conn.send_raw("start") == "OK"
        assert ws.sent == ["start"]

    @pytest.mark.asyncio
    async def test_close_before_reply(self):
        ws = FakeWS(close_when_empty=True)
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        with pytest.raises(InvalidResponseError, match="No response received for command 'reboot'"):
            await conn.send_raw("reboot")

    @pytest.mark.asyncio
    async def test_error_frame_is_transport_error(self):
        ws = FakeWS(script=[ws_msg(aiohttp.WSMsgType.ERROR, "reset")])
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        with pytest.raises(TransportError):
            await conn.send_raw("version")

    @pytest.mark.asyncio
    async def test_send_failure_is_transport_error(self):
        ws = FakeWS()
        ws.send_error = ConnectionResetError("Cannot write to closing transport")
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        with pytest.raises(TransportError, match="send error"):
            await conn.send_raw("version")

    @pytest.mark.asyncio
    async def test_silent_device_times_out(self):
        ws = FakeWS()
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False, timeout=0.05)
        with pytest.raises(DeviceTimeoutError) as exc:
            await conn.send_raw("version")
        assert exc.value.ip == "10.0.0.7"

    @pytest.mark.asyncio
    async def test_timeout_closes_connection_before_late_reply(self):
        ws = FakeWS(responder=lambda cmd: None if cmd == "slow" else f"reply-to-{cmd}")
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False, timeout=0.05)
        with pytest.raises(DeviceTimeoutError):
            await conn.send_raw("slow")

        # The device answers the timed-out command late
        ws._queue.append(text_msg("reply-to-slow"))
        assert conn.closed
        assert ws.closed
        with pytest.raises(TransportError, match="closed"):
            await conn.send_raw("version")
        assert ws.sent == ["slow"]

    @pytest.mark.asyncio
    async def test_receive_error_closes_connection(self):
        ws = FakeWS(script=[ws_msg(aiohttp.WSMsgType.ERROR)])
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        with pytest.raises(TransportError):
            await conn.send_raw("version")
        assert conn.closed

    @pytest.mark.asyncio
    async def test_device_reported_failure_keeps_connection(self):
        ws = FakeWS(responder=lambda cmd: "Error: busy" if cmd == "start" else "OK")
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        with pytest.raises(CommandFailedError):
            await conn.send_raw("start")
        assert not conn.closed
        assert await conn.send_raw("version") == "OK"

    @pytest.mark.asyncio
    async def test_device_reported_failure(self):
        ws = FakeWS(responder=lambda cmd: "Error: invalid group")
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        with pytest.raises(CommandFailedError) as exc:
            await conn.send_raw("write -group nope -name x -data \"1\"")
        assert exc.value.message == "invalid group"

    @pytest.mark.asyncio
    async def test_closed_connection_rejects_commands(self):
        ws = FakeWS(responder=_echo_ok)
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        await conn.close()
        await conn.close()
        with pytest.raises(TransportError):
            await conn.send_raw("version")


class TestSendParsed:

    @pytest.mark.asyncio
    async def test_json_command_populates_json(self):
        ws = FakeWS(responder=lambda cmd: 'OK\n{"configs": ["a", "b"]}')
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        response = await conn.send("list-configs")
        assert response.json == {"configs": ["a", "b"]}
        assert response.raw.startswith("OK")

    @pytest.mark.asyncio
    async def test_text_command_has_no_json(self):
        ws = FakeWS(responder=lambda cmd: '1.4.2 {build}')
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        response = await conn.send("version")
        assert response.json is None

    @pytest.mark.asyncio
    async def test_json_command_without_json(self):
        ws = FakeWS(responder=lambda cmd: "OK - done")
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        with pytest.raises(InvalidResponseError, match="No JSON found"):
            await conn.send("backup-config")

    @pytest.mark.asyncio
    async def test_batch_is_sequential_and_stops_at_first_error(self):
        replies = {"a": "OK", "b": "Failed to write parameter", "c": "OK"}
        ws = FakeWS(responder=lambda cmd: replies[cmd])
        conn = DeviceConnection("10.0.0.7", ws, FakeSession(ws), owns_session=False)
        with pytest.raises(CommandFailedError):
            await conn.send_batch(["a", "b", "c"])
        assert ws.sent == ["a", "b"]


class TestOneShot:

    @pytest.mark.asyncio
    async def test_send_command_closes_socket_but_not_shared_session(self):
        ws = FakeWS(responder=_echo_ok)
        session = FakeSession(ws)
        assert await send_command("10.0.0.7", "start", session=session) == "OK"
        assert ws.closed
        assert not session.closed

    @pytest.mark.asyncio
    async def test_send_command_owns_session_when_none_given(self):
        session = FakeSession(FakeWS(responder=_echo_ok))
        with patch.object(connection, "create_device_session", return_value=session):
            await send_command("10.0.0.7", "start")
        assert session.closed

    @pytest.mark.asyncio
    async def test_send_command_parsed(self):
        session = FakeSession(FakeWS(responder=lambda cmd: '{"led2": true}'))
        response = await send_command_parsed("10.0.0.7", "get-led2-state", session=session)
        assert response.json == {"led2": True}

    @pytest.mark.asyncio
    async def test_send_commands_parsed_uses_one_connection(self):
        session = FakeSession(FakeWS(responder=_echo_ok))
        responses = await send_commands_parsed("10.0.0.7", ["a", "b"], session=session)
        assert [r.raw for r in responses] == ["OK", "OK"]
        assert len(session.urls) == 1


class TestRetry:

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        mock_send = AsyncMock(side_effect=[TransportError("10.0.0.7", "refused"), "OK"])
        with patch.object(connection, "send_command", mock_send), \
                patch.object(connection, "RETRY_DELAY", 0):
            assert await send_command_with_retry("10.0.0.7", "start", 1.0, max_retries=2) == "OK"
        assert mock_send.await_count == 2

    @pytest.mark.asyncio
    async def test_raises_last_error(self):
        errors = [TransportError("10.0.0.7", "refused"), DeviceTimeoutError("10.0.0.7", "slow")]
        mock_send = AsyncMock(side_effect=errors)
        with patch.object(connection, "send_command", mock_send), \
                patch.object(connection, "RETRY_DELAY", 0):
            with pytest.raises(DeviceTimeoutError):
                await send_command_with_retry("10.0.0.7", "start", 1.0, max_retries=1)
        assert mock_send.await_count == 2

    @pytest.mark.asyncio
    async def test_no_retries_by_default(self):
        mock_send = AsyncMock(side_effect=CommandFailedError("10.0.0.7", "no"))
        with patch.object(connection, "send_command", mock_send):
            with pytest.raises(CommandFailedError):
                await send_command_with_retry("10.0.0.7", "start")
        assert mock_send.await_count == 1
