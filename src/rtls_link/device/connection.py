"""
WebSocket command channel to a single device (ws://<ip>/ws)

A command is one text frame; the reply is the first text frame received
after it. DeviceConnection keeps the socket open for several commands, the
module-level helpers open a connection for a single request.
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp

from ..errors import (CommandFailedError, DeviceError, DeviceTimeoutError,
                      InvalidResponseError, TransportError)
from ..http_helper import create_device_session
from ..protocol.commands import is_json_command
from ..protocol.response import DeviceCommandResponse, is_error_response, parse_json_response

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0
DEFAULT_COMMAND_TIMEOUT = 5.0
RETRY_DELAY = 0.5

# Frames that end the exchange without a reply
_CLOSE_TYPES = (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED)


def parse_command_response(command: str, raw: str, ip: str) -> DeviceCommandResponse:
    """Attach the JSON payload for commands that return one"""
    if is_json_command(command):
        return DeviceCommandResponse(raw=raw, json=parse_json_response(raw, ip))
    return DeviceCommandResponse(raw=raw)


class DeviceConnection:
    """Persistent command channel; commands run strictly one after another"""

    def __init__(self, ip: str, ws, session: aiohttp.ClientSession,
                 owns_session: bool, timeout: float = DEFAULT_COMMAND_TIMEOUT):
        self.ip = ip
        self.timeout = timeout
        self._ws = ws
        self._session = session
        self._owns_session = owns_session
        self._closed = False

    @classmethod
    async def connect(cls, ip: str, timeout: float = DEFAULT_COMMAND_TIMEOUT, *,
                      session: Optional[aiohttp.ClientSession] = None) -> "DeviceConnection":
        """
        Open ws://<ip>/ws within CONNECT_TIMEOUT

        ``timeout`` is the per-command reply deadline. Without ``session`` the
        connection creates its own and closes it on close().
        """
        owns_session = session is None
        if owns_session:
            session = create_device_session()

        url = f"ws://{ip}/ws"
        try:
            ws = await asyncio.wait_for(session.ws_connect(url), CONNECT_TIMEOUT)
        except asyncio.TimeoutError:
            if owns_session:
                await session.close()
            raise DeviceTimeoutError(ip, f"Connection timeout after {CONNECT_TIMEOUT}s")
        except (aiohttp.ClientError, OSError) as e:
            if owns_session:
                await session.close()
            raise TransportError(ip, f"WebSocket connect to {url} failed: {e}") from e

        logger.debug(f"Connected to {url}")
        return cls(ip, ws, session, owns_session, timeout)

    @property
    def closed(self) -> bool:
        return self._closed

    async def _read_reply(self, command: str) -> str:
        while True:
            msg = await self._ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                return msg.data
            if msg.type in _CLOSE_TYPES:
                raise InvalidResponseError(self.ip, f"No response received for command '{command}'")
            if msg.type == aiohttp.WSMsgType.ERROR:
                raise TransportError(self.ip, f"WebSocket error: {self._ws.exception() or msg.data}")
            # BINARY, PING, PONG: not a reply

    async def send_raw(self, command: str) -> str:
        """
        Send one command and return the reply text

        Raises:
            TransportError: send failed or the socket errored
            DeviceTimeoutError: no reply within the command timeout
            InvalidResponseError: socket closed before any reply
            CommandFailedError: the reply reports a failure
        """
        if self._closed:
            raise TransportError(self.ip, "Connection is closed")

        try:
            try:
                await self._ws.send_str(command)
            except (aiohttp.ClientError, OSError) as e:
                raise TransportError(self.ip, f"WebSocket send error: {e}") from e

            try:
                response = await asyncio.wait_for(self._read_reply(command), self.timeout)
            except asyncio.TimeoutError:
                raise DeviceTimeoutError(self.ip, f"Command '{command}' timed out after {self.timeout}s")
        except (TransportError, DeviceTimeoutError, InvalidResponseError):
            # Replies pair with commands by order only, a late reply would
            # be taken as the answer to the next command
            await self.close()
            raise

        error_msg = is_error_response(response)
        if error_msg is not None:
            raise CommandFailedError(self.ip, error_msg)

        logger.debug(f"{self.ip} <- {command!r}: {response!r}")
        return response

    async def send(self, command: str) -> DeviceCommandResponse:
        raw = await self.send_raw(command)
        return parse_command_response(command, raw, self.ip)

    async def send_batch(self, commands: List[str]) -> List[DeviceCommandResponse]:
        """Send in order, stopping at the first failing command"""
        responses = []
        for command in commands:
            responses.append(await self.send(command))
        return responses

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if not self._ws.closed:
                await self._ws.close()
        finally:
            if self._owns_session:
                await self._session.close()
        logger.debug(f"Closed connection to {self.ip}")

    async def __aenter__(self) -> "DeviceConnection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


# ================== One-shot helpers ==================

async def send_command(ip: str, command: str, timeout: float = DEFAULT_COMMAND_TIMEOUT, *,
                       session: Optional[aiohttp.ClientSession] = None) -> str:
    """Open a connection, send one command, close"""
    async with await DeviceConnection.connect(ip, timeout, session=session) as conn:
        return await conn.send_raw(command)


async def send_command_parsed(ip: str, command: str, timeout: float = DEFAULT_COMMAND_TIMEOUT, *,
                              session: Optional[aiohttp.ClientSession] = None) -> DeviceCommandResponse:
    raw = await send_command(ip, command, timeout, session=session)
    return parse_command_response(command, raw, ip)


async def send_commands_parsed(ip: str, commands: List[str],
                               timeout: float = DEFAULT_COMMAND_TIMEOUT, *,
                               session: Optional[aiohttp.ClientSession] = None) -> List[DeviceCommandResponse]:
    """Several commands over one connection"""
    async with await DeviceConnection.connect(ip, timeout, session=session) as conn:
        return await conn.send_batch(commands)


async def send_command_with_retry(ip: str, command: str, timeout: float = DEFAULT_COMMAND_TIMEOUT,
                                  max_retries: int = 0, *,
                                  session: Optional[aiohttp.ClientSession] = None) -> str:
    """
    One-shot send with up to ``max_retries`` extra attempts

    Attempts are separated by a fixed RETRY_DELAY. The last error is raised.
    """
    last_error = None
    for attempt in range(max_retries + 1):
        try:
            return await send_command(ip, command, timeout, session=session)
        except DeviceError as e:
            last_error = e
            if attempt < max_retries:
                logger.warning(f"Attempt {attempt + 1}/{max_retries + 1} for {ip} failed: {e}, retrying")
                await asyncio.sleep(RETRY_DELAY)

    raise last_error
