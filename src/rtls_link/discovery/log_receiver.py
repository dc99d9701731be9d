"""
UDP receiver for device log records

Devices with UDP logging enabled send one JSON record per datagram:
    {"ts": 12345, "lvl": "INFO", "tag": "app.cpp", "msg": "..."}
Records are only forwarded for IPs with an active stream.
"""

import asyncio
import inspect
import json
import logging
import time
from collections import deque
from dataclasses import dataclass, asdict
from typing import Awaitable, Callable, Deque, List, Optional, Set, Union

from .service import create_reusable_socket

logger = logging.getLogger(__name__)

LOG_RECEIVER_PORT = 3334
MAX_LOG_DATAGRAM_SIZE = 1024

LogCallback = Callable[["LogMessage"], Union[None, Awaitable[None]]]


@dataclass
class LogMessage:
    """One log record from a device"""
    device_ip: str
    ts: int                 # Device uptime timestamp, ms
    lvl: str                # ERROR, WARN, INFO, DEBUG, VERBOSE
    tag: str
    msg: str
    received_at: int        # Local wall clock, ms since epoch

    def to_dict(self) -> dict:
        data = asdict(self)
        data['deviceIp'] = data.pop('device_ip')
        data['receivedAt'] = data.pop('received_at')
        return data


def parse_log_message(data: bytes, ip: str) -> Optional[LogMessage]:
    """Decode a log datagram, None if it is malformed or missing a key"""
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None

    if not isinstance(raw, dict):
        return None

    ts = raw.get('ts')
    if isinstance(ts, bool) or not isinstance(ts, int) or ts < 0:
        return None
    fields = [raw.get(key) for key in ('lvl', 'tag', 'msg')]
    if not all(isinstance(value, str) for value in fields):
        return None

    return LogMessage(
        device_ip=ip,
        ts=ts,
        lvl=fields[0],
        tag=fields[1],
        msg=fields[2],
        received_at=int(time.time() * 1000),
    )


class LogReceiver:
    """Listens on the log port and forwards records from streamed devices"""

    def __init__(self, port: int = LOG_RECEIVER_PORT, *, bind_address: str = "0.0.0.0",
                 receive_timeout: float = 1.0, buffer_size: int = 500):
        self.requested_port = port
        self.bind_address = bind_address
        self.receive_timeout = receive_timeout
        self.active_streams: Set[str] = set()
        self.recent: Deque[LogMessage] = deque(maxlen=buffer_size)
        self.packet_count = 0
        self._sock = None

    @property
    def port(self) -> Optional[int]:
        if self._sock is None:
            return None
        return self._sock.getsockname()[1]

    def open(self) -> None:
        if self._sock is not None:
            return
        # Exclusive bind, a second receiver on the log port fails
        self._sock = create_reusable_socket(self.requested_port, self.bind_address, reuse_port=False)
        logger.info(f"Log receiver listening on UDP port {self.port}")

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
            logger.info("Log receiver closed")

    def start_stream(self, ip: str) -> None:
        self.active_streams.add(ip)
        logger.info(f"Started log stream for {ip}")

    def stop_stream(self, ip: str) -> None:
        self.active_streams.discard(ip)
        logger.info(f"Stopped log stream for {ip}")

    def is_streaming(self, ip: str) -> bool:
        return ip in self.active_streams

    def recent_logs(self, ip: Optional[str] = None, limit: int = 100) -> List[LogMessage]:
        """Newest records last, optionally filtered by device"""
        records = [m for m in self.recent if ip is None or m.device_ip == ip]
        return records[-limit:] if limit > 0 else []

    def handle_packet(self, data: bytes, ip: str) -> Optional[LogMessage]:
        """Filter and decode one datagram, recording it in the recent buffer"""
        self.packet_count += 1
        if ip not in self.active_streams:
            return None

        message = parse_log_message(data, ip)
        if message is None:
            logger.debug(f"Ignoring malformed log record from {ip}")
            return None

        self.recent.append(message)
        return message

    async def run(self, on_log: Optional[LogCallback] = None,
                  stop_event: Optional[asyncio.Event] = None) -> None:
        """Receive until ``stop_event`` is set or the task is cancelled"""
        self.open()
        loop = asyncio.get_running_loop()

        while stop_event is None or not stop_event.is_set():
            try:
                data, addr = await asyncio.wait_for(
                    loop.sock_recvfrom(self._sock, MAX_LOG_DATAGRAM_SIZE), self.receive_timeout)
            except asyncio.TimeoutError:
                continue
            except OSError as e:
                logger.warning(f"Log receiver UDP error: {e}")
                await asyncio.sleep(0.1)
                continue

            message = self.handle_packet(data, addr[0])
            if message is not None and on_log is not None:
                result = on_log(message)
                if inspect.isawaitable(result):
                    await result

        logger.info("Log receiver stopped")
