"""
UDP heartbeat discovery service

Two modes share one socket setup:
  - snapshot: listen for a fixed duration and return what was heard
  - watch: keep a TTL registry up to date and report every change
"""

import asyncio
import inspect
import logging
import socket
import time
from typing import Awaitable, Callable, List, Optional, Union

from ..errors import HeartbeatDecodeError
from .heartbeat import DEVICE_TTL_SECONDS, parse_heartbeat
from .models import Device
from .registry import DeviceRegistry

logger = logging.getLogger(__name__)

DISCOVERY_PORT = 3333
MAX_DATAGRAM_SIZE = 4096

UpdateCallback = Callable[[List[Device]], Union[None, Awaitable[None]]]


def create_reusable_socket(port: int, bind_address: str = "0.0.0.0",
                           reuse_port: bool = True) -> socket.socket:
    """
    Create a non-blocking IPv4 UDP socket bound to ``bind_address:port``

    With ``reuse_port`` both SO_REUSEADDR and SO_REUSEPORT are set so several
    listeners share the discovery port. Without it the socket is exclusive and
    a second listener fails to bind with OSError, as it does on platforms
    lacking SO_REUSEPORT.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        if reuse_port:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, 'SO_REUSEPORT'):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            else:
                logger.warning("SO_REUSEPORT not available on this platform, "
                               f"port {port} cannot be shared with other listeners")
        sock.setblocking(False)
        sock.bind((bind_address, port))
    except OSError:
        sock.close()
        raise
    return sock


async def _notify(on_update: UpdateCallback, devices: List[Device]) -> None:
    result = on_update(devices)
    if inspect.isawaitable(result):
        await result


class DiscoveryService:
    """Listens for device heartbeats on the discovery port"""

    def __init__(self, port: int = DISCOVERY_PORT, *, bind_address: str = "0.0.0.0",
                 reuse_port: bool = True, receive_timeout: float = 2.0,
                 ttl: float = DEVICE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.requested_port = port
        self.bind_address = bind_address
        self.reuse_port = reuse_port
        self.receive_timeout = receive_timeout
        self.clock = clock
        self.registry = DeviceRegistry(ttl)
        self._sock: Optional[socket.socket] = None

    @property
    def port(self) -> Optional[int]:
        """Port actually bound, None until open() succeeds"""
        if self._sock is None:
            return None
        return self._sock.getsockname()[1]

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def open(self) -> None:
        """Bind the discovery socket, raising OSError if the port is taken"""
        if self._sock is not None:
            return
        self._sock = create_reusable_socket(self.requested_port, self.bind_address, self.reuse_port)
        logger.info(f"Discovery listening on {self.bind_address}:{self.port} "
                    f"(reuse_port={self.reuse_port})")

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
            logger.info("Discovery socket closed")

    def snapshot(self) -> List[Device]:
        return self.registry.snapshot()

    async def _receive(self, timeout: float):
        """One datagram or None on timeout"""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.sock_recvfrom(self._sock, MAX_DATAGRAM_SIZE), timeout)
        except asyncio.TimeoutError:
            return None

    async def run(self, on_update: UpdateCallback,
                  stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Watch mode: receive, upsert, prune, report

        ``on_update`` gets the sorted device list whenever a datagram arrived,
        decodable or not, or pruning changed the set. Runs until
        ``stop_event`` is set or the task is cancelled.
        """
        self.open()
        logger.info(f"[SEARCH] Watching for device heartbeats (ttl={self.registry.ttl}s)")

        while stop_event is None or not stop_event.is_set():
            received = False
            try:
                packet = await self._receive(self.receive_timeout)
            except OSError as e:
                logger.warning(f"Discovery receive error: {e}")
                packet = None
                # Avoid spinning on a persistently failing socket
                await asyncio.sleep(min(self.receive_timeout, 0.1))

            if packet is not None:
                data, addr = packet
                received = True
                try:
                    device = parse_heartbeat(data, addr[0])
                    self.registry.upsert(device, self.clock())
                except HeartbeatDecodeError as e:
                    logger.debug(f"Dropping packet: {e}")

            size_before = len(self.registry)
            self.registry.prune(self.clock())
            pruned = len(self.registry) != size_before

            if received or pruned:
                await _notify(on_update, self.registry.snapshot())

        logger.info("Discovery watch stopped")

    @classmethod
    async def discover_once(cls, port: int = DISCOVERY_PORT, duration: float = 5.0, *,
                            bind_address: str = "0.0.0.0", reuse_port: bool = True,
                            receive_timeout: float = 0.5,
                            stop_event: Optional[asyncio.Event] = None) -> List[Device]:
        """
        Snapshot mode: collect heartbeats for ``duration`` seconds

        Later heartbeats overwrite earlier ones from the same IP. No TTL
        pruning is applied. The socket is always closed on return.
        """
        service = cls(port, bind_address=bind_address, reuse_port=reuse_port,
                      receive_timeout=receive_timeout)
        service.open()
        logger.info(f"[SEARCH] Discovering devices on port {service.port} for {duration}s")

        devices = {}
        try:
            deadline = time.monotonic() + duration
            while stop_event is None or not stop_event.is_set():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    packet = await service._receive(min(receive_timeout, remaining))
                except OSError as e:
                    logger.warning(f"Discovery receive error: {e}")
                    await asyncio.sleep(min(receive_timeout, 0.1))
                    continue
                if packet is None:
                    continue

                data, addr = packet
                try:
                    device = parse_heartbeat(data, addr[0])
                except HeartbeatDecodeError as e:
                    logger.debug(f"Dropping packet: {e}")
                    continue
                devices[device.ip] = device
        finally:
            service.close()

        logger.info(f"Discovery complete: {len(devices)} device(s) found")
        return [devices[ip] for ip in sorted(devices)]


async def watch(port: int, on_update: UpdateCallback,
                stop_event: Optional[asyncio.Event] = None, **kwargs) -> None:
    """Open a DiscoveryService on ``port`` and run watch mode until stopped"""
    service = DiscoveryService(port, **kwargs)
    service.open()
    try:
        await service.run(on_update, stop_event)
    finally:
        service.close()
