"""
Link Server - orchestrates discovery watch, device log receiver and the local API
"""

import asyncio
import logging
from typing import List, Optional

import uvicorn

from ..api.main_api import LinkAPI
from ..config_loader import DEFAULT_CONFIG_PATH, load_config, setup_logging
from ..discovery.log_receiver import LogMessage, LogReceiver
from ..discovery.models import Device
from ..discovery.service import DiscoveryService

logger = logging.getLogger(__name__)


class LinkServer:
    """Owns the long-running services of the device manager"""

    def __init__(self, config_path: str = DEFAULT_CONFIG_PATH, config: Optional[dict] = None):
        self.config = config if config is not None else load_config(config_path)
        setup_logging(self.config)

        network = self.config['network']
        self.discovery = DiscoveryService(
            network['discovery_port'],
            bind_address=network['bind_address'],
            reuse_port=network['reuse_port'],
        )
        self.log_receiver = LogReceiver(network['log_port'], bind_address=network['bind_address'])
        self.api = LinkAPI(self)

        self.running = False
        self.tasks = []
        self._stop_event = asyncio.Event()
        self._devices: List[Device] = []
        self._api_server: Optional[uvicorn.Server] = None

    @property
    def is_running(self) -> bool:
        return self.running

    # ================== Device state ==================

    def devices(self) -> List[Device]:
        """Latest watch-mode snapshot, sorted by IP"""
        return list(self._devices)

    def get_device(self, ip: str) -> Optional[Device]:
        for device in self._devices:
            if device.ip == ip:
                return device
        return None

    def _on_devices_update(self, devices: List[Device]) -> None:
        if len(devices) != len(self._devices):
            logger.info(f"Device count changed: {len(self._devices)} -> {len(devices)}")
        self._devices = devices

    def _on_device_log(self, message: LogMessage) -> None:
        logger.debug(f"[{message.device_ip}] {message.lvl} {message.tag}: {message.msg}")

    # ================== Lifecycle ==================

    async def start(self):
        """Start background services and serve the API until stopped"""
        await self.start_services()

        try:
            if self.config['api']['enabled']:
                await self._start_api_server()
            else:
                await self._stop_event.wait()
        except Exception as e:
            logger.error(f"Server failed: {e}")
            raise
        finally:
            await self.stop()

    async def start_services(self):
        """Bind sockets and start the discovery watch and log receiver tasks"""
        logger.info("Starting RTLS-Link device manager...")

        try:
            # The discovery port is essential, a bind failure is fatal
            self.discovery.open()
        except OSError as e:
            logger.error(f"Cannot bind discovery port {self.discovery.requested_port}: {e}")
            raise

        try:
            self.log_receiver.open()
        except OSError as e:
            # Device logs are optional
            logger.warning(f"Log receiver disabled, cannot bind port {self.log_receiver.requested_port}: {e}")

        self.running = True
        self._stop_event.clear()

        self.tasks = [asyncio.create_task(self.discovery.run(self._on_devices_update, self._stop_event))]
        if self.log_receiver.port is not None:
            self.tasks.append(asyncio.create_task(self.log_receiver.run(self._on_device_log, self._stop_event)))

        logger.info(f"All services started successfully ({len(self.tasks)} background tasks)")

    async def stop(self):
        """Stop all services gracefully"""
        if not self.running:
            return
        logger.info("Stopping server...")
        self.running = False
        self._stop_event.set()

        if self._api_server is not None:
            self._api_server.should_exit = True

        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        self.discovery.close()
        self.log_receiver.close()
        logger.info("Server stopped")

    async def _start_api_server(self):
        """Start the FastAPI server"""
        config = uvicorn.Config(
            self.api.app,
            host=self.config['api']['host'],
            port=self.config['api']['port'],
            log_level="info",
            access_log=False  # We handle our own logging
        )

        self._api_server = uvicorn.Server(config)

        logger.info(f"Starting API server on {self.config['api']['host']}:{self.config['api']['port']}")
        logger.info(f"API documentation: http://localhost:{self.config['api']['port']}/docs")

        await self._api_server.serve()
