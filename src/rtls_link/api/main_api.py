"""
Main FastAPI application setup
"""

from fastapi import FastAPI
import logging

from .. import __version__
from .device_routes import create_device_routes
from .system_routes import create_system_routes

logger = logging.getLogger(__name__)


class LinkAPI:
    """Local HTTP API for device discovery, commands, bulk operations and OTA"""

    def __init__(self, server):
        self.server = server
        self.app = FastAPI(
            title="RTLS-Link Device Manager",
            description="Local API for discovering and managing RTLS-Link UWB devices",
            version=__version__
        )
        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes using modular approach"""
        self.app.include_router(create_system_routes(self.server))
        self.app.include_router(create_device_routes(self.server))
