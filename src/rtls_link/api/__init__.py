"""
API module for device discovery, control and monitoring
"""

from .main_api import LinkAPI
from .device_routes import create_device_routes
from .system_routes import create_system_routes

__all__ = ['LinkAPI', 'create_device_routes', 'create_system_routes']
