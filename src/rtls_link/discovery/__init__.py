"""
Discovery module for heartbeat-based device discovery and device logs
"""

from .models import Device, DeviceRole, DynamicAnchor
from .heartbeat import parse_heartbeat, prune_stale_devices
from .registry import DeviceRegistry
from .service import DiscoveryService, create_reusable_socket, watch
from .log_receiver import LogMessage, LogReceiver, parse_log_message

__all__ = ['Device', 'DeviceRole', 'DynamicAnchor', 'parse_heartbeat', 'prune_stale_devices',
           'DeviceRegistry', 'DiscoveryService', 'create_reusable_socket', 'watch',
           'LogMessage', 'LogReceiver', 'parse_log_message']
