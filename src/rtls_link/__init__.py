"""
RTLS-Link device connectivity layer
Discovery, command channel, bulk operations and OTA for RTLS-Link UWB devices
"""

__version__ = "0.3.0"
