# HTTP Helper for RTLS-Link device connections
# Plain HTTP/WS session configuration for devices on the local network

import aiohttp
import logging

logger = logging.getLogger(__name__)

# Generous client-level timeout sized for large images over slow links
OTA_TIMEOUT_SECONDS = 120


def create_device_session(timeout_seconds: float = None) -> aiohttp.ClientSession:
    """
    Create aiohttp session for WebSocket command channels (always plain ws://)
    Deadlines are applied per operation by the caller, so no total timeout by default
    """
    connector = aiohttp.TCPConnector(
        limit_per_host=2,           # One command channel per device, plus headroom
        ssl=False,                  # Devices speak plaintext only
        force_close=True,           # Never reuse sockets between commands
        enable_cleanup_closed=True
    )

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )


def create_ota_session(timeout_seconds: float = OTA_TIMEOUT_SECONDS) -> aiohttp.ClientSession:
    """
    Create aiohttp session shared by all uploads of one OTA run
    """
    connector = aiohttp.TCPConnector(
        ssl=False,
        limit=20,                   # Bulk concurrency is bounded separately
        limit_per_host=1,           # One upload per device at a time
        force_close=True,
        enable_cleanup_closed=True
    )

    logger.debug(f"Creating OTA session (timeout={timeout_seconds}s)")
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )
