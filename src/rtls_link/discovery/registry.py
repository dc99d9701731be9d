"""
In-memory device registry keyed by IP
"""

import logging
from typing import Dict, List, Optional, Tuple

from .heartbeat import DEVICE_TTL_SECONDS, prune_stale_devices
from .models import Device

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Holds the latest heartbeat per IP plus the time it was received

    Owned by a single discovery task. Readers only ever receive copies.
    """

    def __init__(self, ttl: float = DEVICE_TTL_SECONDS):
        self.ttl = ttl
        self._entries: Dict[str, Tuple[Device, float]] = {}

    def upsert(self, device: Device, now: float) -> bool:
        """Store ``device``, replacing any previous record for its IP

        Returns True if the IP was not known before.
        """
        is_new = device.ip not in self._entries
        self._entries[device.ip] = (device, now)
        if is_new:
            logger.info(f"[OK] New device {device.id} ({device.role.value}) at {device.ip}")
        return is_new

    def prune(self, now: float) -> int:
        return prune_stale_devices(self._entries, now, self.ttl)

    def get(self, ip: str) -> Optional[Device]:
        entry = self._entries.get(ip)
        return entry[0] if entry else None

    def last_seen(self, ip: str) -> Optional[float]:
        entry = self._entries.get(ip)
        return entry[1] if entry else None

    def snapshot(self) -> List[Device]:
        """Devices sorted by IP"""
        return [self._entries[ip][0] for ip in sorted(self._entries)]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ip: str) -> bool:
        return ip in self._entries
