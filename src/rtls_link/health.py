"""
Device health classification from heartbeat telemetry
"""

from enum import Enum
from typing import Any, Dict, List
from dataclasses import dataclass, field

from .discovery.models import Device

MIN_ANCHORS_FOR_FIX = 3


class HealthLevel(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"         # Minor issues
    DEGRADED = "degraded"       # Positioning affected
    UNKNOWN = "unknown"


@dataclass
class DeviceHealth:
    level: HealthLevel
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"level": self.level.value, "issues": list(self.issues)}


def calculate_device_health(device: Device) -> DeviceHealth:
    if device.role.is_anchor:
        return DeviceHealth(HealthLevel.HEALTHY)
    if device.role.is_tag:
        return _tag_health(device)
    return DeviceHealth(HealthLevel.UNKNOWN)


def _tag_health(device: Device) -> DeviceHealth:
    telemetry = (device.sending_pos, device.anchors_seen, device.origin_sent, device.rf_enabled)
    if all(value is None for value in telemetry):
        return DeviceHealth(HealthLevel.UNKNOWN, ["No telemetry data"])

    issues = []
    not_sending = device.sending_pos is False
    too_few_anchors = device.anchors_seen is not None and device.anchors_seen < MIN_ANCHORS_FOR_FIX

    if not_sending:
        issues.append("Not sending positions")
    if too_few_anchors:
        plural = "" if device.anchors_seen == 1 else "s"
        issues.append(f"Only seeing {device.anchors_seen} anchor{plural}")
    if device.origin_sent is False:
        issues.append("Origin not sent to autopilot")
    if device.rf_enabled is True and device.rf_healthy is False:
        issues.append("Rangefinder unhealthy")

    if not issues:
        return DeviceHealth(HealthLevel.HEALTHY)
    if not_sending or too_few_anchors:
        return DeviceHealth(HealthLevel.DEGRADED, issues)
    return DeviceHealth(HealthLevel.WARNING, issues)
