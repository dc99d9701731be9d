"""
Discovery data structures and models
"""

from enum import Enum
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field


class DeviceRole(str, Enum):
    """Operating role announced in the heartbeat"""
    ANCHOR = "anchor"               # TWR anchor (uwb mode 0)
    TAG = "tag"                     # TWR tag (uwb mode 1)
    CALIBRATION = "calibration"     # uwb mode 2
    ANCHOR_TDOA = "anchor_tdoa"     # uwb mode 3
    TAG_TDOA = "tag_tdoa"           # uwb mode 4
    UNKNOWN = "unknown"

    @classmethod
    def from_str(cls, value: Any) -> "DeviceRole":
        """Map a heartbeat role string, unrecognized values become UNKNOWN"""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_anchor(self) -> bool:
        return self in (DeviceRole.ANCHOR, DeviceRole.ANCHOR_TDOA)

    @property
    def is_tag(self) -> bool:
        return self in (DeviceRole.TAG, DeviceRole.TAG_TDOA)


@dataclass
class DynamicAnchor:
    """Anchor position as reported by a TDoA tag"""
    id: int
    x: float
    y: float
    z: float


@dataclass
class Device:
    """Identity and telemetry snapshot for one device, keyed by IP

    Telemetry fields are None when the heartbeat did not carry them. None
    means unknown and is never the same as False or 0.
    """
    ip: str
    id: str = "unknown"
    role: DeviceRole = DeviceRole.UNKNOWN
    mac: str = ""
    uwb_short: str = ""
    mav_sys_id: int = 0
    firmware: str = ""

    # Telemetry
    sending_pos: Optional[bool] = None
    anchors_seen: Optional[int] = None
    origin_sent: Optional[bool] = None
    rf_enabled: Optional[bool] = None
    rf_healthy: Optional[bool] = None

    # Update rate statistics, centi-Hz (1000 = 10.0 Hz)
    avg_rate_c_hz: Optional[int] = None
    min_rate_c_hz: Optional[int] = None
    max_rate_c_hz: Optional[int] = None

    # Logging configuration
    log_level: Optional[int] = None
    log_udp_port: Optional[int] = None
    log_serial_enabled: Optional[bool] = None
    log_udp_enabled: Optional[bool] = None

    dynamic_anchors: Optional[List[DynamicAnchor]] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        """camelCase mapping for JSON output, absent telemetry omitted"""
        data = {
            "ip": self.ip,
            "id": self.id,
            "role": self.role.value,
            "mac": self.mac,
            "uwbShort": self.uwb_short,
            "mavSysId": self.mav_sys_id,
            "firmware": self.firmware,
        }
        optional = {
            "sendingPos": self.sending_pos,
            "anchorsSeen": self.anchors_seen,
            "originSent": self.origin_sent,
            "rfEnabled": self.rf_enabled,
            "rfHealthy": self.rf_healthy,
            "avgRateCHz": self.avg_rate_c_hz,
            "minRateCHz": self.min_rate_c_hz,
            "maxRateCHz": self.max_rate_c_hz,
            "logLevel": self.log_level,
            "logUdpPort": self.log_udp_port,
            "logSerialEnabled": self.log_serial_enabled,
            "logUdpEnabled": self.log_udp_enabled,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.dynamic_anchors is not None:
            data["dynamicAnchors"] = [
                {"id": a.id, "x": a.x, "y": a.y, "z": a.z} for a in self.dynamic_anchors
            ]
        return data
