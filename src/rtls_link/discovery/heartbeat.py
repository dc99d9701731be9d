"""
Heartbeat codec - turns a discovery datagram into a Device record

Decoding is permissive: only payloads that are not a JSON object are errors.
Missing required keys fall back to defaults, missing or mistyped telemetry
keys become None.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from ..errors import HeartbeatDecodeError
from .models import Device, DeviceRole, DynamicAnchor

logger = logging.getLogger(__name__)

# Devices not heard from for longer than this are evicted
DEVICE_TTL_SECONDS = 5.0

U8_MAX = 0xFF
U16_MAX = 0xFFFF


def parse_heartbeat(data: bytes, ip: str) -> Device:
    """
    Parse a heartbeat datagram sent from ``ip``

    Raises:
        HeartbeatDecodeError: payload is not UTF-8 JSON or not an object
    """
    try:
        payload = json.loads(data.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise HeartbeatDecodeError(ip, str(e)) from e

    if not isinstance(payload, dict):
        raise HeartbeatDecodeError(ip, f"expected JSON object, got {type(payload).__name__}")

    return Device(
        ip=ip,
        id=_text(payload.get('id'), 'unknown'),
        role=DeviceRole.from_str(payload.get('role')),
        mac=_text(payload.get('mac'), ''),
        uwb_short=_text(payload.get('uwb_short'), ''),
        mav_sys_id=_int(payload.get('mav_sysid'), U8_MAX) or 0,
        firmware=_text(payload.get('fw'), ''),
        sending_pos=_bool(payload.get('sending_pos')),
        anchors_seen=_int(payload.get('anchors_seen'), U8_MAX),
        origin_sent=_bool(payload.get('origin_sent')),
        rf_enabled=_bool(payload.get('rf_enabled')),
        rf_healthy=_bool(payload.get('rf_healthy')),
        avg_rate_c_hz=_int(payload.get('avg_rate_cHz'), U16_MAX),
        min_rate_c_hz=_int(payload.get('min_rate_cHz'), U16_MAX),
        max_rate_c_hz=_int(payload.get('max_rate_cHz'), U16_MAX),
        log_level=_int(payload.get('log_level'), U8_MAX),
        log_udp_port=_int(payload.get('log_udp_port'), U16_MAX),
        log_serial_enabled=_bool(payload.get('log_serial_enabled')),
        log_udp_enabled=_bool(payload.get('log_udp_enabled')),
        dynamic_anchors=_anchors(payload.get('dyn_anchors')),
    )


def prune_stale_devices(entries: Dict[str, Tuple[Device, float]], now: float,
                        ttl: float = DEVICE_TTL_SECONDS) -> int:
    """
    Remove entries whose last heartbeat is older than ``ttl`` seconds
    Returns the number of removed entries
    """
    stale = [ip for ip, (_, last_seen) in entries.items() if now - last_seen > ttl]
    for ip in stale:
        del entries[ip]
    if stale:
        logger.info(f"Pruned {len(stale)} stale device(s): {', '.join(sorted(stale))}")
    return len(stale)


def _text(value: Any, default: str) -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    # Some firmware builds send numeric ids / short addresses
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _int(value: Any, maximum: Optional[int] = None) -> Optional[int]:
    """Non-negative integer up to ``maximum``, anything else is absent"""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 0:
        return None
    if maximum is not None and value > maximum:
        return None
    return value


def _bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    # 0/1 flags are common in firmware JSON
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    return None


def _float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _anchors(value: Any) -> Optional[List[DynamicAnchor]]:
    if not isinstance(value, list):
        return None

    anchors = []
    for item in value:
        if not isinstance(item, dict):
            continue
        anchor_id = _int(item.get('id'))
        coords = [_float(item.get(axis)) for axis in ('x', 'y', 'z')]
        if anchor_id is None or any(c is None for c in coords):
            continue
        anchors.append(DynamicAnchor(anchor_id, *coords))
    return anchors
