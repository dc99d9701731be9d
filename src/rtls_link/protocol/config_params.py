"""
Device configuration model and flattening into (group, name, value) parameters

Devices are configured write-only: a stored configuration is turned into an
ordered list of parameters, each sent as one ``write`` command.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

Param = Tuple[str, str, str]

MAX_ANCHORS = 6


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


def _from_camel_dict(cls, data: Dict[str, Any], **overrides):
    """Build a dataclass from a camelCase mapping, ignoring unknown keys"""
    kwargs = {}
    for f in fields(cls):
        key = f.metadata.get('key', _camel(f.name))
        if key in data and data[key] is not None:
            kwargs[f.name] = data[key]
    kwargs.update(overrides)
    return cls(**kwargs)


@dataclass
class AnchorConfig:
    id: str
    x: float
    y: float
    z: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnchorConfig":
        return cls(id=str(data['id']), x=data['x'], y=data['y'], z=data['z'])


@dataclass
class WifiConfig:
    mode: int = 0
    ssid_ap: Optional[str] = field(default=None, metadata={'key': 'ssidAP'})
    pswd_ap: Optional[str] = field(default=None, metadata={'key': 'pswdAP'})
    ssid_st: Optional[str] = field(default=None, metadata={'key': 'ssidST'})
    pswd_st: Optional[str] = field(default=None, metadata={'key': 'pswdST'})
    gcs_ip: Optional[str] = None
    udp_port: Optional[int] = None
    enable_web_server: Optional[int] = None
    enable_discovery: Optional[int] = None
    discovery_port: Optional[int] = None
    log_udp_port: Optional[int] = None
    log_serial_enabled: Optional[int] = None
    log_udp_enabled: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WifiConfig":
        return _from_camel_dict(cls, data)


@dataclass
class UwbConfig:
    mode: int = 0
    # Per-device identity, never written by config_to_params
    dev_short_addr: str = ""
    anchor_count: Optional[int] = None
    anchors: Optional[List[AnchorConfig]] = None
    origin_lat: Optional[float] = None
    origin_lon: Optional[float] = None
    origin_alt: Optional[float] = None
    mavlink_target_system_id: Optional[int] = None
    rotation_degrees: Optional[float] = None
    z_calc_mode: Optional[int] = None
    # Radio settings
    channel: Optional[int] = None
    dw_mode: Optional[int] = None
    tx_power_level: Optional[int] = None
    smart_power_enable: Optional[int] = None
    # TDoA schedule and dynamic anchor positioning
    tdoa_slot_count: Optional[int] = None
    tdoa_slot_duration_us: Optional[int] = None
    dynamic_anchor_pos_enabled: Optional[int] = None
    anchor_layout: Optional[int] = None
    anchor_height: Optional[float] = None
    anchor_pos_locked: Optional[int] = None
    distance_avg_samples: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UwbConfig":
        anchors = data.get('anchors')
        overrides = {}
        if anchors is not None:
            overrides['anchors'] = [AnchorConfig.from_dict(a) for a in anchors]
        if 'devShortAddr' in data:
            overrides['dev_short_addr'] = str(data['devShortAddr'])
        return _from_camel_dict(cls, data, **overrides)


@dataclass
class AppConfig:
    led2_pin: Optional[int] = None
    led2_state: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        return _from_camel_dict(cls, data)


@dataclass
class DeviceConfig:
    wifi: WifiConfig = field(default_factory=WifiConfig)
    uwb: UwbConfig = field(default_factory=UwbConfig)
    app: AppConfig = field(default_factory=AppConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceConfig":
        return cls(
            wifi=WifiConfig.from_dict(data.get('wifi') or {}),
            uwb=UwbConfig.from_dict(data.get('uwb') or {}),
            app=AppConfig.from_dict(data.get('app') or {}),
        )


@dataclass
class LocationData:
    """Location-only preset: origin, rotation and anchor layout"""
    origin_lat: float
    origin_lon: float
    origin_alt: float
    rotation: float = 0.0
    anchors: List[AnchorConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocationData":
        origin = data.get('origin', {})
        return cls(
            origin_lat=origin['lat'],
            origin_lon=origin['lon'],
            origin_alt=origin['alt'],
            rotation=data.get('rotation', 0.0),
            anchors=[AnchorConfig.from_dict(a) for a in data.get('anchors', [])],
        )


def format_value(value: Any) -> str:
    """Render a value the way the firmware parses it"""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _anchor_params(anchors: List[AnchorConfig]) -> List[Param]:
    params = [("uwb", "anchorCount", str(len(anchors)))]
    # Firmware slots are 1-indexed
    for idx, anchor in enumerate(anchors, start=1):
        params.append(("uwb", f"devId{idx}", anchor.id))
        params.append(("uwb", f"x{idx}", format_value(anchor.x)))
        params.append(("uwb", f"y{idx}", format_value(anchor.y)))
        params.append(("uwb", f"z{idx}", format_value(anchor.z)))
    return params


def _optional_params(group: str, section, names: List[str]) -> List[Param]:
    params = []
    for name in names:
        value = getattr(section, name)
        if value is not None:
            key = section.__dataclass_fields__[name].metadata.get('key', _camel(name))
            params.append((group, key, format_value(value)))
    return params


WIFI_OPTIONAL = [
    'ssid_ap', 'pswd_ap', 'ssid_st', 'pswd_st', 'gcs_ip', 'udp_port',
    'enable_web_server', 'enable_discovery', 'discovery_port',
    'log_udp_port', 'log_serial_enabled', 'log_udp_enabled',
]

UWB_OPTIONAL = [
    'origin_lat', 'origin_lon', 'origin_alt', 'mavlink_target_system_id',
    'rotation_degrees', 'z_calc_mode', 'channel', 'dw_mode', 'tx_power_level',
    'smart_power_enable', 'tdoa_slot_count', 'tdoa_slot_duration_us',
    'dynamic_anchor_pos_enabled', 'anchor_layout', 'anchor_height',
    'anchor_pos_locked', 'distance_avg_samples',
]

APP_OPTIONAL = ['led2_pin', 'led2_state']


def config_to_params(config: DeviceConfig) -> List[Param]:
    """
    Flatten a DeviceConfig into ordered write parameters

    devShortAddr is never emitted so that applying a shared configuration
    keeps each device's UWB identity.
    """
    params = [("wifi", "mode", format_value(config.wifi.mode))]
    params.extend(_optional_params("wifi", config.wifi, WIFI_OPTIONAL))

    params.append(("uwb", "mode", format_value(config.uwb.mode)))
    if config.uwb.anchors:
        params.extend(_anchor_params(config.uwb.anchors))
    elif config.uwb.anchors is None and config.uwb.anchor_count is not None:
        params.append(("uwb", "anchorCount", format_value(config.uwb.anchor_count)))
    params.extend(_optional_params("uwb", config.uwb, UWB_OPTIONAL))

    params.extend(_optional_params("app", config.app, APP_OPTIONAL))
    return params


def location_to_params(location: LocationData) -> List[Param]:
    params = [
        ("uwb", "originLat", format_value(location.origin_lat)),
        ("uwb", "originLon", format_value(location.origin_lon)),
        ("uwb", "originAlt", format_value(location.origin_alt)),
        ("uwb", "rotationDegrees", format_value(location.rotation)),
    ]
    if location.anchors:
        params.extend(_anchor_params(location.anchors))
    return params


def validate_config(config: DeviceConfig) -> List[str]:
    """Return a list of problems, empty when the configuration is usable"""
    errors = []

    if config.wifi.mode == 1 and not config.wifi.ssid_st:
        errors.append("Station mode requires ssidST")

    anchor_count = len(config.uwb.anchors) if config.uwb.anchors else config.uwb.anchor_count
    if anchor_count and anchor_count > MAX_ANCHORS:
        errors.append(f"Maximum {MAX_ANCHORS} anchors supported")

    slots = config.uwb.tdoa_slot_count
    if slots is not None:
        if not isinstance(slots, int) or isinstance(slots, bool):
            errors.append("TDoA slot count must be an integer")
        elif slots != 0 and not 2 <= slots <= 8:
            errors.append("TDoA slot count must be 0 (legacy) or 2-8")

    duration = config.uwb.tdoa_slot_duration_us
    if duration is not None:
        if not isinstance(duration, int) or isinstance(duration, bool):
            errors.append("TDoA slot duration must be an integer")
        elif duration < 0:
            errors.append("TDoA slot duration must be >= 0")

    return errors
