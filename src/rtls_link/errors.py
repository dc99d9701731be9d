"""
Error types for RTLS-Link device operations
"""


class RtlsLinkError(Exception):
    """Base class for all RTLS-Link errors"""


class ConfigError(RtlsLinkError):
    """Invalid or inconsistent configuration file"""


class ValidationError(RtlsLinkError):
    """Caller-side input problem (missing firmware file, bad arguments)

    Fatal to the single operation and never retried.
    """


class HeartbeatDecodeError(RtlsLinkError):
    """Heartbeat datagram is not a JSON object"""

    def __init__(self, ip: str, reason: str):
        self.ip = ip
        self.reason = reason
        super().__init__(f"Invalid heartbeat from {ip}: {reason}")


class DeviceError(RtlsLinkError):
    """Failure of a network operation against a single device

    Attributes:
        ip: Device address the operation targeted
        message: Human readable failure description
    """

    prefix = "Device error"

    def __init__(self, ip: str, message: str):
        self.ip = ip
        self.message = message
        super().__init__(f"{self.prefix} on {ip}: {message}")


class TransportError(DeviceError):
    """Connect, send, receive or HTTP failure"""

    prefix = "Transport error"


class DeviceTimeoutError(DeviceError):
    """Connect or response deadline exceeded (device unreachable or silent)"""

    prefix = "Timeout"


class CommandFailedError(DeviceError):
    """Device replied, but the reply reports a failure"""

    prefix = "Command failed"


class InvalidResponseError(DeviceError):
    """No reply, or a reply that cannot be interpreted"""

    prefix = "Invalid response"


class OtaFailedError(DeviceError):
    """Firmware upload rejected or impossible"""

    prefix = "OTA update failed"


class OperationCancelledError(DeviceError):
    """Bulk work skipped because cancellation was requested before it started"""

    prefix = "Cancelled"
