"""
Device discovery, command, bulk and OTA API routes
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
import logging

from ..discovery.service import DiscoveryService
from ..device.batch import BatchSender
from ..device.config_apply import apply_config_bulk
from ..device.connection import parse_command_response, send_command_with_retry
from ..device.ota import LoggingProgress, load_firmware, upload_firmware_bulk
from ..errors import (CommandFailedError, DeviceError, DeviceTimeoutError,
                      ValidationError)
from ..health import calculate_device_health
from ..protocol.config_params import (DeviceConfig, LocationData, config_to_params,
                                      location_to_params, validate_config)

logger = logging.getLogger(__name__)


# Request models
class DiscoverRequest(BaseModel):
    duration: float = Field(5.0, gt=0, le=60)
    port: Optional[int] = Field(None, ge=0, le=65535)


class CommandRequest(BaseModel):
    command: str = Field(..., min_length=1)
    timeout: Optional[float] = Field(None, gt=0)
    retries: Optional[int] = Field(None, ge=0, le=10)


class BulkCommandRequest(BaseModel):
    ips: List[str]
    command: str = Field(..., min_length=1)
    concurrency: Optional[int] = Field(None, ge=1)
    timeout: Optional[float] = Field(None, gt=0)


class BulkConfigRequest(BaseModel):
    ips: List[str]
    config: Optional[Dict[str, Any]] = None
    location: Optional[Dict[str, Any]] = None
    concurrency: Optional[int] = Field(None, ge=1)


class OtaRequest(BaseModel):
    ips: List[str]
    firmware_path: str
    concurrency: Optional[int] = Field(None, ge=1)


def _device_payload(device) -> Dict[str, Any]:
    data = device.to_dict()
    data["health"] = calculate_device_health(device).to_dict()
    return data


def _raise_for_device_error(e: DeviceError):
    if isinstance(e, DeviceTimeoutError):
        raise HTTPException(status_code=504, detail=str(e))
    if isinstance(e, CommandFailedError):
        raise HTTPException(status_code=422, detail=str(e))
    raise HTTPException(status_code=502, detail=str(e))


def create_device_routes(server):
    """Create device and bulk operation routes bound to a LinkServer"""
    router = APIRouter(prefix="/api", tags=["devices"])
    config = server.config

    @router.get("/devices")
    async def list_devices():
        """Devices currently seen by the discovery watch"""
        devices = server.devices()
        return {
            "count": len(devices),
            "devices": [_device_payload(d) for d in devices]
        }

    @router.get("/devices/{ip}")
    async def get_device(ip: str):
        device = server.get_device(ip)
        if device is None:
            raise HTTPException(status_code=404, detail=f"Device {ip} not found")
        return _device_payload(device)

    @router.post("/devices/discover")
    async def discover_devices(request: DiscoverRequest):
        """Run a one-off snapshot discovery"""
        network = config['network']
        port = request.port if request.port is not None else network['discovery_port']
        try:
            devices = await DiscoveryService.discover_once(
                port, request.duration,
                bind_address=network['bind_address'],
                reuse_port=network['reuse_port'],
            )
        except OSError as e:
            logger.error(f"Snapshot discovery on port {port} failed: {e}")
            raise HTTPException(status_code=409, detail=f"Cannot bind discovery port {port}: {e}")

        return {
            "count": len(devices),
            "devices": [_device_payload(d) for d in devices]
        }

    @router.post("/devices/{ip}/command")
    async def send_device_command(ip: str, request: CommandRequest):
        commands_cfg = config['commands']
        timeout = request.timeout or commands_cfg['timeout_seconds']
        retries = request.retries if request.retries is not None else commands_cfg['max_retries']

        try:
            raw = await send_command_with_retry(ip, request.command, timeout, retries)
            parsed = parse_command_response(request.command, raw, ip)
        except DeviceError as e:
            logger.warning(f"Command '{request.command}' to {ip} failed: {e}")
            _raise_for_device_error(e)

        return {"ip": ip, "command": request.command, "response": parsed.raw, "json": parsed.json}

    @router.post("/bulk/command")
    async def bulk_command(request: BulkCommandRequest):
        sender = BatchSender(
            timeout=request.timeout or config['commands']['timeout_seconds'],
            concurrency=request.concurrency or config['bulk']['concurrency'],
            max_retries=config['commands']['max_retries'],
        )
        result = await sender.send_to_all(request.ips, request.command)
        return result.to_dict()

    @router.post("/bulk/config")
    async def bulk_config(request: BulkConfigRequest):
        """Apply a stored configuration or location preset to many devices"""
        if (request.config is None) == (request.location is None):
            raise HTTPException(status_code=400, detail="Provide exactly one of 'config' or 'location'")

        try:
            if request.config is not None:
                device_config = DeviceConfig.from_dict(request.config)
                problems = validate_config(device_config)
                if problems:
                    raise HTTPException(status_code=400, detail="; ".join(problems))
                params = config_to_params(device_config)
            else:
                params = location_to_params(LocationData.from_dict(request.location))
        except (KeyError, TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid configuration: {e}")

        result = await apply_config_bulk(
            request.ips, params,
            concurrency=request.concurrency or config['bulk']['concurrency'],
            timeout=config['commands']['timeout_seconds'],
        )
        return result.to_dict()

    @router.post("/ota")
    async def ota_update(request: OtaRequest):
        """Upload a server-local firmware image to many devices"""
        try:
            data, filename = load_firmware(request.firmware_path)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))

        result = await upload_firmware_bulk(
            request.ips, data, filename,
            concurrency=request.concurrency or config['ota']['concurrency'],
            progress=LoggingProgress(),
        )
        return result.to_dict()

    # ================== Device logs ==================

    @router.post("/logs/{ip}/start")
    async def start_log_stream(ip: str):
        server.log_receiver.start_stream(ip)
        return {"ip": ip, "streaming": True}

    @router.post("/logs/{ip}/stop")
    async def stop_log_stream(ip: str):
        server.log_receiver.stop_stream(ip)
        return {"ip": ip, "streaming": False}

    @router.get("/logs")
    async def recent_logs(ip: Optional[str] = None, limit: int = 100):
        receiver = server.log_receiver
        records = receiver.recent_logs(ip, limit)
        return {
            "active_streams": sorted(receiver.active_streams),
            "count": len(records),
            "logs": [r.to_dict() for r in records]
        }

    return router
