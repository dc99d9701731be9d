"""
OTA firmware upload over HTTP multipart (POST http://<ip>/update)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import aiohttp

from ..errors import DeviceError, DeviceTimeoutError, OtaFailedError, TransportError, ValidationError
from ..http_helper import OTA_TIMEOUT_SECONDS, create_ota_session
from .batch import BatchItem, BatchResult, dispatch

logger = logging.getLogger(__name__)

DEFAULT_OTA_CONCURRENCY = 4


class OtaProgressHandler(ABC):
    """Receives upload progress for each device"""

    @abstractmethod
    def on_progress(self, ip: str, bytes_sent: int, total_bytes: int) -> None:
        ...

    @abstractmethod
    def on_complete(self, ip: str) -> None:
        ...

    @abstractmethod
    def on_error(self, ip: str, message: str) -> None:
        ...


class NoopProgress(OtaProgressHandler):
    def on_progress(self, ip: str, bytes_sent: int, total_bytes: int) -> None:
        pass

    def on_complete(self, ip: str) -> None:
        pass

    def on_error(self, ip: str, message: str) -> None:
        pass


class LoggingProgress(OtaProgressHandler):
    """Reports progress through the module logger"""

    def on_progress(self, ip: str, bytes_sent: int, total_bytes: int) -> None:
        percent = (bytes_sent * 100 // total_bytes) if total_bytes else 100
        logger.info(f"OTA {ip}: {bytes_sent}/{total_bytes} bytes ({percent}%)")

    def on_complete(self, ip: str) -> None:
        logger.info(f"[OK] OTA {ip}: update complete")

    def on_error(self, ip: str, message: str) -> None:
        logger.error(f"OTA {ip}: {message}")


def load_firmware(path) -> Tuple[bytes, str]:
    """
    Read a firmware image from disk

    Returns (data, filename). Raises ValidationError if the path is missing
    or not a regular file.
    """
    firmware_path = Path(path)
    if not firmware_path.exists():
        raise ValidationError(f"Firmware file not found: {firmware_path}")
    if not firmware_path.is_file():
        raise ValidationError(f"Firmware path is not a file: {firmware_path}")

    try:
        data = firmware_path.read_bytes()
    except OSError as e:
        raise ValidationError(f"Cannot read firmware file {firmware_path}: {e}") from e

    logger.info(f"Loaded firmware {firmware_path.name} ({len(data)} bytes)")
    return data, firmware_path.name


def _build_form(data: bytes, filename: str) -> aiohttp.FormData:
    form = aiohttp.FormData()
    form.add_field('firmware', data, filename=filename, content_type='application/octet-stream')
    return form


async def _post_firmware(session: aiohttp.ClientSession, ip: str, data: bytes, filename: str) -> None:
    url = f"http://{ip}/update"
    try:
        async with session.post(url, data=_build_form(data, filename)) as response:
            if not 200 <= response.status < 300:
                body = await response.text()
                raise OtaFailedError(ip, f"HTTP {response.status}: {body}")
    except asyncio.TimeoutError:
        raise DeviceTimeoutError(ip, f"Firmware upload timed out after {OTA_TIMEOUT_SECONDS}s")
    except aiohttp.ClientError as e:
        raise TransportError(ip, f"HTTP request to {url} failed: {e}") from e


async def upload_firmware(ip: str, data: bytes, filename: str, *,
                          session: Optional[aiohttp.ClientSession] = None) -> None:
    """Upload an already loaded image to one device"""
    if session is not None:
        await _post_firmware(session, ip, data, filename)
        return

    async with create_ota_session() as own_session:
        await _post_firmware(own_session, ip, data, filename)


async def upload_firmware_file(ip: str, path, *, progress: Optional[OtaProgressHandler] = None,
                               session: Optional[aiohttp.ClientSession] = None) -> None:
    """Load ``path`` and upload it to one device, reporting progress"""
    progress = progress or NoopProgress()
    data, filename = load_firmware(path)
    total = len(data)

    progress.on_progress(ip, 0, total)
    try:
        await upload_firmware(ip, data, filename, session=session)
    except DeviceError as e:
        progress.on_error(ip, str(e))
        raise

    progress.on_progress(ip, total, total)
    progress.on_complete(ip)


async def upload_firmware_bulk(ips: List[str], data: bytes, filename: str,
                               concurrency: int = DEFAULT_OTA_CONCURRENCY,
                               progress: Optional[OtaProgressHandler] = None, *,
                               session_factory: Callable[[], aiohttp.ClientSession] = create_ota_session,
                               cancel_event: Optional[asyncio.Event] = None) -> BatchResult:
    """
    Upload one image to many devices over a shared session

    If the session cannot be created every IP fails with the same message,
    no request is made and no progress is reported.
    """
    progress = progress or NoopProgress()
    total = len(data)

    try:
        session = session_factory()
    except Exception as e:
        message = f"HTTP client error: {e}"
        logger.error(f"OTA aborted for {len(ips)} device(s): {message}")
        return BatchResult([BatchItem(ip, error=OtaFailedError(ip, message)) for ip in ips])

    logger.info(f"Starting OTA of {filename} ({total} bytes) to {len(ips)} device(s) "
                f"(concurrency={max(1, concurrency)})")

    async def work(ip: str) -> None:
        progress.on_progress(ip, 0, total)
        try:
            await _post_firmware(session, ip, data, filename)
        except Exception as e:
            progress.on_error(ip, str(e))
            raise
        progress.on_progress(ip, total, total)
        progress.on_complete(ip)

    try:
        return await dispatch(ips, work, concurrency, cancel_event=cancel_event)
    finally:
        await session.close()
