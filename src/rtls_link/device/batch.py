"""
Bounded-concurrency fan-out of one operation over many devices

Every requested IP gets exactly one result. A failure on one device never
cancels or blocks the others. Results are kept in completion order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import OperationCancelledError
from .connection import DEFAULT_COMMAND_TIMEOUT, send_command_with_retry

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial_failure"
STATUS_FAILURE = "failure"


@dataclass
class BatchItem:
    ip: str
    value: Any = None
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        if isinstance(self.value, str):
            return self.value
        return "OK"


@dataclass
class BatchResult:
    items: List[BatchItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def status(self) -> str:
        if self.failed == 0:
            return STATUS_SUCCESS
        if self.succeeded == 0:
            return STATUS_FAILURE
        return STATUS_PARTIAL

    def sorted_by_ip(self) -> List[BatchItem]:
        return sorted(self.items, key=lambda item: _ip_sort_key(item.ip))

    def get(self, ip: str) -> Optional[BatchItem]:
        for item in self.items:
            if item.ip == ip:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "status": self.status,
            "results": [
                {"ip": item.ip, "success": item.success, "message": item.message}
                for item in self.sorted_by_ip()
            ],
        }


def _ip_sort_key(ip: str):
    # Numeric order for dotted quads, plain string order otherwise
    parts = ip.split('.')
    if len(parts) == 4 and all(part.isdigit() for part in parts):
        return (0, tuple(int(part) for part in parts), ip)
    return (1, (), ip)


async def dispatch(ips: List[str], work: Callable[[str], Awaitable[Any]],
                   concurrency: int = DEFAULT_CONCURRENCY, *,
                   cancel_event: Optional[asyncio.Event] = None) -> BatchResult:
    """
    Run ``work(ip)`` for every IP with at most ``concurrency`` in flight

    When ``cancel_event`` is set, work that has not started yet is recorded
    as OperationCancelledError. Work already running is left to finish.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))
    result = BatchResult()

    async def run_one(ip: str):
        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                result.items.append(BatchItem(ip, error=OperationCancelledError(ip, "Operation cancelled before start")))
                return
            try:
                value = await work(ip)
            except Exception as e:
                logger.debug(f"Batch work failed for {ip}: {e}")
                result.items.append(BatchItem(ip, error=e))
                return
            result.items.append(BatchItem(ip, value=value))

    await asyncio.gather(*(run_one(ip) for ip in ips))

    logger.info(f"Batch complete: {result.succeeded}/{result.total} succeeded ({result.status})")
    return result


class BatchSender:
    """Sends the same command to many devices over one-shot connections"""

    def __init__(self, timeout: float = DEFAULT_COMMAND_TIMEOUT,
                 concurrency: int = DEFAULT_CONCURRENCY, *, max_retries: int = 0):
        self.timeout = timeout
        self.concurrency = max(1, concurrency)
        self.max_retries = max_retries

    async def send_to_all(self, ips: List[str], command: str,
                          cancel_event: Optional[asyncio.Event] = None) -> BatchResult:
        logger.info(f"Sending '{command}' to {len(ips)} device(s) (concurrency={self.concurrency})")

        async def work(ip: str) -> str:
            return await send_command_with_retry(ip, command, self.timeout, self.max_retries)

        return await dispatch(ips, work, self.concurrency, cancel_event=cancel_event)
