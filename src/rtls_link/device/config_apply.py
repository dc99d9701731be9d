"""
Apply a flattened configuration to devices

Each device gets one persistent connection: every parameter is written in
order, then the configuration is saved to flash.
"""

import asyncio
import logging
from typing import List, Optional

from ..protocol.commands import save_config, write_param
from ..protocol.config_params import Param
from .batch import DEFAULT_CONCURRENCY, BatchResult, dispatch
from .connection import DEFAULT_COMMAND_TIMEOUT, DeviceConnection

logger = logging.getLogger(__name__)


def build_apply_commands(params: List[Param], save: bool = True) -> List[str]:
    commands = [write_param(group, name, value) for group, name, value in params]
    if save:
        commands.append(save_config())
    return commands


async def apply_config(ip: str, params: List[Param], timeout: float = DEFAULT_COMMAND_TIMEOUT,
                       *, save: bool = True, session=None) -> int:
    """
    Write ``params`` to one device, then save-config

    Stops at the first failing write. Returns the number of parameters written.
    """
    commands = build_apply_commands(params, save)
    async with await DeviceConnection.connect(ip, timeout, session=session) as conn:
        await conn.send_batch(commands)

    logger.info(f"[OK] Applied {len(params)} parameter(s) to {ip}")
    return len(params)


async def apply_config_bulk(ips: List[str], params: List[Param],
                            concurrency: int = DEFAULT_CONCURRENCY,
                            cancel_event: Optional[asyncio.Event] = None,
                            timeout: float = DEFAULT_COMMAND_TIMEOUT) -> BatchResult:
    logger.info(f"Applying {len(params)} parameter(s) to {len(ips)} device(s)")

    async def work(ip: str) -> str:
        count = await apply_config(ip, params, timeout)
        return f"Applied {count} parameters"

    return await dispatch(ips, work, concurrency, cancel_event=cancel_event)
