"""
Device operations: command channel, batch dispatch, config apply and OTA
"""

from .connection import (DeviceConnection, send_command, send_command_parsed,
                         send_commands_parsed, send_command_with_retry)
from .batch import BatchItem, BatchResult, BatchSender, dispatch
from .config_apply import apply_config, apply_config_bulk
from .ota import (LoggingProgress, NoopProgress, OtaProgressHandler, load_firmware,
                  upload_firmware, upload_firmware_bulk, upload_firmware_file)

__all__ = ['DeviceConnection', 'send_command', 'send_command_parsed', 'send_commands_parsed',
           'send_command_with_retry', 'BatchItem', 'BatchResult', 'BatchSender', 'dispatch',
           'apply_config', 'apply_config_bulk', 'LoggingProgress', 'NoopProgress',
           'OtaProgressHandler', 'load_firmware', 'upload_firmware', 'upload_firmware_bulk',
           'upload_firmware_file']
