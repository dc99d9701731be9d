"""
Device protocol: command builders, reply handling and config flattening
"""

from .response import (DeviceCommandResponse, find_json_start, is_error_response,
                       parse_json_response, parse_readall_response)
from .config_params import DeviceConfig, LocationData, config_to_params, location_to_params

__all__ = ['DeviceCommandResponse', 'find_json_start', 'is_error_response', 'parse_json_response',
           'parse_readall_response', 'DeviceConfig', 'LocationData', 'config_to_params',
           'location_to_params']
