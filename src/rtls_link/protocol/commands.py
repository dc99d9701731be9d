"""
Command string builders for the device WebSocket protocol (ws://<ip>/ws)
"""

from typing import Optional

# Prefixes of commands whose reply carries a JSON payload
JSON_COMMANDS = (
    "backup-config",
    "list-configs",
    "save-config-as",
    "load-config-named",
    "read-config-named",
    "delete-config",
    "toggle-led2",
    "get-led2-state",
    "firmware-info",
)


def is_json_command(command: str) -> bool:
    return command.startswith(JSON_COMMANDS)


def escape_value(value: str) -> str:
    """Escape a value for embedding inside a quoted ``-data`` argument"""
    return value.replace('\\', '\\\\').replace('"', '\\"')


# ================== Parameter commands ==================

def read_all(group: Optional[str] = None) -> str:
    return f"readall {group}" if group else "readall all"


def read_param(group: str, name: str) -> str:
    return f"read -group {group} -name {name}"


def write_param(group: str, name: str, value: str) -> str:
    return f'write -group {group} -name {name} -data "{escape_value(str(value))}"'


# ================== Config commands ==================

def backup_config() -> str:
    return "backup-config"


def save_config() -> str:
    return "save-config"


def load_config() -> str:
    return "load-config"


def list_configs() -> str:
    return "list-configs"


def save_config_as(name: str) -> str:
    return f"save-config-as -name {name}"


def load_config_named(name: str) -> str:
    return f"load-config-named -name {name}"


def read_config_named(name: str) -> str:
    return f"read-config-named -name {name}"


def delete_config(name: str) -> str:
    return f"delete-config -name {name}"


# ================== Control commands ==================

def toggle_led() -> str:
    return "toggle-led2"


def get_led_state() -> str:
    return "get-led2-state"


def reboot() -> str:
    return "reboot"


def start() -> str:
    return "start"


# ================== System info ==================

def get_version() -> str:
    return "version"


def get_firmware_info() -> str:
    return "firmware-info"
