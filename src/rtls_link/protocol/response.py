"""
Device reply handling: JSON extraction, error classification, readall parsing

Replies are free text. JSON payloads are often prefixed with a status line
such as "OK\\n{...}", so extraction starts at the first '{' or '['.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from ..errors import InvalidResponseError

ERROR_MARKER = re.compile(r"error:", re.IGNORECASE)

# Substrings that mark a plain-text reply as a failure, unless "success" also appears
ERROR_KEYWORDS = ("error", "fail", "invalid", "not found")


@dataclass
class DeviceCommandResponse:
    """Raw reply text, plus the parsed payload for JSON-class commands"""
    raw: str
    json: Optional[Any] = None


def find_json_start(response: str) -> Optional[int]:
    """Earliest index of '{' or '[', None if neither appears"""
    positions = [pos for pos in (response.find('{'), response.find('[')) if pos >= 0]
    return min(positions) if positions else None


def parse_json_response(response: str, ip: str) -> Any:
    """
    Parse the JSON payload of a reply

    Raises:
        InvalidResponseError: no JSON start found, or the remainder does not parse
    """
    start = find_json_start(response)
    if start is None:
        raise InvalidResponseError(ip, "No JSON found in response")

    try:
        return json.loads(response[start:])
    except json.JSONDecodeError as e:
        raise InvalidResponseError(ip, f"Failed to parse JSON: {e}") from e


def is_error_response(response: str) -> Optional[str]:
    """
    Classify a reply, returning the failure message or None on success

    Rules, first match wins:
      1. "error:" anywhere (any case): the text after the marker
      2. an error keyword without "success": the whole trimmed reply
      3. embedded JSON object with success=false or an "error" key
    """
    marker = ERROR_MARKER.search(response)
    if marker is not None:
        return response[marker.end():].strip()

    lower = response.lower()

    if any(keyword in lower for keyword in ERROR_KEYWORDS) and "success" not in lower:
        return response.strip()

    start = find_json_start(response)
    if start is None:
        return None

    try:
        payload = json.loads(response[start:])
    except json.JSONDecodeError:
        return None

    if not isinstance(payload, dict):
        return None

    if payload.get("success") is False:
        for key in ("message", "error"):
            if key in payload:
                return _message_text(payload[key])
        return "Command failed"

    if "error" in payload:
        return _message_text(payload["error"])

    return None


def _message_text(value: Any) -> str:
    return value if isinstance(value, str) else "Unknown error"


def parse_readall_response(response: str) -> List[Tuple[str, str, str]]:
    """
    Parse ``readall`` output into (group, name, value) triples

        [wifi]
        mode=1
        ssidST=MyNet

    Lines before the first group header are ignored.
    """
    params = []
    group = ""

    for line in response.splitlines():
        line = line.strip()
        if not line:
            continue

        if line.startswith('[') and line.endswith(']'):
            group = line[1:-1]
            continue

        if '=' in line and group:
            name, value = line.split('=', 1)
            params.append((group, name.strip(), value.strip()))

    return params
