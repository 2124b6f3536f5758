"""
Usage log line decoding.

Turns one newline-delimited JSON line into a billable UsageEvent, or None.
Malformed lines are skipped, never raised, so one corrupt line cannot abort a scan.
"""

import json
import logging
import re
from datetime import datetime
from typing import Any, Optional

from .token_counter import TokenUsage
from agent_statusline.storage.models import UsageEvent

log = logging.getLogger(__name__)

BILLABLE_ROLE = "assistant"
EMPTY_DEDUP_KEY = ":"

# fromisoformat before 3.11 only accepts 3 or 6 fractional digits
_FRACTION_RE = re.compile(r"(?<=:\d\d)\.(\d+)")

_USAGE_FIELDS = (
    ("input_tokens", "input_tokens"),
    ("output_tokens", "output_tokens"),
    ("cache_creation_tokens", "cache_creation_input_tokens"),
    ("cache_read_tokens", "cache_read_input_tokens"),
)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC3339 timestamp into an aware datetime.

    Returns None for anything that is not a string with a UTC offset.
    """
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def decode_line(raw: bytes, cutoff: datetime) -> Optional[UsageEvent]:
    """Decode a single log line into a billable usage event.

    Filtering Order:
    1. Line must be a JSON object
    2. Entry type must be "assistant"
    3. Timestamp must parse and not be earlier than the retention cutoff
    4. At least one token counter must be non-zero
    5. Dedup key must not be ":" (both ids empty)

    Args:
        raw: Line bytes, with or without the trailing newline
        cutoff: Aware datetime; older entries are skipped

    Returns:
        UsageEvent, or None when the line is skipped
    """
    try:
        entry = json.loads(raw)
    except (ValueError, UnicodeDecodeError, RecursionError):
        return None
    if not isinstance(entry, dict):
        return None

    if entry.get("type") != BILLABLE_ROLE:
        return None

    timestamp = parse_timestamp(entry.get("timestamp"))
    if timestamp is None or timestamp < cutoff:
        return None

    message = entry.get("message")
    if not isinstance(message, dict):
        return None

    usage = _decode_usage(message.get("usage"))
    if usage is None or usage.is_empty:
        return None

    message_id = _as_str(message.get("id"))
    request_id = _as_str(entry.get("requestId"))
    if message_id is None or request_id is None:
        return None

    event = UsageEvent(
        timestamp=timestamp,
        role=BILLABLE_ROLE,
        model=_as_str(message.get("model")) or "",
        usage=usage,
        message_id=message_id,
        request_id=request_id,
    )
    if event.dedup_key == EMPTY_DEDUP_KEY:
        log.debug("Skipping usage entry without message or request id")
        return None
    return event


def _decode_usage(usage: Any) -> Optional[TokenUsage]:
    if not isinstance(usage, dict):
        return None
    counts = {}
    for attr, key in _USAGE_FIELDS:
        value = usage.get(key, 0)
        if value is None:
            value = 0
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return None
        counts[attr] = value
    return TokenUsage(**counts)


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return None
