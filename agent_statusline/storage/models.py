"""
Data models for storage layer.

Defines the usage events read from logs and the durable cache snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Set

from agent_statusline.core.token_counter import TokenUsage


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one billable assistant message.

    Decoded from a single log line and discarded once folded into the
    day buckets; events are never persisted themselves.
    """
    timestamp: datetime
    role: str
    model: str
    usage: TokenUsage
    message_id: str = ""
    request_id: str = ""

    @property
    def dedup_key(self) -> str:
        """Message id and request id joined with a colon."""
        return f"{self.message_id}:{self.request_id}"


@dataclass(frozen=True)
class FileScanState:
    """Processing state of a single log file."""
    mod_time_ns: int
    size: int
    offset: int  # byte offset where processing stopped

    def __post_init__(self):
        """Validate offset never runs past the recorded size."""
        if self.size < 0 or self.offset < 0:
            raise ValueError("size and offset cannot be negative")
        if self.offset > self.size:
            raise ValueError("offset cannot exceed size")


@dataclass
class CacheSnapshot:
    """Day buckets, per-file scan state and the dedup set, persisted together."""
    day_costs: Dict[str, float] = field(default_factory=dict)
    file_state: Dict[str, FileScanState] = field(default_factory=dict)
    processed_messages: Set[str] = field(default_factory=set)
