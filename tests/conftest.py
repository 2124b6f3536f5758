"""
Shared fixtures for usage log tests.
"""

import io
import json
from datetime import datetime, timezone

import pytest

from agent_statusline.core.pricing import ModelPricing, PricingTable
from agent_statusline.core.scanner import CandidateFile

NOW = datetime(2025, 11, 29, 12, 0, 0, tzinfo=timezone.utc)


def make_entry(
    msg_id="msg1",
    req_id="req1",
    timestamp="2025-11-29T10:00:00Z",
    entry_type="assistant",
    model="claude-sonnet-4-5",
    input_tokens=1000,
    output_tokens=500,
    cache_creation=0,
    cache_read=0,
):
    """Build one usage log entry as written by the agent."""
    return {
        "timestamp": timestamp,
        "type": entry_type,
        "message": {
            "id": msg_id,
            "model": model,
            "usage": {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_creation_input_tokens": cache_creation,
                "cache_read_input_tokens": cache_read,
            },
        },
        "requestId": req_id,
    }


def make_line(**kwargs) -> bytes:
    """Encode an entry as one newline-terminated log line."""
    return json.dumps(make_entry(**kwargs)).encode("utf-8") + b"\n"


class MemoryLogs:
    """In-memory log directory with an open-call counter."""

    def __init__(self, now=NOW):
        self.files = {}
        self.mtimes = {}
        self.opens = []
        self._tick = int(now.timestamp() * 1_000_000_000)

    def write(self, path, data: bytes, touch=True):
        self.files[path] = data
        if touch or path not in self.mtimes:
            self._tick += 1_000_000
            self.mtimes[path] = self._tick

    def append(self, path, data: bytes, touch=True):
        self.write(path, self.files.get(path, b"") + data, touch=touch)

    def candidates(self):
        return [
            CandidateFile(path=path, mod_time_ns=self.mtimes[path], size=len(data))
            for path, data in self.files.items()
        ]

    def reader(self, path, offset):
        self.opens.append((path, offset))
        fh = io.BytesIO(self.files[path])
        fh.seek(offset)
        return fh


@pytest.fixture
def memory_logs():
    return MemoryLogs()


@pytest.fixture
def sonnet_table():
    return PricingTable(models={"claude-sonnet-4-5": ModelPricing(input=3.0, output=15.0)})
