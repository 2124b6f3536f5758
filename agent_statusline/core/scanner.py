"""
Incremental log file scanning.

Decides per file whether to skip, resume or restart, and yields only the
bytes that have not been processed yet.

Decision Table:
- no prior state                  -> FRESH, read from byte 0
- mtime and size unchanged        -> SKIP, never opened
- size grew                       -> RESUME at the recorded offset
- size shrank                     -> RESTART from byte 0 (truncated or rewritten)
- same size, mtime changed        -> RESTART from byte 0 (rewritten in place)
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple

from agent_statusline.storage.models import FileScanState

log = logging.getLogger(__name__)

LOG_SUFFIX = ".jsonl"

# (path, offset) -> binary file object positioned at offset
Reader = Callable[[str, int], BinaryIO]


class ScanAction(Enum):
    """What to do with a candidate file this run."""
    FRESH = "fresh"
    SKIP = "skip"
    RESUME = "resume"
    RESTART = "restart"


@dataclass(frozen=True)
class CandidateFile:
    """A log file as observed by the enumerator."""
    path: str
    mod_time_ns: int
    size: int


@dataclass
class ScanResult:
    """Unprocessed lines of one file plus the state to record afterwards."""
    lines: List[bytes]
    state: Optional[FileScanState]  # None when the read was interrupted


def plan_scan(prior: Optional[FileScanState], candidate: CandidateFile) -> Tuple[ScanAction, int]:
    """Choose the scan action and starting byte offset for a file.

    Growth alone is enough to resume; writers may flush later with a stale mtime.
    """
    if prior is None:
        return ScanAction.FRESH, 0

    if prior.mod_time_ns == candidate.mod_time_ns and prior.size == candidate.size:
        return ScanAction.SKIP, prior.offset

    if candidate.size > prior.size:
        return ScanAction.RESUME, prior.offset

    return ScanAction.RESTART, 0


def open_at_offset(path: str, offset: int) -> BinaryIO:
    """Default reader: open in binary mode and seek."""
    fh = open(path, "rb")
    try:
        fh.seek(offset)
    except OSError:
        fh.close()
        raise
    return fh


def read_new_lines(fh: BinaryIO, start: int, limit: int) -> Iterator[Tuple[bytes, int]]:
    """Yield (line, end_offset) for every line ending at or before `limit`.

    A final line without a newline counts when it ends exactly at `limit`.
    A line running past `limit` was written after the stat and is left alone.
    """
    position = start
    for line in fh:
        end = position + len(line)
        if end > limit:
            return
        position = end
        yield line, position
        if position == limit:
            return


def scan_file(
    candidate: CandidateFile,
    prior: Optional[FileScanState],
    reader: Reader = open_at_offset,
) -> Optional[ScanResult]:
    """Collect the unprocessed lines of a log file.

    Args:
        candidate: Current observation of the file
        prior: State recorded by the previous run, if any
        reader: Opens a file positioned at a byte offset

    Returns:
        None when the file is unchanged or cannot be opened, otherwise a
        ScanResult whose state is None if reading failed part way
    """
    action, offset = plan_scan(prior, candidate)
    name = os.path.basename(candidate.path)

    if action == ScanAction.SKIP:
        log.debug("Skipping unchanged file: %s", name)
        return None
    if action == ScanAction.RESUME:
        log.debug(
            "Resuming file %s from offset %d (was %d, now %d bytes)",
            name, offset, prior.size, candidate.size,
        )
    elif action == ScanAction.RESTART:
        if candidate.size < prior.size:
            log.debug("File shrank, reprocessing from start: %s", name)
        else:
            log.debug("Reprocessing modified file: %s", name)

    try:
        fh = reader(candidate.path, offset)
    except OSError as e:
        log.debug("Cannot open %s: %s", name, e)
        return None

    lines: List[bytes] = []
    consumed = offset
    try:
        with fh:
            for line, consumed in read_new_lines(fh, offset, candidate.size):
                lines.append(line)
    except OSError as e:
        log.debug("Read error for %s at offset %d: %s", name, consumed, e)
        return ScanResult(lines=lines, state=None)

    state = FileScanState(
        mod_time_ns=candidate.mod_time_ns,
        size=candidate.size,
        offset=consumed,
    )
    return ScanResult(lines=lines, state=state)


def iter_log_files(root: str) -> Iterator[CandidateFile]:
    """Walk `root` recursively and yield every usage log file.

    Unreadable directories and files that vanish mid-walk are skipped.
    """
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            if not filename.endswith(LOG_SUFFIX):
                continue
            path = os.path.join(dirpath, filename)
            try:
                stat = os.stat(path)
            except OSError:
                continue
            yield CandidateFile(path=path, mod_time_ns=stat.st_mtime_ns, size=stat.st_size)
