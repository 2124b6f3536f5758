"""
Cross-process advisory locking for the cost cache.

Two implementations share one interface: flock on POSIX, lock-file
presence where flock is unavailable.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Union

log = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 10
DEFAULT_BACKOFF_SECONDS = 0.05
STALE_LOCK_SECONDS = 30.0


class CacheLock(ABC):
    """Best-effort exclusive lock on a lock file."""

    def __init__(self, path: Union[str, Path], sleep: Callable[[float], None] = time.sleep):
        self.path = Path(path)
        self._sleep = sleep
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def try_acquire(self, attempts: int = DEFAULT_ATTEMPTS, backoff: float = DEFAULT_BACKOFF_SECONDS) -> bool:
        """Try to take the lock, sleeping `backoff` seconds between attempts.

        Returns:
            True if the lock is now held, False if every attempt failed
        """
        for attempt in range(attempts):
            try:
                if self._try_once():
                    return True
            except OSError as e:
                log.debug("Lock attempt %d on %s failed: %s", attempt + 1, self.path, e)
            if attempt < attempts - 1:
                self._sleep(backoff)
        return False

    @abstractmethod
    def release(self) -> None:
        """Give the lock back; a no-op when not held."""

    @abstractmethod
    def _try_once(self) -> bool:
        """Make one non-blocking attempt."""


class FlockLock(CacheLock):
    """Lock via fcntl.flock on a persistent lock file."""

    def _try_once(self) -> bool:
        import fcntl

        if self._fd is None:
            self._fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
        try:
            fcntl.flock(self._fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        except OSError:
            self._close()
            raise
        return True

    def try_acquire(self, attempts: int = DEFAULT_ATTEMPTS, backoff: float = DEFAULT_BACKOFF_SECONDS) -> bool:
        acquired = super().try_acquire(attempts, backoff)
        if not acquired:
            self._close()
        return acquired

    def release(self) -> None:
        if self._fd is None:
            return
        import fcntl

        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        except OSError as e:
            log.debug("Failed to unlock %s: %s", self.path, e)
        finally:
            self._close()

    def _close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None


class ExclusiveCreateLock(CacheLock):
    """Lock via exclusive creation of the lock file; removed on release.

    A lock file older than STALE_LOCK_SECONDS is treated as abandoned.
    """

    def __init__(
        self,
        path: Union[str, Path],
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(path, sleep)
        self._clock = clock

    def _try_once(self) -> bool:
        if self._create():
            return True

        try:
            age = self._clock() - os.stat(self.path).st_mtime
        except FileNotFoundError:
            return self._create()
        if age <= STALE_LOCK_SECONDS:
            return False

        log.debug("Removing stale lock file %s (age %.0fs)", self.path, age)
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        return self._create()

    def _create(self) -> bool:
        try:
            self._fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_RDWR, 0o644)
        except FileExistsError:
            return False
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        os.close(self._fd)
        self._fd = None
        try:
            os.remove(self.path)
        except OSError as e:
            log.debug("Failed to remove lock file %s: %s", self.path, e)


def make_lock(path: Union[str, Path]) -> CacheLock:
    """Pick the lock implementation for the current platform."""
    if os.name == "posix":
        return FlockLock(path)
    return ExclusiveCreateLock(path)
