"""Single-instance lock for connection attempts."""

from __future__ import annotations

import fcntl
import os
from pathlib import Path
from typing import IO, Optional

from .errors import AlreadyRunningError


class InstanceLock:
    """Exclusive, non-blocking ``flock`` held for the length of a connect.

    The kernel drops the lock when the holder exits, so a crashed run
    never leaves a stale lock behind.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._handle: Optional[IO[str]] = None

    def acquire(self) -> None:
        handle = self.path.open("a+", encoding="utf-8")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            handle.seek(0)
            holder = handle.read().strip() or "unknown"
            handle.close()
            raise AlreadyRunningError(f"Another connection attempt is in progress (pid {holder}).")
        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None

    def locked(self) -> bool:
        return self._handle is not None

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()
