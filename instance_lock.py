"""
Instance Lock - Keeps one Clast process (and so one session) per device.

Two processes driving the same persisted timer and progress state would
overwrite each other, so the front end takes an OS-level file lock on
the user data directory before touching them:
- Unix (macOS/Linux): fcntl.flock()
- Windows: msvcrt.locking()

The lock is released by the OS when the process exits, even on crashes.
"""

import os
import sys
import logging
from pathlib import Path
from typing import IO, Optional

import config

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".clast_instance.lock"


class InstanceLock:
    """
    Cross-platform exclusive lock file holding the owner's PID.

    Usage:
        with InstanceLock() as lock:
            if not lock.is_acquired:
                sys.exit(1)
            ...
    """

    def __init__(self, lock_file: Optional[Path] = None) -> None:
        """
        Args:
            lock_file: Path to lock file (default: USER_DATA_DIR/.clast_instance.lock)
        """
        self.lock_file = lock_file or (config.USER_DATA_DIR / LOCK_FILE_NAME)
        self._handle: Optional[IO[str]] = None

    @property
    def is_acquired(self) -> bool:
        return self._handle is not None

    def acquire(self) -> bool:
        """
        Try to take the lock without waiting.

        Returns:
            True if this process now holds the lock.
        """
        if self._handle is not None:
            return True

        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_file, 'a+')
        try:
            if sys.platform == 'win32':
                import msvcrt
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
            else:
                import fcntl
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            handle.close()
            logger.info("Another Clast instance holds the lock")
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        logger.debug(f"Instance lock acquired: {self.lock_file}")
        return True

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            if sys.platform == 'win32':
                import msvcrt
                self._handle.seek(0)
                msvcrt.locking(self._handle.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                import fcntl
                fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        except OSError as e:
            logger.warning(f"Failed to release instance lock: {e}")
        finally:
            self._handle.close()
            self._handle = None

    def existing_pid(self) -> Optional[int]:
        """PID written by the current holder, if readable."""
        try:
            content = self.lock_file.read_text().strip()
            return int(content) if content else None
        except (OSError, ValueError):
            return None

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
