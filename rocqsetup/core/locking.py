"""
Run locking for rocq-setup.

Only one installation run may be active per user at a time. RunLock combines
an in-process threading.Lock (a second start from the same process) with a
cross-process ``filelock.FileLock`` (a second rocq-setup process). Neither
waits: a busy lock is reported immediately as RunInProgressError.

Usage:
    from rocqsetup.core.locking import RunLock

    lock = RunLock(lock_dir)
    with lock.hold():
        pipeline.run()
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout as LockTimeout

from rocqsetup.core.directory import get_state_dir
from rocqsetup.core.exceptions import RunInProgressError

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "install.lock"


class RunLock:
    """
    Non-blocking, process- and thread-exclusive installation lock.

    Attributes:
        lock_path: Path of the lock file
    """

    def __init__(self, lock_dir: Optional[Path] = None):
        if lock_dir is None:
            lock_dir = get_state_dir() / "lock"

        self.lock_dir = Path(lock_dir)
        self.lock_path = self.lock_dir / LOCK_FILE_NAME
        self._thread_lock = threading.Lock()
        self._file_lock: Optional[FileLock] = None

    def acquire(self) -> None:
        """
        Acquire the run lock without waiting.

        Raises:
            RunInProgressError: If another run holds the lock
        """
        if not self._thread_lock.acquire(blocking=False):
            raise RunInProgressError("An installation is already running")

        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
            # acquired by start(), released by the worker thread
            file_lock = FileLock(str(self.lock_path), timeout=0, thread_local=False)
            file_lock.acquire()
        except LockTimeout as e:
            self._thread_lock.release()
            logger.error(f"Could not acquire run lock: {self.lock_path}")
            raise RunInProgressError(
                "An installation is already running in another rocq-setup process"
            ) from e
        except BaseException:
            self._thread_lock.release()
            raise

        self._file_lock = file_lock
        logger.debug(f"Acquired run lock: {self.lock_path}")

    def release(self) -> None:
        """Release the run lock (no-op when not held)."""
        if self._file_lock is not None:
            self._file_lock.release()
            self._file_lock = None
            logger.debug(f"Released run lock: {self.lock_path}")
        if self._thread_lock.locked():
            self._thread_lock.release()

    @property
    def held(self) -> bool:
        return self._thread_lock.locked()

    @contextmanager
    def hold(self):
        """
        Hold the run lock for the duration of the block.

        Raises:
            RunInProgressError: If another run holds the lock
        """
        self.acquire()
        try:
            yield
        finally:
            self.release()


__all__ = ["RunLock", "LOCK_FILE_NAME"]
