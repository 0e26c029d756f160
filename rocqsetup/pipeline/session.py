"""
Single-worker installation session.

An InstallSession runs one pipeline on a background thread while holding the
run lock and a per-run log. Step callbacks are invoked from that thread.

Usage:
    session = InstallSession(RunLock(dirs["lock"]), RunLog(dirs["logs"]))
    session.start(pipeline)
    result = session.wait()
"""

import logging
import threading
from typing import List, Optional

from rocqsetup.core.exceptions import RunInProgressError
from rocqsetup.core.locking import RunLock
from rocqsetup.core.runlog import RunLog
from rocqsetup.pipeline.orchestrator import InstallPipeline, Result

logger = logging.getLogger(__name__)


class InstallSession:
    """
    Runs at most one installation at a time.

    The lock is taken synchronously by start(), so a second start() while a
    run is active raises RunInProgressError before any worker is created.
    """

    def __init__(self, lock: Optional[RunLock] = None, run_log: Optional[RunLog] = None):
        self.lock = lock or RunLock()
        self.run_log = run_log
        self._thread: Optional[threading.Thread] = None
        self._result: Optional[Result] = None
        self._error: Optional[BaseException] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, pipeline: InstallPipeline, existing: Optional[str] = None) -> None:
        """
        Start ``pipeline`` on a worker thread.

        Raises:
            RunInProgressError: If a run is already active
        """
        if self.running:
            raise RunInProgressError("An installation is already running")
        self.lock.acquire()

        self._result = None
        self._error = None
        self._thread = threading.Thread(
            target=self._work,
            args=(pipeline, existing),
            name="rocq-setup-install",
            daemon=True,
        )
        self._thread.start()

    def _work(self, pipeline: InstallPipeline, existing: Optional[str]) -> None:
        try:
            if self.run_log is not None:
                with self.run_log:
                    self._result = pipeline.run(existing)
            else:
                self._result = pipeline.run(existing)
        except BaseException as e:
            self._error = e
        finally:
            self.lock.release()

    def wait(self, timeout: Optional[float] = None) -> Result:
        """
        Wait for the run to finish.

        Returns:
            Result of the run

        Raises:
            Whatever aborted the run; TimeoutError if it is still running
            after ``timeout`` seconds
        """
        if self._thread is None:
            raise RuntimeError("No installation has been started")

        self._thread.join(timeout)
        if self._thread.is_alive():
            raise TimeoutError("Installation still running")

        if self._error is not None:
            raise self._error
        return self._result

    def log_lines(self) -> List[str]:
        """Lines logged so far during the current run."""
        if self.run_log is None:
            return []
        return self.run_log.lines()


__all__ = ["InstallSession"]
