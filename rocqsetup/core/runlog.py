"""
Per-run logging for installation runs.

Each run writes a timestamped file under ``~/.rocq-setup/logs`` and keeps an
in-memory copy of the same records, so a front end can show the log while the
worker thread is still producing it.

Usage:
    from rocqsetup.core.runlog import RunLog

    with RunLog(logs_dir) as run_log:
        pipeline.run()
        print(run_log.path, run_log.lines()[-5:])
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rocqsetup.core.directory import get_state_dir

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "rocqsetup"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class BufferHandler(logging.Handler):
    """Logging handler that keeps formatted records in a list."""

    def __init__(self, level=logging.NOTSET):
        super().__init__(level)
        self._lines: List[str] = []
        self._buffer_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._buffer_lock:
            self._lines.append(message)

    def lines(self) -> List[str]:
        """Snapshot of the buffered lines."""
        with self._buffer_lock:
            return list(self._lines)


class RunLog:
    """
    File plus memory log for a single installation run.

    Attributes:
        path: Log file path (``rocq-setup-YYYYmmdd-HHMMSS.log``), set by start()
    """

    def __init__(
        self,
        logs_dir: Optional[Path] = None,
        level: int = logging.DEBUG,
        now: Optional[datetime] = None,
    ):
        self.logs_dir = Path(logs_dir) if logs_dir else get_state_dir() / "logs"
        self.level = level
        self._now = now
        self.path: Optional[Path] = None
        self._file_handler: Optional[logging.FileHandler] = None
        self._buffer = BufferHandler()
        self._previous_level: Optional[int] = None

    def start(self) -> Path:
        """Create the log file and attach both handlers to the package logger."""
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        stamp = (self._now or datetime.now()).strftime("%Y%m%d-%H%M%S")
        self.path = self.logs_dir / f"rocq-setup-{stamp}.log"

        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        self._file_handler = logging.FileHandler(self.path, encoding="utf-8")
        self._file_handler.setFormatter(formatter)
        self._file_handler.setLevel(self.level)
        self._buffer.setFormatter(formatter)
        self._buffer.setLevel(self.level)

        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        self._previous_level = package_logger.level
        if package_logger.getEffectiveLevel() > self.level:
            package_logger.setLevel(self.level)
        package_logger.addHandler(self._file_handler)
        package_logger.addHandler(self._buffer)

        logger.info(f"Logging to {self.path}")
        return self.path

    def lines(self) -> List[str]:
        return self._buffer.lines()

    def close(self) -> None:
        """Detach the handlers and close the file."""
        package_logger = logging.getLogger(ROOT_LOGGER_NAME)
        package_logger.removeHandler(self._buffer)
        if self._file_handler is not None:
            package_logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None
        if self._previous_level is not None:
            package_logger.setLevel(self._previous_level)
            self._previous_level = None

    def __enter__(self) -> "RunLog":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            logger.error(f"Run aborted: {exc}")
        self.close()


__all__ = ["BufferHandler", "RunLog", "ROOT_LOGGER_NAME"]
