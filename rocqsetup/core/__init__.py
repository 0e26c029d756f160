"""
Core functionality for rocq-setup.

This package contains the foundational modules that other components depend on.
"""

from .exceptions import (
    RocqSetupError,
    ConfigError,
    PrerequisiteError,
    RunInProgressError,
    DownloadError,
    ChecksumError,
    InstallError,
    NotFoundError,
)

from .platform import (
    PlatformInfo,
    detect_platform,
    clear_platform_cache,
)

from .directory import (
    get_state_dir,
    ensure_state_structure,
)

from .download import (
    DownloadProgress,
    download_file,
    verify_checksum,
)

from .locking import RunLock
from .process import CommandResult, CommandRunner
from .runlog import RunLog

__all__ = [
    # Exceptions
    "RocqSetupError",
    "ConfigError",
    "PrerequisiteError",
    "RunInProgressError",
    "DownloadError",
    "ChecksumError",
    "InstallError",
    "NotFoundError",
    # Platform
    "PlatformInfo",
    "detect_platform",
    "clear_platform_cache",
    # Directories
    "get_state_dir",
    "ensure_state_structure",
    # Downloads
    "DownloadProgress",
    "download_file",
    "verify_checksum",
    # Runs
    "RunLock",
    "RunLog",
    "CommandResult",
    "CommandRunner",
]
