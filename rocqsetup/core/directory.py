"""
Directory structure management for rocq-setup.

State Directory (~/.rocq-setup/ or %USERPROFILE%\\.rocq-setup\\):
    - config.yaml  : Optional user settings
    - downloads/   : Cached installer artifacts, reused when the checksum matches
    - logs/        : One timestamped log file per installation run
    - lock/        : Cross-process run lock
"""

import os
from pathlib import Path
from typing import Dict, Optional

from rocqsetup.core.exceptions import ConfigError

STATE_DIR_NAME = ".rocq-setup"


def get_state_dir(home: Optional[Path] = None) -> Path:
    """
    Get the per-user state directory path.

    Args:
        home: Home directory override (defaults to the current user's home)

    Example:
        >>> get_state_dir(Path('/home/user'))
        PosixPath('/home/user/.rocq-setup')
    """
    if home is not None:
        return Path(home) / STATE_DIR_NAME

    if os.name == "nt":
        user_profile = os.environ.get("USERPROFILE")
        if not user_profile:
            raise ConfigError(
                "USERPROFILE environment variable is not set. "
                "Cannot determine state directory."
            )
        return Path(user_profile) / STATE_DIR_NAME
    return Path.home() / STATE_DIR_NAME


def ensure_state_structure(home: Optional[Path] = None) -> Dict[str, Path]:
    """
    Create the state directory and its subdirectories.

    Returns:
        Mapping of 'root', 'downloads', 'logs' and 'lock' to their paths.
    """
    root = get_state_dir(home)
    dirs = {
        "root": root,
        "downloads": root / "downloads",
        "logs": root / "logs",
        "lock": root / "lock",
    }
    for path in dirs.values():
        path.mkdir(parents=True, exist_ok=True)
    return dirs


__all__ = ["STATE_DIR_NAME", "get_state_dir", "ensure_state_structure"]
