"""User settings for rocq-setup.

Installation options come from three layers, later layers winning:
built-in defaults, the optional ``~/.rocq-setup/config.yaml`` file, and
command line flags.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from rocqsetup.core.directory import get_state_dir
from rocqsetup.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "config.yaml"
DEFAULT_WORKSPACE_NAME = "rocq-workspace"
DEFAULT_DOWNLOAD_TIMEOUT = 60.0


@dataclass
class InstallOptions:
    """Options for one installation run."""

    workspace_dir: Path
    with_rocqide: bool = False
    skip_vscode: bool = False
    recreate_switch: bool = False
    force: bool = False
    opam_snapshot: str = ""
    install_dir: Optional[Path] = None
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT
    # None: only reuse what the strategy itself recognises; True: also reuse
    # the first detected installation; False: never skip installation.
    reuse: Optional[bool] = None

    @property
    def editor_integration(self) -> bool:
        """Whether the VSCode steps (extension, settings, open) run."""
        return not self.skip_vscode

    def with_overrides(self, **overrides: Any) -> "InstallOptions":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


# Keys accepted in config.yaml and the type each must have.
_SETTING_TYPES = {
    "workspace_dir": str,
    "with_rocqide": bool,
    "skip_vscode": bool,
    "recreate_switch": bool,
    "force": bool,
    "opam_snapshot": str,
    "install_dir": str,
    "download_timeout": (int, float),
}


def default_options(home: Optional[Path] = None) -> InstallOptions:
    home = Path(home) if home else Path.home()
    return InstallOptions(workspace_dir=home / DEFAULT_WORKSPACE_NAME)


def get_settings_path(home: Optional[Path] = None) -> Path:
    return get_state_dir(home) / SETTINGS_FILE_NAME


def load_settings(
    path: Optional[Path] = None, home: Optional[Path] = None
) -> InstallOptions:
    """
    Load installation options from the settings file.

    A missing file yields the defaults.

    Args:
        path: Settings file (default: ``~/.rocq-setup/config.yaml``)
        home: Home directory used for defaults

    Returns:
        InstallOptions

    Raises:
        ConfigError: If the file is not valid YAML, not a mapping, contains
            unknown keys, or a value has the wrong type
    """
    options = default_options(home)
    path = Path(path) if path else get_settings_path(home)

    if not path.exists():
        logger.debug(f"No settings file at {path}, using defaults")
        return options

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {path}: {e}")

    if data is None:
        return options

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")

    return _apply_settings(options, data, path)


def _apply_settings(
    options: InstallOptions, data: Dict[str, Any], path: Path
) -> InstallOptions:
    unknown = sorted(set(data) - set(_SETTING_TYPES))
    if unknown:
        raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        expected = _SETTING_TYPES[key]
        # bool is an int subclass; keep flags and numbers apart
        if isinstance(value, bool) and expected is not bool:
            raise ConfigError(f"Setting {key} in {path} has the wrong type")
        if not isinstance(value, expected):
            raise ConfigError(f"Setting {key} in {path} has the wrong type")
        values[key] = value

    if "workspace_dir" in values:
        values["workspace_dir"] = Path(values["workspace_dir"]).expanduser()
    if "install_dir" in values:
        values["install_dir"] = Path(values["install_dir"]).expanduser()
    if "download_timeout" in values:
        values["download_timeout"] = float(values["download_timeout"])
        if values["download_timeout"] <= 0:
            raise ConfigError("download_timeout must be positive")

    logger.debug(f"Loaded settings from {path}: {sorted(values)}")
    return replace(options, **values)


__all__ = [
    "InstallOptions",
    "default_options",
    "get_settings_path",
    "load_settings",
]
