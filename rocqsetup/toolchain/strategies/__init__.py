"""
Platform install strategies.

select_strategy() picks the strategy matching the manifest asset type:
- source-package-manager: OpamStrategy (Linux)
- disk-image: DiskImageStrategy (macOS)
- self-extracting-installer: ElevatedInstallerStrategy (Windows)
"""

from pathlib import Path
from typing import Optional

from rocqsetup.config.manifest import (
    DISK_IMAGE,
    SELF_EXTRACTING_INSTALLER,
    SOURCE_PACKAGE_MANAGER,
    Manifest,
)
from rocqsetup.config.roots import InstallRoots
from rocqsetup.config.settings import InstallOptions
from rocqsetup.core.exceptions import ConfigError
from rocqsetup.core.process import CommandRunner
from rocqsetup.toolchain.strategy import InstallStrategy

from .dmg import DiskImageStrategy
from .innosetup import ElevatedInstallerStrategy, ElevatedLauncher
from .opam import OpamStrategy


def select_strategy(
    manifest: Manifest,
    options: InstallOptions,
    roots: InstallRoots,
    runner: CommandRunner,
    downloads_dir: Path,
    launcher: Optional[ElevatedLauncher] = None,
) -> InstallStrategy:
    """
    Build the install strategy for the manifest's asset.

    Raises:
        ConfigError: If the asset type has no strategy
    """
    asset_type = manifest.asset.type

    if asset_type == SOURCE_PACKAGE_MANAGER:
        return OpamStrategy(manifest, options, roots, runner, downloads_dir)
    if asset_type == DISK_IMAGE:
        return DiskImageStrategy(manifest, options, roots, runner, downloads_dir)
    if asset_type == SELF_EXTRACTING_INSTALLER:
        return ElevatedInstallerStrategy(
            manifest, options, roots, downloads_dir, launcher=launcher
        )

    raise ConfigError(f"No install strategy for asset type {asset_type!r}")


__all__ = [
    "select_strategy",
    "OpamStrategy",
    "DiskImageStrategy",
    "ElevatedInstallerStrategy",
    "ElevatedLauncher",
]
