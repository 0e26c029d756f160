"""
Disk image strategy (macOS).

Mounts the verified ``.dmg`` read-only, copies the application bundle it
contains into ``/Applications`` (or ``~/Applications`` when the former is not
writable) and always detaches the image afterwards.
"""

import logging
from pathlib import Path
from typing import Optional

from rocqsetup.config.manifest import Manifest
from rocqsetup.config.roots import InstallRoots
from rocqsetup.config.settings import InstallOptions
from rocqsetup.core.exceptions import InstallError
from rocqsetup.core.filesystem import (
    FilesystemError,
    is_writable_dir,
    recursive_copy,
    safe_rmtree,
)
from rocqsetup.core.process import CommandRunner
from rocqsetup.toolchain.strategies.artifact import ArtifactStrategy
from rocqsetup.toolchain.strategy import ProgressFn, StepLabels, no_progress

logger = logging.getLogger(__name__)

VOLUMES_PREFIX = "/Volumes/"


def parse_mount_point(output: str) -> Optional[str]:
    """
    Extract the mount point from ``hdiutil attach`` output.

    Example:
        >>> parse_mount_point("/dev/disk4s1\\tApple_HFS\\t/Volumes/Rocq Platform\\n")
        '/Volumes/Rocq Platform'
    """
    for line in output.splitlines():
        index = line.find(VOLUMES_PREFIX)
        if index >= 0:
            return line[index:].strip()
    return None


def find_app_bundle(volume: Path) -> Optional[Path]:
    """Find the ``.app`` bundle at the top of a volume, else one level deeper."""
    try:
        entries = sorted(volume.iterdir())
    except OSError as e:
        raise InstallError(f"Cannot read mounted volume {volume}: {e}")

    for entry in entries:
        if entry.is_dir() and entry.name.endswith(".app"):
            return entry

    for entry in entries:
        if not entry.is_dir():
            continue
        try:
            children = sorted(entry.iterdir())
        except OSError:
            continue
        for child in children:
            if child.is_dir() and child.name.endswith(".app"):
                return child
    return None


class DiskImageStrategy(ArtifactStrategy):
    """Install the Rocq Platform application bundle from a disk image."""

    def __init__(
        self,
        manifest: Manifest,
        options: InstallOptions,
        roots: InstallRoots,
        runner: CommandRunner,
        downloads_dir: Path,
    ):
        super().__init__(manifest, options, downloads_dir)
        self.roots = roots
        self.runner = runner

    @property
    def step_labels(self) -> StepLabels:
        return StepLabels(
            acquire="Downloading Rocq Platform DMG...",
            acquired="Rocq Platform DMG downloaded.",
            verify="Verifying checksum...",
            verified="Checksum verified.",
            install="Installing Rocq Platform...",
            installed="Rocq Platform installed.",
        )

    def install(self, artifact: Optional[Path], on_progress: ProgressFn = no_progress) -> str:
        if artifact is None:
            raise InstallError("No disk image to install")

        mount_point = self.mount(artifact)
        try:
            app_source = find_app_bundle(mount_point)
            if app_source is None:
                raise InstallError(f"No .app found in disk image at {mount_point}")
            logger.info(f"Found app in disk image: {app_source}")

            on_progress(0.5, f"Copying {app_source.name} to Applications...")
            destination = self.copy_bundle(app_source)
        finally:
            self.detach(mount_point)

        logger.info(f"App installed to: {destination}")
        return str(destination)

    def mount(self, image: Path) -> Path:
        """Attach the image and return its mount point."""
        logger.info(f"Mounting disk image: {image}")
        result = self.runner.run(
            ["hdiutil", "attach", str(image), "-nobrowse", "-readonly", "-noautoopen"]
        )
        if not result.ok:
            raise InstallError("hdiutil attach failed", result.output)

        mount_point = parse_mount_point(result.stdout)
        if mount_point is None:
            raise InstallError("hdiutil attach: no mount point found in output", result.output)

        logger.info(f"Mounted at {mount_point}")
        return Path(mount_point)

    def detach(self, mount_point: Path) -> None:
        """Detach the image, forcing once if needed; failure only warns."""
        logger.info(f"Detaching {mount_point}")
        result = self.runner.run(["hdiutil", "detach", str(mount_point)])
        if result.ok:
            return

        logger.debug("Normal detach failed, trying force")
        result = self.runner.run(["hdiutil", "detach", str(mount_point), "-force"])
        if not result.ok:
            logger.warning(f"Failed to detach {mount_point}: {result.output.strip()}")

    def destination_dir(self) -> Path:
        """``system_app_dir`` when writable, else ``user_app_dir`` (created)."""
        system_dir = self.roots.system_app_dir
        if system_dir is not None and system_dir.is_dir() and is_writable_dir(system_dir):
            return system_dir

        user_dir = self.roots.user_app_dir
        if user_dir is None:
            raise InstallError("No writable Applications directory")
        user_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"{system_dir} is not writable, installing to {user_dir}")
        return user_dir

    def copy_bundle(self, app_source: Path) -> Path:
        destination = self.destination_dir() / app_source.name

        if destination.exists():
            if not self.options.force:
                logger.info(
                    f"App already installed at {destination} (use --force to replace)"
                )
                return destination
            logger.info(f"Removing existing installation {destination}")
            try:
                safe_rmtree(destination, require_prefix=destination.parent)
            except FilesystemError as e:
                raise InstallError(f"Cannot remove existing {destination}: {e}")

        logger.info(f"Copying {app_source} -> {destination}")
        result = self.runner.run(
            ["rsync", "-a", "--delete", f"{app_source}/", f"{destination}/"]
        )
        if not result.ok:
            logger.warning(f"rsync failed ({result.output.strip()}), using plain copy")
            try:
                recursive_copy(app_source, destination)
            except (FilesystemError, OSError) as e:
                raise InstallError(f"Copying {app_source.name} failed: {e}")

        return destination


__all__ = ["DiskImageStrategy", "parse_mount_point", "find_app_bundle"]
