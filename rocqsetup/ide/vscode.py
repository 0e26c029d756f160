"""
VSCode integration for rocq-setup.

Finds the ``code`` command line launcher, makes sure the Rocq language
extension is installed, points the extension at the located language server
through ``.vscode/settings.json`` and opens the workspace.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from rocqsetup.config.roots import InstallRoots
from rocqsetup.core.filesystem import atomic_write, is_executable
from rocqsetup.core.process import PROBE_TIMEOUT, CommandRunner
from rocqsetup.toolchain.names import ProductNames

logger = logging.getLogger(__name__)

# Installing an extension downloads it from the marketplace.
EXTENSION_INSTALL_TIMEOUT = 300.0


class VSCodeIntegration:
    """
    Editor collaborator used by the install pipeline.

    Example:
        >>> integration = VSCodeIntegration(roots, CommandRunner(), names)
        >>> code = integration.find_code()
        >>> if code:
        ...     integration.ensure_extension(code)
        ...     integration.write_settings(Path('~/rocq-workspace'), server)
    """

    def __init__(self, roots: InstallRoots, runner: CommandRunner, names: ProductNames):
        self.roots = roots
        self.runner = runner
        self.names = names

    def find_code(self) -> Optional[str]:
        """
        Locate the ``code`` launcher on PATH, then at the well-known locations.

        Returns:
            Path to the launcher, or None when VSCode is not installed
        """
        found = self.runner.which("code")
        if found:
            logger.debug(f"Found code on PATH: {found}")
            return found

        for candidate in self.roots.editor_candidates:
            if candidate.is_file() and is_executable(candidate):
                logger.debug(f"Found code at {candidate}")
                return str(candidate)

        logger.info("VSCode (code) not found in PATH or common locations")
        return None

    def installed_extensions(self, code: str) -> List[str]:
        result = self.runner.run([code, "--list-extensions"], timeout=PROBE_TIMEOUT * 3)
        if not result.ok:
            logger.debug(f"code --list-extensions failed: {result.output.strip()}")
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def ensure_extension(self, code: str, extension_id: Optional[str] = None) -> bool:
        """
        Install the language extension unless it is already present.

        Failure is logged as a warning; the installation itself stays usable.

        Returns:
            True if the extension is installed afterwards
        """
        extension_id = extension_id or self.names.extension_id
        wanted = extension_id.lower()

        if any(ext.lower() == wanted for ext in self.installed_extensions(code)):
            logger.info(f"Extension {extension_id} already installed")
            return True

        logger.info(f"Installing VSCode extension {extension_id}")
        result = self.runner.run(
            [code, "--install-extension", extension_id],
            timeout=EXTENSION_INSTALL_TIMEOUT,
        )
        if not result.ok:
            logger.warning(
                f"Failed to install extension {extension_id}: {result.output.strip()}"
            )
            return False
        return True

    def settings_path(self, workspace: Path) -> Path:
        return Path(workspace) / ".vscode" / "settings.json"

    def server_setting(self, server_path: Path) -> str:
        """
        Format the language server path for settings.json.

        On Windows the ``.exe`` suffix is dropped and forward slashes are used.
        """
        if self.roots.os_name != "windows":
            return str(server_path)

        value = str(server_path).replace("\\", "/")
        if value.lower().endswith(".exe"):
            value = value[: -len(".exe")]
        return value

    def write_settings(self, workspace: Path, server_path: Path) -> Path:
        """
        Point the extension at ``server_path`` in the workspace settings.

        Existing keys in settings.json are preserved.

        Returns:
            Path to the written settings.json
        """
        settings_file = self.settings_path(workspace)
        existing = self._load_existing_settings(settings_file)
        merged = self._merge_settings(
            existing, {self.names.settings_key: self.server_setting(server_path)}
        )
        self._write_settings(settings_file, merged)
        logger.info(f"Wrote {self.names.settings_key} to {settings_file}")
        return settings_file

    def open_workspace(self, code: str, workspace: Path) -> bool:
        """Open ``workspace`` in VSCode; failure only warns."""
        result = self.runner.run([code, str(workspace)], timeout=PROBE_TIMEOUT * 3)
        if not result.ok:
            logger.warning(f"Could not open VSCode: {result.output.strip()}")
            return False
        return True

    def _load_existing_settings(self, settings_file: Path) -> Dict[str, Any]:
        if not settings_file.exists():
            logger.debug("No existing settings.json found")
            return {}

        try:
            with open(settings_file, "r", encoding="utf-8") as f:
                settings = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse existing settings.json: {e}")
            logger.warning("Creating new settings file")
            return {}
        except OSError as e:
            logger.warning(f"Error reading settings.json: {e}")
            return {}

        if not isinstance(settings, dict):
            logger.warning("Existing settings.json is not an object, replacing it")
            return {}
        return settings

    def _merge_settings(self, existing: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Any]:
        merged = existing.copy()
        merged.update(new)
        logger.debug(f"Merged settings: {len(merged)} total keys")
        return merged

    def _write_settings(self, settings_file: Path, settings: Dict[str, Any]) -> None:
        content = json.dumps(settings, indent=4, ensure_ascii=False) + "\n"
        try:
            atomic_write(settings_file, content)
        except OSError as e:
            logger.error(f"Failed to write settings.json: {e}")
            raise


__all__ = ["VSCodeIntegration"]
