"""
Seven-step installation pipeline.

Steps:
    1. Acquire the artifact (or the package manager)
    2. Verify it
    3. Install the toolchain
    4. Locate the language server
    5. Detect VSCode and ensure the extension
    6. Create the workspace (plus activation scripts for opam switches)
    7. Write the editor settings and open the workspace

Steps 1 to 3 are skipped together when an existing installation is reused.
Every step reports ``(step, label, fraction)`` through the step callback,
starting at 0.0 and ending at 1.0.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rocqsetup.config.manifest import SOURCE_PACKAGE_MANAGER, Manifest
from rocqsetup.config.roots import InstallRoots
from rocqsetup.config.settings import InstallOptions
from rocqsetup.core.exceptions import NotFoundError
from rocqsetup.core.process import CommandRunner
from rocqsetup.ide.vscode import VSCodeIntegration
from rocqsetup.ide.workspace import create_workspace, write_activation_scripts
from rocqsetup.toolchain.locator import BinaryLocator
from rocqsetup.toolchain.strategies import select_strategy
from rocqsetup.toolchain.strategy import InstallStrategy

logger = logging.getLogger(__name__)

TOTAL_STEPS = 7

StepCallback = Callable[[int, str, float], None]


def _ignore_step(step: int, label: str, fraction: float) -> None:
    pass


@dataclass
class Result:
    """Outcome of a successful run."""

    installed_location: str
    language_server_path: Optional[Path]
    editor_found: bool


class InstallPipeline:
    """
    Drives one install strategy through the seven steps.

    Errors raised in steps 1 to 4 abort the run: they are logged and
    re-raised, and no Result is produced. A language server that cannot be
    found, a missing editor, a failed extension install and a failed editor
    launch do not abort.

    Example:
        >>> pipeline = InstallPipeline(manifest, options, strategy, roots, editor)
        >>> result = pipeline.run()
        >>> result.installed_location
        'CP.2025.08.1~9.0'
    """

    def __init__(
        self,
        manifest: Manifest,
        options: InstallOptions,
        strategy: InstallStrategy,
        roots: InstallRoots,
        editor: Optional[VSCodeIntegration] = None,
        locator: Optional[BinaryLocator] = None,
        on_step: Optional[StepCallback] = None,
    ):
        self.manifest = manifest
        self.options = options
        self.strategy = strategy
        self.roots = roots
        self.editor = editor
        self.locator = locator or BinaryLocator(roots, strategy.names)
        self.on_step = on_step or _ignore_step

    def emit(self, step: int, label: str, fraction: float) -> None:
        self.on_step(step, label, max(0.0, min(1.0, fraction)))

    def run(self, existing: Optional[str] = None) -> Result:
        """
        Run all seven steps.

        Args:
            existing: Installation to reuse instead of installing (skips 1-3)

        Returns:
            Result of the run
        """
        logger.info(
            f"Installing Rocq {self.manifest.toolchain_version} "
            f"(platform release {self.manifest.release_id}, "
            f"{self.manifest.os_name}/{self.manifest.arch})"
        )

        location = self._guarded("install", self._install_steps, existing)
        server = self._guarded("locate language server", self._locate_step, location)

        code = self._editor_step()
        self._guarded("create workspace", self._workspace_step, location, code)
        self._guarded("configure VSCode", self._settings_step, code, server)

        logger.info("Installation complete")
        return Result(
            installed_location=location,
            language_server_path=server,
            editor_found=code is not None,
        )

    def _guarded(self, what: str, func, *args):
        try:
            return func(*args)
        except Exception as e:
            logger.error(f"Run aborted during {what}: {e}")
            raise

    # ========================================================================
    # Steps 1-3
    # ========================================================================

    def _reusable(self, existing: Optional[str]) -> Optional[str]:
        if self.options.reuse is False:
            return None
        if existing:
            return existing
        return self.strategy.existing_installation()

    def _install_steps(self, existing: Optional[str]) -> str:
        labels = self.strategy.step_labels
        reusable = self._reusable(existing)

        if reusable:
            for step in (1, 2, 3):
                self._skip(step, labels.skipped)
            return self.strategy.reuse(reusable)

        self.emit(1, labels.acquire, 0.0)
        artifact = self.strategy.acquire(self._step_progress(1, labels.acquire))
        self.emit(1, labels.acquired, 1.0)

        self.emit(2, labels.verify, 0.0)
        self.strategy.verify(artifact)
        self.emit(2, labels.verified, 1.0)

        self.emit(3, labels.install, 0.0)
        location = self.strategy.install(artifact, self._step_progress(3, labels.install))
        self.emit(3, labels.installed, 1.0)
        return location

    def _step_progress(self, step: int, default_label: str):
        current = {"label": default_label}

        def report(fraction: float, label: Optional[str] = None) -> None:
            if label:
                current["label"] = label
            # 1.0 is reserved for the step's own completion event
            self.emit(step, current["label"], min(fraction, 0.99))

        return report

    # ========================================================================
    # Step 4
    # ========================================================================

    def _locate_step(self, location: str) -> Optional[Path]:
        binary = self.strategy.names.binary_name
        self.emit(4, f"Locating {binary}...", 0.0)

        root = self.strategy.language_server_root(location)
        try:
            server = self.locator.locate(root)
        except NotFoundError:
            logger.warning(f"{binary} not found; editor settings will not be written")
            self.emit(4, f"{binary} not found.", 1.0)
            return None

        self.emit(4, f"Found {binary}.", 1.0)
        return server

    # ========================================================================
    # Steps 5-7
    # ========================================================================

    def _editor_step(self) -> Optional[str]:
        if not self._integration_enabled:
            self._skip(5, "Skipped (VSCode integration disabled).")
            return None

        self.emit(5, "Looking for VSCode...", 0.0)
        code = self.editor.find_code()
        if code is None:
            self.emit(5, "VSCode not found.", 1.0)
            return None

        self.emit(5, "Installing VSCode extension...", 0.5)
        self.editor.ensure_extension(code)
        self.emit(5, "VSCode extension ready.", 1.0)
        return code

    @property
    def _integration_enabled(self) -> bool:
        return self.options.editor_integration and self.editor is not None

    def _workspace_step(self, location: str, code: Optional[str]) -> None:
        if self._integration_enabled and code is None:
            self._skip(6, "Skipped (VSCode not found).")
            return

        workspace = self.options.workspace_dir
        self.emit(6, "Creating workspace...", 0.0)
        create_workspace(workspace)
        if self.manifest.asset.type == SOURCE_PACKAGE_MANAGER:
            write_activation_scripts(workspace, location)
        self.emit(6, f"Workspace ready at {workspace}.", 1.0)

    def _settings_step(self, code: Optional[str], server: Optional[Path]) -> None:
        if not self._integration_enabled:
            self._skip(7, "Skipped (VSCode integration disabled).")
            return
        if code is None:
            self._skip(7, "Skipped (VSCode not found).")
            return

        self.emit(7, "Configuring VSCode...", 0.0)
        if server is not None:
            self.editor.write_settings(self.options.workspace_dir, server)
        else:
            logger.warning("Language server not located, settings.json left unchanged")
        self.emit(7, "Opening VSCode...", 0.5)
        self.editor.open_workspace(code, self.options.workspace_dir)
        self.emit(7, "VSCode configured.", 1.0)

    def _skip(self, step: int, label: str) -> None:
        self.emit(step, label, 0.0)
        self.emit(step, label, 1.0)


def build_pipeline(
    manifest: Manifest,
    options: InstallOptions,
    roots: InstallRoots,
    downloads_dir: Path,
    runner: Optional[CommandRunner] = None,
    on_step: Optional[StepCallback] = None,
) -> InstallPipeline:
    """Wire the strategy, locator and editor integration for one run."""
    runner = runner or CommandRunner()
    strategy = select_strategy(manifest, options, roots, runner, downloads_dir)
    editor = None
    if options.editor_integration:
        editor = VSCodeIntegration(roots, runner, strategy.names)
    locator = BinaryLocator(roots, strategy.names, which=runner.which)
    return InstallPipeline(
        manifest,
        options,
        strategy,
        roots,
        editor=editor,
        locator=locator,
        on_step=on_step,
    )


__all__ = ["InstallPipeline", "Result", "TOTAL_STEPS", "StepCallback", "build_pipeline"]
