"""
opam switch strategy (Linux).

Builds Rocq from source inside a dedicated opam switch named after the
release, e.g. ``CP.2025.08.1~9.0``. The switch name is the identity used for
every idempotency check: an existing switch is reused (packages are still
installed, which opam treats as a no-op when they are present) unless
recreation was requested.

Steps:
1. acquire: make sure opam is available, bootstrapping it when absent
2. verify: require opam 2.x and an initialised opam root
3. install: create the switch, pin the repository, install the packages and
   check the resulting toolchain version
"""

import logging
import os
import re
from pathlib import Path
from typing import Callable, List, Optional

from packaging.version import InvalidVersion, Version

from rocqsetup.config.manifest import KNOWN_OPTIONAL_FLAGS, Manifest, OpamAsset
from rocqsetup.config.roots import InstallRoots
from rocqsetup.config.settings import InstallOptions
from rocqsetup.core.download import download_file
from rocqsetup.core.exceptions import InstallError, PrerequisiteError
from rocqsetup.core.process import PROBE_TIMEOUT, CommandResult, CommandRunner
from rocqsetup.toolchain.names import switch_name
from rocqsetup.toolchain.progress import LineProgressEstimator
from rocqsetup.toolchain.strategy import (
    InstallStrategy,
    ProgressFn,
    StepLabels,
    no_progress,
)

logger = logging.getLogger(__name__)

OPAM_ENV = {"OPAMCONFIRMLEVEL": "unsafe-yes"}
OPAM_INSTALL_SCRIPT_URL = "https://opam.ocaml.org/install.sh"
OPAM_MANUAL_INSTALL_URL = "https://opam.ocaml.org/doc/Install.html"

# command -> distribution package providing it
BUILD_DEPENDENCIES = {
    "unzip": "unzip",
    "bwrap": "bubblewrap",
    "make": "make",
    "cc": "gcc",
}

# Probed in this order; each entry is the list of commands to run with the
# missing packages appended to the last one.
SYSTEM_PACKAGE_MANAGERS = {
    "apt-get": [["apt-get", "update", "-qq"], ["apt-get", "install", "-y", "-qq"]],
    "dnf": [["dnf", "install", "-y"]],
    "yum": [["yum", "install", "-y"]],
    "pacman": [["pacman", "-S", "--noconfirm"]],
    "zypper": [["zypper", "install", "-y"]],
}


def _running_as_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


class OpamStrategy(InstallStrategy):
    """Install Rocq into an opam switch."""

    def __init__(
        self,
        manifest: Manifest,
        options: InstallOptions,
        roots: InstallRoots,
        runner: CommandRunner,
        downloads_dir: Path,
        is_root: Callable[[], bool] = _running_as_root,
    ):
        super().__init__(manifest, options)
        if not isinstance(manifest.asset, OpamAsset):
            raise TypeError("OpamStrategy requires a source-package-manager asset")
        self.asset: OpamAsset = manifest.asset
        self.roots = roots
        self.runner = runner
        self.downloads_dir = Path(downloads_dir)
        self.is_root = is_root
        self._opam: Optional[str] = None

    @property
    def switch(self) -> str:
        return switch_name(
            self.asset.switch_prefix,
            self.manifest.release_id,
            self.manifest.toolchain_version,
            self.options.opam_snapshot,
        )

    @property
    def step_labels(self) -> StepLabels:
        return StepLabels(
            acquire="Checking for opam...",
            acquired="Opam found.",
            verify="Initializing opam...",
            verified="Opam initialized.",
            install="Installing Rocq packages (this may take a while)...",
            installed=f"Switch {self.switch} ready.",
            skipped="Skipped (reusing switch).",
        )

    # ------------------------------------------------------------------
    # Step 1: opam availability
    # ------------------------------------------------------------------

    def acquire(self, on_progress: ProgressFn = no_progress) -> Optional[Path]:
        if self._find_opam():
            logger.info(f"opam found: {self._opam}")
            return None

        logger.info("opam not found, installing via the official installer")
        on_progress(0.1, "Installing opam build dependencies...")
        self._ensure_build_dependencies()

        on_progress(0.3, "Downloading opam installer...")
        script = download_file(
            OPAM_INSTALL_SCRIPT_URL,
            self.downloads_dir / "opam-install.sh",
            timeout=(30.0, self.options.download_timeout),
        )

        on_progress(0.5, "Running opam installer...")
        result = self.runner.stream(
            ["sh", str(script), "--no-backup"], on_line=_log_line("opam-install")
        )
        if not result.ok:
            logger.error(f"opam installer exited with {result.returncode}")

        if not self._find_opam():
            raise PrerequisiteError(
                f"opam installation failed. Please install opam manually: "
                f"{OPAM_MANUAL_INSTALL_URL}"
            )

        logger.info(f"opam installed: {self._opam}")
        return None

    def _find_opam(self) -> Optional[str]:
        found = self.runner.which("opam")
        if not found:
            for directory in self.roots.opam_fallback_dirs:
                candidate = directory / "opam"
                if candidate.is_file():
                    found = str(candidate)
                    break
        self._opam = found
        return found

    @property
    def opam(self) -> str:
        if self._opam is None:
            self._find_opam()
        return self._opam or "opam"

    def _ensure_build_dependencies(self) -> None:
        missing = [
            package
            for command, package in BUILD_DEPENDENCIES.items()
            if not self.runner.which(command)
        ]
        if not missing:
            return

        logger.info(f"Installing opam dependencies: {' '.join(missing)}")

        prefix: List[str] = []
        if not self.is_root():
            if not self.runner.which("sudo"):
                raise PrerequisiteError(
                    f"Cannot install opam dependencies ({' '.join(missing)}): "
                    "not root and sudo not available. Please install them manually."
                )
            prefix = ["sudo"]

        for manager, commands in SYSTEM_PACKAGE_MANAGERS.items():
            if not self.runner.which(manager):
                continue
            for index, command in enumerate(commands):
                args = prefix + command
                if index == len(commands) - 1:
                    args = args + missing
                result = self.runner.stream(args, on_line=_log_line(manager))
                if not result.ok:
                    raise PrerequisiteError(
                        f"{manager} failed to install {' '.join(missing)} "
                        f"(exit {result.returncode}). Please install them manually."
                    )
            return

        raise PrerequisiteError(
            f"Cannot install opam dependencies ({' '.join(missing)}): "
            "no supported package manager found. Please install them manually."
        )

    # ------------------------------------------------------------------
    # Step 2: opam version and root
    # ------------------------------------------------------------------

    def verify(self, artifact: Optional[Path]) -> None:
        result = self._opam_run(["--version"], timeout=PROBE_TIMEOUT)
        raw_version = result.stdout.strip()
        logger.info(f"opam version: {raw_version}")
        try:
            version = Version(raw_version)
        except InvalidVersion:
            raise PrerequisiteError(
                f"Cannot determine opam version (got {raw_version!r}). "
                f"Please install opam 2.x: {OPAM_MANUAL_INSTALL_URL}"
            )
        if version < Version("2.0"):
            raise PrerequisiteError(f"opam >= 2.0 required (found {raw_version})")

        opam_root = self.roots.home / ".opam"
        if opam_root.exists():
            logger.info(f"opam already initialized ({opam_root} exists)")
            return

        logger.info("Running opam init...")
        result = self._opam_run(["init", "-y", "--bare", "--disable-sandboxing"])
        if not result.ok:
            raise InstallError("opam init failed", result.output)
        logger.info("opam init complete")

    # ------------------------------------------------------------------
    # Step 3: switch lifecycle
    # ------------------------------------------------------------------

    def install(self, artifact: Optional[Path], on_progress: ProgressFn = no_progress) -> str:
        switch = self.switch

        on_progress(0.0, f"Creating opam switch {switch}...")
        self._ensure_switch(switch)

        on_progress(0.0, "Configuring opam repository...")
        self._configure_repository(switch)

        estimator = LineProgressEstimator(
            on_fraction=lambda fraction: on_progress(fraction, "Installing Rocq packages...")
        )
        self._install_packages(switch, estimator)
        estimator.finish()

        self._check_toolchain_version(switch)
        return switch

    def switch_exists(self, switch: str) -> bool:
        result = self._opam_run(["switch", "list", "--short"], timeout=PROBE_TIMEOUT)
        if not result.ok:
            return False
        return switch in (line.strip() for line in result.stdout.splitlines())

    def _ensure_switch(self, switch: str) -> None:
        if self.switch_exists(switch):
            if not self.options.recreate_switch:
                logger.info(f"Switch {switch} already exists, reusing it")
                return
            logger.info(f"Recreating opam switch (requested): {switch}")
            result = self._opam_run(["switch", "remove", switch, "-y"])
            if not result.ok:
                raise InstallError(f"opam switch remove {switch} failed", result.output)

        logger.info(f"Creating switch {switch} with compiler {self.asset.compiler}")
        result = self._opam_stream(["switch", "create", switch, self.asset.compiler, "-y"])
        if not result.ok:
            raise InstallError(f"opam switch create {switch} failed", result.output)
        logger.info(f"Switch {switch} created")

    def _configure_repository(self, switch: str) -> None:
        repo, url = self.asset.repo_name, self.asset.repo_url
        logger.info(f"Configuring repo {repo} -> {url} (switch={switch})")

        result = self._opam_run(["repo", "add", f"--switch={switch}", repo, url, "-y"])
        if not result.ok:
            logger.info(f"repo add failed (may exist), trying set-url: {result.output.strip()}")
            result = self._opam_run(
                ["repo", "set-url", f"--switch={switch}", repo, url, "-y"]
            )
            if not result.ok:
                raise InstallError(f"opam repo set-url {repo} failed", result.output)

        result = self._opam_run(["repo", "set-repos", f"--switch={switch}", repo, "default"])
        if not result.ok:
            raise InstallError(f"opam repo set-repos for {switch} failed", result.output)

        result = self._opam_run(["repo", "priority", f"--switch={switch}", repo, "1"])
        if not result.ok:
            logger.warning(f"repo priority failed: {result.output.strip()}")

        logger.info("Updating opam repos...")
        result = self._opam_stream(["update", f"--switch={switch}"])
        if not result.ok:
            logger.warning(f"opam update failed: {result.output.strip()}")

    def selected_packages(self) -> List[str]:
        """``name=version`` arguments for the packages this run installs."""
        flags = {
            "with_rocqide": self.options.with_rocqide,
            "with_vscode": self.options.editor_integration,
        }
        selected = []
        for package in self.asset.packages:
            if package.optional:
                if package.optional not in KNOWN_OPTIONAL_FLAGS:
                    logger.warning(
                        f"Skipping {package.name}: unknown optional flag {package.optional!r}"
                    )
                    continue
                if not flags[package.optional]:
                    logger.info(f"Skipping optional package {package.name} ({package.optional})")
                    continue
            selected.append(package.spec())
        return selected

    def _install_packages(self, switch: str, estimator: LineProgressEstimator) -> None:
        packages = self.selected_packages()
        logger.info(f"Installing packages in switch {switch}: {packages}")

        def on_line(line: str) -> None:
            logger.debug(f"[opam] {line}")
            estimator.feed(line)

        result = self._opam_stream(
            ["install", f"--switch={switch}", "-y"] + packages, on_line=on_line
        )
        if not result.ok:
            raise InstallError(
                f"opam install failed (exit {result.returncode})", result.output
            )

    def _check_toolchain_version(self, switch: str) -> None:
        bin_dir = self.switch_bin_dir(switch)
        if bin_dir is None:
            raise InstallError(f"Cannot resolve the bin directory of switch {switch}")

        binary = bin_dir / self.names.toolchain_binary
        if not binary.is_file():
            raise InstallError(f"{self.names.toolchain_binary} not found in {bin_dir}")

        result = self.runner.run([str(binary), "--print-version"], timeout=PROBE_TIMEOUT)
        if not result.ok or not result.stdout.strip():
            result = self.runner.run([str(binary), "--version"], timeout=PROBE_TIMEOUT)

        expected = self.manifest.major_minor
        reported = result.output.strip()
        if not reports_version(reported, expected):
            raise InstallError(
                f"Version mismatch: requested Rocq {expected}, "
                f"{binary.name} reports {reported!r}",
                result.output,
            )
        logger.info(f"{binary.name} reports version {reported}")

    def switch_bin_dir(self, switch: str) -> Optional[Path]:
        result = self._opam_run(["var", f"--switch={switch}", "bin"], timeout=PROBE_TIMEOUT)
        value = result.stdout.strip()
        if not result.ok or not value:
            logger.warning(f"opam var bin failed for {switch}: {result.output.strip()}")
            return None
        return Path(value)

    def language_server_root(self, location: str) -> Optional[Path]:
        return self.switch_bin_dir(location)

    # ------------------------------------------------------------------

    def _opam_run(
        self, args: List[str], timeout: Optional[float] = None
    ) -> CommandResult:
        result = self.runner.run([self.opam] + args, env=dict(OPAM_ENV), timeout=timeout)
        if not result.ok:
            logger.debug(f"opam {' '.join(args)} exited with {result.returncode}")
        return result

    def _opam_stream(
        self, args: List[str], on_line: Optional[Callable[[str], None]] = None
    ) -> CommandResult:
        return self.runner.stream(
            [self.opam] + args,
            on_line=on_line or _log_line("opam"),
            env=dict(OPAM_ENV),
        )


_VERSION_TOKEN = re.compile(r"(?<![\w.])(\d+)\.(\d+)")


def reports_version(output: str, major_minor: str) -> bool:
    """
    Check whether version output names ``major_minor``.

    Only whole version tokens count, so 8.19.0 does not satisfy 9.0.

    Example:
        >>> reports_version("The Rocq Prover, version 9.0.0", "9.0")
        True
        >>> reports_version("8.19.0", "9.0")
        False
    """
    return any(
        f"{major}.{minor}" == major_minor
        for major, minor in _VERSION_TOKEN.findall(output)
    )


def _log_line(tag: str) -> Callable[[str], None]:
    def log(line: str) -> None:
        logger.debug(f"[{tag}] {line}")

    return log


__all__ = [
    "OpamStrategy",
    "BUILD_DEPENDENCIES",
    "SYSTEM_PACKAGE_MANAGERS",
    "reports_version",
]
