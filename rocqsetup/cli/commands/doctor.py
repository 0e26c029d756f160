"""
Doctor command for diagnosing the Rocq environment.

Checks the package manager (Linux), existing installations, binaries on PATH,
VSCode and its Rocq extensions, and the workspace. The command only reports;
it always exits with 0.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from packaging.version import InvalidVersion, Version

from rocqsetup.cli.utils import current_context, print_error, safe_print
from rocqsetup.config.roots import InstallRoots
from rocqsetup.config.settings import load_settings
from rocqsetup.core.exceptions import RocqSetupError
from rocqsetup.core.process import PROBE_TIMEOUT, CommandRunner
from rocqsetup.ide.vscode import VSCodeIntegration
from rocqsetup.toolchain.detector import InstallationDetector
from rocqsetup.toolchain.names import CURRENT_NAMES, LEGACY_NAMES

logger = logging.getLogger(__name__)

PATH_BINARIES = ("rocq", "coqc", "coqtop", "vsrocqtop")


@dataclass
class CheckResult:
    """Result of a health check."""

    name: str
    passed: bool
    message: str
    fix_command: Optional[str] = None
    optional: bool = False


class EnvironmentChecker:
    """Check the Rocq environment of the current user."""

    def __init__(
        self,
        roots: InstallRoots,
        runner: Optional[CommandRunner] = None,
        workspace_dir: Optional[Path] = None,
    ):
        self.roots = roots
        self.runner = runner or CommandRunner()
        self.workspace_dir = workspace_dir or roots.home / "rocq-workspace"
        self.vscode = VSCodeIntegration(roots, self.runner, CURRENT_NAMES)

    def run_all_checks(self) -> List[CheckResult]:
        checks = []
        if self.roots.os_name == "linux":
            checks.append(self.check_opam())
        checks.append(self.check_installations())
        checks.append(self.check_binaries())
        checks.extend(self.check_vscode())
        checks.append(self.check_workspace())
        return checks

    def check_opam(self) -> CheckResult:
        """opam 2.x must be installed for the Linux strategy."""
        opam = self.runner.which("opam")
        if not opam:
            return CheckResult(
                name="opam",
                passed=False,
                message="opam not found in PATH (required for Rocq Platform on Linux)",
                fix_command="Run: rocq-setup install",
            )

        result = self.runner.run([opam, "--version"], timeout=PROBE_TIMEOUT)
        raw = result.stdout.strip()
        try:
            ok = result.ok and Version(raw) >= Version("2.0")
        except InvalidVersion:
            ok = False
        if not ok:
            return CheckResult(
                name="opam",
                passed=False,
                message=f"opam >= 2.0 required (found {raw or 'unknown version'})",
                fix_command="Upgrade opam: https://opam.ocaml.org/doc/Install.html",
            )
        return CheckResult(name="opam", passed=True, message=f"opam {raw} at {opam}")

    def check_installations(self) -> CheckResult:
        record = InstallationDetector(self.roots, self.runner).detect()
        if not record.found:
            return CheckResult(
                name="Rocq Platform",
                passed=False,
                message="No Rocq/Coq installation found",
                fix_command="Run: rocq-setup install",
            )

        message = ", ".join(record.locations)
        if self.roots.os_name == "linux":
            platform_switches = [s for s in record if s.startswith("CP.")]
            if len(platform_switches) > 1:
                return CheckResult(
                    name="Rocq Platform",
                    passed=False,
                    message=f"Multiple Rocq Platform switches: {message}",
                    fix_command="Remove unused switches with: opam switch remove <name>",
                    optional=True,
                )
        return CheckResult(name="Rocq Platform", passed=True, message=message)

    def check_binaries(self) -> CheckResult:
        found = []
        for name in PATH_BINARIES:
            path = self.runner.which(name)
            if path:
                found.append(f"{name} → {path}")

        if not found:
            return CheckResult(
                name="Binaries",
                passed=False,
                message="No Rocq binaries in PATH",
                fix_command=(
                    "Activate the switch: source ~/rocq-workspace/activate.sh"
                    if self.roots.os_name == "linux"
                    else None
                ),
                optional=True,
            )
        return CheckResult(name="Binaries", passed=True, message="; ".join(found))

    def check_vscode(self) -> List[CheckResult]:
        code = self.vscode.find_code()
        if code is None:
            return [
                CheckResult(
                    name="VSCode",
                    passed=False,
                    message="VSCode (code) not found",
                    fix_command="Install VSCode from https://code.visualstudio.com/",
                )
            ]

        results = [CheckResult(name="VSCode", passed=True, message=code)]
        extensions = [e.lower() for e in self.vscode.installed_extensions(code)]

        current = CURRENT_NAMES.extension_id.lower()
        legacy = LEGACY_NAMES.extension_id.lower()
        if current in extensions:
            results.append(
                CheckResult(name="vsrocq extension", passed=True, message="installed")
            )
        else:
            results.append(
                CheckResult(
                    name="vsrocq extension",
                    passed=False,
                    message="not installed (required for Rocq support in VSCode)",
                    fix_command=f"Run: code --install-extension {CURRENT_NAMES.extension_id}",
                )
            )

        if legacy in extensions:
            results.append(
                CheckResult(
                    name="vscoq extension",
                    passed=False,
                    message="installed (deprecated, may conflict with vsrocq)",
                    fix_command=f"Run: code --uninstall-extension {LEGACY_NAMES.extension_id}",
                    optional=True,
                )
            )
        return results

    def check_workspace(self) -> CheckResult:
        workspace = self.workspace_dir
        if not workspace.is_dir():
            return CheckResult(
                name="Workspace",
                passed=False,
                message=f"{workspace} not found",
                fix_command="Run: rocq-setup install",
                optional=True,
            )

        settings_file = workspace / ".vscode" / "settings.json"
        try:
            settings = json.loads(settings_file.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            settings = None

        if not isinstance(settings, dict):
            return CheckResult(
                name="Workspace",
                passed=False,
                message=f"{settings_file} missing or unreadable",
                fix_command="Run: rocq-setup install",
                optional=True,
            )

        for key in (CURRENT_NAMES.settings_key, LEGACY_NAMES.settings_key):
            if key in settings:
                return CheckResult(
                    name="Workspace",
                    passed=True,
                    message=f"{workspace} ({key} = {settings[key]})",
                )

        return CheckResult(
            name="Workspace",
            passed=False,
            message=f"{CURRENT_NAMES.settings_key} not set in {settings_file}",
            fix_command="Run: rocq-setup install",
            optional=True,
        )


def run(args) -> int:
    """
    Run doctor command.

    Returns:
        Always 0; problems are reported, not signalled through the exit code
    """
    quiet = args.quiet

    try:
        context = current_context()
        workspace = load_settings(home=context.roots.home).workspace_dir
    except RocqSetupError as e:
        print_error("Cannot run diagnostics", str(e))
        return 0

    if not quiet:
        safe_print(f"Running rocq-setup diagnostics ({context.platform})...\n")
    logger.info("Starting environment diagnostics")

    checks = EnvironmentChecker(context.roots, workspace_dir=workspace).run_all_checks()

    passed = failed = warnings = 0
    for result in checks:
        if result.passed:
            passed += 1
            if not quiet:
                safe_print(f"✓ {result.name}: {result.message}")
            continue

        if result.optional:
            warnings += 1
            if not quiet:
                safe_print(f"⚠ {result.name}: {result.message}")
            logger.warning(f"{result.name}: {result.message}")
        else:
            failed += 1
            safe_print(f"✗ {result.name}: {result.message}")
            logger.error(f"{result.name}: {result.message}")

        if result.fix_command and not quiet:
            safe_print(f"   Fix: {result.fix_command}")

    if not quiet:
        safe_print(f"\nSummary: {passed} passed, {failed} failed, {warnings} warnings")
    return 0
