"""
Install command implementation.

Runs the seven-step installation pipeline for the current platform and
prints step progress to the console.
"""

import logging
import threading
from typing import Optional

from rocqsetup.cli.utils import (
    current_context,
    format_success_message,
    print_error,
    safe_print,
)
from rocqsetup.config.manifest import Manifest, load_default_manifest, load_manifest
from rocqsetup.config.releases import fetch_release_manifest
from rocqsetup.config.settings import InstallOptions, load_settings
from rocqsetup.core.directory import ensure_state_structure
from rocqsetup.core.exceptions import RocqSetupError
from rocqsetup.core.locking import RunLock
from rocqsetup.core.process import CommandRunner
from rocqsetup.core.runlog import RunLog
from rocqsetup.pipeline import InstallSession, build_pipeline
from rocqsetup.pipeline.orchestrator import TOTAL_STEPS
from rocqsetup.toolchain.detector import InstallationDetector

logger = logging.getLogger(__name__)


class StepPrinter:
    """
    Console view of the step callback.

    Prints a line when a step's label changes, when it completes, and at
    every 10% of progress in between.
    """

    def __init__(self, quiet: bool = False):
        self.quiet = quiet
        self._lock = threading.Lock()
        self._last = None

    def __call__(self, step: int, label: str, fraction: float) -> None:
        if self.quiet:
            return
        bucket = int(fraction * 10)
        key = (step, label, bucket)
        with self._lock:
            if key == self._last:
                return
            self._last = key
        safe_print(f"[{step}/{TOTAL_STEPS}] {label} ({int(fraction * 100)}%)")


def build_options(args, home=None) -> InstallOptions:
    """Settings file values overridden by the command line flags."""
    options = load_settings(path=args.settings, home=home)
    return options.with_overrides(
        workspace_dir=args.workspace.expanduser() if args.workspace else None,
        install_dir=args.install_dir,
        with_rocqide=args.with_rocqide,
        skip_vscode=args.skip_vscode,
        recreate_switch=args.recreate_switch,
        force=args.force,
        opam_snapshot=args.snapshot,
        download_timeout=args.download_timeout,
        reuse=args.reuse,
    )


def resolve_manifest(args, os_name: str, arch: str) -> Manifest:
    """Manifest from --manifest, --release, or the bundled one, in that order."""
    if args.manifest:
        logger.info(f"Loading manifest {args.manifest}")
        return load_manifest(args.manifest, os_name, arch)
    if args.release:
        return fetch_release_manifest(args.release, os_name, arch)
    return load_default_manifest(os_name, arch)


def run(args) -> int:
    """
    Run the install command.

    Returns:
        Exit code (0 for success, 1 when the run was aborted)
    """
    try:
        context = current_context()
        os_name, arch = context.platform.manifest_key()
        options = build_options(args, home=context.roots.home)
        manifest = resolve_manifest(args, os_name, arch)
        dirs = ensure_state_structure()
    except (RocqSetupError, OSError) as e:
        logger.error(f"Cannot start installation: {e}")
        print_error("Cannot start installation", str(e))
        return 1

    runner = CommandRunner()
    printer = StepPrinter(quiet=args.quiet)
    pipeline = build_pipeline(
        manifest,
        options,
        context.roots,
        dirs["downloads"],
        runner=runner,
        on_step=printer,
    )

    existing: Optional[str] = None
    if options.reuse:
        record = InstallationDetector(context.roots, runner).detect()
        existing = record.first()
        if existing:
            logger.info(f"Reusing detected installation {existing}")

    run_log = RunLog(dirs["logs"])
    session = InstallSession(RunLock(dirs["lock"]), run_log)
    try:
        session.start(pipeline, existing)
        result = session.wait()
    except Exception as e:
        print_error("Installation failed", str(e))
        if run_log.path:
            print_error(f"See the log for details: {run_log.path}")
        return 1

    if not args.quiet:
        details = {
            "Rocq": manifest.toolchain_version,
            "Installed": result.installed_location,
            "Language server": result.language_server_path or "not found",
            "Workspace": options.workspace_dir,
            "Log": run_log.path,
        }
        next_steps = []
        if not result.editor_found and options.editor_integration:
            next_steps.append("Install VSCode, then run 'rocq-setup install' again")
        safe_print(
            format_success_message(
                f"✓ Rocq Platform {manifest.release_id} ready", details, next_steps
            )
        )
    return 0
