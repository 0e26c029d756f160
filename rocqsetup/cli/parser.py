"""
rocq-setup CLI argument parser.

This module implements the command-line interface for rocq-setup using argparse.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Get version from package
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("rocq-setup")
except PackageNotFoundError:
    __version__ = "1.0.0"

logger = logging.getLogger(__name__)


class CLI:
    """rocq-setup command-line interface."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="rocq-setup",
            description="rocq-setup - pinned Rocq Platform installer with VSCode integration",
            epilog='Use "rocq-setup COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"rocq-setup {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )

        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_install_command(subparsers)
        self._add_detect_command(subparsers)
        self._add_doctor_command(subparsers)
        self._add_releases_command(subparsers)

        return parser

    def _add_install_command(self, subparsers):
        """Add 'install' subcommand."""
        parser = subparsers.add_parser(
            "install",
            help="Install Rocq Platform and configure VSCode",
            description="Install the pinned Rocq Platform release, the VSCode "
            "extension and a ready-to-use workspace",
        )
        source = parser.add_mutually_exclusive_group()
        source.add_argument(
            "--manifest",
            type=Path,
            metavar="PATH",
            help="Release manifest (default: the manifest bundled with rocq-setup)",
        )
        source.add_argument(
            "--release",
            metavar="TAG",
            help="Install a published Rocq Platform release (see 'rocq-setup releases')",
        )
        parser.add_argument(
            "--settings",
            type=Path,
            metavar="PATH",
            help="Settings file (default: ~/.rocq-setup/config.yaml)",
        )

        reuse = parser.add_mutually_exclusive_group()
        reuse.add_argument(
            "--reuse",
            dest="reuse",
            action="store_const",
            const=True,
            default=None,
            help="Reuse the first detected Rocq installation instead of installing",
        )
        reuse.add_argument(
            "--no-reuse",
            dest="reuse",
            action="store_const",
            const=False,
            help="Always run the installation steps",
        )

        parser.add_argument(
            "--with-rocqide",
            action="store_true",
            default=None,
            help="Also install the RocqIDE package (opam only)",
        )
        parser.add_argument(
            "--skip-vscode",
            action="store_true",
            default=None,
            help="Do not install the extension or write VSCode settings",
        )
        parser.add_argument(
            "--recreate-switch",
            action="store_true",
            default=None,
            help="Remove and recreate an existing opam switch",
        )
        parser.add_argument(
            "--force",
            action="store_true",
            default=None,
            help="Replace an existing installation",
        )
        parser.add_argument(
            "--workspace",
            type=Path,
            metavar="PATH",
            help="Workspace directory (default: ~/rocq-workspace)",
        )
        parser.add_argument(
            "--install-dir",
            type=Path,
            metavar="PATH",
            help="Installer target directory (Windows only)",
        )
        parser.add_argument(
            "--snapshot",
            metavar="NAME",
            help="Snapshot suffix appended to the opam switch name",
        )
        parser.add_argument(
            "--download-timeout",
            type=float,
            metavar="SECONDS",
            help="Read timeout for downloads (default: 60)",
        )

    def _add_detect_command(self, subparsers):
        """Add 'detect' subcommand."""
        subparsers.add_parser(
            "detect",
            help="List existing Rocq installations",
            description="Search the well-known locations for Rocq/Coq installations",
        )

    def _add_doctor_command(self, subparsers):
        """Add 'doctor' subcommand."""
        subparsers.add_parser(
            "doctor",
            help="Diagnose the Rocq environment",
            description="Check the package manager, installations, binaries, "
            "VSCode extensions and the workspace",
        )

    def _add_releases_command(self, subparsers):
        """Add 'releases' subcommand."""
        parser = subparsers.add_parser(
            "releases",
            help="List published Rocq Platform releases",
            description="List the Rocq Platform release tags accepted by "
            "'install --release'",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=30,
            metavar="N",
            help="Number of releases to query (default: 30)",
        )

    def parse_args(self, args: Optional[List[str]] = None):
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except Exception as e:
            logger.error(f"Error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """Configure console logging from the verbose/quiet flags."""
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.WARNING
            format_str = "%(levelname)s: %(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )
        # the run log lowers the package logger level; keep the console at ours
        for handler in logging.getLogger().handlers:
            handler.setLevel(level)

    def _dispatch_command(self, args) -> int:
        command_map = {
            "install": "rocqsetup.cli.commands.install",
            "detect": "rocqsetup.cli.commands.detect",
            "doctor": "rocqsetup.cli.commands.doctor",
            "releases": "rocqsetup.cli.commands.releases",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        import importlib

        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
