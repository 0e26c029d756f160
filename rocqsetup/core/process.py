"""
Subprocess boundary for rocq-setup.

Every external tool (opam, hdiutil, rsync, system package managers, ``code``)
is invoked through a CommandRunner so strategies and the editor integration
can be exercised against a scripted runner in tests.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

# Short queries (version probes, list commands). Long-running installs get no
# deadline.
PROBE_TIMEOUT = 10.0

# Conventional shell status for "command not found".
NOT_FOUND_RETURNCODE = 127


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr


class CommandRunner:
    """
    Runs external commands.

    Commands that cannot be started (binary missing, permission denied) do
    not raise; they produce a CommandResult with return code 127 and the OS
    error as stderr, the same as a shell would report.
    """

    def which(self, name: str, path: Optional[str] = None) -> Optional[str]:
        """Resolve ``name`` on PATH (or on ``path`` when given)."""
        return shutil.which(name, path=path)

    def run(
        self,
        args: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
    ) -> CommandResult:
        """
        Run a command to completion and capture its output.

        Args:
            args: Command and arguments
            env: Extra environment variables, merged over os.environ
            timeout: Seconds before the command is killed (None waits forever)
            cwd: Working directory

        Returns:
            CommandResult; a timed out command has return code -1
        """
        args = [str(a) for a in args]
        logger.debug(f"Running: {' '.join(args)}")
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout,
                check=False,
                env=_merged_env(env),
                cwd=cwd,
            )
        except subprocess.TimeoutExpired:
            logger.warning(f"Timed out after {timeout}s: {' '.join(args)}")
            return CommandResult(args, -1, "", f"timed out after {timeout}s")
        except OSError as e:
            logger.debug(f"Could not start {args[0]}: {e}")
            return CommandResult(args, NOT_FOUND_RETURNCODE, "", str(e))

        return CommandResult(args, result.returncode, result.stdout, result.stderr)

    def stream(
        self,
        args: Sequence[str],
        on_line: Optional[Callable[[str], None]] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> CommandResult:
        """
        Run a command, delivering each output line as it is produced.

        stderr is merged into stdout. Lines are passed to ``on_line`` without
        their trailing newline and are also collected into the result's
        stdout.
        """
        args = [str(a) for a in args]
        logger.debug(f"Streaming: {' '.join(args)}")
        try:
            process = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                env=_merged_env(env),
                cwd=cwd,
            )
        except OSError as e:
            logger.debug(f"Could not start {args[0]}: {e}")
            return CommandResult(args, NOT_FOUND_RETURNCODE, "", str(e))

        lines = []
        with process:
            for raw in process.stdout:
                line = raw.rstrip("\r\n")
                lines.append(line)
                if on_line:
                    on_line(line)
        returncode = process.wait()

        return CommandResult(args, returncode, "\n".join(lines), "")


def _merged_env(env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    if not env:
        return None
    merged = os.environ.copy()
    merged.update(env)
    return merged


__all__ = [
    "PROBE_TIMEOUT",
    "NOT_FOUND_RETURNCODE",
    "CommandResult",
    "CommandRunner",
]
