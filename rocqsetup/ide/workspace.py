"""
Workspace materialisation.

Creates the user's Rocq workspace from the bundled templates and, for opam
installations, shell scripts that activate the switch.
"""

import logging
import os
import stat
from importlib import resources
from pathlib import Path
from typing import List

from rocqsetup.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

TEMPLATE_FILES = ("test.v", "main.v", "_RocqProject")

ACTIVATE_SCRIPT = """\
#!/usr/bin/env bash
# Activate the Rocq Platform opam switch in the current shell.
# Usage: source activate.sh
if [[ "${{BASH_SOURCE[0]}}" == "${{0}}" ]]; then
  echo "This script must be sourced: source ./activate.sh"
  exit 1
fi
eval "$(opam env --switch={switch} --set-switch)"
echo "Rocq Platform activated (switch: {switch})"
"""

ACTIVATE_SHELL_SCRIPT = """\
#!/usr/bin/env bash
# Spawn a new shell with the Rocq Platform opam switch activated.
# Usage: ./activate-shell.sh
echo "Launching shell with Rocq Platform (switch: {switch})..."
exec opam exec --switch={switch} -- "${{SHELL:-/bin/bash}}"
"""


def read_template(name: str) -> str:
    return (
        resources.files("rocqsetup.data")
        .joinpath("templates").joinpath(name)
        .read_text(encoding="utf-8")
    )


def create_workspace(workspace_dir: Path) -> List[Path]:
    """
    Create the workspace directory and its template files.

    Existing files are never overwritten.

    Returns:
        Files written by this call
    """
    workspace_dir = Path(workspace_dir)
    logger.info(f"Creating workspace at {workspace_dir}")
    (workspace_dir / ".vscode").mkdir(parents=True, exist_ok=True)

    written = []
    for name in TEMPLATE_FILES:
        destination = workspace_dir / name
        if destination.exists():
            logger.debug(f"{name} already exists, skipping")
            continue
        atomic_write(destination, read_template(name))
        logger.debug(f"Wrote {destination}")
        written.append(destination)

    return written


def write_activation_scripts(workspace_dir: Path, switch: str) -> List[Path]:
    """
    Write ``activate.sh`` and ``activate-shell.sh`` for an opam switch.

    The scripts are regenerated on every run so they follow the current
    switch name.
    """
    workspace_dir = Path(workspace_dir)
    logger.info(f"Writing activation scripts for switch {switch}")

    scripts = {
        "activate.sh": ACTIVATE_SCRIPT.format(switch=switch),
        "activate-shell.sh": ACTIVATE_SHELL_SCRIPT.format(switch=switch),
    }
    written = []
    for name, content in scripts.items():
        path = workspace_dir / name
        atomic_write(path, content)
        if os.name != "nt":
            mode = path.stat().st_mode
            path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        written.append(path)

    return written


__all__ = ["create_workspace", "write_activation_scripts", "read_template"]
