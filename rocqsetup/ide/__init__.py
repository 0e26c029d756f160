"""
Editor integration.

VSCode extension, workspace settings and workspace templates.
"""

from rocqsetup.ide.vscode import VSCodeIntegration
from rocqsetup.ide.workspace import create_workspace, write_activation_scripts

__all__ = [
    "VSCodeIntegration",
    "create_workspace",
    "write_activation_scripts",
]
