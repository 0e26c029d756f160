"""
Shared CLI utilities.

Console output helpers plus the run context every command starts from.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

from rocqsetup.config.roots import InstallRoots
from rocqsetup.core.platform import PlatformInfo, detect_platform

logger = logging.getLogger(__name__)


# ============================================================================
# Run Context
# ============================================================================


@dataclass
class RunContext:
    """Platform and install roots for the current machine."""

    platform: PlatformInfo
    roots: InstallRoots


def current_context() -> RunContext:
    """
    Detect the platform and build its install roots.

    Raises:
        ConfigError: If the operating system is not supported
    """
    platform = detect_platform()
    logger.debug(f"Platform: {platform}")
    return RunContext(platform=platform, roots=InstallRoots.for_os(platform.os))


# ============================================================================
# Output Formatting
# ============================================================================


def format_success_message(
    title: str,
    details: Dict[str, Any],
    next_steps: Optional[list] = None,
    width: int = 70,
) -> str:
    """
    Format a standardized success message.

    Args:
        title: Success message title
        details: Key-value pairs to display
        next_steps: Optional list of next step instructions
        width: Width of message box

    Returns:
        Formatted message string
    """
    lines = ["=" * width, title, "=" * width, ""]

    for key, value in details.items():
        lines.append(f"{key}: {value}")

    if next_steps:
        lines.append("")
        lines.append("Next steps:")
        for step in next_steps:
            lines.append(f"  {step}")

    lines.append("")
    return "\n".join(lines)


def print_error(message: str, details: Optional[str] = None):
    """Print error message to stderr in consistent format."""
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for Windows console.

    Falls back to ASCII markers if the console cannot encode the symbols.
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        safe_message = (
            message.replace("✓", "[OK]")
            .replace("✗", "[FAIL]")
            .replace("⚠", "[WARN]")
            .replace("→", "->")
        )
        print(safe_message, file=file)


__all__ = [
    "RunContext",
    "current_context",
    "format_success_message",
    "print_error",
    "safe_print",
]
