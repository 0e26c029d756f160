"""
Centralized exception hierarchy for rocq-setup.

Every error the installation engine raises derives from RocqSetupError so the
command line layer can report it verbatim and exit non-zero.
"""


# ============================================================================
# Base Exceptions
# ============================================================================


class RocqSetupError(Exception):
    """Base exception for all rocq-setup errors."""

    pass


# ============================================================================
# Pre-flight
# ============================================================================


class ConfigError(RocqSetupError):
    """Manifest or settings file is missing, malformed or incomplete."""

    pass


class PrerequisiteError(RocqSetupError):
    """A required external tool is absent and could not be installed."""

    pass


class RunInProgressError(RocqSetupError):
    """Raised when an installation run is started while another is active."""

    pass


# ============================================================================
# Acquisition
# ============================================================================


class DownloadError(RocqSetupError):
    """Transport failure or non-2xx HTTP status while downloading."""

    pass


class ChecksumError(RocqSetupError):
    """Downloaded artifact does not match its expected SHA256."""

    pass


# ============================================================================
# Installation
# ============================================================================


class InstallError(RocqSetupError):
    """Package manager, disk image or installer process failure."""

    def __init__(self, message: str, output: str = ""):
        self.output = output
        if output:
            message = f"{message}\nOutput (last lines):\n{_tail(output)}"
        super().__init__(message)


class NotFoundError(RocqSetupError):
    """Language server or editor could not be located (recoverable)."""

    pass


def _tail(output: str, lines: int = 20) -> str:
    """Return the last few lines of tool output for error messages."""
    return "\n".join(output.strip().splitlines()[-lines:])
