"""
Install strategy interface.

Each platform installs Rocq through its native mechanism. The pipeline drives
every strategy through the same three steps (acquire, verify, install) or
skips all three when an installation is reused.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rocqsetup.config.manifest import Manifest
from rocqsetup.config.settings import InstallOptions
from rocqsetup.toolchain.names import ProductNames, product_names

logger = logging.getLogger(__name__)

# on_progress(fraction, label): label None keeps the current step label
ProgressFn = Callable[[float, Optional[str]], None]


def no_progress(fraction: float, label: Optional[str] = None) -> None:
    pass


@dataclass(frozen=True)
class StepLabels:
    """Human-readable labels for steps 1 to 3 of one strategy."""

    acquire: str
    acquired: str
    verify: str
    verified: str
    install: str
    installed: str
    skipped: str = "Skipped (already installed)."


class InstallStrategy(ABC):
    """
    Base class for platform install strategies.

    Subclasses receive the manifest and options at construction and are
    driven by the pipeline one step at a time.
    """

    def __init__(self, manifest: Manifest, options: InstallOptions):
        self.manifest = manifest
        self.options = options

    @property
    def names(self) -> ProductNames:
        return product_names(self.manifest.toolchain_version)

    @property
    @abstractmethod
    def step_labels(self) -> StepLabels:
        pass

    @abstractmethod
    def acquire(self, on_progress: ProgressFn = no_progress) -> Optional[Path]:
        """
        Step 1: obtain the artifact (or the tool that builds it).

        Returns:
            Path to the downloaded artifact, or None when there is none
        """

    @abstractmethod
    def verify(self, artifact: Optional[Path]) -> None:
        """Step 2: check the artifact (or tool) is fit for installation."""

    @abstractmethod
    def install(self, artifact: Optional[Path], on_progress: ProgressFn = no_progress) -> str:
        """
        Step 3: install the toolchain.

        Returns:
            Installed location (bundle path, directory or switch name)
        """

    def reuse(self, existing: str) -> str:
        """Accept a known-good existing installation instead of installing."""
        logger.info(f"Reusing existing installation: {existing}")
        return existing

    def existing_installation(self) -> Optional[str]:
        """Installation this strategy recognises as already complete, if any."""
        return None

    def language_server_root(self, location: str) -> Optional[Path]:
        """Directory the binary locator starts from for an installed location."""
        return Path(location)


__all__ = ["ProgressFn", "no_progress", "StepLabels", "InstallStrategy"]
