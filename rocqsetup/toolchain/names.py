"""
Version-dependent product names.

Rocq 9 renamed the Coq toolchain: the language server became ``vsrocqtop``,
the VSCode extension moved to ``rocq-prover.vsrocq`` and the compiler driver
became ``rocq``. product_names() is the only place that threshold is checked.
"""

import logging
from dataclasses import dataclass

from packaging.version import InvalidVersion, Version

from rocqsetup.config.manifest import major_minor

logger = logging.getLogger(__name__)

RENAME_MAJOR = 9


@dataclass(frozen=True)
class ProductNames:
    """Names of the toolchain artifacts for one version."""

    binary_name: str  # language server executable
    extension_id: str  # VSCode extension
    settings_key: str  # VSCode setting holding the language server path
    toolchain_binary: str  # primary command line binary

    @property
    def is_legacy(self) -> bool:
        return self.binary_name == LEGACY_NAMES.binary_name


CURRENT_NAMES = ProductNames(
    binary_name="vsrocqtop",
    extension_id="rocq-prover.vsrocq",
    settings_key="vsrocq.path",
    toolchain_binary="rocq",
)

LEGACY_NAMES = ProductNames(
    binary_name="vscoqtop",
    extension_id="coq-community.vscoq",
    settings_key="vscoq.path",
    toolchain_binary="coqc",
)


def product_names(version: str) -> ProductNames:
    """
    Get the product names for a toolchain version.

    Versions below 9 use the Coq-era names. A version that cannot be parsed
    gets the current names.

    Example:
        >>> product_names('8.20.1').binary_name
        'vscoqtop'
        >>> product_names('9.0.0').extension_id
        'rocq-prover.vsrocq'
    """
    try:
        major = Version(version.strip()).major
    except InvalidVersion:
        logger.debug(f"Unparseable toolchain version {version!r}, using current names")
        return CURRENT_NAMES

    return LEGACY_NAMES if major < RENAME_MAJOR else CURRENT_NAMES


def switch_name(prefix: str, release_id: str, version: str, snapshot: str = "") -> str:
    """
    Build the opam switch name for a release.

    Format: ``<prefix>.<release>~<major.minor>[~<snapshot>]``.

    Example:
        >>> switch_name('CP', '2025.08.1', '9.0.0')
        'CP.2025.08.1~9.0'
        >>> switch_name('CP', '2025.08.1', '9.0.0', 'beta')
        'CP.2025.08.1~9.0~beta'
    """
    name = f"{prefix}.{release_id}~{major_minor(version)}"
    if snapshot:
        name = f"{name}~{snapshot}"
    return name


__all__ = [
    "ProductNames",
    "CURRENT_NAMES",
    "LEGACY_NAMES",
    "product_names",
    "switch_name",
]
