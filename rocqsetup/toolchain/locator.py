"""
Language server binary locator.

Finds the ``vsrocqtop`` (or, before Rocq 9, ``vscoqtop``) executable the
editor extension needs. The name is fixed up front from the toolchain
version; only locations are searched, never alternative names.

Search order, stopping at the first hit:
1. ``<root>/<subdir>/<name>`` for each conventional binary subdirectory
2. PATH
3. Fixed binary directories (Homebrew prefixes on macOS)
4. Bounded walk (depth 6) of the root, then of every rocq/coq bundle in the
   well-known application directories
"""

import logging
import shutil
from pathlib import Path
from typing import Callable, List, Optional

from rocqsetup.config.roots import InstallRoots
from rocqsetup.core.exceptions import NotFoundError
from rocqsetup.core.filesystem import is_executable, walk_for_executable
from rocqsetup.toolchain.names import ProductNames

logger = logging.getLogger(__name__)

MAX_WALK_DEPTH = 6


class BinaryLocator:
    """
    Locate the language server for one toolchain version.

    Example:
        >>> locator = BinaryLocator(InstallRoots.for_os('macos'), product_names('9.0.0'))
        >>> locator.locate(Path('/Applications/Rocq-Platform~9.0~2025.08.app'))
        PosixPath('/Applications/Rocq-Platform~9.0~2025.08.app/Contents/Resources/bin/vsrocqtop')
    """

    def __init__(
        self,
        roots: InstallRoots,
        names: ProductNames,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.roots = roots
        self.names = names
        self.which = which

    @property
    def candidate_names(self) -> List[str]:
        name = self.names.binary_name
        if self.roots.os_name == "windows":
            return [name, f"{name}.exe"]
        return [name]

    def locate(self, root_hint: Optional[Path] = None) -> Path:
        """
        Find the language server binary.

        Args:
            root_hint: Installation root (bundle, install dir or opam bin dir)

        Returns:
            Path to the executable

        Raises:
            NotFoundError: If no candidate location holds the binary
        """
        binary = self.names.binary_name
        logger.debug(f"[{binary}] searching (root: {root_hint})")

        for finder in (
            self._in_root_subdirs,
            self._on_path,
            self._in_fixed_dirs,
            self._walk_root,
            self._walk_application_bundles,
        ):
            found = finder(root_hint)
            if found is not None:
                logger.info(f"Found {binary}: {found}")
                return found

        raise NotFoundError(f"{binary} not found")

    def _in_root_subdirs(self, root: Optional[Path]) -> Optional[Path]:
        if root is None:
            return None
        for subdir in self.roots.binary_subdirs:
            for name in self.candidate_names:
                candidate = Path(root) / subdir / name if subdir else Path(root) / name
                if is_executable(candidate):
                    return candidate
        return None

    def _on_path(self, root: Optional[Path]) -> Optional[Path]:
        for name in self.candidate_names:
            resolved = self.which(name)
            if resolved:
                return Path(resolved)
        return None

    def _in_fixed_dirs(self, root: Optional[Path]) -> Optional[Path]:
        for directory in self.roots.fixed_binary_dirs:
            for name in self.candidate_names:
                candidate = directory / name
                if is_executable(candidate):
                    return candidate
        return None

    def _walk_root(self, root: Optional[Path]) -> Optional[Path]:
        if root is None:
            return None
        root = Path(root)
        contents = root / "Contents"
        start = contents if contents.is_dir() else root
        if not start.is_dir():
            return None
        logger.debug(f"[{self.names.binary_name}] walking {start} (max depth {MAX_WALK_DEPTH})")
        return next(walk_for_executable(start, self.candidate_names, MAX_WALK_DEPTH), None)

    def _walk_application_bundles(self, root: Optional[Path]) -> Optional[Path]:
        for app_dir in self.roots.application_dirs:
            try:
                bundles = sorted(app_dir.iterdir())
            except OSError:
                continue
            for bundle in bundles:
                if not bundle.is_dir() or not self.roots.has_brand(bundle.name):
                    continue
                if self.roots.bundle_suffix and not bundle.name.endswith(
                    self.roots.bundle_suffix
                ):
                    continue
                contents = bundle / "Contents"
                start = contents if contents.is_dir() else bundle
                found = next(
                    walk_for_executable(start, self.candidate_names, MAX_WALK_DEPTH),
                    None,
                )
                if found is not None:
                    return found
        return None


__all__ = ["BinaryLocator", "MAX_WALK_DEPTH"]
