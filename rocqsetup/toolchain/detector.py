"""
Existing Rocq installation detection.

This module discovers Rocq (or Coq) installations that are already present on
the machine, whether installed by hand, by an earlier rocq-setup run, or by
the OS package ecosystem. Detection never modifies anything.

Search sources, in order:
- GlobSearcher: well-known install parents, entries named like rocq/coq
- RegistrySearcher (Windows): uninstall registry entries
- OpamSwitchSearcher (Linux): opam switches created by Rocq installers
- PathSearcher: ``rocq`` on PATH, walking up to the installation root
- FixedPathSearcher: historically common fixed locations

Results are merged into one ordered, deduplicated InstallationRecord.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from rocqsetup.config.roots import InstallRoots
from rocqsetup.core.process import PROBE_TIMEOUT, CommandRunner

logger = logging.getLogger(__name__)

# Binaries whose presence marks a directory as a Rocq installation.
INSTALLATION_MARKERS = ("rocq", "rocq.exe", "vsrocqtop", "vsrocqtop.exe")

MAX_PARENT_LEVELS = 6

UNINSTALL_KEY = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"


def has_installation(directory: Path) -> bool:
    """
    Check whether a directory holds a Rocq installation.

    Looks for a Rocq binary in ``bin/``, in the directory itself, and in each
    immediate subdirectory.
    """
    directory = Path(directory)
    for name in INSTALLATION_MARKERS:
        for candidate in (directory / "bin" / name, directory / name):
            if candidate.is_file():
                logger.debug(f"[detect] found {candidate}")
                return True

    try:
        subdirs = [entry for entry in directory.iterdir() if entry.is_dir()]
    except OSError:
        return False

    for subdir in subdirs:
        for name in INSTALLATION_MARKERS:
            if (subdir / name).is_file():
                logger.debug(f"[detect] found {subdir / name}")
                return True
    return False


@dataclass
class InstallationRecord:
    """
    Ordered, deduplicated candidate installations.

    Attributes:
        locations: Bundle paths, directories or opam switch names
        sources: Name of the searcher that found each location
    """

    locations: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)
    case_insensitive: bool = False
    _seen: set = field(default_factory=set, repr=False)

    def _key(self, location: str) -> str:
        return location.casefold() if self.case_insensitive else location

    def add(self, location: str, source: str) -> bool:
        """Add a location unless an equivalent one is present."""
        key = self._key(location)
        if key in self._seen:
            return False
        self._seen.add(key)
        self.locations.append(location)
        self.sources.append(source)
        return True

    @property
    def found(self) -> bool:
        return bool(self.locations)

    def first(self) -> Optional[str]:
        return self.locations[0] if self.locations else None

    def entries(self) -> List[Tuple[str, str]]:
        return list(zip(self.locations, self.sources))

    def __len__(self) -> int:
        return len(self.locations)

    def __iter__(self):
        return iter(self.locations)


class GlobSearcher:
    """
    Search well-known install parents for rocq/coq-named entries.

    On macOS only ``.app`` bundles count. On Windows the entry must contain a
    Rocq binary.
    """

    def __init__(self, roots: InstallRoots):
        self.roots = roots

    def search(self) -> List[str]:
        found = []
        for parent in self.roots.install_parents:
            try:
                entries = sorted(parent.iterdir())
            except OSError:
                logger.debug(f"[detect] cannot list {parent}")
                continue

            for entry in entries:
                if not self.roots.has_brand(entry.name):
                    continue
                if self.roots.bundle_suffix and not entry.name.endswith(
                    self.roots.bundle_suffix
                ):
                    continue
                if not entry.is_dir():
                    continue
                if self.roots.os_name == "windows" and not has_installation(entry):
                    continue
                logger.debug(f"[detect] glob match: {entry}")
                found.append(str(entry))
        return found


class RegistrySearcher:
    """
    Search the Windows uninstall registry for Rocq/Coq entries.

    Reads ``DisplayName`` and ``InstallLocation`` of every subkey of the
    Uninstall key under HKLM and HKCU. Windows only.
    """

    def __init__(
        self,
        roots: InstallRoots,
        read_entries: Optional[Callable[[], Iterable[Tuple[str, str]]]] = None,
    ):
        self.roots = roots
        self.read_entries = read_entries or _read_uninstall_entries

    def search(self) -> List[str]:
        found = []
        for display_name, install_location in self.read_entries():
            if not install_location or not self.roots.has_brand(display_name):
                continue
            if has_installation(Path(install_location)):
                logger.debug(f"[detect] registry: {display_name} at {install_location}")
                found.append(install_location)
        return found


def _read_uninstall_entries() -> List[Tuple[str, str]]:
    """Return (DisplayName, InstallLocation) pairs from the uninstall hives."""
    import winreg

    entries = []
    for hive in (winreg.HKEY_LOCAL_MACHINE, winreg.HKEY_CURRENT_USER):
        try:
            uninstall = winreg.OpenKey(hive, UNINSTALL_KEY)
        except OSError:
            continue

        with uninstall:
            index = 0
            while True:
                try:
                    subkey_name = winreg.EnumKey(uninstall, index)
                except OSError:
                    break
                index += 1
                try:
                    with winreg.OpenKey(uninstall, subkey_name) as subkey:
                        display_name = winreg.QueryValueEx(subkey, "DisplayName")[0]
                        try:
                            location = winreg.QueryValueEx(subkey, "InstallLocation")[0]
                        except OSError:
                            location = ""
                except OSError:
                    continue
                entries.append((str(display_name), str(location)))
    return entries


class OpamSwitchSearcher:
    """
    List opam switches created by Rocq installers.

    Switch names starting with one of ``roots.switch_prefixes`` (``CP.``,
    ``coq-``) count. A missing or failing opam yields nothing. Linux only.
    """

    def __init__(self, roots: InstallRoots, runner: CommandRunner):
        self.roots = roots
        self.runner = runner

    def search(self) -> List[str]:
        result = self.runner.run(
            ["opam", "switch", "list", "--short"], timeout=PROBE_TIMEOUT
        )
        if not result.ok:
            logger.debug(f"[detect] opam switch list failed: {result.output.strip()}")
            return []

        switches = []
        for line in result.stdout.splitlines():
            name = line.strip()
            if name and name.startswith(tuple(self.roots.switch_prefixes)):
                logger.debug(f"[detect] opam switch: {name}")
                switches.append(name)
        return switches


class PathSearcher:
    """
    Resolve ``rocq`` on PATH and walk up to its installation root.

    macOS: the first enclosing ``.app`` bundle (at most 6 levels up), or
    nothing. Elsewhere: the first ancestor satisfying has_installation, or the
    binary's own directory.
    """

    def __init__(self, roots: InstallRoots, which: Callable[[str], Optional[str]] = shutil.which):
        self.roots = roots
        self.which = which

    def search(self) -> List[str]:
        names = ["rocq", "rocq.exe"] if self.roots.os_name == "windows" else ["rocq"]
        found = []
        for name in names:
            resolved = self.which(name)
            if not resolved:
                continue
            logger.debug(f"[detect] {name} on PATH: {resolved}")
            root = self._installation_root(Path(resolved))
            if root is not None:
                found.append(str(root))
        return found

    def _installation_root(self, binary: Path) -> Optional[Path]:
        directory = binary.parent
        for _ in range(MAX_PARENT_LEVELS):
            if self.roots.bundle_suffix:
                if directory.name.endswith(self.roots.bundle_suffix):
                    return directory
            elif directory != binary.parent and has_installation(directory):
                return directory
            if directory.parent == directory:
                break
            directory = directory.parent

        if self.roots.bundle_suffix:
            return None
        return binary.parent


class FixedPathSearcher:
    """Check the historically common fixed install locations."""

    def __init__(self, roots: InstallRoots):
        self.roots = roots

    def search(self) -> List[str]:
        found = []
        for path in self.roots.fixed_install_paths:
            if path.is_dir() and has_installation(path):
                found.append(str(path))
        for binary in self.roots.fixed_binary_paths:
            if binary.is_file():
                found.append(str(binary.parent))
        return found


class InstallationDetector:
    """
    Detects existing Rocq installations.

    Orchestrates the searchers relevant to the operating system and merges
    their findings. A searcher that fails is logged and skipped.
    """

    def __init__(
        self,
        roots: InstallRoots,
        runner: Optional[CommandRunner] = None,
        searchers: Optional[list] = None,
    ):
        self.roots = roots
        self.runner = runner or CommandRunner()
        self.searchers = searchers if searchers is not None else self._default_searchers()

    def _default_searchers(self) -> list:
        if self.roots.os_name == "linux":
            return [OpamSwitchSearcher(self.roots, self.runner)]

        searchers: list = [GlobSearcher(self.roots)]
        if self.roots.os_name == "windows":
            searchers.append(RegistrySearcher(self.roots))
        searchers.append(PathSearcher(self.roots, which=self.runner.which))
        searchers.append(FixedPathSearcher(self.roots))
        return searchers

    def detect(self) -> InstallationRecord:
        """
        Run every searcher and merge the results.

        Returns:
            InstallationRecord, empty when nothing is installed
        """
        record = InstallationRecord(case_insensitive=self.roots.os_name == "windows")

        logger.info("Searching for existing Rocq installations")

        for searcher in self.searchers:
            name = searcher.__class__.__name__
            try:
                found = searcher.search()
            except Exception as e:
                logger.warning(f"Searcher {name} failed: {e}")
                continue

            logger.debug(f"{name} found {len(found)} candidates")
            for location in found:
                record.add(os.fspath(location), name)

        if record.found:
            logger.info(f"Found {len(record)} existing installation(s): {record.locations}")
        else:
            logger.info("No existing installation found")
        return record


__all__ = [
    "INSTALLATION_MARKERS",
    "has_installation",
    "InstallationRecord",
    "GlobSearcher",
    "RegistrySearcher",
    "OpamSwitchSearcher",
    "PathSearcher",
    "FixedPathSearcher",
    "InstallationDetector",
]
