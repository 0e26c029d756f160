"""
Cross-platform file system utilities for rocq-setup.

This module provides the file operations the installation engine needs:
- Safe directory removal and recursive copy (used for application bundles)
- Atomic writes (used for editor settings)
- Depth-bounded, lazy executable search
- Writability probes for install destinations
"""

import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional, Union

IS_WINDOWS = os.name == "nt"


class FilesystemError(Exception):
    """Base exception for filesystem operations."""

    pass


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check whether ``path`` lies inside ``parent``.

    Example:
        >>> is_relative_to(Path('/a/b/c'), Path('/a'))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def is_executable(path: Path) -> bool:
    """
    Check that ``path`` is a regular file the current user may execute.

    On Windows every regular file counts, the executable bit has no meaning
    there.
    """
    try:
        if not path.is_file():
            return False
    except OSError:
        return False
    if IS_WINDOWS:
        return True
    return os.access(path, os.X_OK)


def is_writable_dir(directory: Path) -> bool:
    """
    Probe whether files can be created in ``directory``.

    A real write test is used rather than os.access, which lies on network
    volumes and under macOS privacy controls.
    """
    probe = directory / ".rocq-write-test"
    try:
        probe.write_bytes(b"test")
    except OSError:
        return False
    try:
        probe.unlink()
    except OSError:
        pass
    return True


def walk_for_executable(
    root: Path, names: Iterable[str], max_depth: int = 6
) -> Iterator[Path]:
    """
    Lazily yield executables named ``names`` below ``root``.

    The walk is breadth-first and never descends more than ``max_depth``
    directory levels below ``root`` (files directly in ``root`` are depth 0).
    Unreadable directories are skipped. Callers stop at the first hit by
    taking ``next()`` of the generator.

    Example:
        >>> hit = next(walk_for_executable(Path('/Applications/Rocq.app'), ['vsrocqtop']), None)
    """
    wanted = set(names)
    level = [Path(root)]
    depth = 0

    while level and depth <= max_depth:
        next_level = []
        for directory in level:
            try:
                entries = sorted(directory.iterdir())
            except OSError:
                continue
            for entry in entries:
                try:
                    if entry.is_dir() and not entry.is_symlink():
                        next_level.append(entry)
                    elif entry.name in wanted and is_executable(entry):
                        yield entry
                except OSError:
                    continue
        level = next_level
        depth += 1


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    This ensures the file is never in a partially-written state.
    If the write fails, the original file (if any) remains unchanged.

    Example:
        >>> atomic_write('settings.json', '{"vsrocq.path": "/usr/bin/vsrocqtop"}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except Exception:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree('/Applications/Rocq-Platform.app', require_prefix='/Applications')
    """
    path = Path(path).resolve()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists():
        return

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    def handle_remove_readonly(func, target, exc):
        """Clear the read-only bit and retry (Windows, locked bundles)."""
        os.chmod(target, stat.S_IWRITE | stat.S_IREAD)
        func(target)

    try:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=handle_remove_readonly)
        else:
            shutil.rmtree(path, onerror=handle_remove_readonly)
    except Exception as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}")


def recursive_copy(
    source: Union[str, Path],
    destination: Union[str, Path],
    progress_callback: Optional[Callable[[Path], None]] = None,
    symlinks: bool = True,
) -> None:
    """
    Recursively copy a directory tree.

    Application bundles rely on relative symlinks inside ``Contents/``, so
    symlinks are preserved by default.

    Example:
        >>> recursive_copy('/Volumes/Rocq/Rocq.app', '/Applications/Rocq.app')
    """
    source = Path(source)
    destination = Path(destination)

    if not source.exists():
        raise FilesystemError(f"Source does not exist: {source}")

    if not source.is_dir():
        raise FilesystemError(f"Source is not a directory: {source}")

    destination.mkdir(parents=True, exist_ok=True)

    for item in sorted(source.rglob("*")):
        rel_path = item.relative_to(source)
        dest_item = destination / rel_path

        if item.is_symlink() and symlinks:
            link_target = os.readlink(item)
            if dest_item.exists() or dest_item.is_symlink():
                dest_item.unlink()
            dest_item.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(link_target, dest_item)
        elif item.is_dir():
            dest_item.mkdir(parents=True, exist_ok=True)
        else:
            dest_item.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, dest_item)

        if progress_callback:
            progress_callback(item)


__all__ = [
    "IS_WINDOWS",
    "FilesystemError",
    "is_relative_to",
    "is_executable",
    "is_writable_dir",
    "walk_for_executable",
    "atomic_write",
    "safe_rmtree",
    "recursive_copy",
]
