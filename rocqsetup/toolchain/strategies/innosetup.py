"""
Elevated installer strategy (Windows).

Runs the Rocq Platform Inno Setup installer through the UAC elevation prompt
into ``C:\\Rocq-platform~<major.minor>~<YYYY.MM>`` (or the directory given by
the user) and waits for it to exit.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from rocqsetup.config.manifest import Manifest, major_minor
from rocqsetup.config.roots import InstallRoots
from rocqsetup.config.settings import InstallOptions
from rocqsetup.core.exceptions import InstallError
from rocqsetup.toolchain.detector import has_installation
from rocqsetup.toolchain.strategies.artifact import ArtifactStrategy
from rocqsetup.toolchain.strategy import ProgressFn, StepLabels, no_progress

logger = logging.getLogger(__name__)

INSTALLER_FLAGS = ["/SP-", "/SILENT", "/NORESTART"]

SEE_MASK_NOCLOSEPROCESS = 0x00000040
SW_SHOWNORMAL = 1
INFINITE = 0xFFFFFFFF
WAIT_FAILED = 0xFFFFFFFF


def default_install_dir(
    toolchain_version: str, release_id: str, base: Optional[Path] = None
) -> Path:
    """
    Default installer target directory.

    Example:
        >>> default_install_dir('9.0.0', '2025.08.1').name
        'Rocq-platform~9.0~2025.08'
    """
    base = base if base is not None else Path("C:/")
    return base / f"Rocq-platform~{major_minor(toolchain_version)}~{major_minor(release_id)}"


def format_parameters(args: Sequence[str]) -> str:
    """Join installer arguments, quoting values that contain spaces."""
    parts = []
    for arg in args:
        if " " in arg and "=" in arg:
            key, value = arg.split("=", 1)
            parts.append(f'{key}="{value}"')
        elif " " in arg:
            parts.append(f'"{arg}"')
        else:
            parts.append(arg)
    return " ".join(parts)


class ElevatedLauncher:
    """
    Launch a process through the UAC prompt and wait for its exit code.

    Uses ShellExecuteExW with the ``runas`` verb. Windows only.
    """

    def run(self, executable: Path, args: Sequence[str]) -> int:
        """
        Run ``executable`` elevated.

        Returns:
            Process exit code

        Raises:
            InstallError: If the process cannot be launched or waited for
        """
        import ctypes
        from ctypes import wintypes

        class SHELLEXECUTEINFOW(ctypes.Structure):
            _fields_ = [
                ("cbSize", wintypes.DWORD),
                ("fMask", ctypes.c_ulong),
                ("hwnd", wintypes.HWND),
                ("lpVerb", wintypes.LPCWSTR),
                ("lpFile", wintypes.LPCWSTR),
                ("lpParameters", wintypes.LPCWSTR),
                ("lpDirectory", wintypes.LPCWSTR),
                ("nShow", ctypes.c_int),
                ("hInstApp", wintypes.HINSTANCE),
                ("lpIDList", ctypes.c_void_p),
                ("lpClass", wintypes.LPCWSTR),
                ("hkeyClass", wintypes.HKEY),
                ("dwHotKey", wintypes.DWORD),
                ("hIconOrMonitor", wintypes.HANDLE),
                ("hProcess", wintypes.HANDLE),
            ]

        info = SHELLEXECUTEINFOW()
        info.cbSize = ctypes.sizeof(info)
        info.fMask = SEE_MASK_NOCLOSEPROCESS
        info.lpVerb = "runas"
        info.lpFile = str(executable)
        info.lpParameters = format_parameters(args)
        info.nShow = SW_SHOWNORMAL

        shell32 = ctypes.WinDLL("shell32", use_last_error=True)
        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        kernel32.WaitForSingleObject.argtypes = [wintypes.HANDLE, wintypes.DWORD]
        kernel32.WaitForSingleObject.restype = wintypes.DWORD
        kernel32.GetExitCodeProcess.argtypes = [
            wintypes.HANDLE,
            ctypes.POINTER(wintypes.DWORD),
        ]
        kernel32.CloseHandle.argtypes = [wintypes.HANDLE]

        if not shell32.ShellExecuteExW(ctypes.byref(info)):
            raise InstallError(
                f"ShellExecuteEx failed (error {ctypes.get_last_error()}); "
                "the elevation prompt may have been declined"
            )

        if not info.hProcess:
            return 0

        try:
            if kernel32.WaitForSingleObject(info.hProcess, INFINITE) == WAIT_FAILED:
                raise InstallError("WaitForSingleObject failed")

            exit_code = wintypes.DWORD()
            if not kernel32.GetExitCodeProcess(info.hProcess, ctypes.byref(exit_code)):
                raise InstallError(
                    f"GetExitCodeProcess failed (error {ctypes.get_last_error()})"
                )
            return exit_code.value
        finally:
            kernel32.CloseHandle(info.hProcess)


class ElevatedInstallerStrategy(ArtifactStrategy):
    """Install Rocq Platform with its self-extracting Windows installer."""

    def __init__(
        self,
        manifest: Manifest,
        options: InstallOptions,
        roots: InstallRoots,
        downloads_dir: Path,
        launcher: Optional[ElevatedLauncher] = None,
    ):
        super().__init__(manifest, options, downloads_dir)
        self.roots = roots
        self.launcher = launcher or ElevatedLauncher()

    @property
    def target_dir(self) -> Path:
        if self.options.install_dir is not None:
            return Path(self.options.install_dir)
        return default_install_dir(
            self.manifest.toolchain_version,
            self.manifest.release_id,
            self.roots.default_install_base,
        )

    @property
    def step_labels(self) -> StepLabels:
        return StepLabels(
            acquire="Downloading Rocq Platform installer...",
            acquired="Rocq Platform installer downloaded.",
            verify="Verifying checksum...",
            verified="Checksum verified.",
            install="Installing Rocq Platform (follow the installer window)...",
            installed="Rocq Platform installed.",
        )

    def installer_args(self) -> List[str]:
        return INSTALLER_FLAGS + [f"/DIR={self.target_dir}"]

    def existing_installation(self) -> Optional[str]:
        if self.options.force:
            return None
        target = self.target_dir
        if target.is_dir() and has_installation(target):
            logger.info(f"Rocq Platform already installed in {target}")
            return str(target)
        return None

    def install(self, artifact: Optional[Path], on_progress: ProgressFn = no_progress) -> str:
        if artifact is None:
            raise InstallError("No installer to run")

        args = self.installer_args()
        logger.info(f"Running installer {artifact} {' '.join(args)}")
        exit_code = self.launcher.run(artifact, args)
        if exit_code != 0:
            raise InstallError(f"Installer exited with code {exit_code}")

        logger.info(f"Rocq Platform installed in {self.target_dir}")
        return str(self.target_dir)


__all__ = [
    "ElevatedLauncher",
    "ElevatedInstallerStrategy",
    "default_install_dir",
    "format_parameters",
]
