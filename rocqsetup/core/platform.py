"""
Platform detection for rocq-setup.

Detects the operating system and CPU architecture of the current machine and
maps them onto the keys used by the release manifest (``linux``/``x86_64``,
``macos``/``arm64``, ``windows``/``x86_64``).

Usage:
    from rocqsetup.core.platform import detect_platform

    info = detect_platform()
    print(info.manifest_key())  # ('linux', 'x86_64')
"""

import functools
import platform
from dataclasses import dataclass
from typing import Tuple

import distro

from rocqsetup.core.exceptions import ConfigError


@dataclass(frozen=True)
class PlatformInfo:
    """
    Platform information relevant to toolchain selection.

    Attributes:
        os: Operating system ('windows', 'linux', 'macos')
        arch: CPU architecture ('x64', 'arm64', 'x86', 'arm')
        os_version: OS version string (e.g., '10.0.19041', '6.8.0', '14.1')
        distribution: Linux distribution id ('ubuntu', 'fedora', ...) or empty
    """

    os: str
    arch: str
    os_version: str = ""
    distribution: str = ""

    def platform_string(self) -> str:
        """
        Get canonical platform string.

        Example:
            >>> PlatformInfo('linux', 'x64').platform_string()
            'linux-x64'
        """
        return f"{self.os}-{self.arch}"

    def manifest_key(self) -> Tuple[str, str]:
        """
        Get the (os, arch) pair used to index the manifest asset map.

        Example:
            >>> PlatformInfo('linux', 'x64').manifest_key()
            ('linux', 'x86_64')
        """
        arch_map = {
            "x64": "x86_64",
            "arm64": "arm64",
            "x86": "i686",
            "arm": "armv7l",
        }
        return self.os, arch_map.get(self.arch, self.arch)

    def __str__(self) -> str:
        parts = [self.platform_string()]
        if self.distribution:
            parts.append(f"({self.distribution})")
        if self.os_version:
            parts.append(f"v{self.os_version}")
        return " ".join(parts)


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform information.

    This function is cached - it only runs detection once per process.

    Raises:
        ConfigError: If the operating system is not one rocq-setup supports
    """
    os_name = _detect_os()
    return PlatformInfo(
        os=os_name,
        arch=_detect_architecture(),
        os_version=_detect_os_version(os_name),
        distribution=distro.id() if os_name == "linux" else "",
    )


def _detect_os() -> str:
    system = platform.system().lower()

    if system == "windows":
        return "windows"
    elif system == "linux":
        return "linux"
    elif system == "darwin":
        return "macos"
    raise ConfigError(f"Unsupported operating system: {system}")


def _detect_architecture() -> str:
    """Normalize platform.machine() to 'x64', 'arm64', 'x86' or 'arm'."""
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x64"
    elif machine in ("aarch64", "arm64"):
        return "arm64"
    elif machine in ("i386", "i686", "x86"):
        return "x86"
    elif machine.startswith("arm"):
        return "arm"
    return machine


def _detect_os_version(os_name: str) -> str:
    if os_name == "macos":
        return platform.mac_ver()[0] or "unknown"
    elif os_name == "linux":
        return distro.version() or platform.release()
    return platform.version()


def clear_platform_cache():
    """Clear the platform detection cache (used by tests)."""
    detect_platform.cache_clear()


__all__ = [
    "PlatformInfo",
    "detect_platform",
    "clear_platform_cache",
]
