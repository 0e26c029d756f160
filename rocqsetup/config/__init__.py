"""
Configuration for rocq-setup.

Release manifest, user settings and the per-OS table of install roots.
"""

from rocqsetup.config.manifest import (
    DownloadAsset,
    Manifest,
    OpamAsset,
    OpamPackage,
    load_default_manifest,
    load_manifest,
    parse_manifest,
)
from rocqsetup.config.roots import InstallRoots
from rocqsetup.config.settings import InstallOptions, load_settings

__all__ = [
    "DownloadAsset",
    "Manifest",
    "OpamAsset",
    "OpamPackage",
    "load_default_manifest",
    "load_manifest",
    "parse_manifest",
    "InstallRoots",
    "InstallOptions",
    "load_settings",
]
