"""Release manifest parser for rocq-setup.

A manifest pins one Rocq Platform release: the toolchain version, the platform
release identifier, and one installable asset per (os, arch). Parsing selects
the asset for the current machine and validates it up front, so the rest of
the run never sees a partially valid manifest.
"""

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from rocqsetup.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

SOURCE_PACKAGE_MANAGER = "source-package-manager"
DISK_IMAGE = "disk-image"
SELF_EXTRACTING_INSTALLER = "self-extracting-installer"

ASSET_TYPES = (SOURCE_PACKAGE_MANAGER, DISK_IMAGE, SELF_EXTRACTING_INSTALLER)

# Asset type each OS installs natively.
NATIVE_ASSET_TYPES = {
    "linux": SOURCE_PACKAGE_MANAGER,
    "macos": DISK_IMAGE,
    "windows": SELF_EXTRACTING_INSTALLER,
}

# Tags written by older manifest generators.
LEGACY_ASSET_TYPES = {
    "opam": SOURCE_PACKAGE_MANAGER,
    "dmg": DISK_IMAGE,
    "exe": SELF_EXTRACTING_INSTALLER,
    "innosetup": SELF_EXTRACTING_INSTALLER,
}

KNOWN_OPTIONAL_FLAGS = ("with_vscode", "with_rocqide")


@dataclass(frozen=True)
class OpamPackage:
    """One package of an opam switch; ``optional`` names the enabling flag."""

    name: str
    version: str = ""
    optional: str = ""

    def spec(self) -> str:
        """opam install argument (``name=version`` or bare ``name``)."""
        return f"{self.name}={self.version}" if self.version else self.name


@dataclass(frozen=True)
class OpamAsset:
    """Packages to build from source inside an opam switch."""

    compiler: str
    repo_name: str
    repo_url: str
    packages: Tuple[OpamPackage, ...]
    switch_prefix: str = "CP"
    type: str = SOURCE_PACKAGE_MANAGER


@dataclass(frozen=True)
class DownloadAsset:
    """A single downloadable artifact (disk image or installer)."""

    type: str
    url: str
    sha256: str = ""

    @property
    def filename(self) -> str:
        """Basename of the URL, used as the cache file name."""
        name = self.url.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
        return name or "download"


Asset = Union[OpamAsset, DownloadAsset]


@dataclass(frozen=True)
class Manifest:
    """A release manifest resolved for one platform."""

    toolchain_version: str
    release_id: str
    os_name: str
    arch: str
    asset: Asset
    channel: str = "stable"
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def major_minor(self) -> str:
        """'9.0' for toolchain version '9.0.0'."""
        return major_minor(self.toolchain_version)


def major_minor(version: str) -> str:
    """
    Reduce a version string to its major.minor prefix.

    Example:
        >>> major_minor('9.0.0')
        '9.0'
        >>> major_minor('9')
        '9'
    """
    parts = version.strip().split(".")
    return ".".join(parts[:2])


def parse_manifest(data: Union[bytes, str], os_name: str, arch: str) -> Manifest:
    """
    Parse a manifest document and select the asset for (os_name, arch).

    Args:
        data: Raw JSON document
        os_name: 'linux', 'macos' or 'windows'
        arch: Manifest architecture key ('x86_64', 'arm64')

    Returns:
        Validated Manifest

    Raises:
        ConfigError: If the document is malformed, incomplete, has no asset
            for this platform, or the asset does not match the platform
    """
    try:
        document = json.loads(data)
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Invalid manifest JSON: {e}")

    if not isinstance(document, dict):
        raise ConfigError("Manifest must be a JSON object")

    version = _first_string(document, "toolchain_version", "rocq_version")
    if not version:
        raise ConfigError("Manifest missing required field: toolchain_version")

    release = _first_string(document, "release_id", "platform_release")
    if not release:
        raise ConfigError("Manifest missing required field: release_id")

    assets = document.get("assets")
    if not isinstance(assets, dict):
        raise ConfigError("Manifest missing required field: assets")

    per_os = assets.get(os_name)
    asset_data = per_os.get(arch) if isinstance(per_os, dict) else None
    if not isinstance(asset_data, dict):
        raise ConfigError(f"Manifest has no asset for {os_name}/{arch}")

    asset = _parse_asset(asset_data, os_name, arch)

    channel = document.get("channel") or "stable"
    logger.debug(
        f"Manifest: Rocq {version}, release {release}, {asset.type} for {os_name}/{arch}"
    )
    return Manifest(
        toolchain_version=version,
        release_id=release,
        os_name=os_name,
        arch=arch,
        asset=asset,
        channel=str(channel),
        raw=document,
    )


def load_manifest(path: Path, os_name: str, arch: str) -> Manifest:
    """
    Read and parse a manifest file.

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Manifest file not found: {path}")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise ConfigError(f"Cannot read manifest {path}: {e}")

    return parse_manifest(data, os_name, arch)


def load_default_manifest(os_name: str, arch: str) -> Manifest:
    """Parse the manifest bundled with rocq-setup (``rocqsetup/data/latest.json``)."""
    data = resources.files("rocqsetup.data").joinpath("latest.json").read_bytes()
    return parse_manifest(data, os_name, arch)


def _first_string(data: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _parse_asset(data: Dict[str, Any], os_name: str, arch: str) -> Asset:
    raw_type = data.get("type")
    asset_type = LEGACY_ASSET_TYPES.get(raw_type, raw_type) if isinstance(raw_type, str) else None
    if asset_type not in ASSET_TYPES:
        raise ConfigError(
            f"Invalid asset type for {os_name}/{arch}: {raw_type!r} "
            f"(expected one of {list(ASSET_TYPES)})"
        )

    native = NATIVE_ASSET_TYPES.get(os_name)
    if asset_type != native:
        raise ConfigError(
            f"Asset type {asset_type} cannot be installed on {os_name} "
            f"(expected {native})"
        )

    if asset_type == SOURCE_PACKAGE_MANAGER:
        return _parse_opam_asset(data)

    url = data.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ConfigError(f"{asset_type} asset for {os_name}/{arch} missing url")

    sha256 = data.get("sha256") or ""
    if not isinstance(sha256, str):
        raise ConfigError("sha256 must be a string")

    return DownloadAsset(type=asset_type, url=url.strip(), sha256=sha256.strip())


def _parse_opam_asset(data: Dict[str, Any]) -> OpamAsset:
    """Parse an opam asset, flat or with the settings nested under 'opam'."""
    nested = data.get("opam")
    if isinstance(nested, dict):
        data = {**data, **nested}

    compiler = _first_string(data, "compiler", "ocaml_compiler")
    repo_name = _first_string(data, "repo_name")
    repo_url = _first_string(data, "repo_url")

    for field_name, value in (
        ("compiler", compiler),
        ("repo_name", repo_name),
        ("repo_url", repo_url),
    ):
        if not value:
            raise ConfigError(f"opam asset missing required field: {field_name}")

    packages_data = data.get("packages")
    if not isinstance(packages_data, list) or not packages_data:
        raise ConfigError("opam asset missing required field: packages")

    packages = []
    for entry in packages_data:
        if not isinstance(entry, dict) or not _first_string(entry, "name"):
            raise ConfigError(f"opam package entry missing name: {entry!r}")
        packages.append(
            OpamPackage(
                name=entry["name"].strip(),
                version=str(entry.get("version") or "").strip(),
                optional=str(entry.get("optional") or "").strip(),
            )
        )

    return OpamAsset(
        compiler=compiler,
        repo_name=repo_name,
        repo_url=repo_url,
        packages=tuple(packages),
        switch_prefix=_first_string(data, "switch_prefix") or "CP",
    )


__all__ = [
    "SOURCE_PACKAGE_MANAGER",
    "DISK_IMAGE",
    "SELF_EXTRACTING_INSTALLER",
    "KNOWN_OPTIONAL_FLAGS",
    "OpamPackage",
    "OpamAsset",
    "DownloadAsset",
    "Asset",
    "Manifest",
    "major_minor",
    "parse_manifest",
    "load_manifest",
    "load_default_manifest",
]
