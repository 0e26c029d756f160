"""
Rocq Platform releases published on GitHub.

Lists the platform release tags and turns one tag into a Manifest for the
current machine, so any published release can be installed instead of the
bundled one:

- macOS and Windows use the ``signed_`` disk image or installer attached to
  the release, with the SHA256 digest GitHub reports for it when present
- Linux reuses the bundled opam asset, with the toolchain packages pinned to
  the release's Rocq version

The Rocq version is read from the release notes, which announce it as
``**Rocq 9.0.0**`` (``**Coq 8.20.1**`` for older releases).
"""

import json
import logging
import re
from importlib import resources
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests.exceptions import RequestException

from rocqsetup.config.manifest import NATIVE_ASSET_TYPES, Manifest, parse_manifest
from rocqsetup.core.download import USER_AGENT
from rocqsetup.core.exceptions import ConfigError, DownloadError
from rocqsetup.toolchain.names import product_names

logger = logging.getLogger(__name__)

RELEASES_URL = "https://api.github.com/repos/rocq-prover/platform/releases"
API_TIMEOUT = (10.0, 30.0)
MAX_RELEASES = 30

VERSION_PATTERN = re.compile(r"\*\*(?:Rocq|Coq)\s+(\d+\.\d+\.\d+)\*\*")
SHA256_PATTERN = re.compile(r"[0-9a-f]{64}")

SIGNED_PREFIX = "signed_"
ASSET_SUFFIXES = {"macos": ".dmg", "windows": ".exe"}
INTEL_MARKERS = ("intel", "x86_64", "amd64")

# Coq-era names of the packages in the bundled opam asset.
LEGACY_PACKAGE_NAMES = {
    "rocq-prover": "coq",
    "rocqide": "coqide",
    "vsrocq-language-server": "vscoq-language-server",
}


# ============================================================================
# GitHub API
# ============================================================================


def _get_json(url: str, params: Optional[Dict[str, Any]] = None) -> Any:
    try:
        response = requests.get(
            url,
            params=params,
            timeout=API_TIMEOUT,
            headers={
                "Accept": "application/vnd.github+json",
                "User-Agent": USER_AGENT,
            },
        )
    except RequestException as e:
        raise DownloadError(f"Cannot reach {url}: {e}") from e

    if response.status_code == 404:
        raise ConfigError(f"Release not found: {url}")
    if response.status_code != 200:
        raise DownloadError(f"GitHub API request {url} failed: HTTP {response.status_code}")

    try:
        return response.json()
    except ValueError as e:
        raise DownloadError(f"GitHub API returned invalid JSON for {url}: {e}") from e


def fetch_release_tags(limit: int = MAX_RELEASES) -> List[str]:
    """
    List platform release tags, newest first.

    Tags starting with ``v`` belong to the pre-platform numbering and are
    skipped.

    Raises:
        DownloadError: If the API cannot be reached or answers with an error
    """
    releases = _get_json(RELEASES_URL, params={"per_page": limit})
    if not isinstance(releases, list):
        raise DownloadError("GitHub API returned an unexpected release list")

    tags = []
    for release in releases:
        tag = release.get("tag_name") if isinstance(release, dict) else None
        if isinstance(tag, str) and tag and not tag.startswith("v"):
            tags.append(tag)
    logger.debug(f"Found {len(tags)} platform releases")
    return tags


def fetch_release(tag: str) -> Dict[str, Any]:
    """Fetch the release record for one tag."""
    release = _get_json(f"{RELEASES_URL}/tags/{tag}")
    if not isinstance(release, dict):
        raise DownloadError(f"GitHub API returned an unexpected record for {tag}")
    return release


# ============================================================================
# Release contents
# ============================================================================


def infer_toolchain_version(notes: str) -> str:
    """
    Read the Rocq version announced in the release notes.

    Example:
        >>> infer_toolchain_version("Ships **Rocq 9.0.0** and VsRocq 2.3")
        '9.0.0'
    """
    match = VERSION_PATTERN.search(notes or "")
    return match.group(1) if match else ""


def _is_intel(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in INTEL_MARKERS)


def find_signed_asset(
    assets: Sequence[Dict[str, Any]], os_name: str, arch: str
) -> Optional[Dict[str, Any]]:
    """
    Pick the signed artifact for (os_name, arch) from a release's assets.

    Disk images for the machine's architecture are preferred; any signed
    disk image is the fallback.
    """
    suffix = ASSET_SUFFIXES.get(os_name)
    if suffix is None:
        return None

    signed = [
        asset
        for asset in assets
        if isinstance(asset, dict)
        and str(asset.get("name", "")).startswith(SIGNED_PREFIX)
        and str(asset.get("name", "")).endswith(suffix)
        and asset.get("browser_download_url")
    ]
    if os_name == "macos":
        want_intel = arch != "arm64"
        for asset in signed:
            if _is_intel(asset["name"]) == want_intel:
                return asset
    return signed[0] if signed else None


def asset_sha256(asset: Dict[str, Any]) -> str:
    """SHA256 from GitHub's ``digest`` field (``sha256:<hex>``), else ''."""
    digest = asset.get("digest")
    if not isinstance(digest, str) or ":" not in digest:
        return ""
    algorithm, value = digest.strip().split(":", 1)
    value = value.strip().lower()
    if algorithm.lower() != "sha256" or not SHA256_PATTERN.fullmatch(value):
        logger.debug(f"Ignoring digest {digest!r} of {asset.get('name')}")
        return ""
    return value


def _bundled_document() -> Dict[str, Any]:
    data = resources.files("rocqsetup.data").joinpath("latest.json").read_bytes()
    return json.loads(data)


def _repin_opam_asset(
    asset: Dict[str, Any], bundled_version: str, version: str
) -> Dict[str, Any]:
    """Pin the toolchain packages to ``version`` and drop the other pins."""
    legacy = product_names(version).is_legacy
    packages = []
    for package in asset.get("packages", []):
        package = dict(package)
        if package.get("version") == bundled_version:
            package["version"] = version
        elif version != bundled_version:
            package["version"] = ""
        if legacy:
            package["name"] = LEGACY_PACKAGE_NAMES.get(package["name"], package["name"])
        packages.append(package)
    return {**asset, "packages": packages}


def manifest_for_release(
    release: Dict[str, Any],
    os_name: str,
    arch: str,
    bundled: Optional[Dict[str, Any]] = None,
) -> Manifest:
    """
    Build the Manifest for one release record.

    Args:
        release: Release record as returned by the GitHub API
        os_name: 'linux', 'macos' or 'windows'
        arch: Manifest architecture key
        bundled: Bundled manifest document (read from the package when None)

    Raises:
        ConfigError: If the Rocq version cannot be read from the notes, or
            the release has no signed artifact for this machine
    """
    tag = str(release.get("tag_name") or "").strip()
    if not tag:
        raise ConfigError("Release record has no tag")

    version = infer_toolchain_version(str(release.get("body") or ""))
    if not version:
        raise ConfigError(f"Could not read the Rocq version from release {tag} notes")

    if os_name == "linux":
        bundled = bundled if bundled is not None else _bundled_document()
        template = bundled.get("assets", {}).get(os_name, {}).get(arch)
        if not isinstance(template, dict):
            raise ConfigError(f"No opam template for {os_name}/{arch}")
        bundled_version = str(
            bundled.get("toolchain_version") or bundled.get("rocq_version") or ""
        )
        asset = _repin_opam_asset(template, bundled_version, version)
    else:
        found = find_signed_asset(release.get("assets") or [], os_name, arch)
        if found is None:
            suffix = ASSET_SUFFIXES.get(os_name, "")
            raise ConfigError(
                f"No signed {suffix} asset in release {tag} for {os_name}/{arch}"
            )
        asset = {
            "type": NATIVE_ASSET_TYPES[os_name],
            "url": found["browser_download_url"],
            "sha256": asset_sha256(found),
        }
        if not asset["sha256"]:
            logger.warning(f"Release {tag} publishes no checksum for {found['name']}")

    document = {
        "channel": "stable",
        "toolchain_version": version,
        "release_id": tag,
        "assets": {os_name: {arch: asset}},
    }
    logger.info(f"Release {tag}: Rocq {version}")
    return parse_manifest(json.dumps(document), os_name, arch)


def fetch_release_manifest(tag: str, os_name: str, arch: str) -> Manifest:
    """Fetch a release by tag and build its Manifest for this machine."""
    logger.info(f"Resolving release {tag}")
    return manifest_for_release(fetch_release(tag), os_name, arch)


__all__ = [
    "RELEASES_URL",
    "fetch_release_tags",
    "fetch_release",
    "infer_toolchain_version",
    "find_signed_asset",
    "asset_sha256",
    "manifest_for_release",
    "fetch_release_manifest",
]
