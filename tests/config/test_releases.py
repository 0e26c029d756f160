"""
Unit tests for resolving published Rocq Platform releases.

The GitHub API is mocked with responses.
"""

import pytest
import requests
import responses

from rocqsetup.config.manifest import (
    DISK_IMAGE,
    SELF_EXTRACTING_INSTALLER,
    DownloadAsset,
    OpamAsset,
)
from rocqsetup.config.releases import (
    RELEASES_URL,
    asset_sha256,
    fetch_release_manifest,
    fetch_release_tags,
    find_signed_asset,
    infer_toolchain_version,
    manifest_for_release,
)
from rocqsetup.core.exceptions import ConfigError, DownloadError
from tests.mocks.manifests import OPAM_ASSET, manifest_document

DOWNLOAD = "https://github.com/rocq-prover/platform/releases/download/2025.01.0"

ASSETS = [
    {"name": "Rocq-Platform-2025.01.0-arm64.dmg", "browser_download_url": f"{DOWNLOAD}/u.dmg"},
    {
        "name": "signed_Rocq-Platform-2025.01.0-intel.dmg",
        "browser_download_url": f"{DOWNLOAD}/signed_intel.dmg",
    },
    {
        "name": "signed_Rocq-Platform-2025.01.0-arm64.dmg",
        "browser_download_url": f"{DOWNLOAD}/signed_arm64.dmg",
        "digest": "sha256:" + "ab" * 32,
    },
    {
        "name": "signed_Rocq-Platform-2025.01.0-Windows-x86_64.exe",
        "browser_download_url": f"{DOWNLOAD}/signed_setup.exe",
    },
]


def release(tag="2025.01.0", body="Rocq Platform with **Rocq 9.0.0** inside", assets=ASSETS):
    return {"tag_name": tag, "body": body, "assets": assets}


class TestFetchReleaseTags:
    @responses.activate
    def test_skips_v_prefixed_tags(self):
        responses.add(
            responses.GET,
            RELEASES_URL,
            json=[
                {"tag_name": "2025.08.1"},
                {"tag_name": "2025.01.0"},
                {"tag_name": "v8.13"},
                {"tag_name": "2024.10.1"},
            ],
        )

        assert fetch_release_tags() == ["2025.08.1", "2025.01.0", "2024.10.1"]
        assert "per_page=30" in responses.calls[0].request.url
        assert responses.calls[0].request.headers["User-Agent"].startswith("rocq-setup/")

    @responses.activate
    def test_http_error(self):
        responses.add(responses.GET, RELEASES_URL, status=403)

        with pytest.raises(DownloadError, match="403"):
            fetch_release_tags()

    @responses.activate
    def test_transport_error(self):
        responses.add(
            responses.GET, RELEASES_URL, body=requests.exceptions.ConnectionError("offline")
        )

        with pytest.raises(DownloadError, match="offline"):
            fetch_release_tags()


class TestReleaseContents:
    @pytest.mark.parametrize(
        "notes,expected",
        [
            ("This release ships **Rocq 9.0.0** and more", "9.0.0"),
            ("Based on **Coq 8.20.1**.", "8.20.1"),
            ("Rocq 9.0.0 without emphasis", ""),
            ("", ""),
        ],
    )
    def test_infer_toolchain_version(self, notes, expected):
        assert infer_toolchain_version(notes) == expected

    def test_arm64_image_preferred_on_apple_silicon(self):
        found = find_signed_asset(ASSETS, "macos", "arm64")
        assert found["browser_download_url"] == f"{DOWNLOAD}/signed_arm64.dmg"

    def test_intel_image_on_intel(self):
        found = find_signed_asset(ASSETS, "macos", "x86_64")
        assert found["browser_download_url"] == f"{DOWNLOAD}/signed_intel.dmg"

    def test_any_signed_image_as_fallback(self):
        found = find_signed_asset(ASSETS[:2], "macos", "arm64")
        assert found["browser_download_url"] == f"{DOWNLOAD}/signed_intel.dmg"

    def test_unsigned_artifacts_ignored(self):
        assert find_signed_asset(ASSETS[:1], "macos", "arm64") is None

    def test_windows_installer(self):
        found = find_signed_asset(ASSETS, "windows", "x86_64")
        assert found["name"].endswith(".exe")

    def test_asset_sha256(self):
        assert asset_sha256(ASSETS[2]) == "ab" * 32
        assert asset_sha256(ASSETS[1]) == ""
        assert asset_sha256({"digest": "md5:" + "ab" * 16}) == ""
        assert asset_sha256({"digest": "sha256:not-hex"}) == ""
        assert asset_sha256({"digest": "SHA256:" + "AB" * 32}) == "ab" * 32


class TestManifestForRelease:
    def test_macos(self):
        manifest = manifest_for_release(release(), "macos", "arm64")

        assert manifest.toolchain_version == "9.0.0"
        assert manifest.release_id == "2025.01.0"
        assert manifest.asset == DownloadAsset(
            type=DISK_IMAGE, url=f"{DOWNLOAD}/signed_arm64.dmg", sha256="ab" * 32
        )

    def test_windows_without_digest(self):
        manifest = manifest_for_release(release(), "windows", "x86_64")

        assert manifest.asset.type == SELF_EXTRACTING_INSTALLER
        assert manifest.asset.url == f"{DOWNLOAD}/signed_setup.exe"
        assert manifest.asset.sha256 == ""

    def test_linux_repins_toolchain_packages(self):
        bundled = manifest_document("9.0.0", linux={"x86_64": OPAM_ASSET})

        manifest = manifest_for_release(
            release(body="**Rocq 9.1.0**"), "linux", "x86_64", bundled=bundled
        )

        assert isinstance(manifest.asset, OpamAsset)
        assert manifest.release_id == "2025.01.0"
        specs = [p.spec() for p in manifest.asset.packages]
        assert specs == ["rocq-prover=9.1.0", "vsrocq-language-server", "rocqide=9.1.0"]

    def test_linux_coq_release_uses_coq_packages(self):
        bundled = manifest_document("9.0.0", linux={"x86_64": OPAM_ASSET})

        manifest = manifest_for_release(
            release(tag="2024.10.1", body="**Coq 8.20.1**"), "linux", "x86_64", bundled=bundled
        )

        specs = [p.spec() for p in manifest.asset.packages]
        assert specs == ["coq=8.20.1", "vscoq-language-server", "coqide=8.20.1"]
        assert [p.optional for p in manifest.asset.packages] == ["", "with_vscode", "with_rocqide"]

    def test_linux_same_version_keeps_pins(self):
        bundled = manifest_document("9.0.0", linux={"x86_64": OPAM_ASSET})

        manifest = manifest_for_release(release(), "linux", "x86_64", bundled=bundled)

        specs = [p.spec() for p in manifest.asset.packages]
        assert specs == ["rocq-prover=9.0.0", "vsrocq-language-server=2.3.4", "rocqide=9.0.0"]

    def test_version_missing_from_notes(self):
        with pytest.raises(ConfigError, match="Rocq version"):
            manifest_for_release(release(body="No version here"), "macos", "arm64")

    def test_no_signed_asset(self):
        with pytest.raises(ConfigError, match="No signed .dmg"):
            manifest_for_release(release(assets=ASSETS[:1]), "macos", "arm64")


class TestFetchReleaseManifest:
    @responses.activate
    def test_fetches_by_tag(self):
        responses.add(responses.GET, f"{RELEASES_URL}/tags/2025.01.0", json=release())

        manifest = fetch_release_manifest("2025.01.0", "windows", "x86_64")

        assert manifest.release_id == "2025.01.0"
        assert manifest.asset.url == f"{DOWNLOAD}/signed_setup.exe"

    @responses.activate
    def test_unknown_tag(self):
        responses.add(responses.GET, f"{RELEASES_URL}/tags/1999.01.0", status=404)

        with pytest.raises(ConfigError, match="not found"):
            fetch_release_manifest("1999.01.0", "macos", "arm64")

    @responses.activate
    def test_linux_uses_bundled_template(self):
        responses.add(
            responses.GET,
            f"{RELEASES_URL}/tags/2025.08.1",
            json=release(tag="2025.08.1", assets=[]),
        )

        manifest = fetch_release_manifest("2025.08.1", "linux", "x86_64")

        assert manifest.asset.repo_name == "rocq-released"
        assert manifest.release_id == "2025.08.1"
