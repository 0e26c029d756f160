"""
Manifest documents for tests.
"""

import json

from rocqsetup.config.manifest import parse_manifest

OPAM_ASSET = {
    "type": "source-package-manager",
    "compiler": "ocaml-base-compiler.4.14.2",
    "switch_prefix": "CP",
    "repo_name": "rocq-released",
    "repo_url": "https://rocq-prover.org/opam/released",
    "packages": [
        {"name": "rocq-prover", "version": "9.0.0"},
        {"name": "vsrocq-language-server", "version": "2.3.4", "optional": "with_vscode"},
        {"name": "rocqide", "version": "9.0.0", "optional": "with_rocqide"},
    ],
}


def manifest_document(version: str = "9.0.0", **assets) -> dict:
    return {
        "channel": "stable",
        "toolchain_version": version,
        "release_id": "2025.08.1",
        "assets": assets,
    }


def opam_manifest(version: str = "9.0.0", **overrides):
    asset = dict(OPAM_ASSET, **overrides)
    data = manifest_document(version, linux={"x86_64": asset})
    return parse_manifest(json.dumps(data), "linux", "x86_64")


def download_manifest(os_name: str, arch: str, asset_type: str, url: str, sha256: str = ""):
    data = manifest_document(
        **{os_name: {arch: {"type": asset_type, "url": url, "sha256": sha256}}}
    )
    return parse_manifest(json.dumps(data), os_name, arch)
