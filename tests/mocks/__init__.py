"""
Mock implementations for testing rocq-setup components.

This package provides stand-ins for external tools and manifest builders so
strategies, the detector and the pipeline can be exercised deterministically.
"""

from .manifests import OPAM_ASSET, download_manifest, manifest_document, opam_manifest
from .process import FakeRunner

__all__ = [
    "FakeRunner",
    "OPAM_ASSET",
    "download_manifest",
    "manifest_document",
    "opam_manifest",
]
