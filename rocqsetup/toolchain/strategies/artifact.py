"""
Shared acquisition for strategies that install a downloaded artifact.

Artifacts are cached under ``~/.rocq-setup/downloads/<basename>``. When the
cached file already matches the manifest checksum, no request is made. When
the release ships no checksum, a cached file is reused as is unless the run
is forced; downloads only ever leave complete files behind. Either way a
second run over the same manifest transfers nothing.
"""

import logging
from pathlib import Path
from typing import Optional

from rocqsetup.config.manifest import DownloadAsset, Manifest
from rocqsetup.config.settings import InstallOptions
from rocqsetup.core.download import (
    DownloadProgress,
    download_file,
    format_progress,
    verify_checksum,
)
from rocqsetup.core.exceptions import ChecksumError
from rocqsetup.toolchain.strategy import InstallStrategy, ProgressFn, no_progress

logger = logging.getLogger(__name__)


class ArtifactStrategy(InstallStrategy):
    """Base class for the disk-image and installer strategies."""

    def __init__(self, manifest: Manifest, options: InstallOptions, downloads_dir: Path):
        super().__init__(manifest, options)
        if not isinstance(manifest.asset, DownloadAsset):
            raise TypeError(f"{type(self).__name__} requires a downloadable asset")
        self.asset: DownloadAsset = manifest.asset
        self.downloads_dir = Path(downloads_dir)

    @property
    def artifact_path(self) -> Path:
        return self.downloads_dir / self.asset.filename

    def acquire(self, on_progress: ProgressFn = no_progress) -> Optional[Path]:
        cached = self.artifact_path
        if not self.asset.sha256 and not self.options.force and cached.is_file():
            logger.info(f"Reusing cached {cached.name} (release has no checksum)")
            on_progress(1.0, None)
            return cached

        def report(progress: DownloadProgress) -> None:
            logger.debug(format_progress(progress))
            if progress.complete:
                on_progress(1.0, None)
            elif progress.total_bytes > 0:
                on_progress(min(progress.percentage / 100.0, 1.0), None)

        logger.info(f"Downloading {self.asset.url}")
        path = download_file(
            self.asset.url,
            self.artifact_path,
            progress_callback=report,
            expected_sha256=self.asset.sha256 or None,
            timeout=(30.0, self.options.download_timeout),
        )
        logger.info(f"Downloaded to {path}")
        return path

    def verify(self, artifact: Optional[Path]) -> None:
        if artifact is None:
            raise ValueError("No artifact to verify")

        logger.info(f"Verifying SHA256 (expected: {self.asset.sha256!r})")
        try:
            verify_checksum(artifact, self.asset.sha256)
        except ChecksumError:
            logger.error(f"Discarding corrupt artifact {artifact}")
            artifact.unlink(missing_ok=True)
            raise


__all__ = ["ArtifactStrategy"]
