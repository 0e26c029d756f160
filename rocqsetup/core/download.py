"""
Network download manager with progress tracking and checksum verification.

This module provides the acquisition step of an installation run:
- HTTP/HTTPS streaming downloads with TLS verification
- Throttled progress reporting (bytes, percentage, speed, ETA)
- A single final progress report per download
- Cache hits for artifacts that already match their expected SHA256
- Standalone SHA256 verification

Downloads are attempted exactly once. Bytes land in a ``.part`` file next to the
destination and are renamed into place only after the transfer completes, so
an existing destination is always a whole file. A failed transfer removes the
``.part`` file and raises DownloadError; the caller decides what to do.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

import requests
from requests.exceptions import RequestException

from rocqsetup.core.exceptions import ChecksumError, DownloadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 256 * 1024
PROGRESS_INTERVAL = 0.2
USER_AGENT = "rocq-setup/1.0"

# (connect, read) seconds
DEFAULT_TIMEOUT: Tuple[float, float] = (30.0, 60.0)


@dataclass
class DownloadProgress:
    """Progress information for a download."""

    bytes_downloaded: int
    total_bytes: int  # 0 when the server did not announce a length
    percentage: float
    speed_bps: float  # bytes per second
    eta_seconds: float  # estimated time remaining
    complete: bool = False

    def __str__(self) -> str:
        """Format progress for display."""
        return format_progress(self)


class StreamingHasher:
    """Compute a SHA256 digest incrementally."""

    def __init__(self):
        self.hasher = hashlib.sha256()

    def update(self, data: bytes):
        self.hasher.update(data)

    def finalize(self) -> str:
        return self.hasher.hexdigest()


def download_file(
    url: str,
    destination: Path,
    progress_callback: Optional[Callable[[DownloadProgress], None]] = None,
    expected_sha256: Optional[str] = None,
    timeout: Union[float, Tuple[float, float]] = DEFAULT_TIMEOUT,
) -> Path:
    """
    Download file from URL to destination.

    Args:
        url: URL to download from
        destination: Local path to save file (parent directories are created)
        progress_callback: Optional callback for progress updates. Intermediate
            updates arrive at most every 200 ms; exactly one final update with
            ``complete=True`` is always delivered on success.
        expected_sha256: When given and ``destination`` already holds a file
            with this digest, no request is made
        timeout: requests timeout, a number or a (connect, read) tuple

    Returns:
        Path to downloaded file

    Raises:
        DownloadError: On transport failure or a non-2xx HTTP status
        ValueError: If URL or destination is empty

    Example:
        >>> def on_progress(progress):
        ...     print(f"Downloaded {progress.percentage:.1f}%")
        >>> download_file(url, Path("downloads/Rocq.dmg"), progress_callback=on_progress)
    """
    if not url:
        raise ValueError("URL cannot be empty")

    if not destination:
        raise ValueError("Destination path cannot be empty")

    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    if destination.exists() and expected_sha256 and expected_sha256.strip():
        logger.info(f"File exists, verifying checksum: {destination}")
        if _sha256_of(destination) == expected_sha256.strip().lower():
            logger.info("Checksum verified, skipping download")
            size = destination.stat().st_size
            _report_final(progress_callback, size, size, 0.0)
            return destination
        logger.warning("Checksum mismatch on cached file, re-downloading")

    logger.info(f"Downloading from {url}")

    try:
        response = requests.get(
            url,
            stream=True,
            timeout=timeout,
            allow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
    except RequestException as e:
        raise DownloadError(f"Download of {url} failed: {e}") from e

    with response:
        if not 200 <= response.status_code < 300:
            raise DownloadError(
                f"Download of {url} failed: HTTP {response.status_code}"
            )

        content_length = response.headers.get("content-length")
        try:
            total_size = int(content_length) if content_length else 0
        except ValueError:
            total_size = 0

        downloaded = 0
        start_time = time.monotonic()
        last_progress_time = start_time
        partial = destination.with_name(destination.name + ".part")

        try:
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)

                    now = time.monotonic()
                    finished = total_size > 0 and downloaded >= total_size
                    if (
                        progress_callback
                        and not finished
                        and now - last_progress_time >= PROGRESS_INTERVAL
                    ):
                        progress_callback(
                            _make_progress(downloaded, total_size, now - start_time)
                        )
                        last_progress_time = now
        except RequestException as e:
            logger.error(f"Error during download: {e}")
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Download of {url} failed: {e}") from e
        except OSError:
            partial.unlink(missing_ok=True)
            raise

        partial.replace(destination)

    _report_final(
        progress_callback, downloaded, total_size, time.monotonic() - start_time
    )
    logger.info(f"Download complete: {destination} ({downloaded} bytes)")
    return destination


def _make_progress(
    downloaded: int, total_size: int, elapsed: float, complete: bool = False
) -> DownloadProgress:
    speed = downloaded / elapsed if elapsed > 0 else 0.0
    remaining = total_size - downloaded if total_size > 0 else 0
    eta = remaining / speed if speed > 0 else 0.0
    return DownloadProgress(
        bytes_downloaded=downloaded,
        total_bytes=total_size,
        percentage=(downloaded / total_size * 100) if total_size > 0 else 0.0,
        speed_bps=speed,
        eta_seconds=eta,
        complete=complete,
    )


def _report_final(
    progress_callback: Optional[Callable[[DownloadProgress], None]],
    downloaded: int,
    total_size: int,
    elapsed: float,
) -> None:
    if not progress_callback:
        return
    progress = _make_progress(downloaded, total_size, elapsed, complete=True)
    if total_size > 0:
        progress.percentage = 100.0
        progress.eta_seconds = 0.0
    progress_callback(progress)


def _sha256_of(file_path: Path) -> str:
    hasher = StreamingHasher()
    with open(file_path, "rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.finalize()


def verify_checksum(file_path: Path, expected_sha256: Optional[str]) -> bool:
    """
    Verify file SHA256 checksum.

    An empty expected value means the release ships no checksum; verification
    is skipped with a warning and nothing is raised.

    Args:
        file_path: Path to file to verify
        expected_sha256: Expected SHA256 hash (hex string, any case)

    Returns:
        True if the checksum was checked and matches, False if the check was
        skipped

    Raises:
        FileNotFoundError: If file doesn't exist
        ChecksumError: If the checksum does not match
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    expected = (expected_sha256 or "").strip().lower()
    if not expected:
        logger.warning(f"No checksum available for {file_path.name}, skipping verification")
        return False

    actual = _sha256_of(file_path)
    if actual != expected:
        raise ChecksumError(
            f"Checksum mismatch for {file_path.name}: "
            f"expected {expected}, got {actual}"
        )

    logger.info(f"Checksum verified: {file_path.name}")
    return True


def format_progress(progress: DownloadProgress) -> str:
    """
    Format progress for display.

    Example:
        >>> progress = DownloadProgress(52428800, 104857600, 50.0, 1048576, 50)
        >>> print(format_progress(progress))
        50.0/100.0 MB (50.0%) at 1.0 MB/s ETA: 50s
    """
    mb_downloaded = progress.bytes_downloaded / 1024 / 1024
    mb_total = progress.total_bytes / 1024 / 1024
    speed_mbps = progress.speed_bps / 1024 / 1024

    if progress.total_bytes > 0:
        return (
            f"{mb_downloaded:.1f}/{mb_total:.1f} MB "
            f"({progress.percentage:.1f}%) "
            f"at {speed_mbps:.1f} MB/s "
            f"ETA: {progress.eta_seconds:.0f}s"
        )
    return f"{mb_downloaded:.1f} MB at {speed_mbps:.1f} MB/s"


__all__ = [
    "DownloadProgress",
    "download_file",
    "verify_checksum",
    "format_progress",
]
