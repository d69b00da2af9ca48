"""Stream the guide archive to disk with rate-limited progress reporting."""

import logging
import os
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from faqvault.exceptions import DownloadError
from faqvault.models import DownloadProgress

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
HEAD_TIMEOUT = 10
CONNECT_TIMEOUT = 10

ProgressCallback = Callable[[DownloadProgress], None]


def _content_length(response: requests.Response) -> int:
    try:
        return int(response.headers.get("content-length") or 0)
    except ValueError:
        return 0


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial download {path}: {e}")


class ArchiveDownloader:
    """Downloads a single large file without buffering it in memory."""

    def __init__(self, progress_interval: float = 0.5, timeout: float = 300):
        """Initialize the downloader.

        Args:
            progress_interval: Minimum seconds between progress callbacks
            timeout: Read timeout in seconds for the streaming GET
        """
        self.progress_interval = progress_interval
        self.timeout = timeout

    def get_file_size(self, url: str) -> int:
        """Return the size the server reports for ``url``, or 0 when unknown."""
        response = requests.head(url, timeout=HEAD_TIMEOUT, allow_redirects=True)
        response.raise_for_status()
        return _content_length(response)

    def check_url(self, url: str) -> bool:
        """Check whether ``url`` answers a HEAD request with 200."""
        try:
            response = requests.head(url, timeout=HEAD_TIMEOUT, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            logger.debug(f"URL check failed for {url}: {e}")
            return False
        return response.status_code == 200

    def _probe_size(self, url: str) -> int:
        try:
            total = self.get_file_size(url)
        except requests.exceptions.RequestException as e:
            logger.warning(f"HEAD request failed (will proceed anyway): {e}")
            return 0

        if total > 0:
            logger.info(f"Total size: {total / 1024 / 1024:.2f} MB")
        else:
            logger.info("Could not determine file size, downloading without size info")
        return total

    def download(
        self,
        url: str,
        dest_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Download ``url`` to ``dest_path``.

        Data is streamed to ``<dest_path>.part`` and renamed into place only
        after the whole body has been written.

        Args:
            url: Source URL
            dest_path: Destination file path
            on_progress: Called at most every progress_interval seconds, plus once at the end

        Raises:
            DownloadError: On any network or write failure; no file is left at dest_path
        """
        dest = Path(dest_path)
        part = dest.with_name(dest.name + ".part")
        dest.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Starting download from {url}")
        logger.info(f"Destination: {dest}")

        total = self._probe_size(url)

        try:
            response = requests.get(url, stream=True, timeout=(CONNECT_TIMEOUT, self.timeout))
            try:
                response.raise_for_status()
                if total == 0:
                    total = _content_length(response)

                downloaded = 0
                last_report = time.monotonic()

                with open(part, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        downloaded += len(chunk)

                        now = time.monotonic()
                        if on_progress and now - last_report >= self.progress_interval:
                            on_progress(self._progress(downloaded, total))
                            last_report = now
            finally:
                response.close()

            if total and downloaded < total:
                raise DownloadError(
                    f"Download interrupted: received {downloaded} of {total} bytes"
                )

            os.replace(part, dest)

        except DownloadError:
            _remove_quietly(dest)
            raise
        except (requests.exceptions.RequestException, OSError) as e:
            logger.error(f"Failed to download archive: {e}")
            _remove_quietly(dest)
            raise DownloadError(f"Failed to download {url}: {e}") from e
        finally:
            # Gone after os.replace; otherwise whatever was written is dropped
            _remove_quietly(part)

        if on_progress:
            on_progress(self._progress(downloaded, total))

        logger.info(f"Download complete ({downloaded} bytes)")

    @staticmethod
    def _progress(downloaded: int, total: int) -> DownloadProgress:
        percentage = min(100.0, downloaded / total * 100) if total > 0 else 0.0
        return DownloadProgress(downloaded=downloaded, total=total, percentage=percentage)
