"""
Download Manager for YATL

This module provides HTTP download functionality with progress tracking.

Transfers run on the caller's thread: the download task drives them from the
task lane and checks for cancellation after every chunk.
"""

import logging
import time
from typing import Callable, Optional
from pathlib import Path

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from yatl.models.exceptions import TransferError


def create_session() -> requests.Session:
    """
    Create an HTTP session with the launcher's retry strategy.

    Returns:
        requests.Session: Session retrying transient server errors
    """
    session = requests.Session()
    retry_strategy = Retry(
        total=3,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"]
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class Downloader:
    """
    Download management system for YATL.

    This class handles:
    - Streaming HTTP downloads to a file
    - Progress reporting with speed calculation
    - Cooperative cancellation between chunks
    - Verification of the received length
    """

    # Progress log thresholds
    PROGRESS_AFTER_MSECS = 2000  # 2 seconds
    PROGRESS_AFTER_BYTES = 1024 * 1024 * 5  # 5 MB

    CHUNK_SIZE = 8192

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 30):
        """
        Initialize the downloader.

        Args:
            session: HTTP session to use, a retrying session is created if None
            timeout: Connect/read timeout in seconds
        """
        self.logger = logging.getLogger("YATL")
        self.session = session or create_session()
        self.timeout = timeout

    def fetch(self, url: str, file_path: str | Path,
              progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
              check_cancelled: Optional[Callable[[], None]] = None) -> int:
        """
        Download a URL into a file.

        Args:
            url: URL to download from
            file_path: Full path where to save the file
            progress_callback: Called as ``(received, total)`` after every chunk;
                total is None while the length is unknown
            check_cancelled: Called after every chunk; raises to stop the transfer

        Returns:
            int: Number of bytes received

        Raises:
            TransferError: On HTTP, network or IO errors, or a length mismatch
        """
        file_path = Path(file_path)
        success = False
        try:
            self.logger.info(f"Starting download from {url}")

            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()

                total_size = self._content_length(response)
                downloaded = 0

                last_progress_time = time.time() * 1000
                last_progress_bytes = 0

                file_path.parent.mkdir(parents=True, exist_ok=True)
                with open(file_path, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                        if chunk:  # Filter out keep-alive chunks
                            f.write(chunk)
                            downloaded += len(chunk)

                            if progress_callback:
                                progress_callback(downloaded, total_size)

                            current_time = time.time() * 1000
                            delta_time = current_time - last_progress_time
                            delta_bytes = downloaded - last_progress_bytes

                            if (delta_time >= self.PROGRESS_AFTER_MSECS or
                                    delta_bytes >= self.PROGRESS_AFTER_BYTES):
                                self.logger.debug(self._get_progress_string(
                                    downloaded, total_size, delta_time, delta_bytes
                                ))
                                last_progress_time = current_time
                                last_progress_bytes = downloaded

                        if check_cancelled:
                            check_cancelled()

            if total_size is not None and downloaded != total_size:
                raise TransferError(f"Incomplete download from {url}: received {downloaded} of {total_size} bytes")

            success = True
            self.logger.info(f"Download completed: {file_path} ({downloaded} bytes)")
            return downloaded

        except requests.exceptions.RequestException as e:
            raise TransferError(f"HTTP error during download of {url}: {e}")
        except OSError as e:
            raise TransferError(f"IO error while writing {file_path}: {e}")
        finally:
            if not success:
                try:
                    file_path.unlink(missing_ok=True)
                except OSError as cleanup_error:
                    self.logger.error(f"Failed to cleanup partial file: {cleanup_error}")

    @staticmethod
    def _content_length(response: requests.Response) -> Optional[int]:
        # a compressed transfer reports the length of the encoded body
        if response.headers.get('content-encoding'):
            return None
        try:
            length = int(response.headers.get('content-length', ''))
        except ValueError:
            return None
        return length if length > 0 else None

    def _get_progress_string(self, downloaded: int, total: Optional[int],
                             delta_time: float, delta_bytes: int) -> str:
        """
        Generate a progress string

        Args:
            downloaded: Total bytes downloaded
            total: Total file size (None if unknown)
            delta_time: Time since last update in milliseconds
            delta_bytes: Bytes downloaded since last update

        Returns:
            str: Formatted progress string
        """
        if downloaded > 1024 * 1024:
            amount_str = f"{downloaded / (1024 * 1024):.1f} MB"
        else:
            amount_str = f"{downloaded // 1024} KB"

        percent_str = ""
        if total:
            percent = (downloaded / total) * 100
            percent_str = f" ({percent:.1f}%)"

        speed_str = " at "
        if delta_time > 0:
            speed_bps = (delta_bytes / delta_time) * 1000.0
            if speed_bps > 1024 * 1024:
                speed_str += f"{speed_bps / (1024 * 1024):.1f} MB/s"
            else:
                speed_str += f"{speed_bps / 1024:.0f} KB/s"
        else:
            speed_str += "calculating..."

        return f"Download progress: {amount_str}{percent_str}{speed_str}"

    def shutdown(self) -> None:
        """Close the HTTP session."""
        self.session.close()
        self.logger.debug("Downloader shutdown")


# Global downloader instance (will be initialized by the application)
downloader: Optional[Downloader] = None


def get_downloader() -> Downloader:
    """
    Get the global downloader instance.

    Returns:
        Downloader: Global downloader instance

    Raises:
        RuntimeError: If the downloader hasn't been initialized
    """
    if downloader is None:
        raise RuntimeError("Downloader not initialized")
    return downloader


def initialize_downloader() -> bool:
    """
    Initialize the global downloader instance.

    Returns:
        bool: True if initialization was successful
    """
    global downloader
    try:
        downloader = Downloader()
        return True
    except Exception as e:
        logging.getLogger("YATL").error(f"Failed to initialize global downloader: {e}")
        return False


def shutdown_downloader():
    """Shutdown the global downloader instance."""
    global downloader
    if downloader:
        downloader.shutdown()
        downloader = None
