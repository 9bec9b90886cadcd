"""
Async Downloader for isoterm

Streams a release asset into a temporary file while reporting progress, and
retries the whole transfer with exponential backoff when the failure is
transient. The resulting DownloadHandle owns the temporary file until the
caller is done extracting from it.
"""

import asyncio
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiohttp

from isoterm.constants import (
    BYTES_PER_MEGABYTE,
    DEFAULT_CHUNK_SIZE,
    FILE_SIZE_MB_LOGGING_THRESHOLD,
    HTTP_STATUS_ERROR_THRESHOLD,
    HTTP_STATUS_RETRY_THRESHOLD,
    HTTP_STATUS_TOO_MANY_REQUESTS,
)
from isoterm.exceptions import NetworkError
from isoterm.log_utils import logger

from .async_client import AsyncGitHubClient
from .interfaces import NullReporter, ProgressReporter


class DownloadHandle:
    """
    A downloaded temp file plus its progress counters.

    Use as a context manager; the file is deleted on exit.
    """

    def __init__(self, path: Path, asset_name: str) -> None:
        self.path = path
        self.asset_name = asset_name
        self.bytes_downloaded = 0
        self.total_bytes: Optional[int] = None

    def __enter__(self) -> "DownloadHandle":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.discard()

    def discard(self) -> None:
        """Remove the temporary file if it still exists."""
        try:
            if self.path.exists():
                self.path.unlink()
        except OSError as e:
            logger.debug(f"Error cleaning up temp file {self.path}: {e}")


class AsyncDownloader:
    """Downloads assets through the shared client session."""

    def __init__(
        self,
        client: AsyncGitHubClient,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        temp_dir: Optional[Path] = None,
    ) -> None:
        self.client = client
        self.chunk_size = chunk_size
        self.temp_dir = temp_dir

    def _new_handle(self, asset_name: str) -> DownloadHandle:
        suffix = "-" + os.path.basename(asset_name)
        fd, temp_path = tempfile.mkstemp(
            prefix="isoterm-", suffix=suffix, dir=self.temp_dir
        )
        os.close(fd)
        return DownloadHandle(Path(temp_path), asset_name)

    async def download_once(
        self,
        url: str,
        handle: DownloadHandle,
        reporter: ProgressReporter,
    ) -> DownloadHandle:
        """
        Perform a single transfer of `url` into `handle.path`, truncating any previous attempt.

        Raises:
            NetworkError: On HTTP or connection errors; `is_retryable` tells the caller whether to try again.
        """
        session = await self.client.ensure_session()
        handle.bytes_downloaded = 0
        reporter.set_position(0)
        start_time = time.time()

        try:
            async with session.get(url) as response:
                if response.status >= HTTP_STATUS_ERROR_THRESHOLD:
                    raise NetworkError(
                        f"HTTP error {response.status} downloading {handle.asset_name}",
                        url=url,
                        status_code=response.status,
                        is_retryable=(
                            response.status >= HTTP_STATUS_RETRY_THRESHOLD
                            or response.status == HTTP_STATUS_TOO_MANY_REQUESTS
                        ),
                    )

                raw_content_length = response.headers.get("Content-Length")
                try:
                    total_size = int(raw_content_length) if raw_content_length else None
                except (TypeError, ValueError):
                    total_size = None
                handle.total_bytes = total_size
                reporter.set_length(total_size)
                reporter.set_message(f"Downloading {handle.asset_name}")

                async with aiofiles.open(handle.path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        await f.write(chunk)
                        handle.bytes_downloaded += len(chunk)
                        reporter.advance(len(chunk))
        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Failed to download {handle.asset_name}", url=url, details=str(e)
            ) from e
        except asyncio.TimeoutError as e:
            raise NetworkError(
                f"Timed out downloading {handle.asset_name}", url=url, details=str(e)
            ) from e

        elapsed = time.time() - start_time
        file_size_mb = handle.bytes_downloaded / BYTES_PER_MEGABYTE
        logger.debug(f"Downloaded {url} in {elapsed:.2f}s")
        if file_size_mb >= FILE_SIZE_MB_LOGGING_THRESHOLD:
            logger.info(f"Downloaded: {handle.asset_name} ({file_size_mb:.1f} MB)")
        else:
            logger.info(
                f"Downloaded: {handle.asset_name} ({handle.bytes_downloaded} bytes)"
            )
        return handle

    async def download_to_temp(
        self,
        url: str,
        asset_name: str,
        reporter: Optional[ProgressReporter] = None,
    ) -> DownloadHandle:
        """
        Download `url` into a fresh temporary file, retrying transient failures.

        Parameters:
            url (str): Asset download URL.
            asset_name (str): Asset file name; used for messages and the temp suffix.
            reporter (Optional[ProgressReporter]): Progress sink.

        Returns:
            DownloadHandle: Handle owning the downloaded file.

        Raises:
            NetworkError: If every attempt fails or a non-retryable error occurs.
        """
        reporter = reporter or NullReporter()
        handle = self._new_handle(asset_name)
        try:
            return await self.client.retry(
                lambda: self.download_once(url, handle, reporter),
                f"Download of {asset_name}",
            )
        except BaseException:
            handle.discard()
            raise
