"""Episode downloader with configurable concurrency.

Downloads pending episodes with support for:
- Concurrent downloads (thread pool or asyncio)
- Per-download timeouts
- Cancellation between downloads
- Per-subscription destination directories
"""

import asyncio
import logging
import os
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import unquote, urlparse

import aiohttp
import requests
from requests.adapters import HTTPAdapter

from ..db.repository import CatalogRepositoryInterface, PendingDownload
from ..errors import DownloadError, FilesystemError, StoreError

logger = logging.getLogger(__name__)


@dataclass
class DownloadResult:
    """Result of a download operation."""

    episode_id: int
    success: bool
    file_name: Optional[str] = None
    local_path: Optional[str] = None
    file_size: Optional[int] = None
    error: Optional[str] = None
    duration_seconds: Optional[float] = None


def sanitize_directory_name(name: str) -> str:
    """Make a subscription name usable as a single path component.

    Characters that are invalid in file names are removed; spaces are kept.
    """
    safe = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", name)
    safe = safe.strip(" .")
    if len(safe) > 200:
        safe = safe[:200]
    return safe or "podcast"


def episode_file_name(episode_id: int, media_url: str) -> str:
    """Return the stored file name of an episode: `{id}_{basename of the URL path}`."""
    url_path = urlparse(media_url).path
    base = unquote(os.path.basename(url_path))
    base = re.sub(r'[<>:"/\\|?*\x00-\x1f]', "", base).strip(" ")
    return f"{episode_id}_{base or 'episode'}"


class EpisodeDownloader:
    """Downloads pending episodes with configurable concurrency.

    Each download is a single attempt bounded by `timeout`. A failed
    download leaves the episode pending for a later run.

    Example:
        downloader = EpisodeDownloader(
            repository=repo,
            download_directory="./downloads",
            max_concurrent=10,
        )
        results = downloader.download_pending(owner_id=1)
    """

    DEFAULT_USER_AGENT = "podcatch/0.1"
    DEFAULT_CHUNK_SIZE = 8192
    DEFAULT_TIMEOUT = 300  # 5 minutes

    def __init__(
        self,
        repository: CatalogRepositoryInterface,
        download_directory: str,
        max_concurrent: int = 10,
        timeout: int = DEFAULT_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        user_agent: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize the episode downloader.

        Args:
            repository: Catalog repository
            download_directory: Base directory for downloads
            max_concurrent: Maximum concurrent downloads
            timeout: Per-download timeout in seconds (connect/read and total)
            chunk_size: Chunk size for streaming downloads
            user_agent: Custom user agent string
            cancel_event: When set, downloads not yet started are skipped
        """
        self.repository = repository
        self.download_directory = download_directory
        self.max_concurrent = max_concurrent
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.user_agent = user_agent or self.DEFAULT_USER_AGENT
        self.cancel_event = cancel_event or threading.Event()

        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a pooled requests session sized to the download concurrency."""
        session = requests.Session()

        adapter = HTTPAdapter(
            pool_connections=self.max_concurrent,
            pool_maxsize=self.max_concurrent,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": self.user_agent})

        return session

    def subscription_directory(self, subscription_name: str) -> str:
        """Return the destination directory for a subscription."""
        return os.path.join(self.download_directory, sanitize_directory_name(subscription_name))

    def prepare_directories(self, pending: Iterable[PendingDownload]) -> None:
        """Create the download root and every subscription directory needed.

        Raises:
            FilesystemError: If a directory cannot be created. This aborts
                the whole download run.
        """
        directories = {self.subscription_directory(p.subscription_name) for p in pending}
        for directory in sorted(directories):
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise FilesystemError(f"Cannot create download directory {directory}: {e}") from e

    def download_episode(self, pending: PendingDownload) -> DownloadResult:
        """Download a single episode and mark it downloaded.

        Args:
            pending: Episode to download

        Returns:
            DownloadResult with download status
        """
        start_time = time.monotonic()

        file_name = episode_file_name(pending.episode_id, pending.media_url)
        output_path = os.path.join(
            self.subscription_directory(pending.subscription_name), file_name
        )

        logger.info(f"Downloading: {pending.media_url}")

        try:
            file_size = self._download_file(pending.media_url, output_path)
        except (DownloadError, FilesystemError) as e:
            logger.error(f"Download failed for episode {pending.episode_id}: {e}")
            self._remove_partial(output_path)
            return DownloadResult(episode_id=pending.episode_id, success=False, error=str(e))

        return self._finish(pending, file_name, output_path, file_size, start_time)

    def _download_file(self, url: str, output_path: str) -> int:
        """Stream a URL to a file.

        Returns:
            Number of bytes written

        Raises:
            DownloadError: On transport failure, non-success status or timeout
            FilesystemError: If the file cannot be written
        """
        deadline = time.monotonic() + self.timeout
        downloaded = 0

        try:
            with self._session.get(
                url,
                stream=True,
                timeout=self.timeout,
                allow_redirects=True,
            ) as response:
                if not 200 <= response.status_code < 300:
                    raise DownloadError(
                        f"HTTP {response.status_code} {response.reason} for {url}"
                    )

                with open(output_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            downloaded += len(chunk)
                        if time.monotonic() > deadline:
                            raise DownloadError(
                                f"Download exceeded {self.timeout}s: {url}"
                            )
        except requests.RequestException as e:
            raise DownloadError(f"Failed to fetch {url}: {e}") from e
        except OSError as e:
            raise FilesystemError(f"Cannot write {output_path}: {e}") from e

        return downloaded

    def _finish(
        self,
        pending: PendingDownload,
        file_name: str,
        output_path: str,
        file_size: int,
        start_time: float,
    ) -> DownloadResult:
        try:
            self.repository.mark_downloaded(pending.episode_id, file_name)
        except StoreError as e:
            logger.error(f"Could not mark episode {pending.episode_id} downloaded: {e}")
            return DownloadResult(
                episode_id=pending.episode_id,
                success=False,
                local_path=output_path,
                error=str(e),
            )

        duration = time.monotonic() - start_time
        logger.info(
            f"Downloaded: {file_name} "
            f"({file_size / 1024 / 1024:.1f} MB in {duration:.1f}s)"
        )

        return DownloadResult(
            episode_id=pending.episode_id,
            success=True,
            file_name=file_name,
            local_path=output_path,
            file_size=file_size,
            duration_seconds=duration,
        )

    def _remove_partial(self, output_path: str) -> None:
        if os.path.exists(output_path):
            try:
                os.remove(output_path)
            except OSError as e:
                logger.warning(f"Could not remove partial file {output_path}: {e}")

    def _download_unless_cancelled(self, pending: PendingDownload) -> Optional[DownloadResult]:
        if self.cancel_event.is_set():
            return None
        return self.download_episode(pending)

    def download_pending(self, owner_id: Optional[int] = None) -> Dict[str, Any]:
        """Download pending episodes concurrently.

        Args:
            owner_id: Restrict to one owner's subscriptions (all when None)

        Returns:
            Dictionary with download statistics

        Raises:
            FilesystemError: If a destination directory cannot be created
            StoreError: If the pending list cannot be read
        """
        pending = self.repository.list_pending_downloads(owner_id)

        if not pending:
            logger.info("No episodes pending download")
            return self._summary([], 0)

        self.prepare_directories(pending)

        logger.info(
            f"Downloading {len(pending)} episodes with {self.max_concurrent} concurrent downloads"
        )

        results = []
        skipped = 0

        with ThreadPoolExecutor(max_workers=self.max_concurrent) as executor:
            future_to_episode = {
                executor.submit(self._download_unless_cancelled, episode): episode
                for episode in pending
            }

            for future in as_completed(future_to_episode):
                result = future.result()
                if result is None:
                    skipped += 1
                else:
                    results.append(result)

        self.verify_download_tree()
        return self._summary(results, skipped)

    async def download_pending_async(self, owner_id: Optional[int] = None) -> Dict[str, Any]:
        """Download pending episodes asynchronously.

        Same contract as `download_pending`, with aiohttp and a semaphore
        bounding the number of simultaneous downloads.
        """
        pending = self.repository.list_pending_downloads(owner_id)

        if not pending:
            logger.info("No episodes pending download")
            return self._summary([], 0)

        self.prepare_directories(pending)

        logger.info(
            f"Downloading {len(pending)} episodes asynchronously "
            f"with {self.max_concurrent} concurrent downloads"
        )

        semaphore = asyncio.Semaphore(self.max_concurrent)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        async with aiohttp.ClientSession(
            timeout=timeout,
            headers={"User-Agent": self.user_agent},
        ) as session:

            async def download_with_semaphore(episode: PendingDownload) -> Optional[DownloadResult]:
                async with semaphore:
                    if self.cancel_event.is_set():
                        return None
                    return await self._download_episode_async(session, episode)

            outcomes = await asyncio.gather(
                *(download_with_semaphore(episode) for episode in pending)
            )

        results = [r for r in outcomes if r is not None]
        skipped = len(outcomes) - len(results)

        self.verify_download_tree()
        return self._summary(results, skipped)

    async def _download_episode_async(
        self, session: aiohttp.ClientSession, pending: PendingDownload
    ) -> DownloadResult:
        start_time = time.monotonic()

        file_name = episode_file_name(pending.episode_id, pending.media_url)
        output_path = os.path.join(
            self.subscription_directory(pending.subscription_name), file_name
        )

        logger.info(f"Downloading (async): {pending.media_url}")

        try:
            file_size = await self._download_file_async(session, pending.media_url, output_path)
        except (DownloadError, FilesystemError) as e:
            logger.error(f"Async download failed for episode {pending.episode_id}: {e}")
            self._remove_partial(output_path)
            return DownloadResult(episode_id=pending.episode_id, success=False, error=str(e))

        return self._finish(pending, file_name, output_path, file_size, start_time)

    async def _download_file_async(
        self,
        session: aiohttp.ClientSession,
        url: str,
        output_path: str,
    ) -> int:
        downloaded = 0

        try:
            async with session.get(url, allow_redirects=True) as response:
                if not 200 <= response.status < 300:
                    raise DownloadError(f"HTTP {response.status} {response.reason} for {url}")

                with open(output_path, "wb") as f:
                    async for chunk in response.content.iter_chunked(self.chunk_size):
                        if chunk:
                            f.write(chunk)
                            downloaded += len(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(f"Failed to fetch {url}: {e!r}") from e
        except OSError as e:
            raise FilesystemError(f"Cannot write {output_path}: {e}") from e

        return downloaded

    def verify_download_tree(self) -> int:
        """Walk the download root and log entries that cannot be read.

        Purely diagnostic; nothing is raised.

        Returns:
            Number of access errors found
        """
        errors: List[OSError] = []

        def on_error(error: OSError) -> None:
            errors.append(error)
            logger.warning(f"Cannot access {error.filename}: {error.strerror}")

        for dirpath, _dirnames, filenames in os.walk(self.download_directory, onerror=on_error):
            for filename in filenames:
                path = os.path.join(dirpath, filename)
                try:
                    os.stat(path)
                except OSError as e:
                    on_error(e)

        if errors:
            logger.warning(f"Download tree check found {len(errors)} access errors")
        else:
            logger.debug(f"Download tree check passed: {self.download_directory}")
        return len(errors)

    def _summary(self, results: List[DownloadResult], skipped: int) -> Dict[str, Any]:
        downloaded = sum(1 for r in results if r.success)
        failed = len(results) - downloaded

        logger.info(
            f"Download batch complete: {downloaded} succeeded, "
            f"{failed} failed, {skipped} skipped"
        )

        return {
            "downloaded": downloaded,
            "failed": failed,
            "skipped": skipped,
            "results": results,
        }

    def close(self):
        """Close the downloader and release resources."""
        self._session.close()
