"""Download worker for episode media files.

Downloads pending episodes with concurrent downloading support.
"""

import asyncio
import logging
import threading
from typing import Optional

from podcatch.config import Config
from podcatch.db.repository import CatalogRepositoryInterface
from podcatch.podcast.downloader import EpisodeDownloader
from podcatch.workflow.workers.base import WorkerInterface, WorkerResult

logger = logging.getLogger(__name__)


class DownloadWorker(WorkerInterface):
    """Worker that downloads pending episode media files.

    Uses the EpisodeDownloader with configurable concurrency, either on a
    thread pool or on an asyncio event loop.
    """

    def __init__(
        self,
        config: Config,
        repository: CatalogRepositoryInterface,
        download_workers: Optional[int] = None,
        use_async: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize the download worker.

        Args:
            config: Application configuration.
            repository: Catalog repository.
            download_workers: Number of concurrent downloads. Defaults to
                `config.MAX_CONCURRENT_DOWNLOADS`. Must be > 0.
            use_async: Download with aiohttp instead of a thread pool.
            cancel_event: Shared run cancellation flag.

        Raises:
            ValueError: If download_workers is not a positive integer.
        """
        if download_workers is None:
            download_workers = config.MAX_CONCURRENT_DOWNLOADS
        if not isinstance(download_workers, int):
            raise ValueError(
                f"download_workers must be an integer, got {type(download_workers).__name__}"
            )
        if download_workers <= 0:
            raise ValueError(
                f"download_workers must be greater than zero, got {download_workers}"
            )

        self.config = config
        self.repository = repository
        self.use_async = use_async
        self.cancel_event = cancel_event or threading.Event()
        self._download_workers = download_workers
        self._downloader: Optional[EpisodeDownloader] = None

    @property
    def name(self) -> str:
        """Human-readable name for this worker."""
        return "Download"

    @property
    def downloader(self) -> EpisodeDownloader:
        """Lazily initialize the episode downloader."""
        if self._downloader is None:
            self._downloader = EpisodeDownloader(
                repository=self.repository,
                download_directory=self.config.DOWNLOAD_DIRECTORY,
                max_concurrent=self._download_workers,
                timeout=self.config.DOWNLOAD_TIMEOUT,
                chunk_size=self.config.CHUNK_SIZE,
                cancel_event=self.cancel_event,
            )
        return self._downloader

    def process_batch(self) -> WorkerResult:
        """Download all pending episodes.

        Returns:
            WorkerResult with download statistics.

        Raises:
            FilesystemError: If a destination directory cannot be created.
        """
        result = WorkerResult()

        try:
            if self.use_async:
                download_result = asyncio.run(
                    self.downloader.download_pending_async(self.config.OWNER_ID)
                )
            else:
                download_result = self.downloader.download_pending(self.config.OWNER_ID)
        finally:
            self.close()

        result.processed = download_result.get("downloaded", 0)
        result.failed = download_result.get("failed", 0)
        result.skipped = download_result.get("skipped", 0)

        for dl_result in download_result.get("results", []):
            if not dl_result.success and dl_result.error:
                result.errors.append(
                    f"Episode {dl_result.episode_id}: {dl_result.error}"
                )

        return result

    def close(self) -> None:
        """Release the downloader's HTTP session."""
        if self._downloader is not None:
            self._downloader.close()
            self._downloader = None
