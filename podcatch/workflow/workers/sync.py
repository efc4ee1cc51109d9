"""Sync worker for feed polling.

Polls all subscriptions of the configured owner to discover new episodes.
"""

import logging
import threading
from typing import Optional

from podcatch.config import Config
from podcatch.db.repository import CatalogRepositoryInterface
from podcatch.podcast.feed_parser import FeedParser
from podcatch.podcast.feed_sync import FeedSyncService
from podcatch.workflow.workers.base import WorkerInterface, WorkerResult

logger = logging.getLogger(__name__)


class SyncWorker(WorkerInterface):
    """Worker that polls subscription feeds to discover new episodes.

    This worker wraps the FeedSyncService to provide a consistent
    interface for the run orchestrator.
    """

    def __init__(
        self,
        config: Config,
        repository: CatalogRepositoryInterface,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize the sync worker.

        Args:
            config: Application configuration.
            repository: Catalog repository.
            cancel_event: Shared run cancellation flag.
        """
        self.config = config
        self.repository = repository
        self.cancel_event = cancel_event or threading.Event()
        self._feed_sync_service: Optional[FeedSyncService] = None

    @property
    def name(self) -> str:
        """Human-readable name for this worker."""
        return "Sync"

    @property
    def feed_sync_service(self) -> FeedSyncService:
        """Lazily initialize the feed sync service."""
        if self._feed_sync_service is None:
            self._feed_sync_service = FeedSyncService(
                repository=self.repository,
                feed_parser=FeedParser(timeout=self.config.FEED_TIMEOUT),
                max_workers=self.config.MAX_CONCURRENT_FEEDS,
                cancel_event=self.cancel_event,
            )
        return self._feed_sync_service

    def process_batch(self) -> WorkerResult:
        """Poll all subscription feeds.

        Returns:
            WorkerResult with sync statistics; `discovered` holds the number
            of new episodes.
        """
        result = WorkerResult()

        try:
            sync_result = self.feed_sync_service.sync_all(self.config.OWNER_ID)
        finally:
            self.close()

        result.processed = sync_result.get("synced", 0)
        result.failed = sync_result.get("failed", 0)
        result.skipped = sync_result.get("skipped", 0)
        result.discovered = sync_result.get("new_episodes", 0)

        for subscription_result in sync_result.get("results", []):
            if subscription_result.get("error"):
                result.errors.append(
                    f"Subscription {subscription_result.get('name')}: "
                    f"{subscription_result.get('error')}"
                )

        return result

    def close(self) -> None:
        """Release the feed fetcher's HTTP session."""
        if self._feed_sync_service is not None:
            self._feed_sync_service.feed_parser.close()
            self._feed_sync_service = None
