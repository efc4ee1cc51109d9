"""Feed synchronization service for podcast updates.

Polls subscription feeds, refreshes subscription metadata and reconciles
the fetched episodes into the catalog. Subscriptions are polled
concurrently on a bounded thread pool.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Optional

from ..db.repository import CatalogRepositoryInterface
from ..errors import CatalogError, StoreError
from .feed_parser import FeedParser

logger = logging.getLogger(__name__)


class FeedSyncService:
    """Service for synchronizing subscription feeds with the catalog.

    Example:
        sync_service = FeedSyncService(repository, FeedParser(timeout=30))
        result = sync_service.sync_all(owner_id=1)
        print(f"New episodes: {result['new_episodes']}")
    """

    def __init__(
        self,
        repository: CatalogRepositoryInterface,
        feed_parser: Optional[FeedParser] = None,
        max_workers: int = 5,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Create a FeedSyncService that polls feeds into the given repository.

        Parameters:
            repository (CatalogRepositoryInterface): Catalog store shared by all workers.
            feed_parser (Optional[FeedParser]): Fetcher used for every subscription; a default one is created if omitted.
            max_workers (int): Maximum number of subscriptions polled at the same time.
            cancel_event (Optional[threading.Event]): When set, subscriptions not yet started are skipped.
        """
        self.repository = repository
        self.feed_parser = feed_parser or FeedParser()
        self.max_workers = max_workers
        self.cancel_event = cancel_event or threading.Event()

    def sync_subscription(self, subscription) -> Dict[str, Any]:
        """
        Poll one subscription: fetch its feed, update metadata, and reconcile episodes.

        Fetch, parse and store failures are contained to this subscription. When reconciliation fails part-way, the episodes inserted before the failure are still reported.

        Parameters:
            subscription: Subscription row (needs `id`, `name` and `feed_url`).

        Returns:
            result (dict): Synchronization outcome containing:
                - subscription_id (int): The subscription identifier.
                - name (str): The subscription name.
                - new_episodes (int): Number of new episodes added.
                - error (str|None): Error message if the sync failed, `None` on success.
        """
        result = {
            "subscription_id": subscription.id,
            "name": subscription.name,
            "new_episodes": 0,
            "error": None,
        }

        logger.info(f"Syncing subscription: {subscription.name}")

        try:
            document = self.feed_parser.fetch(subscription.feed_url)

            self.repository.update_subscription_metadata(
                subscription.id,
                title=document.title,
                description=document.description,
                language=document.language,
            )

            result["new_episodes"] = self.repository.reconcile_episodes(
                subscription.id, document.items
            )

            logger.info(
                f"Sync complete for '{subscription.name}': "
                f"{result['new_episodes']} new episodes"
            )

        except StoreError as e:
            logger.error(f"Failed to store episodes for {subscription.name}: {e}")
            result["new_episodes"] = e.new_episodes
            result["error"] = str(e)
        except CatalogError as e:
            logger.error(f"Failed to sync subscription {subscription.name}: {e}")
            result["error"] = str(e)

        return result

    def sync_all(self, owner_id: int) -> Dict[str, Any]:
        """
        Poll every subscription of an owner on a bounded worker pool.

        Parameters:
            owner_id (int): Owner whose subscriptions are polled.

        Returns:
            overall_result (dict): Aggregated sync results with keys:
                - synced (int): Number of subscriptions successfully synced.
                - failed (int): Number of subscriptions that failed to sync.
                - skipped (int): Number of subscriptions not polled because of cancellation.
                - new_episodes (int): Total new episodes, including partial counts from failed reconciles.
                - results (list): Per-subscription result dictionaries returned by `sync_subscription`.

        Raises:
            StoreError: If the subscription list cannot be read.
        """
        subscriptions = self.repository.list_subscriptions(owner_id)

        overall_result = {
            "synced": 0,
            "failed": 0,
            "skipped": 0,
            "new_episodes": 0,
            "results": [],
        }

        if not subscriptions:
            logger.info("No subscriptions to sync")
            return overall_result

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self._sync_unless_cancelled, subscription): subscription
                for subscription in subscriptions
            }

            for future in as_completed(futures):
                result = future.result()
                if result is None:
                    overall_result["skipped"] += 1
                    continue

                overall_result["results"].append(result)
                overall_result["new_episodes"] += result["new_episodes"]
                if result["error"]:
                    overall_result["failed"] += 1
                else:
                    overall_result["synced"] += 1

        logger.info(
            f"Sync complete: {overall_result['synced']} synced, "
            f"{overall_result['failed']} failed, "
            f"{overall_result['skipped']} skipped, "
            f"{overall_result['new_episodes']} new episodes"
        )

        return overall_result

    def _sync_unless_cancelled(self, subscription) -> Optional[Dict[str, Any]]:
        if self.cancel_event.is_set():
            logger.debug(f"Cancelled before polling {subscription.name}")
            return None
        return self.sync_subscription(subscription)
