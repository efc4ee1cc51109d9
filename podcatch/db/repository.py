"""Repository pattern implementation for the podcast catalog.

Provides an abstract interface and SQLAlchemy implementation for catalog
operations. Supports SQLite (default) and any other SQLAlchemy backend.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import StoreError
from .models import ArchivedEpisode, Base, Episode, Owner, Subscription, utcnow
from .reconciler import EpisodeReconciler

logger = logging.getLogger(__name__)


@dataclass
class PendingDownload:
    """An episode waiting for download, joined with its subscription name."""

    episode_id: int
    subscription_id: int
    subscription_name: str
    media_url: str


class CatalogRepositoryInterface(ABC):
    """Abstract interface for catalog persistence.

    Every operation raises StoreError when the underlying store fails.
    """

    # --- Owner Operations ---

    @abstractmethod
    def ensure_owner(self, owner_id: int, username: str = "default") -> Owner:
        """
        Return the owner with `owner_id`, creating a placeholder row if it does not exist.
        """
        pass

    # --- Subscription Operations ---

    @abstractmethod
    def upsert_subscriptions(self, owner_id: int, entries: Iterable[Any]) -> Dict[str, int]:
        """
        Insert or update subscriptions for an owner, matched by (owner, name).

        New names get a freshly allocated id; existing rows have their feed, website and image URLs overwritten while id and name stay untouched. Each entry is committed on its own, so a failure on one entry leaves the earlier ones applied.

        Parameters:
            owner_id (int): Owner of the subscriptions.
            entries: Objects exposing `name`, `feed_url`, `website_url` and `image_url`.

        Returns:
            dict: `added` and `updated` counts.

        Raises:
            StoreError: On the first entry that cannot be written.
        """
        pass

    @abstractmethod
    def list_subscriptions(self, owner_id: int) -> List[Subscription]:
        """
        Return all subscriptions of the owner, in no particular order.
        """
        pass

    @abstractmethod
    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        """
        Retrieve a subscription by id, or `None` if it does not exist.
        """
        pass

    @abstractmethod
    def update_subscription_metadata(
        self,
        subscription_id: int,
        title: Optional[str],
        description: Optional[str],
        language: Optional[str],
    ) -> None:
        """
        Overwrite the descriptive fields of a subscription with values from its feed.

        Also records the time of the check. Episodes are not touched.
        """
        pass

    # --- Episode Operations ---

    @abstractmethod
    def reconcile_episodes(self, subscription_id: int, items: Iterable[Any]) -> int:
        """
        Merge the episodes of a freshly fetched feed into the catalog.

        Parameters:
            subscription_id (int): Subscription the feed belongs to.
            items: Fetched items in feed order (most recent first); bare media URLs, FetchedItems or feed items.

        Returns:
            int: Number of new episodes inserted.

        Raises:
            StoreError: If an item cannot be written. Items before it stay applied and `StoreError.new_episodes` reports how many of them were new.
        """
        pass

    @abstractmethod
    def mark_downloaded(self, episode_id: int, file_name: str) -> None:
        """
        Mark an episode as downloaded and record the stored file name.

        Calling it again with the same arguments is a no-op.
        """
        pass

    @abstractmethod
    def list_pending_downloads(self, owner_id: Optional[int] = None) -> List[PendingDownload]:
        """
        Return all episodes not yet downloaded, joined with their subscription name.

        Parameters:
            owner_id (Optional[int]): Restrict to one owner's subscriptions; all subscriptions when `None`.
        """
        pass

    @abstractmethod
    def get_episode(self, episode_id: int) -> Optional[Episode]:
        """
        Retrieve an episode by id, or `None` if it does not exist.
        """
        pass

    @abstractmethod
    def list_episodes(self, subscription_id: int) -> List[Episode]:
        """
        Return the current episodes of a subscription ordered by id.
        """
        pass

    @abstractmethod
    def list_archived_episodes(
        self, subscription_id: Optional[int] = None
    ) -> List[ArchivedEpisode]:
        """
        Return archived episode versions ordered by archival, optionally for one subscription.
        """
        pass

    @abstractmethod
    def get_catalog_stats(self, owner_id: int) -> Dict[str, int]:
        """
        Return subscription and episode counts for an owner.

        Returns:
            dict: `subscriptions`, `episodes`, `downloaded`, `pending_download` and `archived`.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Close and release all database connections held by the repository.
        """
        pass


class SQLAlchemyCatalogRepository(CatalogRepositoryInterface):
    """SQLAlchemy-based implementation of the catalog repository.

    Sessions are short-lived and created per operation, so one repository
    instance can be shared by worker threads. Reconciliation of a given
    subscription is serialized with a per-subscription lock; different
    subscriptions reconcile concurrently.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
        create_tables: bool = True,
    ):
        """
        Initialize the repository and configure its SQLAlchemy engine and session factory.

        Parameters:
            database_url (str): SQLAlchemy-compatible database URL.
            pool_size (int): Connection pool size for non-SQLite databases.
            max_overflow (int): Maximum overflow connections for non-SQLite databases.
            echo (bool): If true, enable SQLAlchemy SQL statement logging.
            create_tables (bool): Create missing tables on startup.

        Raises:
            StoreError: If the database cannot be opened or initialized.
        """
        self.database_url = database_url

        try:
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # A single shared connection, otherwise each thread sees its own empty database
                self.engine = create_engine(
                    database_url,
                    echo=echo,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            elif database_url.startswith("sqlite"):
                self.engine = create_engine(
                    database_url,
                    echo=echo,
                    connect_args={"check_same_thread": False, "timeout": 30},
                )
            else:
                self.engine = create_engine(
                    database_url,
                    pool_size=pool_size,
                    max_overflow=max_overflow,
                    echo=echo,
                )

            if create_tables:
                Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not open catalog store: {e}") from e

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        self._locks_guard = threading.Lock()
        self._subscription_locks: Dict[int, threading.Lock] = {}

        logger.info(f"Database initialized: {database_url.split('@')[-1] if '@' in database_url else database_url}")

    def _get_session(self) -> Session:
        """
        Obtain a new SQLAlchemy database session from the repository's session factory.
        """
        return self.SessionLocal()

    def _subscription_lock(self, subscription_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._subscription_locks.get(subscription_id)
            if lock is None:
                lock = threading.Lock()
                self._subscription_locks[subscription_id] = lock
            return lock

    # --- Owner Operations ---

    def ensure_owner(self, owner_id: int, username: str = "default") -> Owner:
        try:
            with self._get_session() as session:
                owner = session.get(Owner, owner_id)
                if owner is None:
                    owner = Owner(id=owner_id, username=username)
                    session.add(owner)
                    session.commit()
                    logger.info(f"Created owner {owner_id} ({username})")
                return owner
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to ensure owner {owner_id}: {e}") from e

    # --- Subscription Operations ---

    def upsert_subscriptions(self, owner_id: int, entries: Iterable[Any]) -> Dict[str, int]:
        stats = {"added": 0, "updated": 0}

        with self._get_session() as session:
            for entry in entries:
                try:
                    stmt = select(Subscription).where(
                        Subscription.owner_id == owner_id,
                        Subscription.name == entry.name,
                    )
                    existing = session.scalar(stmt)

                    if existing is None:
                        session.add(
                            Subscription(
                                owner_id=owner_id,
                                name=entry.name,
                                feed_url=entry.feed_url,
                                website_url=entry.website_url,
                                image_url=entry.image_url,
                            )
                        )
                        stats["added"] += 1
                        logger.info(f"Added subscription: {entry.name}")
                    else:
                        existing.feed_url = entry.feed_url
                        existing.website_url = entry.website_url
                        existing.image_url = entry.image_url
                        stats["updated"] += 1
                        logger.debug(f"Updated subscription {existing.id}: {entry.name}")

                    session.commit()
                except SQLAlchemyError as e:
                    session.rollback()
                    raise StoreError(
                        f"Failed to upsert subscription '{entry.name}': {e}"
                    ) from e

        return stats

    def list_subscriptions(self, owner_id: int) -> List[Subscription]:
        try:
            with self._get_session() as session:
                stmt = select(Subscription).where(Subscription.owner_id == owner_id)
                return list(session.scalars(stmt).all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list subscriptions: {e}") from e

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        try:
            with self._get_session() as session:
                return session.get(Subscription, subscription_id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load subscription {subscription_id}: {e}") from e

    def update_subscription_metadata(
        self,
        subscription_id: int,
        title: Optional[str],
        description: Optional[str],
        language: Optional[str],
    ) -> None:
        try:
            with self._get_session() as session:
                subscription = session.get(Subscription, subscription_id)
                if subscription is None:
                    raise StoreError(f"Subscription not found: {subscription_id}")
                subscription.title = title
                subscription.description = description
                subscription.language = language
                subscription.last_checked = utcnow()
                session.commit()
        except SQLAlchemyError as e:
            raise StoreError(
                f"Failed to update subscription {subscription_id} metadata: {e}"
            ) from e

    # --- Episode Operations ---

    def reconcile_episodes(self, subscription_id: int, items: Iterable[Any]) -> int:
        with self._subscription_lock(subscription_id):
            with self._get_session() as session:
                reconciler = EpisodeReconciler(session, subscription_id)
                try:
                    new_count = reconciler.reconcile(items)
                except SQLAlchemyError as e:
                    session.rollback()
                    raise StoreError(
                        f"Failed to reconcile episodes for subscription {subscription_id}: {e}",
                        new_episodes=reconciler.new_episodes,
                    ) from e

        logger.debug(f"Reconciled subscription {subscription_id}: {new_count} new episodes")
        return new_count

    def mark_downloaded(self, episode_id: int, file_name: str) -> None:
        try:
            with self._get_session() as session:
                episode = session.get(Episode, episode_id)
                if episode is None:
                    raise StoreError(f"Episode not found: {episode_id}")
                if episode.downloaded and episode.file_name == file_name:
                    return
                episode.downloaded = True
                episode.file_name = file_name
                episode.downloaded_at = utcnow()
                episode.updated_at = episode.downloaded_at
                session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to mark episode {episode_id} downloaded: {e}") from e

        logger.debug(f"Episode {episode_id} downloaded as {file_name}")

    def list_pending_downloads(self, owner_id: Optional[int] = None) -> List[PendingDownload]:
        try:
            with self._get_session() as session:
                stmt = (
                    select(Episode.id, Subscription.id, Subscription.name, Episode.media_url)
                    .join(Subscription, Episode.subscription_id == Subscription.id)
                    .where(Episode.downloaded.is_(False))
                    .order_by(Episode.id)
                )
                if owner_id is not None:
                    stmt = stmt.where(Subscription.owner_id == owner_id)
                return [
                    PendingDownload(
                        episode_id=episode_id,
                        subscription_id=subscription_id,
                        subscription_name=name,
                        media_url=media_url,
                    )
                    for episode_id, subscription_id, name, media_url in session.execute(stmt)
                ]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list pending downloads: {e}") from e

    def get_episode(self, episode_id: int) -> Optional[Episode]:
        try:
            with self._get_session() as session:
                return session.get(Episode, episode_id)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load episode {episode_id}: {e}") from e

    def list_episodes(self, subscription_id: int) -> List[Episode]:
        try:
            with self._get_session() as session:
                stmt = (
                    select(Episode)
                    .where(Episode.subscription_id == subscription_id)
                    .order_by(Episode.id)
                )
                return list(session.scalars(stmt).all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list episodes: {e}") from e

    def list_archived_episodes(
        self, subscription_id: Optional[int] = None
    ) -> List[ArchivedEpisode]:
        try:
            with self._get_session() as session:
                stmt = select(ArchivedEpisode).order_by(ArchivedEpisode.id)
                if subscription_id is not None:
                    stmt = stmt.where(ArchivedEpisode.subscription_id == subscription_id)
                return list(session.scalars(stmt).all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list archived episodes: {e}") from e

    def get_catalog_stats(self, owner_id: int) -> Dict[str, int]:
        try:
            with self._get_session() as session:
                subscription_ids = select(Subscription.id).where(
                    Subscription.owner_id == owner_id
                )

                subscriptions = session.scalar(
                    select(func.count(Subscription.id)).where(Subscription.owner_id == owner_id)
                ) or 0
                episodes = session.scalar(
                    select(func.count(Episode.id)).where(
                        Episode.subscription_id.in_(subscription_ids)
                    )
                ) or 0
                downloaded = session.scalar(
                    select(func.count(Episode.id)).where(
                        Episode.subscription_id.in_(subscription_ids),
                        Episode.downloaded.is_(True),
                    )
                ) or 0
                archived = session.scalar(
                    select(func.count(ArchivedEpisode.id)).where(
                        ArchivedEpisode.subscription_id.in_(subscription_ids)
                    )
                ) or 0
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to compute catalog stats: {e}") from e

        return {
            "subscriptions": subscriptions,
            "episodes": episodes,
            "downloaded": downloaded,
            "pending_download": episodes - downloaded,
            "archived": archived,
        }

    # --- Connection Management ---

    def close(self) -> None:
        """
        Dispose the SQLAlchemy engine and release database connections and resources.
        """
        self.engine.dispose()
        logger.info("Database connection closed")
