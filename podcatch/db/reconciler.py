"""Episode reconciliation for a single subscription.

Merges the media URLs advertised by a freshly fetched feed into the stored
episodes of one subscription:

- a URL already stored for the subscription is left alone;
- a URL that replaces the one previously served for the same logical
  episode re-points that episode and archives its prior URL/state;
- any other URL becomes a new, not-yet-downloaded episode.

The logical episode behind a changed URL is found by the item's GUID when
the feed provides one, otherwise by its slot in the feed counted from the
oldest item. A candidate is only taken over when its current URL has
disappeared from the fetch, so an episode that is still advertised is never
re-pointed. Slots are only trusted when the fetch still lists some stored
episode and none of those has moved; after a rollover every unknown URL is a
new episode.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Union

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .models import ArchivedEpisode, Episode, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedItem:
    """One episode as advertised by the current feed."""

    media_url: str
    guid: Optional[str] = None
    title: Optional[str] = None
    published: Optional[str] = None


def to_fetched_items(items: Iterable[Union[str, FetchedItem, object]]) -> List[FetchedItem]:
    """Normalize reconcile input into FetchedItems.

    Accepts bare media URLs, FetchedItems, or feed items exposing
    `enclosure_url` (and optionally `guid`, `title`, `published`).
    Entries without a media URL are dropped.
    """
    normalized = []
    for item in items:
        if isinstance(item, FetchedItem):
            fetched = item
        elif isinstance(item, str):
            fetched = FetchedItem(media_url=item)
        else:
            fetched = FetchedItem(
                media_url=getattr(item, "enclosure_url", None),
                guid=getattr(item, "guid", None),
                title=getattr(item, "title", None),
                published=getattr(item, "published", None),
            )
        if not fetched.media_url:
            logger.debug(f"Skipping fetched item without media URL: {item!r}")
            continue
        normalized.append(fetched)
    return normalized


class EpisodeReconciler:
    """Applies one fetch to the stored episodes of a subscription.

    The caller owns the session and must serialize reconcilers for the same
    subscription. Each item is committed on its own; `new_episodes` holds
    the number inserted so far, including when an item fails.

    Example:
        with session_factory() as session:
            reconciler = EpisodeReconciler(session, subscription_id=3)
            new_count = reconciler.reconcile(["https://example.com/ep1.mp3"])
    """

    def __init__(self, session: Session, subscription_id: int):
        self.session = session
        self.subscription_id = subscription_id
        self.new_episodes = 0
        self.superseded = 0
        self._claimed: Set[int] = set()
        self._fetched_urls: Set[str] = set()
        self._match_by_slot = False

    def reconcile(self, items: Iterable[Union[str, FetchedItem, object]]) -> int:
        """Reconcile fetched items, in feed order (most recent first).

        Returns:
            Number of episodes inserted.

        Raises:
            sqlalchemy.exc.SQLAlchemyError: On the first failing item; the
                remaining items are not processed.
        """
        fetched = to_fetched_items(items)
        self._fetched_urls = {item.media_url for item in fetched}
        total = len(fetched)
        self._match_by_slot = self._slots_are_stable(fetched)

        for index, item in enumerate(fetched):
            slot = total - 1 - index
            self._reconcile_item(item, slot)
            self.session.commit()

        if fetched:
            self._release_stale_positions()
            self.session.commit()

        if self.superseded:
            logger.info(
                f"Subscription {self.subscription_id}: "
                f"{self.superseded} episodes moved to a new URL"
            )
        return self.new_episodes

    def _reconcile_item(self, item: FetchedItem, slot: int) -> None:
        existing = self._find_by_url(item.media_url)
        if existing is not None:
            # Known URL (also covers a repeated URL within the same fetch)
            self._claimed.add(existing.id)
            if existing.feed_position != slot:
                existing.feed_position = slot
            if existing.guid is None and item.guid:
                existing.guid = item.guid
            return

        previous = self._find_superseded(item, slot)
        if previous is not None:
            self._archive_and_repoint(previous, item, slot)
            return

        episode = Episode(
            subscription_id=self.subscription_id,
            media_url=item.media_url,
            guid=item.guid,
            feed_position=slot,
            title=item.title,
            published=item.published,
            downloaded=False,
        )
        self.session.add(episode)
        self.session.flush()
        self._claimed.add(episode.id)
        self.new_episodes += 1
        logger.debug(f"New episode {episode.id}: {item.media_url}")

    def _slots_are_stable(self, fetched: List[FetchedItem]) -> bool:
        """Whether slots of the previous fetch still identify the same episodes.

        True only if the fetch lists at least one stored episode and every
        stored episode it lists sits at the slot it had last time. A feed that
        rolled over (new items pushed old ones off) shifts the survivors, and a
        fetch with no known URL at all gives nothing to line the slots up with.
        """
        total = len(fetched)
        slots = {item.media_url: total - 1 - index for index, item in enumerate(fetched)}
        stmt = select(Episode.media_url, Episode.feed_position).where(
            Episode.subscription_id == self.subscription_id,
            Episode.media_url.in_(list(slots)),
        )
        known = self.session.execute(stmt).all()
        if not known:
            return False
        return all(position == slots[media_url] for media_url, position in known)

    def _find_by_url(self, media_url: str) -> Optional[Episode]:
        stmt = select(Episode).where(
            Episode.subscription_id == self.subscription_id,
            Episode.media_url == media_url,
        )
        return self.session.scalar(stmt)

    def _find_superseded(self, item: FetchedItem, slot: int) -> Optional[Episode]:
        """Find the stored episode this item replaces, if any."""
        stmt = select(Episode).where(
            Episode.subscription_id == self.subscription_id,
            Episode.media_url.not_in(list(self._fetched_urls)),
        )
        if self._claimed:
            stmt = stmt.where(Episode.id.not_in(list(self._claimed)))

        if item.guid:
            stmt = stmt.where(Episode.guid == item.guid)
        elif self._match_by_slot:
            stmt = stmt.where(Episode.feed_position == slot)
        else:
            return None

        return self.session.scalars(stmt.order_by(Episode.id.desc())).first()

    def _archive_and_repoint(self, episode: Episode, item: FetchedItem, slot: int) -> None:
        now = utcnow()
        self.session.add(
            ArchivedEpisode(
                original_episode_id=episode.id,
                subscription_id=self.subscription_id,
                media_url=episode.media_url,
                downloaded=episode.downloaded,
                archived_at=now,
            )
        )
        logger.info(
            f"Episode {episode.id} URL changed: {episode.media_url} -> {item.media_url}"
        )

        # id, downloaded and file_name carry over to the new URL
        episode.media_url = item.media_url
        episode.feed_position = slot
        if item.guid and not episode.guid:
            episode.guid = item.guid
        episode.updated_at = now
        self._claimed.add(episode.id)
        self.superseded += 1

    def _release_stale_positions(self) -> None:
        """Clear feed slots of episodes the current fetch no longer lists."""
        stmt = (
            update(Episode)
            .where(
                Episode.subscription_id == self.subscription_id,
                Episode.feed_position.is_not(None),
            )
            .values(feed_position=None)
            .execution_options(synchronize_session=False)
        )
        if self._claimed:
            stmt = stmt.where(Episode.id.not_in(list(self._claimed)))
        self.session.execute(stmt)
