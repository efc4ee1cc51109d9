"""Tests for the catalog repository."""

import threading
from datetime import UTC
from types import SimpleNamespace

import pytest

from podcatch.db.factory import create_repository
from podcatch.db.models import Subscription, utcnow
from podcatch.db.repository import PendingDownload, SQLAlchemyCatalogRepository
from podcatch.errors import StoreError


def entry(name, feed_url, website_url=None, image_url=None):
    return SimpleNamespace(
        name=name, feed_url=feed_url, website_url=website_url, image_url=image_url
    )


@pytest.fixture
def subscription(repository, owner):
    """A single subscription named 'Tech Talk'."""
    repository.upsert_subscriptions(
        1, [entry("Tech Talk", "https://example.com/tech.xml")]
    )
    return repository.list_subscriptions(1)[0]


class TestRepositoryCreation:
    """Tests for opening the catalog store."""

    def test_create_repository_sqlite_file(self, tmp_path):
        """Test creating a file-backed repository."""
        repo = create_repository(f"sqlite:///{tmp_path / 'catalog.db'}")
        try:
            assert isinstance(repo, SQLAlchemyCatalogRepository)
            assert (tmp_path / "catalog.db").exists()
        finally:
            repo.close()

    def test_create_repository_in_memory(self):
        """Test that an in-memory store keeps data across sessions."""
        repo = create_repository("sqlite://")
        try:
            repo.ensure_owner(1)
            repo.upsert_subscriptions(1, [entry("A", "https://a.example/feed")])
            assert len(repo.list_subscriptions(1)) == 1
        finally:
            repo.close()

    def test_unopenable_store_raises_store_error(self, tmp_path):
        """Test that a store in a missing directory raises StoreError."""
        with pytest.raises(StoreError):
            create_repository(f"sqlite:///{tmp_path / 'missing' / 'catalog.db'}")


class TestOwnerOperations:
    """Tests for owner handling."""

    def test_ensure_owner_creates_once(self, repository):
        """Test that ensure_owner is idempotent."""
        first = repository.ensure_owner(1)
        second = repository.ensure_owner(1, username="other")

        assert first.id == 1
        assert second.id == 1
        assert second.username == "default"


class TestSubscriptionOperations:
    """Tests for subscription upserts and reads."""

    def test_upsert_inserts_new(self, repository, owner):
        """Test inserting new subscriptions."""
        stats = repository.upsert_subscriptions(
            1,
            [
                entry("Tech Talk", "https://example.com/tech.xml", "https://example.com"),
                entry("News", "https://example.com/news.xml", image_url="https://example.com/n.png"),
            ],
        )

        assert stats == {"added": 2, "updated": 0}
        subscriptions = {s.name: s for s in repository.list_subscriptions(1)}
        assert set(subscriptions) == {"Tech Talk", "News"}
        assert subscriptions["Tech Talk"].website_url == "https://example.com"
        assert subscriptions["News"].image_url == "https://example.com/n.png"

    def test_upsert_is_stable(self, repository, owner):
        """Test that importing the same list twice keeps ids and names."""
        entries = [
            entry("Tech Talk", "https://example.com/tech.xml"),
            entry("News", "https://example.com/news.xml"),
        ]
        repository.upsert_subscriptions(1, entries)
        before = {s.name: s.id for s in repository.list_subscriptions(1)}

        stats = repository.upsert_subscriptions(1, entries)
        after = {s.name: s.id for s in repository.list_subscriptions(1)}

        assert stats == {"added": 0, "updated": 2}
        assert before == after

    def test_upsert_overwrites_urls_in_place(self, repository, subscription):
        """Test that an existing name gets its feed URL replaced."""
        repository.upsert_subscriptions(
            1, [entry("Tech Talk", "https://new.example.com/tech.xml", "https://new.example.com")]
        )

        updated = repository.get_subscription(subscription.id)
        assert updated.feed_url == "https://new.example.com/tech.xml"
        assert updated.website_url == "https://new.example.com"
        assert updated.name == "Tech Talk"

    def test_same_name_different_owner(self, repository, owner):
        """Test that names are unique per owner only."""
        repository.ensure_owner(2)
        repository.upsert_subscriptions(1, [entry("Shared", "https://a.example/feed")])
        repository.upsert_subscriptions(2, [entry("Shared", "https://b.example/feed")])

        assert len(repository.list_subscriptions(1)) == 1
        assert len(repository.list_subscriptions(2)) == 1
        assert repository.list_subscriptions(2)[0].feed_url == "https://b.example/feed"

    def test_upsert_failure_keeps_earlier_entries(self, repository, owner):
        """Test that entries before a failing one stay committed."""
        entries = [
            entry("Good", "https://example.com/good.xml"),
            entry("Broken", None),  # feed_url is NOT NULL
            entry("Never", "https://example.com/never.xml"),
        ]

        with pytest.raises(StoreError):
            repository.upsert_subscriptions(1, entries)

        names = [s.name for s in repository.list_subscriptions(1)]
        assert names == ["Good"]

    def test_get_nonexistent_subscription(self, repository):
        """Test getting a subscription that doesn't exist."""
        assert repository.get_subscription(999) is None

    def test_update_subscription_metadata(self, repository, subscription):
        """Test writing feed metadata."""
        repository.update_subscription_metadata(
            subscription.id, title="Tech Talk Weekly", description="Tech news", language="en"
        )

        updated = repository.get_subscription(subscription.id)
        assert updated.title == "Tech Talk Weekly"
        assert updated.description == "Tech news"
        assert updated.language == "en"
        assert updated.last_checked is not None
        assert repository.list_episodes(subscription.id) == []

    def test_update_metadata_unknown_subscription(self, repository):
        """Test that metadata for a missing subscription raises StoreError."""
        with pytest.raises(StoreError):
            repository.update_subscription_metadata(42, "t", "d", "en")


class TestDownloadState:
    """Tests for download marking and the pending list."""

    def test_list_pending_downloads(self, repository, subscription):
        """Test that pending downloads are joined with the subscription name."""
        repository.reconcile_episodes(
            subscription.id,
            ["https://example.com/ep1.mp3", "https://example.com/ep2.mp3"],
        )

        pending = repository.list_pending_downloads(1)

        assert len(pending) == 2
        assert all(isinstance(p, PendingDownload) for p in pending)
        assert {p.media_url for p in pending} == {
            "https://example.com/ep1.mp3",
            "https://example.com/ep2.mp3",
        }
        assert all(p.subscription_name == "Tech Talk" for p in pending)

    def test_list_pending_downloads_filters_owner(self, repository, subscription):
        """Test that another owner's episodes are not listed."""
        repository.reconcile_episodes(subscription.id, ["https://example.com/ep1.mp3"])

        assert repository.list_pending_downloads(2) == []
        assert len(repository.list_pending_downloads()) == 1

    def test_mark_downloaded(self, repository, subscription):
        """Test marking an episode downloaded."""
        repository.reconcile_episodes(subscription.id, ["https://example.com/ep1.mp3"])
        episode = repository.list_episodes(subscription.id)[0]

        repository.mark_downloaded(episode.id, f"{episode.id}_ep1.mp3")

        updated = repository.get_episode(episode.id)
        assert updated.downloaded is True
        assert updated.file_name == f"{episode.id}_ep1.mp3"
        assert updated.downloaded_at is not None
        assert repository.list_pending_downloads(1) == []

    def test_timestamps_share_one_clock(self, repository, subscription):
        """Test that defaults and explicit stamps are comparable UTC times."""
        repository.reconcile_episodes(subscription.id, ["https://example.com/ep1.mp3"])
        episode = repository.list_episodes(subscription.id)[0]

        repository.mark_downloaded(episode.id, "1_ep1.mp3")
        updated = repository.get_episode(episode.id)

        elapsed = (updated.downloaded_at - updated.created_at).total_seconds()
        assert 0 <= elapsed < 60
        assert utcnow().tzinfo is UTC

    def test_mark_downloaded_is_idempotent(self, repository, subscription):
        """Test that marking twice leaves the same state."""
        repository.reconcile_episodes(subscription.id, ["https://example.com/ep1.mp3"])
        episode = repository.list_episodes(subscription.id)[0]

        repository.mark_downloaded(episode.id, "1_ep1.mp3")
        first = repository.get_episode(episode.id)
        repository.mark_downloaded(episode.id, "1_ep1.mp3")
        second = repository.get_episode(episode.id)

        assert second.downloaded is True
        assert second.downloaded_at == first.downloaded_at

    def test_mark_downloaded_unknown_episode(self, repository):
        """Test that marking a missing episode raises StoreError."""
        with pytest.raises(StoreError):
            repository.mark_downloaded(12345, "x.mp3")

    def test_download_state_survives_repoll(self, repository, subscription):
        """Test that polling again never resets the downloaded flag."""
        urls = ["https://example.com/ep1.mp3"]
        repository.reconcile_episodes(subscription.id, urls)
        episode = repository.list_episodes(subscription.id)[0]
        repository.mark_downloaded(episode.id, "1_ep1.mp3")

        repository.reconcile_episodes(subscription.id, urls)
        repository.reconcile_episodes(subscription.id, [])

        assert repository.get_episode(episode.id).downloaded is True


class TestCatalogStats:
    """Tests for catalog statistics."""

    def test_get_catalog_stats(self, repository, subscription):
        """Test the summary counts."""
        repository.reconcile_episodes(
            subscription.id,
            ["https://example.com/ep1.mp3", "https://example.com/ep2.mp3"],
        )
        episode = repository.list_episodes(subscription.id)[0]
        repository.mark_downloaded(episode.id, "x.mp3")

        stats = repository.get_catalog_stats(1)

        assert stats == {
            "subscriptions": 1,
            "episodes": 2,
            "downloaded": 1,
            "pending_download": 1,
            "archived": 0,
        }

    def test_empty_catalog_stats(self, repository, owner):
        """Test stats for an empty catalog."""
        stats = repository.get_catalog_stats(1)

        assert stats["subscriptions"] == 0
        assert stats["episodes"] == 0


class TestConcurrentReconcile:
    """Tests for concurrent reconciliation of the same subscription."""

    def test_parallel_reconcile_keeps_urls_unique(self, repository, subscription):
        """Test that concurrent polls of one subscription never duplicate an episode."""
        urls = [f"https://example.com/ep{i}.mp3" for i in range(10)]
        counts = []
        errors = []

        def poll():
            try:
                counts.append(repository.reconcile_episodes(subscription.id, urls))
            except StoreError as e:
                errors.append(e)

        threads = [threading.Thread(target=poll) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert sum(counts) == 10
        episodes = repository.list_episodes(subscription.id)
        assert sorted(e.media_url for e in episodes) == sorted(urls)
