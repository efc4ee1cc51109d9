"""Tests for workflow workers.

Tests for the sync and download workers, as well as the base worker classes.
"""

import threading
from unittest.mock import Mock

import pytest

from podcatch.podcast.downloader import DownloadResult
from podcatch.errors import FilesystemError
from podcatch.workflow.workers.base import WorkerInterface, WorkerResult
from podcatch.workflow.workers.download import DownloadWorker
from podcatch.workflow.workers.sync import SyncWorker


@pytest.fixture
def mock_config():
    """Config stand-in with the attributes the workers read."""
    config = Mock()
    config.OWNER_ID = 1
    config.DOWNLOAD_DIRECTORY = "/tmp/podcatch-downloads"
    config.MAX_CONCURRENT_DOWNLOADS = 4
    config.MAX_CONCURRENT_FEEDS = 2
    config.FEED_TIMEOUT = 10
    config.DOWNLOAD_TIMEOUT = 60
    config.CHUNK_SIZE = 1024
    return config


# ============================================================================
# Tests for WorkerResult
# ============================================================================


class TestWorkerResult:
    """Tests for WorkerResult dataclass."""

    def test_default_values(self):
        """Test default values are set correctly."""
        result = WorkerResult()
        assert result.processed == 0
        assert result.failed == 0
        assert result.skipped == 0
        assert result.discovered == 0
        assert result.errors == []

    def test_total_property(self):
        """Test total calculation."""
        result = WorkerResult(processed=5, failed=2, skipped=3)
        assert result.total == 10

    def test_discovered_not_in_total(self):
        """Test that discovered episodes are not counted as attempted items."""
        result = WorkerResult(processed=1, discovered=12)
        assert result.total == 1



class TestWorkerInterface:
    """Tests for WorkerInterface abstract class."""

    def test_cannot_instantiate(self):
        """Test that WorkerInterface cannot be instantiated directly."""
        with pytest.raises(TypeError):
            WorkerInterface()

    def test_log_result_logs_errors(self, mock_config, caplog):
        """Test that log_result emits one line per error."""
        worker = SyncWorker(config=mock_config, repository=Mock())

        with caplog.at_level("INFO"):
            worker.log_result(WorkerResult(processed=1, failed=1, errors=["boom"]))

        assert "[Sync] Processed: 1, Failed: 1" in caplog.text
        assert "[Sync] boom" in caplog.text


# ============================================================================
# Tests for SyncWorker
# ============================================================================


class TestSyncWorker:
    """Tests for SyncWorker class."""

    def test_name(self, mock_config):
        """Test worker name."""
        assert SyncWorker(config=mock_config, repository=Mock()).name == "Sync"

    def test_feed_sync_service_uses_config(self, mock_config):
        """Test lazy service construction from config."""
        cancel_event = threading.Event()
        worker = SyncWorker(config=mock_config, repository=Mock(), cancel_event=cancel_event)

        service = worker.feed_sync_service

        assert service.max_workers == 2
        assert service.feed_parser.timeout == 10
        assert service.cancel_event is cancel_event
        assert worker.feed_sync_service is service
        worker.close()
        assert worker._feed_sync_service is None

    def test_process_batch(self, mock_config):
        """Test translating sync counts into a WorkerResult."""
        worker = SyncWorker(config=mock_config, repository=Mock())
        service = Mock()
        service.sync_all.return_value = {
            "synced": 2,
            "failed": 1,
            "skipped": 0,
            "new_episodes": 7,
            "results": [
                {"subscription_id": 1, "name": "Tech Talk", "new_episodes": 5, "error": None},
                {"subscription_id": 2, "name": "News", "new_episodes": 2, "error": None},
                {"subscription_id": 3, "name": "Broken", "new_episodes": 0, "error": "HTTP 404"},
            ],
        }
        worker._feed_sync_service = service

        result = worker.process_batch()

        assert result.processed == 2
        assert result.failed == 1
        assert result.discovered == 7
        assert result.errors == ["Subscription Broken: HTTP 404"]
        service.sync_all.assert_called_once_with(1)
        service.feed_parser.close.assert_called_once()

    def test_process_batch_propagates_store_failure(self, mock_config):
        """Test that a catalog failure aborts the phase and still closes."""
        from podcatch.errors import StoreError

        worker = SyncWorker(config=mock_config, repository=Mock())
        service = Mock()
        service.sync_all.side_effect = StoreError("database is locked")
        worker._feed_sync_service = service

        with pytest.raises(StoreError):
            worker.process_batch()

        service.feed_parser.close.assert_called_once()


# ============================================================================
# Tests for DownloadWorker
# ============================================================================


class TestDownloadWorker:
    """Tests for DownloadWorker class."""

    def test_name(self, mock_config):
        """Test worker name."""
        assert DownloadWorker(config=mock_config, repository=Mock()).name == "Download"

    def test_default_workers_from_config(self, mock_config):
        """Test that concurrency defaults to the configured limit."""
        worker = DownloadWorker(config=mock_config, repository=Mock())

        assert worker.downloader.max_concurrent == 4
        assert worker.downloader.timeout == 60
        assert worker.downloader.chunk_size == 1024
        worker.close()

    @pytest.mark.parametrize("value", [0, -1, "3"])
    def test_invalid_download_workers(self, mock_config, value):
        """Test that non-positive or non-integer worker counts are rejected."""
        with pytest.raises(ValueError):
            DownloadWorker(config=mock_config, repository=Mock(), download_workers=value)

    def test_process_batch(self, mock_config):
        """Test translating download counts into a WorkerResult."""
        worker = DownloadWorker(config=mock_config, repository=Mock())
        downloader = Mock()
        downloader.download_pending.return_value = {
            "downloaded": 1,
            "failed": 1,
            "skipped": 2,
            "results": [
                DownloadResult(episode_id=1, success=True, file_name="1_a.mp3"),
                DownloadResult(episode_id=2, success=False, error="HTTP 404 Not Found"),
            ],
        }
        worker._downloader = downloader

        result = worker.process_batch()

        assert result.processed == 1
        assert result.failed == 1
        assert result.skipped == 2
        assert result.errors == ["Episode 2: HTTP 404 Not Found"]
        downloader.download_pending.assert_called_once_with(1)
        downloader.close.assert_called_once()

    def test_process_batch_async(self, mock_config):
        """Test that async mode drives download_pending_async."""
        worker = DownloadWorker(config=mock_config, repository=Mock(), use_async=True)
        downloader = Mock()

        async def fake_download(owner_id):
            return {"downloaded": 3, "failed": 0, "skipped": 0, "results": []}

        downloader.download_pending_async = fake_download
        worker._downloader = downloader

        result = worker.process_batch()

        assert result.processed == 3
        downloader.download_pending.assert_not_called()

    def test_process_batch_filesystem_failure(self, mock_config):
        """Test that an uncreatable directory aborts the phase."""
        worker = DownloadWorker(config=mock_config, repository=Mock())
        downloader = Mock()
        downloader.download_pending.side_effect = FilesystemError("permission denied")
        worker._downloader = downloader

        with pytest.raises(FilesystemError):
            worker.process_batch()

        downloader.close.assert_called_once()
