"""Run orchestrator for a single catalog run.

Executes the requested phases in data-dependency order (import, then poll,
then download) against one repository. SIGINT/SIGTERM set a shared
cancellation event: workers stop taking new work and in-flight fetches
and downloads finish.
"""

import logging
import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from podcatch.config import Config
from podcatch.db.models import utcnow
from podcatch.db.repository import CatalogRepositoryInterface
from podcatch.errors import CatalogError
from podcatch.podcast.opml_parser import import_opml_to_repository
from podcatch.workflow.workers.base import WorkerResult

logger = logging.getLogger(__name__)

PHASE_ORDER = ["import", "poll", "download"]


@dataclass
class RunStats:
    """Statistics for a catalog run.

    Attributes:
        subscriptions_added: Subscriptions created by the import phase.
        subscriptions_updated: Existing subscriptions refreshed by the import phase.
        new_episodes: Episodes discovered by the poll phase.
        phase_results: Worker results keyed by phase name.
        aborted_phase: Name of the phase that could not run, if any.
        cancelled: Whether the run was interrupted by a signal.
    """

    started_at: datetime = field(default_factory=utcnow)
    stopped_at: Optional[datetime] = None

    subscriptions_added: int = 0
    subscriptions_updated: int = 0
    new_episodes: int = 0

    phase_results: Dict[str, WorkerResult] = field(default_factory=dict)
    aborted_phase: Optional[str] = None
    cancelled: bool = False

    @property
    def success(self) -> bool:
        """True unless a phase was aborted."""
        return self.aborted_phase is None

    @property
    def duration_seconds(self) -> float:
        """Duration of the run in seconds."""
        end = self.stopped_at or utcnow()
        return (end - self.started_at).total_seconds()


class RunOrchestrator:
    """Runs import, poll and download phases against one catalog.

    A phase whose shared precondition fails (unreadable OPML file, catalog
    store errors, download directory creation) is aborted and the phases
    after it are not started. Per-item failures never abort a phase.

    Example:
        config = Config()
        repository = create_repository(config.DATABASE_URL)
        try:
            stats = RunOrchestrator(config, repository).run(poll=True, download=True)
        finally:
            repository.close()
    """

    def __init__(
        self,
        config: Config,
        repository: CatalogRepositoryInterface,
        use_async: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Initialize the orchestrator.

        Args:
            config: Application configuration.
            repository: Catalog repository shared by every phase.
            use_async: Run downloads on asyncio/aiohttp instead of a thread pool.
            cancel_event: Shared cancellation flag; created if omitted.
        """
        self.config = config
        self.repository = repository
        self.use_async = use_async
        self.cancel_event = cancel_event or threading.Event()
        self._stats = RunStats()

        # Workers (created lazily)
        self._sync_worker = None
        self._download_worker = None

    def _get_sync_worker(self):
        """Get or create the sync worker."""
        if self._sync_worker is None:
            from podcatch.workflow.workers.sync import SyncWorker

            self._sync_worker = SyncWorker(
                config=self.config,
                repository=self.repository,
                cancel_event=self.cancel_event,
            )
        return self._sync_worker

    def _get_download_worker(self):
        """Get or create the download worker."""
        if self._download_worker is None:
            from podcatch.workflow.workers.download import DownloadWorker

            self._download_worker = DownloadWorker(
                config=self.config,
                repository=self.repository,
                use_async=self.use_async,
                cancel_event=self.cancel_event,
            )
        return self._download_worker

    def run(
        self,
        import_path: Optional[str] = None,
        poll: bool = False,
        download: bool = False,
    ) -> RunStats:
        """Run the requested phases once.

        Args:
            import_path: OPML file to import, or None to skip the import phase.
            poll: Poll every subscription for new episodes.
            download: Download every pending episode.

        Returns:
            RunStats with run statistics.
        """
        self._stats = RunStats()
        phases = {"import": import_path is not None, "poll": poll, "download": download}
        requested = [phase for phase in PHASE_ORDER if phases[phase]]

        logger.info(f"Starting run with phases: {', '.join(requested) or 'none'}")

        # Set up signal handlers for graceful shutdown
        original_sigint = signal.signal(signal.SIGINT, self._handle_signal)
        original_sigterm = signal.signal(signal.SIGTERM, self._handle_signal)

        try:
            self.repository.ensure_owner(self.config.OWNER_ID)

            for phase in requested:
                if self.cancel_event.is_set():
                    logger.info(f"Run cancelled, not starting phase: {phase}")
                    break
                if not self._run_phase(phase, import_path):
                    break

        except CatalogError:
            logger.exception("Catalog store unavailable")
            self._stats.aborted_phase = requested[0] if requested else "startup"
        finally:
            # Restore signal handlers
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

            self._stats.cancelled = self.cancel_event.is_set()
            self._stats.stopped_at = utcnow()

        logger.info(
            f"Run finished in {self._stats.duration_seconds:.1f}s: "
            f"{self._stats.new_episodes} new episodes"
            + (f", aborted in {self._stats.aborted_phase}" if self._stats.aborted_phase else "")
        )

        return self._stats

    def stop(self) -> None:
        """Signal the run to stop after in-flight work completes."""
        logger.info("Stopping run...")
        self.cancel_event.set()

    def _handle_signal(self, signum, frame) -> None:
        """Handle interrupt signals gracefully."""
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name}, initiating graceful shutdown...")
        self.stop()

    def _run_phase(self, phase: str, import_path: Optional[str]) -> bool:
        """Run one phase.

        Returns:
            False if the phase was aborted and the run must stop.
        """
        logger.info(f"Running phase: {phase}")

        try:
            if phase == "import":
                self._run_import(import_path)
            elif phase == "poll":
                self._run_poll()
            elif phase == "download":
                self._run_download()
            else:
                raise ValueError(f"Unknown phase: {phase}")
        except CatalogError:
            logger.exception(f"Phase {phase} aborted")
            self._stats.aborted_phase = phase
            return False

        return True

    def _run_import(self, import_path: str) -> None:
        stats = import_opml_to_repository(import_path, self.repository, self.config.OWNER_ID)
        self._stats.subscriptions_added = stats["added"]
        self._stats.subscriptions_updated = stats["updated"]

    def _run_poll(self) -> None:
        sync_worker = self._get_sync_worker()
        result = sync_worker.process_batch()
        sync_worker.log_result(result)

        self._stats.phase_results["poll"] = result
        self._stats.new_episodes = result.discovered
        logger.info(f"Found {result.discovered} new episodes")

    def _run_download(self) -> None:
        download_worker = self._get_download_worker()
        result = download_worker.process_batch()
        download_worker.log_result(result)

        self._stats.phase_results["download"] = result
