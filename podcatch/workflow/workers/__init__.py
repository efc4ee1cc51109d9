"""Workflow workers for a catalog run.

Each worker handles a single phase:
- SyncWorker: Polls subscription feeds to discover new episodes
- DownloadWorker: Downloads pending episodes
"""

from podcatch.workflow.workers.base import WorkerInterface, WorkerResult

__all__ = [
    "WorkerInterface",
    "WorkerResult",
]
