"""Run orchestration for podcatch.

Runs the requested phases of a catalog run in data-dependency order:
import -> poll -> download.
"""

from podcatch.workflow.orchestrator import RunOrchestrator, RunStats
from podcatch.workflow.workers.base import WorkerInterface, WorkerResult

__all__ = [
    "RunOrchestrator",
    "RunStats",
    "WorkerInterface",
    "WorkerResult",
]
