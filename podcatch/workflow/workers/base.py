"""Base classes for workflow workers.

Defines the interface and common data structures used by all workers.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class WorkerResult:
    """Result of a worker phase run.

    Attributes:
        processed: Number of items successfully processed.
        failed: Number of items that failed processing.
        skipped: Number of items skipped because the run was cancelled.
        discovered: Number of new episodes found (poll phase only).
        errors: List of error messages for failed items.
    """

    processed: int = 0
    failed: int = 0
    skipped: int = 0
    discovered: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        """Total number of items attempted."""
        return self.processed + self.failed + self.skipped


class WorkerInterface(ABC):
    """Abstract base class for workflow workers.

    Each worker runs a single phase over everything pending in the catalog.
    Per-item failures are reported in the WorkerResult; failures of a shared
    precondition (reading the catalog, creating directories) propagate as
    CatalogError and abort the phase.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this worker."""
        pass

    @abstractmethod
    def process_batch(self) -> WorkerResult:
        """Process every pending item.

        Returns:
            WorkerResult with counts of processed, failed, and skipped items.

        Raises:
            CatalogError: If the phase cannot run at all.
        """
        pass

    def log_result(self, result: WorkerResult) -> None:
        """Log the result of a phase run.

        Args:
            result: The WorkerResult to log.
        """
        if result.total == 0:
            logger.info(f"[{self.name}] No items to process")
        else:
            logger.info(
                f"[{self.name}] Processed: {result.processed}, "
                f"Failed: {result.failed}, Skipped: {result.skipped}"
            )

        for error in result.errors:
            logger.error(f"[{self.name}] {error}")
