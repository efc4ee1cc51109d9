"""Catalog persistence.

Provides:
- SQLAlchemy ORM models (Owner, Subscription, Episode, ArchivedEpisode)
- Episode reconciliation
- Repository interface and implementation
- Factory function for creating repositories
"""

from .factory import create_repository
from .models import ArchivedEpisode, Base, Episode, Owner, Subscription
from .reconciler import EpisodeReconciler, FetchedItem
from .repository import (
    CatalogRepositoryInterface,
    PendingDownload,
    SQLAlchemyCatalogRepository,
)

__all__ = [
    "Base",
    "Owner",
    "Subscription",
    "Episode",
    "ArchivedEpisode",
    "EpisodeReconciler",
    "FetchedItem",
    "CatalogRepositoryInterface",
    "PendingDownload",
    "SQLAlchemyCatalogRepository",
    "create_repository",
]
