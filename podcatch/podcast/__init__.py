"""Podcast feed handling.

Provides functionality for:
- OPML subscription import
- RSS/Atom feed fetching and parsing
- Feed synchronization into the catalog
- Episode downloading
"""

from .opml_parser import OPMLParser, SubscriptionEntry, import_opml_to_repository
from .feed_parser import FeedDocument, FeedItem, FeedParser
from .feed_sync import FeedSyncService
from .downloader import DownloadResult, EpisodeDownloader

__all__ = [
    "OPMLParser",
    "SubscriptionEntry",
    "import_opml_to_repository",
    "FeedParser",
    "FeedDocument",
    "FeedItem",
    "FeedSyncService",
    "EpisodeDownloader",
    "DownloadResult",
]
