"""Custom exceptions for podcatch."""

from typing import Optional


class CatalogError(Exception):
    """Base exception for all podcatch errors."""

    pass


class ConfigError(CatalogError):
    """Invalid configuration value."""

    pass


class ParseError(CatalogError):
    """Malformed subscription list or feed document."""

    pass


class OPMLParseError(ParseError):
    """Subscription list (OPML) could not be parsed."""

    pass


class FeedParseError(ParseError):
    """RSS/Atom feed could not be parsed."""

    pass


class StoreError(CatalogError):
    """Catalog store I/O or constraint failure.

    Attributes:
        new_episodes: Episodes inserted before the failure when raised from
            a reconcile call, so callers can still report them.
    """

    def __init__(self, message: str, new_episodes: int = 0):
        super().__init__(message)
        self.new_episodes = new_episodes


class FetchError(CatalogError):
    """Network/transport failure or non-success response."""

    pass


class FeedFetchError(FetchError):
    """Feed request answered with a non-success status."""

    def __init__(self, url: str, status: int, reason: Optional[str] = None):
        message = f"Feed request failed: {url} ({status}{' ' + reason if reason else ''})"
        super().__init__(message)
        self.url = url
        self.status = status


class DownloadError(FetchError):
    """Episode media could not be fetched."""

    pass


class FilesystemError(CatalogError):
    """Destination directory or file could not be written."""

    pass
