"""RSS/Atom feed fetcher and parser.

Fetches a subscription's feed over HTTP with requests and parses it with
feedparser into a FeedDocument: channel metadata plus one FeedItem per
entry that carries a media enclosure.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional

import feedparser
import requests
from requests.adapters import HTTPAdapter

from ..errors import FeedFetchError, FeedParseError, FetchError

logger = logging.getLogger(__name__)


@dataclass
class FeedItem:
    """One entry of a fetched feed."""

    title: Optional[str] = None
    description: Optional[str] = None
    published: Optional[str] = None  # opaque, as served by the feed
    link: Optional[str] = None
    image_url: Optional[str] = None
    enclosure_url: Optional[str] = None
    guid: Optional[str] = None


@dataclass
class FeedDocument:
    """Parsed feed: channel metadata and items in feed order."""

    title: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    items: List[FeedItem] = field(default_factory=list)


class FeedParser:
    """Fetcher and parser for podcast RSS/Atom feeds.

    Each fetch is a single attempt bounded by `timeout`; there is no retry.

    Example:
        parser = FeedParser(timeout=30)
        document = parser.fetch("https://example.com/feed.xml")
        for item in document.items:
            print(item.enclosure_url)
    """

    # User agent for feed requests
    USER_AGENT = "podcatch/0.1"
    CHUNK_SIZE = 8192

    def __init__(
        self,
        timeout: int = 30,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the feed parser.

        Args:
            timeout: Total time in seconds allowed for one feed request
            user_agent: Custom user agent string for requests
            session: Preconfigured requests session (a pooled one is created otherwise)
        """
        self.timeout = timeout
        self.user_agent = user_agent or self.USER_AGENT
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=10, pool_maxsize=10)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({"User-Agent": self.user_agent})
        return session

    def fetch(self, feed_url: str) -> FeedDocument:
        """Fetch and parse a feed.

        The whole request, body included, must finish within `timeout`
        seconds; a server trickling bytes is cut off at the deadline.

        Args:
            feed_url: URL of the RSS/Atom feed

        Returns:
            FeedDocument with channel metadata and items

        Raises:
            FetchError: On connection failure or timeout
            FeedFetchError: If the server answers with a non-success status
            FeedParseError: If the body is not a usable feed
        """
        logger.info(f"Fetching feed: {feed_url}")

        deadline = time.monotonic() + self.timeout
        chunks = []

        try:
            with self.session.get(feed_url, timeout=self.timeout, stream=True) as response:
                if not 200 <= response.status_code < 300:
                    raise FeedFetchError(feed_url, response.status_code, response.reason)

                for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                    if chunk:
                        chunks.append(chunk)
                    if time.monotonic() > deadline:
                        raise FetchError(
                            f"Feed {feed_url} not received within {self.timeout}s"
                        )
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch feed {feed_url}: {e}") from e

        return self.parse_string(b"".join(chunks), feed_url)

    def parse_string(self, content, feed_url: str = "") -> FeedDocument:
        """Parse a feed from string or bytes content.

        Args:
            content: RSS/Atom feed content
            feed_url: Original URL of the feed (for messages)

        Returns:
            FeedDocument with channel metadata and items

        Raises:
            FeedParseError: If the content is not a feed
        """
        feed = feedparser.parse(content)

        if feed.bozo and not feed.feed and not feed.entries:
            raise FeedParseError(
                f"Failed to parse feed {feed_url}: {feed.get('bozo_exception')}"
            )
        if not feed.get("version") and not feed.entries:
            raise FeedParseError(f"Not an RSS/Atom document: {feed_url}")
        if feed.bozo:
            logger.warning(f"Feed parsing warning for {feed_url}: {feed.get('bozo_exception')}")

        return self._parse_feed(feed, feed_url)

    def _parse_feed(self, feed: feedparser.FeedParserDict, feed_url: str) -> FeedDocument:
        f = feed.feed

        document = FeedDocument(
            title=f.get("title"),
            description=self._clean_html(f.get("description") or f.get("subtitle")),
            language=f.get("language"),
        )

        for entry in feed.entries:
            item = self._parse_item(entry)
            if item:
                document.items.append(item)

        logger.info(f"Parsed feed '{document.title}' with {len(document.items)} items")
        return document

    def _parse_item(self, entry: feedparser.FeedParserDict) -> Optional[FeedItem]:
        """Convert a feed entry into a FeedItem.

        Returns:
            FeedItem, or None if the entry has no enclosure
        """
        enclosure_url = self._extract_enclosure(entry)
        if not enclosure_url:
            logger.debug(f"Skipping entry without enclosure: {entry.get('title')}")
            return None

        content = entry.get("content") or [{}]
        return FeedItem(
            title=entry.get("title"),
            description=self._clean_html(
                entry.get("description") or entry.get("summary") or content[0].get("value")
            ),
            published=entry.get("published") or entry.get("updated"),
            link=entry.get("link"),
            image_url=self._extract_image_url(entry),
            enclosure_url=enclosure_url,
            guid=entry.get("id") or entry.get("guid"),
        )

    def _extract_enclosure(self, entry: feedparser.FeedParserDict) -> Optional[str]:
        """Return the first enclosure URL of an entry, if any."""
        for enclosure in entry.get("enclosures", []):
            url = enclosure.get("href") or enclosure.get("url")
            if url:
                return url

        for media in entry.get("media_content", []):
            if media.get("url"):
                return media.get("url")

        for link in entry.get("links", []):
            if link.get("rel") == "enclosure" and link.get("href"):
                return link.get("href")

        return None

    def _extract_image_url(self, entry: feedparser.FeedParserDict) -> Optional[str]:
        # itunes:image is exposed as `image` by feedparser
        image = entry.get("image") or entry.get("itunes_image")
        if image:
            if isinstance(image, dict):
                return image.get("href") or image.get("url")
            return image

        thumbs = entry.get("media_thumbnail")
        if thumbs and isinstance(thumbs, list):
            return thumbs[0].get("url")

        return None

    def _clean_html(self, text: Optional[str]) -> Optional[str]:
        """Remove HTML tags from text.

        Args:
            text: Text that may contain HTML

        Returns:
            Cleaned text or None
        """
        if not text:
            return None

        clean = re.sub(r"<[^>]+>", "", text)
        clean = clean.replace("&amp;", "&")
        clean = clean.replace("&lt;", "<")
        clean = clean.replace("&gt;", ">")
        clean = clean.replace("&quot;", '"')
        clean = clean.replace("&#39;", "'")
        clean = clean.replace("&nbsp;", " ")
        clean = re.sub(r"\s+", " ", clean).strip()

        return clean if clean else None

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self.session.close()
