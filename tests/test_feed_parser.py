"""Tests for the feed fetcher and parser."""

from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from podcatch.errors import FeedFetchError, FeedParseError, FetchError
from podcatch.podcast.feed_parser import FeedDocument, FeedItem, FeedParser


# Sample RSS feed for testing
SAMPLE_RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>Tech Talk</title>
    <description>A show about technology</description>
    <link>https://example.com</link>
    <language>en-us</language>

    <item>
      <title>Episode 2: Deep Dive</title>
      <description><![CDATA[<p>A deeper look &amp; more.</p>]]></description>
      <link>https://example.com/ep2</link>
      <guid>episode-2-guid</guid>
      <pubDate>Mon, 08 Jan 2024 12:00:00 +0000</pubDate>
      <enclosure url="https://cdn.example.com/ep2.mp3" length="1000" type="audio/mpeg"/>
    </item>

    <item>
      <title>Episode 1: Introduction</title>
      <description>The first episode.</description>
      <guid>episode-1-guid</guid>
      <pubDate>Mon, 01 Jan 2024 12:00:00 +0000</pubDate>
      <enclosure url="https://cdn.example.com/ep1.mp3" length="1000" type="audio/mpeg"/>
    </item>

    <item>
      <title>Announcement without media</title>
      <description>No enclosure here.</description>
    </item>
  </channel>
</rss>
"""

FEED_WITHOUT_GUIDS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Bare Feed</title>
    <item>
      <title>Only media</title>
      <enclosure url="https://cdn.example.com/bare.mp3" type="audio/mpeg"/>
    </item>
  </channel>
</rss>
"""


@pytest.fixture
def parser():
    """Provide a FeedParser with a mocked HTTP session."""
    return FeedParser(timeout=5, session=Mock())


def make_response(status_code=200, content=b"", reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.iter_content.return_value = [content]
    response.__enter__.return_value = response
    return response


class TestParseString:
    """Tests for parsing feed content."""

    def test_channel_metadata(self, parser):
        """Test that title, description and language are extracted."""
        document = parser.parse_string(SAMPLE_RSS_FEED, "https://example.com/feed.xml")

        assert isinstance(document, FeedDocument)
        assert document.title == "Tech Talk"
        assert document.description == "A show about technology"
        assert document.language == "en-us"

    def test_items_in_feed_order(self, parser):
        """Test that items keep feed order and entries without enclosure are skipped."""
        document = parser.parse_string(SAMPLE_RSS_FEED)

        assert [item.enclosure_url for item in document.items] == [
            "https://cdn.example.com/ep2.mp3",
            "https://cdn.example.com/ep1.mp3",
        ]

    def test_item_fields(self, parser):
        """Test the fields of a parsed item."""
        item = parser.parse_string(SAMPLE_RSS_FEED).items[0]

        assert isinstance(item, FeedItem)
        assert item.title == "Episode 2: Deep Dive"
        assert item.guid == "episode-2-guid"
        assert item.link == "https://example.com/ep2"
        assert item.published == "Mon, 08 Jan 2024 12:00:00 +0000"
        assert item.description == "A deeper look & more."

    def test_item_without_guid(self, parser):
        """Test that a missing GUID is left empty."""
        document = parser.parse_string(FEED_WITHOUT_GUIDS)

        assert len(document.items) == 1
        assert document.items[0].guid is None
        assert document.items[0].enclosure_url == "https://cdn.example.com/bare.mp3"

    def test_malformed_document(self, parser):
        """Test that garbage content raises FeedParseError."""
        with pytest.raises(FeedParseError):
            parser.parse_string("this is not a feed at all", "https://example.com/feed.xml")

    def test_html_page_is_not_a_feed(self, parser):
        """Test that an HTML page raises FeedParseError."""
        with pytest.raises(FeedParseError):
            parser.parse_string("<html><body><p>Hello</p></body></html>")


class TestFetch:
    """Tests for fetching feeds over HTTP."""

    def test_fetch_success(self, parser):
        """Test a successful fetch."""
        parser.session.get.return_value = make_response(content=SAMPLE_RSS_FEED.encode("utf-8"))

        document = parser.fetch("https://example.com/feed.xml")

        assert document.title == "Tech Talk"
        assert len(document.items) == 2
        parser.session.get.assert_called_once_with(
            "https://example.com/feed.xml", timeout=5, stream=True
        )

    def test_fetch_non_success_status(self, parser):
        """Test that a 404 raises FeedFetchError carrying the status."""
        parser.session.get.return_value = make_response(status_code=404, reason="Not Found")

        with pytest.raises(FeedFetchError) as exc_info:
            parser.fetch("https://example.com/missing.xml")

        assert exc_info.value.status == 404
        assert exc_info.value.url == "https://example.com/missing.xml"
        assert "404" in str(exc_info.value)

    def test_fetch_server_error(self, parser):
        """Test that a 5xx is a FetchError."""
        parser.session.get.return_value = make_response(status_code=503, reason="Unavailable")

        with pytest.raises(FetchError):
            parser.fetch("https://example.com/feed.xml")

    def test_fetch_connection_error(self, parser):
        """Test that transport failures raise FetchError."""
        parser.session.get.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(FetchError) as exc_info:
            parser.fetch("https://example.com/feed.xml")

        assert not isinstance(exc_info.value, FeedFetchError)

    def test_fetch_timeout(self, parser):
        """Test that a timeout raises FetchError."""
        parser.session.get.side_effect = requests.Timeout("read timed out")

        with pytest.raises(FetchError):
            parser.fetch("https://example.com/feed.xml")

    def test_fetch_malformed_body(self, parser):
        """Test that a 200 with a broken body raises FeedParseError."""
        parser.session.get.return_value = make_response(content=b"<<<not xml")

        with pytest.raises(FeedParseError):
            parser.fetch("https://example.com/feed.xml")

    def test_fetch_body_split_into_chunks(self, parser):
        """Test that a body streamed in several chunks is parsed whole."""
        body = SAMPLE_RSS_FEED.encode("utf-8")
        response = make_response()
        response.iter_content.return_value = [body[:100], b"", body[100:]]
        parser.session.get.return_value = response

        document = parser.fetch("https://example.com/feed.xml")

        assert len(document.items) == 2

    def test_slow_body_hits_total_deadline(self, parser):
        """Test that a body trickling past the timeout raises FetchError."""
        response = make_response()
        response.iter_content.return_value = iter([b"<rss>", b"<channel>", b"</channel></rss>"])
        parser.session.get.return_value = response
        # start, then one tick per chunk; the second chunk arrives after 5s
        clock = iter([100.0, 101.0, 106.0, 107.0])

        with patch("podcatch.podcast.feed_parser.time.monotonic", side_effect=lambda: next(clock)):
            with pytest.raises(FetchError) as exc_info:
                parser.fetch("https://example.com/feed.xml")

        assert not isinstance(exc_info.value, FeedFetchError)
        assert "within 5s" in str(exc_info.value)

    def test_stream_error_mid_body(self, parser):
        """Test that a connection dropped while reading raises FetchError."""
        response = make_response()
        response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("reset")
        parser.session.get.return_value = response

        with pytest.raises(FetchError):
            parser.fetch("https://example.com/feed.xml")


class TestSession:
    """Tests for HTTP session setup."""

    def test_default_session_user_agent(self):
        """Test that the default session sends the user agent."""
        parser = FeedParser(user_agent="TestAgent/1.0")
        try:
            assert parser.session.headers["User-Agent"] == "TestAgent/1.0"
        finally:
            parser.close()
