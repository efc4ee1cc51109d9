"""OPML parser for importing podcast subscriptions.

Supports various OPML flavors from podcast apps like:
- Apple Podcasts
- Overcast
- Pocket Casts
- AntennaPod
- Generic RSS readers
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from ..errors import OPMLParseError

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionEntry:
    """A candidate subscription extracted from OPML."""

    name: str
    feed_url: str
    website_url: Optional[str] = None
    image_url: Optional[str] = None

    def __post_init__(self):
        if not self.feed_url:
            raise ValueError("feed_url is required")
        self.feed_url = self.feed_url.strip()


@dataclass
class OPMLImportResult:
    """Result of parsing an OPML document."""

    entries: List[SubscriptionEntry]
    total_outlines: int
    skipped_no_url: int
    title: Optional[str] = None
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    date_created: Optional[str] = None


class OPMLParser:
    """Parser for OPML files containing podcast subscriptions.

    Nested outlines (folders) are flattened; only outlines with a feed URL
    become subscription entries.

    Example:
        parser = OPMLParser()
        result = parser.parse_file("subscriptions.opml")
        for entry in result.entries:
            print(f"{entry.name}: {entry.feed_url}")
    """

    # Common attribute names for feed URLs across different OPML flavors
    URL_ATTRIBUTES = ["xmlUrl", "xmlurl", "url", "feedUrl", "feedurl"]

    # Common attribute names for website URLs
    HTML_URL_ATTRIBUTES = ["htmlUrl", "htmlurl", "link"]

    # Common attribute names for artwork URLs
    IMAGE_URL_ATTRIBUTES = ["imageUrl", "imageurl", "image"]

    # Display name, `text` is the OPML 2.0 required attribute
    NAME_ATTRIBUTES = ["text", "title", "name"]

    def parse_file(self, file_path: Union[str, Path]) -> OPMLImportResult:
        """
        Parse an OPML file and extract subscription entries.

        Raises:
            OPMLParseError: If the file cannot be read, is not well-formed XML, or is not an OPML document.
        """
        file_path = Path(file_path)
        logger.info(f"Parsing OPML file: {file_path}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise OPMLParseError(f"Cannot read OPML file {file_path}: {e}") from e

        return self.parse_string(content)

    def parse_string(self, content: str) -> OPMLImportResult:
        """
        Parse an OPML document and extract subscription entries and head metadata.

        Parameters:
            content (str): OPML XML content as a string.

        Returns:
            OPMLImportResult: Extracted entries, total outline count, number of outlines skipped for missing URLs, and optional head metadata.

        Raises:
            OPMLParseError: If the XML is not well-formed, the root element is not `opml`, or the `body` element is missing.
        """
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            logger.error(f"Failed to parse OPML XML: {e}")
            raise OPMLParseError(f"Malformed OPML: {e}") from e

        if root.tag.lower() != "opml":
            raise OPMLParseError(f"Invalid OPML: root element is '{root.tag}', expected 'opml'")

        # Note: Empty Element is falsy, so we can't use `or` here
        head = root.find("head")
        if head is None:
            head = root.find("HEAD")
        title = None
        owner_name = None
        owner_email = None
        date_created = None

        if head is not None:
            title = self._get_element_text(head, ["title", "Title"])
            owner_name = self._get_element_text(head, ["ownerName", "ownername"])
            owner_email = self._get_element_text(head, ["ownerEmail", "owneremail"])
            date_created = self._get_element_text(head, ["dateCreated", "datecreated"])

        body = root.find("body")
        if body is None:
            body = root.find("BODY")
        if body is None:
            raise OPMLParseError("Invalid OPML: missing body element")

        entries = []
        total_outlines = 0
        skipped_no_url = 0

        def process_outlines(parent):
            nonlocal total_outlines, skipped_no_url

            for outline in parent.findall("outline") + parent.findall("OUTLINE"):
                total_outlines += 1

                if self._get_attribute(outline, self.URL_ATTRIBUTES):
                    entry = self._extract_entry(outline)
                    if entry:
                        entries.append(entry)
                        logger.debug(f"Found subscription: {entry.name}")
                else:
                    nested = outline.findall("outline") + outline.findall("OUTLINE")
                    if nested:
                        process_outlines(outline)
                    else:
                        skipped_no_url += 1
                        logger.debug(
                            f"Skipped outline without URL: "
                            f"{self._get_attribute(outline, self.NAME_ATTRIBUTES)}"
                        )

        process_outlines(body)

        logger.info(
            f"Parsed OPML: {len(entries)} subscriptions found, "
            f"{skipped_no_url} outlines skipped (no URL), "
            f"{total_outlines} total outlines"
        )

        return OPMLImportResult(
            entries=entries,
            total_outlines=total_outlines,
            skipped_no_url=skipped_no_url,
            title=title,
            owner_name=owner_name,
            owner_email=owner_email,
            date_created=date_created,
        )

    def _extract_entry(self, outline: ET.Element) -> Optional[SubscriptionEntry]:
        """
        Create a SubscriptionEntry from an outline element, or return None when the feed URL is invalid.

        The feed URL must start with "http://", "https://" or "feed://"; "feed://" is normalized to "https://". Outlines without a display name are named after their feed URL.
        """
        feed_url = self._get_attribute(outline, self.URL_ATTRIBUTES)
        if not feed_url:
            return None

        if not feed_url.startswith(("http://", "https://", "feed://")):
            logger.warning(f"Skipping invalid feed URL: {feed_url}")
            return None

        if feed_url.startswith("feed://"):
            feed_url = "https://" + feed_url[7:]

        return SubscriptionEntry(
            name=self._get_attribute(outline, self.NAME_ATTRIBUTES) or feed_url,
            feed_url=feed_url,
            website_url=self._get_attribute(outline, self.HTML_URL_ATTRIBUTES),
            image_url=self._get_attribute(outline, self.IMAGE_URL_ATTRIBUTES),
        )

    def _get_attribute(self, element: ET.Element, attr_names: List[str]) -> Optional[str]:
        """Get attribute value trying multiple possible names.

        Args:
            element: XML element
            attr_names: List of possible attribute names to try

        Returns:
            Attribute value or None if not found
        """
        for name in attr_names:
            value = element.get(name)
            if value:
                return value.strip()
        return None

    def _get_element_text(self, parent: ET.Element, tag_names: List[str]) -> Optional[str]:
        for name in tag_names:
            element = parent.find(name)
            if element is not None and element.text:
                return element.text.strip()
        return None


def import_opml_to_repository(
    opml_path: Union[str, Path],
    repository,
    owner_id: int,
) -> dict:
    """
    Import subscriptions from an OPML file into the catalog.

    Parses the OPML file at `opml_path` and upserts every entry for `owner_id`. Episodes are not touched; they are populated by the next poll.

    Parameters:
        opml_path (Union[str, Path]): Path to the OPML file to import.
        repository: Catalog repository receiving the subscriptions.
        owner_id (int): Owner of the imported subscriptions.

    Returns:
        dict: Import statistics with `added`, `updated` and `total` counts.

    Raises:
        OPMLParseError: If the file cannot be parsed; nothing is imported.
        StoreError: If an entry cannot be written; earlier entries stay imported.
    """
    parser = OPMLParser()
    result = parser.parse_file(opml_path)

    repository.ensure_owner(owner_id)
    upserted = repository.upsert_subscriptions(owner_id, result.entries)

    stats = {
        "added": upserted["added"],
        "updated": upserted["updated"],
        "total": len(result.entries),
    }

    logger.info(
        f"OPML import complete: {stats['added']} added, "
        f"{stats['updated']} updated, {stats['total']} total"
    )

    return stats
