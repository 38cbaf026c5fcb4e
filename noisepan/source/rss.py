"""Source that reads RSS, RDF and Atom feeds."""

from __future__ import annotations

import html
import re
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime

import requests

from noisepan.source.base import Post, Source, SourceError

RSS_SOURCE_NAME = "rss"
RSS_FETCH_TIMEOUT = 30.0
RSS_USER_AGENT = "Mozilla/5.0 (compatible; noisepan/1.0)"
RSS_MAX_WORKERS = 10
RSS_MAX_RETRIES = 3

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"[\t\n\f\r ]{3,}")
_RETRYABLE_MARKERS = (
    "timeout",
    "Timeout",
    "connection refused",
    "no such host",
    "429",
    "500",
    "502",
    "503",
    "504",
)


@dataclass
class FeedItem:
    """One entry of a parsed feed."""

    title: str = ""
    description: str = ""
    content: str = ""
    link: str = ""
    guid: str = ""
    published: datetime | None = None
    updated: datetime | None = None


@dataclass
class Feed:
    """A parsed feed: its title and its entries."""

    title: str = ""
    items: list[FeedItem] = field(default_factory=list)


class RSSSource(Source):
    """Fetches posts from RSS/Atom feeds, several feeds at a time."""

    def __init__(self, feeds) -> None:
        feeds = list(feeds or [])
        if not feeds:
            raise ValueError("rss: at least one feed URL is required")
        self.feeds = feeds

    def name(self) -> str:
        return RSS_SOURCE_NAME

    def fetch(self, since: datetime) -> list[Post]:
        """Fetch all feeds; a feed that fails is reported and skipped."""
        workers = min(RSS_MAX_WORKERS, len(self.feeds))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda url: _fetch_one(url, since), self.feeds))

        posts: list[Post] = []
        for feed_url, items, error in results:
            if error is not None:
                print(f"  rss: {feed_url}: {error}")
                continue
            posts.extend(items)
        return posts


def _fetch_one(feed_url: str, since: datetime) -> tuple[str, list[Post], SourceError | None]:
    try:
        return feed_url, fetch_with_retry(feed_url, since), None
    except SourceError as exc:
        return feed_url, [], exc


def fetch_with_retry(
    feed_url: str,
    since: datetime,
    sleep: Callable[[float], object] = time.sleep,
) -> list[Post]:
    """Fetch a feed, retrying transient failures with 1s and 2s back-off."""
    last_error: SourceError | None = None
    for attempt in range(RSS_MAX_RETRIES):
        try:
            return fetch_feed(feed_url, since)
        except SourceError as exc:
            if not is_retryable_error(exc):
                raise
            last_error = exc
        if attempt < RSS_MAX_RETRIES - 1:
            sleep(float(1 << attempt))
    assert last_error is not None
    raise last_error


def is_retryable_error(err) -> bool:
    """Tell whether an error looks transient: timeouts, refused connections, 429 or 5xx."""
    if err is None:
        return False
    message = str(err)
    return any(marker in message for marker in _RETRYABLE_MARKERS)


def fetch_feed(feed_url: str, since: datetime) -> list[Post]:
    """Download and parse one feed, returning posts published at or after ``since``."""
    try:
        response = requests.get(
            feed_url,
            headers={"User-Agent": RSS_USER_AGENT},
            timeout=RSS_FETCH_TIMEOUT,
        )
    except requests.Timeout as exc:
        raise SourceError(f"fetch {feed_url}: timeout: {exc}") from exc
    except requests.RequestException as exc:
        raise SourceError(f"fetch {feed_url}: {exc}") from exc

    with response:
        if not 200 <= response.status_code < 300:
            raise SourceError(
                f"fetch {feed_url}: http error: {response.status_code} {response.reason or ''}".rstrip()
            )
        body = response.content

    try:
        feed = parse_feed(body)
    except SourceError as exc:
        raise SourceError(f"fetch {feed_url}: {exc}") from exc
    return posts_from_feed(feed, feed_url, since)


def parse_feed(data: bytes | str) -> Feed:
    """Parse an RSS 2.0, RSS 1.0 (RDF) or Atom document."""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise SourceError(f"failed to parse feed: invalid XML: {exc}") from exc

    kind = _local(root.tag)
    if kind == "rss":
        channel = next((c for c in root if _local(c.tag) == "channel"), None)
        if channel is None:
            return Feed()
        return Feed(
            title=_child_text(channel, "title"),
            items=[_rss_item(e) for e in channel if _local(e.tag) == "item"],
        )
    if kind == "RDF":
        channel = next((c for c in root if _local(c.tag) == "channel"), None)
        title = _child_text(channel, "title") if channel is not None else ""
        return Feed(title=title, items=[_rss_item(e) for e in root if _local(e.tag) == "item"])
    if kind == "feed":
        return Feed(
            title=_child_text(root, "title"),
            items=[_atom_entry(e) for e in root if _local(e.tag) == "entry"],
        )
    raise SourceError("failed to detect feed type")


def _rss_item(elem: ET.Element) -> FeedItem:
    item = FeedItem()
    dc_date = None
    for child in elem:
        name = _local(child.tag)
        text = (child.text or "").strip()
        if name == "title":
            item.title = text
        elif name == "link" and text and not item.link:
            item.link = text
        elif name == "guid":
            item.guid = text
        elif name == "description":
            item.description = text
        elif name == "encoded":
            item.content = text
        elif name == "pubDate":
            item.published = _parse_date(text)
        elif name == "date":
            dc_date = _parse_date(text)
        elif name == "updated":
            item.updated = _parse_date(text)
    if item.published is None:
        item.published = dc_date
    return item


def _atom_entry(elem: ET.Element) -> FeedItem:
    item = FeedItem()
    for child in elem:
        name = _local(child.tag)
        if name == "title":
            item.title = _atom_text(child)
        elif name == "link":
            rel = child.get("rel", "alternate")
            if rel == "alternate" and not item.link:
                item.link = child.get("href", "").strip()
        elif name == "id":
            item.guid = (child.text or "").strip()
        elif name == "summary":
            item.description = _atom_text(child)
        elif name == "content":
            item.content = _atom_text(child)
        elif name in ("published", "issued"):
            item.published = item.published or _parse_date((child.text or "").strip())
        elif name in ("updated", "modified"):
            item.updated = item.updated or _parse_date((child.text or "").strip())
    return item


def _atom_text(elem: ET.Element) -> str:
    if elem.get("type") == "xhtml":
        inner = (elem.text or "") + "".join(
            ET.tostring(child, encoding="unicode") for child in elem
        )
        return inner.strip()
    return (elem.text or "").strip()


def _child_text(elem: ET.Element, name: str) -> str:
    child = next((c for c in elem if _local(c.tag) == name), None)
    return (child.text or "").strip() if child is not None else ""


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _parse_date(value: str) -> datetime | None:
    if not value:
        return None
    parsed: datetime | None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    return _as_utc(parsed)


def posts_from_feed(feed: Feed, feed_url: str, since: datetime) -> list[Post]:
    """Turn feed items into posts, dropping undated items and those older than ``since``."""
    since = _as_utc(since)
    posts = []
    for item in feed.items:
        posted_at = item_published_time(item)
        if posted_at is None or _as_utc(posted_at) < since:
            continue
        posts.append(
            Post(
                source=RSS_SOURCE_NAME,
                channel=feed_label(feed, feed_url),
                external_id=item_id(item),
                text=item_text(item),
                url=item.link,
                posted_at=posted_at,
            )
        )
    return posts


def item_published_time(item: FeedItem) -> datetime | None:
    """Publication time, falling back to the update time."""
    if item.published is not None:
        return item.published
    return item.updated


def feed_label(feed: Feed, feed_url: str) -> str:
    """Feed title, or its URL when untitled."""
    return feed.title or feed_url


def item_id(item: FeedItem) -> str:
    """GUID, or the link when there is none."""
    return item.guid or item.link


def item_text(item: FeedItem) -> str:
    """Plain text of the item, prefixed by its title unless already included."""
    text = strip_html(item.content or item.description)
    if item.title and item.title not in text:
        text = item.title + "\n\n" + text
    return text.strip()


def strip_html(s: str) -> str:
    """Remove tags, unescape entities and collapse long runs of whitespace."""
    s = _HTML_TAG_RE.sub(" ", s)
    s = html.unescape(s)
    s = _WHITESPACE_RE.sub("\n\n", s)
    return s.strip()


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


__all__ = [
    "Feed",
    "FeedItem",
    "RSSSource",
    "fetch_feed",
    "fetch_with_retry",
    "feed_label",
    "is_retryable_error",
    "item_id",
    "item_published_time",
    "item_text",
    "parse_feed",
    "posts_from_feed",
    "strip_html",
    "timedelta",
]