"""Source that reads public subreddits through the JSON listing API."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

import requests

from noisepan.source.base import Post, Source, SourceError

REDDIT_SOURCE_NAME = "reddit"
REDDIT_BASE_URL = "https://www.reddit.com"
REDDIT_TIMEOUT = 30.0
REDDIT_USER_AGENT = "noisepan/1.0"
REDDIT_RATE_LIMIT = 1.0


class RedditSource(Source):
    """Fetches the newest posts of public subreddits."""

    def __init__(self, subreddits, base_url: str = REDDIT_BASE_URL, session=None) -> None:
        subreddits = list(subreddits or [])
        if not subreddits:
            raise ValueError("reddit: at least one subreddit is required")
        self.subreddits = subreddits
        self.base_url = base_url
        self.session = session if session is not None else requests.Session()

    def name(self) -> str:
        return REDDIT_SOURCE_NAME

    def fetch(self, since: datetime) -> list[Post]:
        """Fetch every subreddit; failures are reported and skipped."""
        posts: list[Post] = []
        for index, subreddit in enumerate(self.subreddits):
            if index:
                time.sleep(REDDIT_RATE_LIMIT)
            try:
                posts.extend(self._fetch_subreddit(subreddit, since))
            except SourceError as exc:
                print(f"  reddit: r/{subreddit}: {exc}")
        return posts

    def _fetch_subreddit(self, subreddit: str, since: datetime) -> list[Post]:
        url = f"{self.base_url}/r/{subreddit}/new.json?limit=100"
        try:
            response = self.session.get(
                url,
                headers={"User-Agent": REDDIT_USER_AGENT},
                timeout=REDDIT_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise SourceError(f"fetch r/{subreddit}: {exc}") from exc

        with response:
            if response.status_code != 200:
                raise SourceError(f"r/{subreddit}: status {response.status_code}")
            try:
                listing = response.json()
            except ValueError as exc:
                raise SourceError(f"decode r/{subreddit}: {exc}") from exc

        try:
            return posts_from_listing(listing, subreddit, since)
        except SourceError as exc:
            raise SourceError(f"decode r/{subreddit}: {exc}") from exc


def posts_from_listing(listing: dict[str, Any], subreddit: str, since: datetime) -> list[Post]:
    """Turn a decoded listing into posts, dropping those older than ``since``."""
    since = _as_utc(since)
    posts = []
    for entry in _children(listing):
        created = entry.get("created_utc") or 0
        if isinstance(created, bool) or not isinstance(created, (int, float)):
            raise SourceError("created_utc must be a number")
        posted_at = datetime.fromtimestamp(int(created), tz=timezone.utc)
        if posted_at < since:
            continue

        title = _string(entry, "title")
        selftext = _string(entry, "selftext")
        text = f"{title}\n\n{selftext}" if selftext.strip() else title

        posts.append(
            Post(
                source=REDDIT_SOURCE_NAME,
                channel=subreddit,
                external_id=_string(entry, "id"),
                text=text,
                url=REDDIT_BASE_URL + _string(entry, "permalink"),
                posted_at=posted_at,
            )
        )
    return posts


def _children(listing: Any) -> list[dict[str, Any]]:
    if listing is None:
        return []
    if not isinstance(listing, dict):
        raise SourceError("listing must be a JSON object")
    data = listing.get("data") or {}
    if not isinstance(data, dict):
        raise SourceError("listing data must be a JSON object")
    children = data.get("children") or []
    if not isinstance(children, list):
        raise SourceError("listing children must be a list")

    entries = []
    for child in children:
        if child is None:
            entries.append({})
            continue
        if not isinstance(child, dict):
            raise SourceError("listing child must be a JSON object")
        entry = child.get("data") or {}
        if not isinstance(entry, dict):
            raise SourceError("listing child data must be a JSON object")
        entries.append(entry)
    return entries


def _string(entry: dict[str, Any], key: str) -> str:
    value = entry.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise SourceError(f"{key} must be a string")
    return value


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)