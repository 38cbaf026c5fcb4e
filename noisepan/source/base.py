"""Types shared by every post source."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime


@dataclass
class Post:
    """A single item fetched from an information source."""

    source: str = ""
    channel: str = ""
    external_id: str = ""
    text: str = ""
    url: str = ""
    posted_at: datetime | None = None


class SourceError(Exception):
    """Raised when a source cannot fetch or decode its posts."""


class Source(abc.ABC):
    """A stream of posts, such as a feed, a subreddit or a chat channel."""

    @abc.abstractmethod
    def name(self) -> str:
        """Return the source identifier, e.g. ``"telegram"``."""

    @abc.abstractmethod
    def fetch(self, since: datetime) -> list[Post]:
        """Return posts published at or after ``since``."""