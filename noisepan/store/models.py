"""Records kept by the post store, and the helpers that encode their fields."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

ZERO_TIME = "0001-01-01T00:00:00Z"

_RFC3339_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?([Zz]|[+-]\d{2}:\d{2})",
    re.ASCII,
)
_ZERO_DATETIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class StoreError(Exception):
    """Raised when the store cannot read, write or migrate its database."""


@dataclass
class Post:
    """A post as kept in the database."""

    id: int = 0
    source: str = ""
    channel: str = ""
    external_id: str = ""
    text: str = ""
    snippet: str = ""
    text_hash: str = ""
    url: str = ""
    posted_at: datetime | None = None
    fetched_at: datetime | None = None


@dataclass
class PostInput:
    """The fields needed to insert or update a post."""

    source: str = ""
    channel: str = ""
    external_id: str = ""
    text: str = ""
    snippet: str = ""
    url: str = ""
    posted_at: datetime | None = None
    fetched_at: datetime | None = None


@dataclass
class Score:
    """The scoring result of one post."""

    post_id: int = 0
    score: int = 0
    labels: list[str] = field(default_factory=list)
    tier: str = ""
    scored_at: datetime | None = None
    explanation: str | None = None


@dataclass
class PostWithScore:
    """A post together with its score, if it has been scored."""

    post: Post
    score: Score | None = None


@dataclass
class PostFilter:
    """Optional filters for listing posts; empty fields match everything."""

    source: str = ""
    channel: str = ""


@dataclass
class ChannelStats:
    """Aggregated scoring counts for one channel."""

    source: str = ""
    channel: str = ""
    total: int = 0
    read_now: int = 0
    skim: int = 0
    ignored: int = 0
    first_seen: datetime | None = None
    last_seen: datetime | None = None


def format_time(t: datetime | None) -> str:
    """Encode a time as RFC 3339 in UTC with trailing fraction zeros dropped.

    ``None`` stands for the zero time; naive datetimes are taken as UTC.
    """
    if t is None:
        return ZERO_TIME
    t = t.replace(tzinfo=timezone.utc) if t.tzinfo is None else t.astimezone(timezone.utc)
    text = (
        f"{t.year:04d}-{t.month:02d}-{t.day:02d}"
        f"T{t.hour:02d}:{t.minute:02d}:{t.second:02d}"
    )
    if t.microsecond:
        text += "." + f"{t.microsecond:06d}".rstrip("0")
    return text + "Z"


def parse_time(value: str) -> datetime | None:
    """Decode an RFC 3339 time; an empty string or the zero time gives ``None``.

    Raises ValueError when the value is not a valid timestamp.
    """
    if not value:
        return None
    match = _RFC3339_RE.fullmatch(value)
    if match is None:
        raise ValueError(f"invalid RFC 3339 time {value!r}")
    date, clock, fraction, offset = match.groups()
    if fraction:
        clock += "." + fraction[:6].ljust(6, "0")
    if offset in ("Z", "z"):
        offset = "+00:00"
    parsed = datetime.fromisoformat(f"{date}T{clock}{offset}")
    if parsed == _ZERO_DATETIME:
        return None
    return parsed


def text_hash(text: str, snippet: str) -> str:
    """SHA-256 hex digest of the text, or of the snippet when the text is empty."""
    content = text or snippet
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def first_n_runes(s: str, n: int) -> str:
    """The first ``n`` characters of ``s``."""
    if n <= 0 or not s:
        return ""
    return s[:n]