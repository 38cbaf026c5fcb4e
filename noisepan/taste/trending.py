"""Detection of keywords and links that show up across several channels."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field

from noisepan.taste.scorer import ScoredPost, TasteProfile, Tier


@dataclass
class Trend:
    """A keyword or URL and the distinct channels it appeared in."""

    keyword: str
    channels: list[str] = field(default_factory=list)


def find_trending(
    posts: Iterable[ScoredPost] | None,
    profile: TasteProfile,
    min_sources: int = 2,
) -> list[Trend]:
    """Find profile keywords and shared URLs seen in at least ``min_sources`` channels.

    Only read-now and skim posts count. Results are ordered by channel count,
    most first, then alphabetically.
    """
    min_sources = max(min_sources, 2)
    keywords = _collect_keywords(profile)
    if not keywords:
        return []

    keyword_channels: dict[str, set[str]] = defaultdict(set)
    url_channels: dict[str, set[str]] = defaultdict(set)

    for scored in posts or []:
        if scored.tier not in (Tier.READ_NOW, Tier.SKIM):
            continue
        text = scored.post.text.lower()
        for keyword in keywords:
            if keyword.lower() in text:
                keyword_channels[keyword].add(scored.post.channel)
        if scored.post.url:
            url_channels[scored.post.url].add(scored.post.channel)

    trends = [
        Trend(keyword, sorted(channels))
        for keyword, channels in keyword_channels.items()
        if len(channels) >= min_sources
    ]
    seen = {trend.keyword for trend in trends}
    trends.extend(
        Trend(url, sorted(channels))
        for url, channels in url_channels.items()
        if len(channels) >= min_sources and url not in seen
    )

    trends.sort(key=lambda trend: (-len(trend.channels), trend.keyword))
    return trends


def _collect_keywords(profile: TasteProfile) -> list[str]:
    """High-signal keywords and rule keywords, deduplicated case-insensitively."""
    candidates = list(profile.weights.high_signal)
    for rule in profile.rules:
        candidates.extend(rule.when.contains_any)

    seen: set[str] = set()
    keywords = []
    for keyword in candidates:
        lower = keyword.lower()
        if lower not in seen:
            seen.add(lower)
            keywords.append(keyword)
    return keywords