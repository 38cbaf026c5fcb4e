from datetime import datetime, timezone

import pytest

from noisepan.source.base import Post
from noisepan.taste.scorer import (
    Rule,
    RuleAction,
    RuleCondition,
    ScoredPost,
    TasteProfile,
    Thresholds,
    Tier,
    Weights,
)
from noisepan.taste.trending import find_trending


@pytest.fixture
def profile():
    return TasteProfile(
        weights=Weights(
            high_signal={"kubernetes": 3, "cve": 5},
            low_signal={"webinar": -4, "hiring": -3},
        ),
        labels={"critical": ["cve"], "ops": ["kubernetes"]},
        rules=[
            Rule(
                when=RuleCondition(contains_any=["expired", "certificate"]),
                then=RuleAction(score_add=4, labels=["ops", "certs"]),
            ),
            Rule(
                when=RuleCondition(contains_any=["webinar", "join us"]),
                then=RuleAction(score_add=-6, labels=["noise"]),
            ),
        ],
        thresholds=Thresholds(read_now=7, skim=3, ignore=0),
    )


def make_post(channel, text, url):
    return ScoredPost(
        post=Post(
            source="rss",
            channel=channel,
            text=text,
            url=url,
            posted_at=datetime.now(timezone.utc),
        ),
        score=8,
        tier=Tier.READ_NOW,
    )


def test_keyword_across_channels(profile):
    posts = [
        make_post("CISA", "New CVE-2026-1234 vulnerability discovered", "https://cisa.gov/1"),
        make_post("Krebs", "CVE-2026-1234 actively exploited in the wild", "https://krebs.com/1"),
        make_post("BleepingComputer", "CVE-2026-1234 patch available from Microsoft", "https://bleeping.com/1"),
    ]
    trends = find_trending(posts, profile, 3)
    assert trends
    assert any(len(trend.channels) >= 3 for trend in trends)
    assert trends[0].keyword == "cve"
    assert trends[0].channels == ["BleepingComputer", "CISA", "Krebs"]


def test_below_threshold(profile):
    posts = [
        make_post("CISA", "New CVE found", ""),
        make_post("Krebs", "CVE report published", ""),
    ]
    assert find_trending(posts, profile, 3) == []


def test_ignored_posts_excluded(profile):
    posts = [
        ScoredPost(post=Post(channel=name, text="cve stuff"), tier=Tier.IGNORE, score=1)
        for name in ("a", "b", "c")
    ]
    assert find_trending(posts, profile, 3) == []


def test_shared_url(profile):
    url = "https://example.com/article"
    posts = [
        make_post("feed-a", "some article about kubernetes", url),
        make_post("feed-b", "shared article about kubernetes", url),
        make_post("feed-c", "kubernetes article link", url),
    ]
    trends = find_trending(posts, profile, 3)
    assert trends
    assert [trend.keyword for trend in trends] == [url, "kubernetes"]
    assert all(trend.channels == ["feed-a", "feed-b", "feed-c"] for trend in trends)


def test_empty_posts(profile):
    assert find_trending(None, profile, 3) == []


def test_empty_profile():
    posts = [make_post("a", "hello", "")]
    profile = TasteProfile(thresholds=Thresholds(read_now=7, skim=3, ignore=0))
    assert find_trending(posts, profile, 3) == []


def test_sorted_by_channel_count(profile):
    posts = [
        make_post("a", "kubernetes update", ""),
        make_post("b", "kubernetes news", ""),
        make_post("c", "kubernetes release", ""),
        make_post("a", "cve found zero-day", ""),
        make_post("b", "cve found zero-day", ""),
        make_post("c", "cve found zero-day", ""),
        make_post("d", "cve found zero-day", ""),
    ]
    trends = find_trending(posts, profile, 3)
    assert len(trends) >= 2
    assert len(trends[0].channels) >= len(trends[1].channels)
    assert trends[0].keyword == "cve"
    assert trends[1].keyword == "kubernetes"


def test_min_sources_clamped_to_two(profile):
    posts = [make_post("only", "kubernetes news", "")]
    assert find_trending(posts, profile, 1) == []
    posts.append(make_post("other", "kubernetes again", ""))
    trends = find_trending(posts, profile, 1)
    assert [trend.keyword for trend in trends] == ["kubernetes"]


def test_same_channel_counted_once(profile):
    posts = [make_post("a", "kubernetes one", ""), make_post("a", "kubernetes two", "")]
    assert find_trending(posts, profile, 2) == []