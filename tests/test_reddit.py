from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
import requests
import responses
from responses import matchers

from noisepan.source.base import SourceError
from noisepan.source.reddit import (
    REDDIT_BASE_URL,
    REDDIT_USER_AGENT,
    RedditSource,
    posts_from_listing,
)

BASE = "https://reddit.test"


@pytest.fixture
def mocked():
    with responses.RequestsMock() as rsps:
        yield rsps


def make_listing(*posts):
    return {"data": {"children": [{"data": p} for p in posts]}}


def _now():
    return datetime.now(timezone.utc)


@pytest.mark.parametrize("subreddits", [None, []])
def test_empty_subreddits(subreddits):
    with pytest.raises(ValueError, match="at least one subreddit"):
        RedditSource(subreddits)


def test_valid_and_name():
    source = RedditSource(["devops"])
    assert source.subreddits == ["devops"]
    assert source.name() == "reddit"


def test_successful_fetch(mocked):
    now = _now()
    listing = make_listing(
        {"id": "abc123", "title": "CVE Alert", "selftext": "Critical vulnerability found",
         "permalink": "/r/devops/comments/abc123/cve_alert/", "created_utc": float(int(now.timestamp()))},
        {"id": "def456", "title": "Link Post", "selftext": "", "url": "https://example.com",
         "permalink": "/r/devops/comments/def456/link_post/", "created_utc": float(int(now.timestamp()))},
    )
    mocked.add(
        responses.GET,
        f"{BASE}/r/devops/new.json",
        json=listing,
        match=[matchers.query_param_matcher({"limit": "100"})],
    )

    posts = RedditSource(["devops"], base_url=BASE).fetch(now - timedelta(hours=1))

    assert mocked.calls[0].request.headers["User-Agent"] == REDDIT_USER_AGENT
    assert len(posts) == 2
    first = posts[0]
    assert first.source == "reddit"
    assert first.channel == "devops"
    assert first.external_id == "abc123"
    assert "CVE Alert" in first.text and "Critical vulnerability" in first.text
    assert "/r/devops/comments/abc123" in first.url
    assert posts[1].text == "Link Post"


def test_since_filter(mocked):
    now = _now()
    listing = make_listing(
        {"id": "new1", "title": "New", "created_utc": now.timestamp(), "permalink": "/r/test/new1"},
        {"id": "old1", "title": "Old", "created_utc": (now - timedelta(hours=48)).timestamp(),
         "permalink": "/r/test/old1"},
        {"id": "new2", "title": "Also New", "created_utc": (now - timedelta(hours=1)).timestamp(),
         "permalink": "/r/test/new2"},
    )
    mocked.add(responses.GET, f"{BASE}/r/test/new.json", json=listing)

    posts = RedditSource(["test"], base_url=BASE).fetch(now - timedelta(hours=24))

    assert [p.external_id for p in posts] == ["new1", "new2"]


def test_empty_listing(mocked):
    mocked.add(responses.GET, f"{BASE}/r/empty/new.json", json=make_listing())
    assert RedditSource(["empty"], base_url=BASE).fetch(_now() - timedelta(hours=24)) == []


def test_api_error_is_not_fatal(mocked, capsys):
    mocked.add(responses.GET, f"{BASE}/r/ratelimited/new.json", status=429, body="")
    posts = RedditSource(["ratelimited"], base_url=BASE).fetch(_now() - timedelta(hours=24))
    assert posts == []
    assert "r/ratelimited: status 429" in capsys.readouterr().out


def test_malformed_json_is_not_fatal(mocked, capsys):
    mocked.add(responses.GET, f"{BASE}/r/broken/new.json", status=200, body="{{{not json")
    posts = RedditSource(["broken"], base_url=BASE).fetch(_now() - timedelta(hours=24))
    assert posts == []
    assert "decode r/broken" in capsys.readouterr().out


def test_connection_error_is_not_fatal(mocked, capsys):
    mocked.add(responses.GET, f"{BASE}/r/down/new.json", body=requests.ConnectionError("refused"))
    posts = RedditSource(["down"], base_url=BASE).fetch(_now() - timedelta(hours=24))
    assert posts == []
    assert "fetch r/down" in capsys.readouterr().out


def test_failure_in_one_subreddit_keeps_others(mocked):
    now = _now()
    mocked.add(responses.GET, f"{BASE}/r/bad/new.json", status=503)
    mocked.add(
        responses.GET,
        f"{BASE}/r/good/new.json",
        json=make_listing({"id": "g1", "title": "Good", "created_utc": now.timestamp(),
                           "permalink": "/r/good/g1"}),
    )
    with mock.patch("time.sleep") as sleep:
        posts = RedditSource(["bad", "good"], base_url=BASE).fetch(now - timedelta(hours=1))

    assert [p.external_id for p in posts] == ["g1"]
    sleep.assert_called_once_with(1.0)


def test_posts_from_listing():
    now = _now()
    listing = make_listing(
        {"id": "abc", "title": "Test Post", "selftext": "Body text",
         "permalink": "/r/test/comments/abc/test_post/", "created_utc": now.timestamp()},
    )
    posts = posts_from_listing(listing, "test", now - timedelta(hours=24))

    assert len(posts) == 1
    assert posts[0].text == "Test Post\n\nBody text"
    assert posts[0].url == REDDIT_BASE_URL + "/r/test/comments/abc/test_post/"
    assert posts[0].posted_at == datetime.fromtimestamp(int(now.timestamp()), tz=timezone.utc)


def test_posts_from_listing_whitespace_selftext_uses_title():
    now = _now()
    listing = make_listing({"id": "x", "title": "Only Title", "selftext": "   ",
                            "created_utc": now.timestamp()})
    (post,) = posts_from_listing(listing, "test", now - timedelta(hours=1))
    assert post.text == "Only Title"


def test_posts_from_listing_bad_shape():
    with pytest.raises(SourceError):
        posts_from_listing({"data": {"children": "nope"}}, "test", _now())