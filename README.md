# noisepan

noisepan is a library for collecting posts from information streams, scoring
them against a personal taste profile, summarizing them and keeping them in a
local SQLite database.

## Install

```
pip install noisepan
```

## Sources

Every source subclasses `noisepan.source.base.Source` and has `name()` and
`fetch(since)`. `fetch` returns a list of `noisepan.source.base.Post` objects
(`source`, `channel`, `external_id`, `text`, `url`, `posted_at`). A constructor
given no feeds, subreddits, channels or script path raises `ValueError`; a
fetch that cannot run raises `noisepan.source.base.SourceError`.

- `noisepan.source.rss.RSSSource(feeds)` reads RSS 2.0, RSS 1.0 (RDF) and Atom
  feeds, up to ten at a time. A failure that looks brief (a timeout, a refused
  connection, an HTTP 429 or 5xx) is tried up to three times, sleeping one and
  then two seconds between tries. A feed that still fails is reported on
  standard output and skipped. Items without a date are dropped. The helpers
  `parse_feed`, `fetch_feed`, `fetch_with_retry`, `posts_from_feed` and
  `strip_html` are public too.
- `noisepan.source.reddit.RedditSource(subreddits, base_url=..., session=None)`
  reads `/r/<name>/new.json?limit=100` for each subreddit, one second apart. A
  subreddit that fails is reported and skipped. A self post's text is its title
  followed by its body.
- `noisepan.source.telegram.TelegramSource(script_path, python_path, api_id,
  api_hash, session_dir, channels)` runs a collector script under
  `python_path` (`python3` when empty) with a two-minute timeout. It reads one
  JSON object per line with `channel`, `msg_id`, `date` (RFC 3339), `text` and
  `url`. `parse_jsonl` parses such output on its own.
- `noisepan.source.forgeplan.ForgePlanSource(script_path)` runs a planning
  script with a 30-second timeout. It turns each numbered entry under its
  "Suggested actions" heading into a post whose id is `action-<n>`.
  `parse_actions` parses such output on its own.

```python
from datetime import datetime, timedelta, timezone
from noisepan.source.rss import RSSSource

since = datetime.now(timezone.utc) - timedelta(days=1)
posts = RSSSource(["https://example.com/feed.xml"]).fetch(since)
```

## Scoring

`noisepan.taste.scorer.score(post, profile)` checks a post against a
`TasteProfile`. The profile holds `Weights` (high- and low-signal keyword
weights), a list of `Rule`s (`when=RuleCondition(contains_any=[...])`,
`then=RuleAction(score_add=..., labels=[...])`) and `Thresholds`. Matching is
case-insensitive. The result is a `ScoredPost` with the total score, the
sorted unique labels, a `Tier` (`read_now`, `skim` or `ignore`) and a list of
`ScoreContribution`s explaining the score.

`noisepan.taste.trending.find_trending(posts, profile, min_sources=2)` returns
`Trend`s. A trend is a profile keyword or a shared URL that turned up in at
least `min_sources` distinct channels (never fewer than two), counting only
read-now and skim posts. Trends are sorted by channel count, then
alphabetically.

## Summaries

- `noisepan.summarize.heuristic.HeuristicSummarizer().summarize(text)` returns
  a `Summary` of up to three bullets. They hold the first sentence, a sentence
  mentioning a breaking change, deprecation or removal, and the CVE ids,
  versions or link count found in the text. The summary also carries the links
  and CVE ids.
- `noisepan.summarize.llm.LLMSummarizer(api_key, model, max_tokens, fallback,
  endpoint=..., session=None, timeout=30.0)` posts the text to a chat
  completions endpoint and keeps the lines of the answer that start with `-`.
  When the call fails or returns no bullets, it uses `fallback`.

```python
from noisepan.summarize.heuristic import HeuristicSummarizer
from noisepan.summarize.llm import LLMSummarizer

summarizer = LLMSummarizer("placeholder", "gpt-4", 200, HeuristicSummarizer())
```

## Storage

`noisepan.store.store.Store(path)` opens (and creates) a SQLite database,
migrating its schema. It is a context manager.

```python
from noisepan.store.store import Store
from noisepan.store.models import PostInput, Score

with Store("data/noisepan.db") as store:
    stored = store.insert_post(PostInput(...))
    store.save_score(Score(post_id=stored.id, score=8, tier="read_now", scored_at=...))
    removed = store.deduplicate()
```

- `insert_post` inserts or updates a post keyed by source, channel and
  external id.
- `get_unscored` lists posts that have no score yet, oldest first.
- `save_score` stores or replaces a post's score.
- `get_posts(since, tier="", filter=None)` lists posts newest first. A tier or
  a `PostFilter(source=..., channel=...)` narrows the list.
- `deduplicate` keeps the earliest post of each text and records where the
  copies were seen; `get_also_in(post_ids)` reads those records back.
- `prune_old(retain_days)` deletes old posts and their scores.
- `delete_all_scores` removes every score.
- `get_channel_stats(since)` returns per-channel tier counts; unscored posts
  count as ignored.

Missing required fields raise `ValueError`. Database failures raise
`noisepan.store.models.StoreError`.

## What is not included

noisepan is a library only. It has no command-line program. It does not read
a configuration file or build a `TasteProfile` from one; profiles are built in
code. It does not lay out or print a digest of the scored posts.

## Tests

```
pip install -e ".[test]"
pytest
```