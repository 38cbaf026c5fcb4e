from datetime import datetime, timedelta, timezone

import pytest

from noisepan.store.models import (
    PostFilter,
    PostWithScore,
    Post,
    first_n_runes,
    format_time,
    parse_time,
    text_hash,
)

UTC = timezone.utc


def test_format_time_none_is_zero_time():
    assert format_time(None) == "0001-01-01T00:00:00Z"


def test_format_time_whole_seconds():
    assert format_time(datetime(2026, 2, 16, 10, 0, 0, tzinfo=UTC)) == "2026-02-16T10:00:00Z"


def test_format_time_naive_is_utc():
    naive = datetime(2026, 2, 16, 10, 0, 0)
    assert format_time(naive) == format_time(naive.replace(tzinfo=UTC))


def test_format_time_converts_offset_to_utc():
    local = datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert format_time(local) == format_time(datetime(2026, 2, 16, 10, 0, 0, tzinfo=UTC))
    assert format_time(local).endswith("Z")


def test_format_parse_round_trip_with_fraction():
    moment = datetime(2026, 2, 16, 10, 0, 0, 120000, tzinfo=UTC)
    encoded = format_time(moment)
    assert not encoded.endswith("0Z")
    assert parse_time(encoded) == moment


def test_parse_time_empty_and_zero():
    assert parse_time("") is None
    assert parse_time(format_time(None)) is None


def test_parse_time_nanoseconds_truncated():
    parsed = parse_time("2026-02-16T10:00:00.123456789Z")
    assert parsed.microsecond == 123456
    assert parsed.utcoffset() == timedelta(0)


def test_parse_time_keeps_offset():
    parsed = parse_time("2026-02-16T12:00:00+02:00")
    assert parsed == datetime(2026, 2, 16, 10, 0, 0, tzinfo=UTC)


@pytest.mark.parametrize("value", ["not-a-date", "2026-02-16", "2026-13-01T00:00:00Z"])
def test_parse_time_invalid(value):
    with pytest.raises(ValueError):
        parse_time(value)


def test_text_hash_known_vector():
    assert text_hash("abc", "") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_text_hash_falls_back_to_snippet():
    assert text_hash("", "snippet text") == text_hash("snippet text", "other")


def test_text_hash_ignores_snippet_when_text_present():
    assert text_hash("hello world", "a") == text_hash("hello world", "b")
    assert text_hash("hello world", "") != text_hash("updated text", "")


def test_first_n_runes():
    assert first_n_runes("日本語テキスト", 2) == "日本"
    assert first_n_runes("abc", 10) == "abc"
    assert first_n_runes("abc", 0) == ""
    assert first_n_runes("", 5) == ""


def test_post_with_score_defaults_to_unscored():
    wrapped = PostWithScore(post=Post(id=7))
    assert wrapped.score is None
    assert wrapped.post.id == 7
    assert PostFilter(source="rss").channel == ""