"""SQLite-backed storage of posts, scores and duplicate sightings."""

from __future__ import annotations

import json
import os
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from noisepan.store.models import (
    ChannelStats,
    Post,
    PostFilter,
    PostInput,
    PostWithScore,
    Score,
    StoreError,
    first_n_runes,
    format_time,
    parse_time,
    text_hash,
)
from noisepan.store.schema import migrate

SNIPPET_LENGTH = 200

_POST_COLUMNS = (
    "p.id, p.source, p.channel, p.external_id, p.text, p.snippet, "
    "p.text_hash, p.url, p.posted_at, p.fetched_at"
)


class Store:
    """A database of fetched posts and their scores."""

    def __init__(self, path: str) -> None:
        if not path or not str(path).strip():
            raise ValueError("path is required")
        path = os.fspath(path)

        directory = os.path.dirname(path)
        if directory and directory != ".":
            try:
                os.makedirs(directory, mode=0o755, exist_ok=True)
            except OSError as exc:
                raise StoreError(f"create db dir: {exc}") from exc

        try:
            conn = sqlite3.connect(path, isolation_level=None)
        except sqlite3.Error as exc:
            raise StoreError(f"open sqlite: {exc}") from exc

        try:
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            conn.close()
            raise StoreError(f"enable foreign keys: {exc}") from exc

        try:
            migrate(conn)
        except BaseException:
            conn.close()
            raise

        self._conn: sqlite3.Connection | None = conn

    def close(self) -> None:
        """Close the database; closing twice is harmless."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Store:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("store is not initialized")
        return self._conn

    @contextmanager
    def _transaction(self, what: str) -> Iterator[sqlite3.Connection]:
        conn = self._db
        try:
            conn.execute("BEGIN")
        except sqlite3.Error as exc:
            raise StoreError(f"begin {what} transaction: {exc}") from exc
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        try:
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"commit {what}: {exc}") from exc

    def insert_post(self, post: PostInput) -> Post:
        """Insert a post, or update the existing one with the same source, channel and id."""
        conn = self._db
        if not post.source.strip():
            raise ValueError("source is required")
        if not post.channel.strip():
            raise ValueError("channel is required")
        if not post.external_id.strip():
            raise ValueError("external_id is required")
        if post.posted_at is None:
            raise ValueError("posted_at is required")
        if post.fetched_at is None:
            raise ValueError("fetched_at is required")

        snippet = post.snippet.strip()
        if not snippet:
            if not post.text:
                raise ValueError("snippet is required when text is empty")
            snippet = first_n_runes(post.text, SNIPPET_LENGTH)

        url = post.url.strip() or None
        try:
            conn.execute(
                """
                INSERT INTO posts (
                    source, channel, external_id, text, snippet, text_hash, url, posted_at, fetched_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(source, channel, external_id) DO UPDATE SET
                    text = excluded.text,
                    snippet = excluded.snippet,
                    text_hash = excluded.text_hash,
                    url = excluded.url,
                    posted_at = excluded.posted_at,
                    fetched_at = excluded.fetched_at
                """,
                (
                    post.source,
                    post.channel,
                    post.external_id,
                    post.text or None,
                    snippet,
                    text_hash(post.text, snippet),
                    url,
                    format_time(post.posted_at),
                    format_time(post.fetched_at),
                ),
            )
            row = conn.execute(
                f"""
                SELECT {_POST_COLUMNS}
                FROM posts p
                WHERE p.source = ? AND p.channel = ? AND p.external_id = ?
                """,
                (post.source, post.channel, post.external_id),
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"insert post: {exc}") from exc
        if row is None:
            raise StoreError("insert post: row not found after insert")
        return _row_to_post(row)

    def get_unscored(self) -> list[Post]:
        """Posts without a score, oldest first."""
        try:
            rows = self._db.execute(
                f"""
                SELECT {_POST_COLUMNS}
                FROM posts p
                LEFT JOIN scores s ON s.post_id = p.id
                WHERE s.post_id IS NULL
                ORDER BY p.posted_at ASC
                """
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"get unscored: {exc}") from exc
        return [_row_to_post(row) for row in rows]

    def save_score(self, score: Score) -> None:
        """Store or replace the score of a post."""
        conn = self._db
        if not score.post_id:
            raise ValueError("post_id is required")
        if not score.tier:
            raise ValueError("tier is required")
        if score.scored_at is None:
            raise ValueError("scored_at is required")

        labels = json.dumps(list(score.labels or []))
        explanation = score.explanation or None
        try:
            conn.execute(
                """
                INSERT INTO scores (post_id, score, labels, tier, scored_at, explanation)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(post_id) DO UPDATE SET
                    score = excluded.score,
                    labels = excluded.labels,
                    tier = excluded.tier,
                    scored_at = excluded.scored_at,
                    explanation = excluded.explanation
                """,
                (
                    score.post_id,
                    score.score,
                    labels,
                    str(score.tier),
                    format_time(score.scored_at),
                    explanation,
                ),
            )
        except sqlite3.Error as exc:
            raise StoreError(f"save score: {exc}") from exc

    def get_posts(
        self,
        since: datetime | None,
        tier: str = "",
        filter: PostFilter | None = None,
    ) -> list[PostWithScore]:
        """Posts published at or after ``since``, newest first.

        With a tier only posts scored in that tier are returned.
        """
        conn = self._db
        join = "JOIN" if tier else "LEFT JOIN"
        query = f"""
            SELECT {_POST_COLUMNS},
                s.score, s.labels, s.tier, s.scored_at, s.explanation
            FROM posts p
            {join} scores s ON s.post_id = p.id
            WHERE p.posted_at >= ?"""
        args: list[object] = [format_time(since)]

        if tier:
            query += " AND s.tier = ?"
            args.append(str(tier))
        filter = filter or PostFilter()
        if filter.source:
            query += " AND p.source = ?"
            args.append(filter.source)
        if filter.channel:
            query += " AND p.channel = ?"
            args.append(filter.channel)
        query += " ORDER BY p.posted_at DESC"

        try:
            rows = conn.execute(query, args).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"get posts: {exc}") from exc
        return [_row_to_post_with_score(row) for row in rows]

    def deduplicate(self) -> int:
        """Remove posts whose text repeats an earlier post's.

        The earliest post of each text is kept and records where the others
        were seen. Returns the number of posts removed.
        """
        with self._transaction("deduplicate") as conn:
            try:
                rows = conn.execute(
                    """
                    SELECT id, source, channel, text_hash, posted_at
                    FROM posts
                    ORDER BY text_hash, posted_at, id
                    """
                ).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(f"query duplicates: {exc}") from exc

            duplicates: list[tuple[int, int, str, str]] = []
            last_hash: str | None = None
            keeper_id = 0
            for post_id, source, channel, hash_value, _posted_at in rows:
                if hash_value == last_hash:
                    duplicates.append((post_id, keeper_id, source, channel))
                    continue
                last_hash = hash_value
                keeper_id = post_id

            for dup_id, keeper, source, channel in duplicates:
                try:
                    conn.execute(
                        "INSERT OR IGNORE INTO post_also_in(post_id, source, channel) "
                        "VALUES(?, ?, ?)",
                        (keeper, source, channel),
                    )
                except sqlite3.Error as exc:
                    raise StoreError(f"insert also_in: {exc}") from exc
                try:
                    conn.execute("DELETE FROM scores WHERE post_id = ?", (dup_id,))
                except sqlite3.Error as exc:
                    raise StoreError(f"delete duplicate score: {exc}") from exc
                try:
                    conn.execute("DELETE FROM posts WHERE id = ?", (dup_id,))
                except sqlite3.Error as exc:
                    raise StoreError(f"delete duplicate post: {exc}") from exc
        return len(duplicates)

    def prune_old(self, retain_days: int) -> int:
        """Delete posts older than ``retain_days`` days with their scores.

        A non-positive value keeps everything. Returns the number of posts removed.
        """
        self._db
        if retain_days <= 0:
            return 0
        cutoff = format_time(datetime.now(timezone.utc) - timedelta(days=retain_days))

        with self._transaction("prune") as conn:
            try:
                conn.execute(
                    "DELETE FROM scores WHERE post_id IN "
                    "(SELECT id FROM posts WHERE posted_at < ?)",
                    (cutoff,),
                )
            except sqlite3.Error as exc:
                raise StoreError(f"prune old scores: {exc}") from exc
            try:
                cursor = conn.execute("DELETE FROM posts WHERE posted_at < ?", (cutoff,))
            except sqlite3.Error as exc:
                raise StoreError(f"prune old posts: {exc}") from exc
        return max(cursor.rowcount, 0)

    def delete_all_scores(self) -> int:
        """Remove every score; returns how many were removed."""
        try:
            cursor = self._db.execute("DELETE FROM scores")
        except sqlite3.Error as exc:
            raise StoreError(f"delete all scores: {exc}") from exc
        return max(cursor.rowcount, 0)

    def get_also_in(self, post_ids: Iterable[int] | None) -> dict[int, list[str]]:
        """Map each post id to the ``"source/channel"`` places its duplicates came from."""
        ids = list(post_ids or [])
        if not ids:
            return {}
        placeholders = ",".join("?" * len(ids))
        try:
            rows = self._db.execute(
                f"SELECT post_id, source, channel FROM post_also_in "
                f"WHERE post_id IN ({placeholders})",
                ids,
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"query also_in: {exc}") from exc

        result: dict[int, list[str]] = {}
        for post_id, source, channel in rows:
            result.setdefault(post_id, []).append(f"{source}/{channel}")
        return result

    def get_channel_stats(self, since: datetime | None) -> list[ChannelStats]:
        """Per-channel tier counts of posts published at or after ``since``.

        Unscored posts count as ignored.
        """
        try:
            rows = self._db.execute(
                """
                SELECT p.source, p.channel,
                    COUNT(*) AS total,
                    SUM(CASE WHEN s.tier = 'read_now' THEN 1 ELSE 0 END) AS read_now,
                    SUM(CASE WHEN s.tier = 'skim' THEN 1 ELSE 0 END) AS skim,
                    SUM(CASE WHEN s.tier = 'ignore' OR s.tier IS NULL THEN 1 ELSE 0 END) AS ignored,
                    MIN(p.posted_at) AS first_seen,
                    MAX(p.posted_at) AS last_seen
                FROM posts p
                LEFT JOIN scores s ON s.post_id = p.id
                WHERE p.posted_at >= ?
                GROUP BY p.source, p.channel
                ORDER BY p.source, p.channel
                """,
                (format_time(since),),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"get channel stats: {exc}") from exc

        return [
            ChannelStats(
                source=source,
                channel=channel,
                total=total,
                read_now=read_now or 0,
                skim=skim or 0,
                ignored=ignored or 0,
                first_seen=_parse(first_seen, "first_seen"),
                last_seen=_parse(last_seen, "last_seen"),
            )
            for source, channel, total, read_now, skim, ignored, first_seen, last_seen in rows
        ]


def _parse(value: str | None, column: str) -> datetime | None:
    try:
        return parse_time(value or "")
    except ValueError as exc:
        raise StoreError(f"parse {column}: {exc}") from exc


def _row_to_post(row) -> Post:
    post_id, source, channel, external_id, text, snippet, hash_value, url, posted, fetched = row
    return Post(
        id=post_id,
        source=source,
        channel=channel,
        external_id=external_id,
        text=text or "",
        snippet=snippet,
        text_hash=hash_value,
        url=url or "",
        posted_at=_parse(posted, "posted_at"),
        fetched_at=_parse(fetched, "fetched_at"),
    )


def _row_to_post_with_score(row) -> PostWithScore:
    post = _row_to_post(row[:10])
    score_value, labels_value, tier, scored_at, explanation = row[10:]
    if score_value is None:
        return PostWithScore(post=post, score=None)

    labels: list[str] = []
    if labels_value:
        try:
            decoded = json.loads(labels_value)
        except ValueError as exc:
            raise StoreError(f"decode labels: {exc}") from exc
        if decoded is not None:
            if not isinstance(decoded, list) or not all(isinstance(x, str) for x in decoded):
                raise StoreError("decode labels: expected a list of strings")
            labels = decoded

    if tier is None:
        raise StoreError("score tier missing")

    return PostWithScore(
        post=post,
        score=Score(
            post_id=post.id,
            score=int(score_value),
            labels=labels,
            tier=tier,
            scored_at=_parse(scored_at, "scored_at"),
            explanation=explanation,
        ),
    )