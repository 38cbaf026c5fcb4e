"""Database schema and its migration."""

from __future__ import annotations

import sqlite3

from noisepan.store.models import StoreError

SCHEMA_VERSION = 2

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS posts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source TEXT NOT NULL,
        channel TEXT NOT NULL,
        external_id TEXT NOT NULL,
        text TEXT,
        snippet TEXT NOT NULL,
        text_hash TEXT NOT NULL,
        url TEXT,
        posted_at TEXT NOT NULL,
        fetched_at TEXT NOT NULL,
        UNIQUE (source, channel, external_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scores (
        post_id INTEGER PRIMARY KEY REFERENCES posts(id),
        score INTEGER NOT NULL,
        labels TEXT NOT NULL,
        tier TEXT NOT NULL,
        scored_at TEXT NOT NULL,
        explanation TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS post_also_in (
        post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
        source TEXT NOT NULL,
        channel TEXT NOT NULL,
        PRIMARY KEY (post_id, source, channel)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_posts_posted_at ON posts(posted_at)",
    "CREATE INDEX IF NOT EXISTS idx_posts_text_hash ON posts(text_hash)",
    "CREATE INDEX IF NOT EXISTS idx_posts_source_channel ON posts(source, channel)",
    "CREATE INDEX IF NOT EXISTS idx_scores_tier ON scores(tier)",
)


def migrate(conn: sqlite3.Connection) -> None:
    """Create missing tables and bring the recorded schema version up to date.

    Everything happens in one transaction; on failure it is rolled back and
    StoreError is raised.
    """
    try:
        conn.execute("BEGIN")
    except sqlite3.Error as exc:
        raise StoreError(f"begin transaction: {exc}") from exc

    try:
        _apply(conn)
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


def _apply(conn: sqlite3.Connection) -> None:
    try:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(statement)
    except sqlite3.Error as exc:
        raise StoreError(f"apply schema: {exc}") from exc

    try:
        row = conn.execute(
            "SELECT value FROM metadata WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.Error as exc:
        raise StoreError(f"read schema version: {exc}") from exc

    if row is None:
        try:
            conn.execute(
                "INSERT INTO metadata(key, value) VALUES('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )
        except sqlite3.Error as exc:
            raise StoreError(f"insert schema version: {exc}") from exc
        return

    try:
        version = int(row[0])
    except (TypeError, ValueError) as exc:
        raise StoreError(f"parse schema version: {exc}") from exc

    if version > SCHEMA_VERSION:
        raise StoreError(
            f"database schema version {version} is newer than supported {SCHEMA_VERSION}"
        )
    if version < SCHEMA_VERSION:
        try:
            conn.execute(
                "UPDATE metadata SET value = ? WHERE key = 'schema_version'",
                (str(SCHEMA_VERSION),),
            )
        except sqlite3.Error as exc:
            raise StoreError(f"update schema version: {exc}") from exc