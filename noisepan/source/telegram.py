"""Source that collects Telegram messages through an external collector script."""

from __future__ import annotations

import json
import re
import subprocess
from collections.abc import Iterable
from datetime import datetime, timezone

from noisepan.source.base import Post, Source, SourceError

SOURCE_NAME = "telegram"
FETCH_TIMEOUT = 120.0
MAX_LINE_LENGTH = 1 << 20  # bytes per JSONL line

_RFC3339_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})",
    re.ASCII,
)
_MESSAGE_FIELDS = ("channel", "msg_id", "date", "text", "url")


class TelegramSource(Source):
    """Fetches channel messages by running a collector script that emits JSONL."""

    def __init__(self, script_path, python_path, api_id, api_hash, session_dir, channels) -> None:
        if not script_path or not script_path.strip():
            raise ValueError("telegram: script path is required")
        channels = list(channels or [])
        if not channels:
            raise ValueError("telegram: at least one channel is required")
        self.script_path = script_path
        self.python_path = python_path or "python3"
        self.api_id = str(api_id)
        self.api_hash = str(api_hash)
        self.session_dir = str(session_dir)
        self.channels = channels

    def name(self) -> str:
        return SOURCE_NAME

    def fetch(self, since: datetime) -> list[Post]:
        args = [
            self.python_path,
            self.script_path,
            "--api-id", self.api_id,
            "--api-hash", self.api_hash,
            "--session-dir", self.session_dir,
            "--channels", ",".join(self.channels),
            "--since", _as_utc(since).strftime("%Y-%m-%dT%H:%M:%SZ"),
        ]
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=FETCH_TIMEOUT,
            )
        except FileNotFoundError as exc:
            raise SourceError(
                f"telegram: {self.python_path} not found: "
                "install Python 3 and Telethon to use telegram source"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise SourceError(
                f"telegram: collector failed: timed out after {FETCH_TIMEOUT:g}s"
            ) from exc
        except OSError as exc:
            raise SourceError(f"telegram: start collector: {exc}") from exc

        if result.returncode != 0:
            message = result.stderr.strip() or f"exit status {result.returncode}"
            raise SourceError(f"telegram: collector failed: {message}")

        try:
            return parse_jsonl(result.stdout)
        except SourceError as exc:
            raise SourceError(f"telegram: parse output: {exc}") from exc


def parse_jsonl(lines: str | Iterable[str]) -> list[Post]:
    """Convert collector JSONL output into posts; blank lines are skipped."""
    if isinstance(lines, str):
        lines = lines.split("\n")

    posts = []
    for line_num, raw in enumerate(lines, start=1):
        if len(raw.rstrip("\r\n").encode("utf-8")) > MAX_LINE_LENGTH:
            raise SourceError(f"read jsonl: line {line_num} exceeds {MAX_LINE_LENGTH} bytes")
        line = raw.strip()
        if not line:
            continue

        try:
            message = _decode_message(line)
        except ValueError as exc:
            raise SourceError(f"line {line_num}: invalid json: {exc}") from exc

        try:
            posted_at = _parse_rfc3339(message["date"])
        except ValueError as exc:
            raise SourceError(
                f"line {line_num}: invalid date {message['date']!r}: {exc}"
            ) from exc

        posts.append(
            Post(
                source=SOURCE_NAME,
                channel=message["channel"],
                external_id=message["msg_id"],
                text=message["text"],
                url=message["url"],
                posted_at=posted_at,
            )
        )
    return posts


def _decode_message(line: str) -> dict[str, str]:
    data = json.loads(line)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    message = {}
    for field in _MESSAGE_FIELDS:
        value = data.get(field)
        if value is None:
            value = ""
        elif not isinstance(value, str):
            raise ValueError(f"field {field!r} must be a string")
        message[field] = value
    return message


def _parse_rfc3339(value: str) -> datetime:
    match = _RFC3339_RE.fullmatch(value)
    if match is None:
        raise ValueError("not an RFC 3339 timestamp")
    date, clock, fraction, offset = match.groups()
    if fraction:
        clock += "." + fraction[:6].ljust(6, "0")
    if offset in ("Z", "z"):
        offset = "+00:00"
    return datetime.fromisoformat(f"{date}T{clock}{offset}")


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)