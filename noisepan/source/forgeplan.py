"""Source that runs a forge-plan script and turns its suggested actions into posts."""

from __future__ import annotations

import os
import re
import stat
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone

from noisepan.source.base import Post, Source, SourceError

SOURCE_NAME = "forgeplan"
CHANNEL = "forge-plan"
RUN_TIMEOUT = 30.0

_ACTION_LINE_RE = re.compile(r"\s*(\d+)\.\s+(.+)", re.ASCII)


@dataclass(frozen=True)
class ForgePlanAction:
    """One numbered entry of the "Suggested actions" section."""

    number: int
    description: str
    command: str = ""


class ForgePlanSource(Source):
    """Runs a forge-plan script and ingests its suggested actions."""

    def __init__(self, script_path: str) -> None:
        if not script_path or not script_path.strip():
            raise ValueError("forgeplan: script path is required")
        self.script_path = script_path

    def name(self) -> str:
        return SOURCE_NAME

    def fetch(self, since: datetime) -> list[Post]:
        try:
            info = os.stat(self.script_path)
        except OSError as exc:
            raise SourceError(f"forgeplan: script not found: {exc}") from exc
        if stat.S_ISDIR(info.st_mode):
            raise SourceError(f"forgeplan: {self.script_path} is a directory, not a script")

        try:
            result = subprocess.run(
                [self.script_path],
                capture_output=True,
                text=True,
                errors="replace",
                timeout=RUN_TIMEOUT,
            )
        except subprocess.TimeoutExpired as exc:
            raise SourceError(f"forgeplan: run script: timed out after {RUN_TIMEOUT:g}s") from exc
        except OSError as exc:
            raise SourceError(f"forgeplan: run script: {exc}") from exc

        if result.returncode != 0:
            raise SourceError(
                f"forgeplan: run script: exit status {result.returncode} "
                f"(stderr: {result.stderr.strip()})"
            )

        now = datetime.now(timezone.utc)
        posts = []
        for action in parse_actions(result.stdout):
            text = action.description
            if action.command:
                text += "\n\n" + action.command
            posts.append(
                Post(
                    source=SOURCE_NAME,
                    channel=CHANNEL,
                    external_id=f"action-{action.number}",
                    text=text,
                    posted_at=now,
                )
            )
        return posts


def parse_actions(output: str) -> list[ForgePlanAction]:
    """Extract numbered actions that follow the "Suggested actions" heading."""
    lines = output.split("\n")
    start = next(
        (pos + 1 for pos, line in enumerate(lines) if "suggested actions" in line.strip().lower()),
        None,
    )
    if start is None:
        return []

    body = lines[start:]
    actions = []
    for pos, line in enumerate(body):
        match = _ACTION_LINE_RE.fullmatch(line)
        if match is None:
            continue
        actions.append(
            ForgePlanAction(
                number=int(match[1]),
                description=match[2].strip(),
                command=_command_after(body[pos + 1 :]),
            )
        )
    return actions


def _command_after(lines: list[str]) -> str:
    """Return the next non-empty line unless it is itself a numbered action."""
    for line in lines:
        trimmed = line.strip()
        if trimmed:
            return "" if _ACTION_LINE_RE.fullmatch(line) else trimmed
    return ""