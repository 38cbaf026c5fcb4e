"""Summary result type and the summarizer interface."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field


@dataclass
class Summary:
    """Key points, links and CVE identifiers extracted from a post."""

    bullets: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    cves: list[str] = field(default_factory=list)


class Summarizer(abc.ABC):
    """Produces a summary from post text."""

    @abc.abstractmethod
    def summarize(self, text: str) -> Summary:
        """Summarize ``text``."""