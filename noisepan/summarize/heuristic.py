"""Rule-based summarizer."""

from __future__ import annotations

import re

from noisepan.summarize.summary import Summarizer, Summary

URL_RE = re.compile(r"https?://[^\t\n\f\r ]+")
CVE_RE = re.compile(r"CVE-[0-9]{4}-[0-9]{4,}")
VERSION_RE = re.compile(r"v?[0-9]+\.[0-9]+\.[0-9]+")

MAX_BULLETS = 3
MAX_FIRST_SENTENCE = 120
ALERT_KEYWORDS = ("breaking change", "deprecated", "removed")

_SENTENCE_BOUNDARY_RE = re.compile(r"(?<=\n)|(?<=\.)(?=[ \n])")


class HeuristicSummarizer(Summarizer):
    """Summarizes text by extracting the lead sentence, alerts and metadata."""

    def summarize(self, text: str) -> Summary:
        text = text.strip()
        links = URL_RE.findall(text)
        cves = CVE_RE.findall(text)
        versions = VERSION_RE.findall(text)

        first = first_sentence(text, MAX_FIRST_SENTENCE) or "(empty)"
        bullets = [first]

        alert = find_sentence_containing(text, ALERT_KEYWORDS)
        if alert and alert != first:
            bullets.append(alert)

        if len(bullets) < MAX_BULLETS:
            if cves:
                bullets.append("CVE: " + ", ".join(cves))
            elif versions:
                bullets.append("Versions: " + ", ".join(versions))
            elif len(links) > 3:
                bullets.append(f"{len(links)} links included")

        return Summary(bullets=bullets[:MAX_BULLETS], links=links, cves=cves)


def first_sentence(text: str, max_len: int) -> str:
    """Text up to the first sentence boundary, shortened to ``max_len`` at a word break."""
    if not text:
        return ""

    end = len(text)
    newline = text.find("\n")
    if newline >= 0:
        end = newline

    period = text.find(". ", 0, end)
    if period >= 0:
        end = period + 1

    if end > max_len:
        space = text.rfind(" ", 0, max_len)
        if space > 0:
            return text[:space] + "..."
        return text[:max_len] + "..."

    return text[:end].strip()


def find_sentence_containing(text: str, keywords) -> str:
    """First sentence that contains any of ``keywords`` (case-insensitive), or ``""``."""
    for sentence in split_sentences(text):
        lower = sentence.lower()
        if any(keyword in lower for keyword in keywords):
            sentence = sentence.strip()
            if len(sentence) > MAX_FIRST_SENTENCE:
                sentence = sentence[:MAX_FIRST_SENTENCE] + "..."
            return sentence
    return ""


def split_sentences(text: str) -> list[str]:
    """Split on newlines and on a period followed by a space or newline."""
    pieces = (piece.strip() for piece in _SENTENCE_BOUNDARY_RE.split(text))
    return [piece for piece in pieces if piece]