"""Summarizer backed by an OpenAI-compatible chat completion API."""

from __future__ import annotations

import json

import requests

from noisepan.summarize.heuristic import CVE_RE, URL_RE
from noisepan.summarize.summary import Summarizer, Summary

DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
HTTP_TIMEOUT = 30.0
SYSTEM_PROMPT = (
    "Summarize for senior DevOps engineer. Focus on: breaking changes, incidents, "
    "security, architectural shifts. Max 4 bullets. Return only bullet points, "
    "one per line, starting with -"
)


class _APIError(Exception):
    """The completion API did not return a usable answer."""


class LLMSummarizer(Summarizer):
    """Requests bullet points from a chat completion endpoint, using a fallback when it fails."""

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int,
        fallback: Summarizer,
        endpoint: str = DEFAULT_ENDPOINT,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.fallback = fallback
        self.endpoint = endpoint
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def summarize(self, text: str) -> Summary:
        """Bullets come from the endpoint; links and CVEs are extracted from ``text``."""
        try:
            bullets = self._call_api(text)
        except _APIError:
            return self.fallback.summarize(text)
        if not bullets:
            return self.fallback.summarize(text)
        return Summary(bullets=bullets, links=URL_RE.findall(text), cves=CVE_RE.findall(text))

    def _call_api(self, text: str) -> list[str]:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": "Bearer " + self.api_key,
        }
        try:
            response = self.session.post(
                self.endpoint,
                data=json.dumps(payload),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise _APIError(f"http request: {exc}") from exc

        with response:
            if response.status_code != 200:
                raise _APIError(f"api returned status {response.status_code}")
            try:
                body = response.json()
            except ValueError as exc:
                raise _APIError(f"decode response: {exc}") from exc

        try:
            choices = body.get("choices") or []
            if not choices:
                raise _APIError("empty choices in response")
            content = (choices[0].get("message") or {}).get("content") or ""
        except (AttributeError, TypeError) as exc:
            raise _APIError(f"decode response: {exc}") from exc
        if not isinstance(content, str):
            raise _APIError("decode response: content is not a string")
        return parse_bullets(content)


def parse_bullets(content: str) -> list[str]:
    """Lines starting with ``-``, without the dash and one following space."""
    bullets = []
    for line in content.split("\n"):
        line = line.strip()
        if line.startswith("- "):
            bullets.append(line[2:])
        elif line.startswith("-"):
            bullets.append(line[1:])
    return bullets