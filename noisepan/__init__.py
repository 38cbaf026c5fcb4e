"""Collect, score, summarize and store posts from information streams."""

__version__ = "0.1.0"