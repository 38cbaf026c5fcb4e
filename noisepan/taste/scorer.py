"""Scoring of posts against a taste profile."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from itertools import chain

from noisepan.source.base import Post


class Tier(StrEnum):
    """How urgently a post deserves attention."""

    READ_NOW = "read_now"
    SKIM = "skim"
    IGNORE = "ignore"


@dataclass
class Weights:
    """Keyword weights; high-signal keywords add points, low-signal ones usually subtract."""

    high_signal: dict[str, int] = field(default_factory=dict)
    low_signal: dict[str, int] = field(default_factory=dict)


@dataclass
class RuleCondition:
    """A rule matches when the text contains any of these keywords."""

    contains_any: list[str] = field(default_factory=list)


@dataclass
class RuleAction:
    """What a matching rule contributes."""

    score_add: int = 0
    labels: list[str] = field(default_factory=list)


@dataclass
class Rule:
    """A condition and the action taken when it matches."""

    when: RuleCondition = field(default_factory=RuleCondition)
    then: RuleAction = field(default_factory=RuleAction)


@dataclass
class Thresholds:
    """Minimum scores for each tier."""

    read_now: int = 0
    skim: int = 0
    ignore: int = 0


@dataclass
class TasteProfile:
    """What the reader cares about."""

    weights: Weights = field(default_factory=Weights)
    labels: dict[str, list[str]] = field(default_factory=dict)
    rules: list[Rule] = field(default_factory=list)
    thresholds: Thresholds = field(default_factory=Thresholds)


@dataclass
class ScoreContribution:
    """One reason a post gained or lost points."""

    reason: str
    points: int


@dataclass
class ScoredPost:
    """A post with its score, labels, tier and the reasons behind the score."""

    post: Post
    score: int = 0
    labels: list[str] = field(default_factory=list)
    tier: Tier = Tier.IGNORE
    explanation: list[ScoreContribution] = field(default_factory=list)


def score(post: Post, profile: TasteProfile) -> ScoredPost:
    """Evaluate a post against a taste profile; matching is case-insensitive."""
    text = post.text.lower()
    total = 0
    labels: list[str] = []
    explanation: list[ScoreContribution] = []

    keywords = chain(profile.weights.high_signal.items(), profile.weights.low_signal.items())
    for keyword, weight in keywords:
        if keyword.lower() in text:
            total += weight
            explanation.append(ScoreContribution(f"keyword: {keyword}", weight))

    for rule in profile.rules:
        if any(keyword.lower() in text for keyword in rule.when.contains_any):
            total += rule.then.score_add
            labels.extend(rule.then.labels)
            explanation.append(
                ScoreContribution(f"rule: {rule.when.contains_any[0]}", rule.then.score_add)
            )

    return ScoredPost(
        post=post,
        score=total,
        labels=sorted(set(labels)),
        tier=_assign_tier(total, profile.thresholds),
        explanation=explanation,
    )


def _assign_tier(total: int, thresholds: Thresholds) -> Tier:
    if total >= thresholds.read_now:
        return Tier.READ_NOW
    if total >= thresholds.skim:
        return Tier.SKIM
    return Tier.IGNORE