"""
Scoring component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from leadpulse.core.entities import LeadSource


@dataclass(frozen=True)
class ScoringConfig:
    """Lead scoring policy."""

    base_scores: dict[LeadSource, int] = field(
        default_factory=lambda: {
            LeadSource.DIRECT: 100,
            LeadSource.REFERRAL: 90,
            LeadSource.SOCIAL: 80,
            LeadSource.UNKNOWN: 50,
        }
    )

    # Recency: points lost per whole day since the page's previous lead
    decay_per_day: int = 1
    max_decay: int = 30

    # Engagement: points per distinct link clicked before converting
    points_per_link: int = 2
    max_engagement_bonus: int = 20

    min_score: int = 0
    max_score: int = 100


DEFAULT_CONFIG = ScoringConfig()


@dataclass(frozen=True)
class ScoreLeadInput:
    """Signals for one lead."""

    source: LeadSource | str | None
    recency: timedelta = timedelta(0)
    engagement_depth: int = 0


@dataclass(frozen=True)
class ScoreBreakdown:
    """Score with the parts that produced it."""

    source: LeadSource
    base: int
    recency_penalty: int
    engagement_bonus: int
    score: int
