"""
Scoring component - Deterministic lead quality score.

Functional core: no I/O, no clock, no randomness. Identical inputs always
produce identical output, so the engine is testable without a database.

Policy:
- Base by source: direct=100, referral=90, social=80, unknown=50
- Minus 1 per whole elapsed day since the page's last lead, at most 30
- Plus 2 per distinct link clicked before converting, at most 20
- Clamped to [0, 100]
"""

from __future__ import annotations

from datetime import timedelta

from leadpulse.core.entities import LeadSource

from .models import DEFAULT_CONFIG, ScoreBreakdown, ScoreLeadInput, ScoringConfig

_SECONDS_PER_DAY = 86400


def parse_source(value: LeadSource | str | None) -> LeadSource:
    """Map a free-form source tag to a LeadSource (unknown on no match)."""
    if isinstance(value, LeadSource):
        return value
    if not value:
        return LeadSource.UNKNOWN
    try:
        return LeadSource(value.strip().lower())
    except ValueError:
        return LeadSource.UNKNOWN


def elapsed_days(recency: timedelta) -> int:
    """Whole days in a duration. Negative durations count as zero."""
    seconds = recency.total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // _SECONDS_PER_DAY)


def recency_penalty(recency: timedelta, config: ScoringConfig = DEFAULT_CONFIG) -> int:
    return min(elapsed_days(recency) * config.decay_per_day, config.max_decay)


def engagement_bonus(engagement_depth: int, config: ScoringConfig = DEFAULT_CONFIG) -> int:
    depth = max(0, engagement_depth)
    return min(depth * config.points_per_link, config.max_engagement_bonus)


def explain_score(
    source: LeadSource | str | None,
    recency: timedelta,
    engagement_depth: int,
    config: ScoringConfig = DEFAULT_CONFIG,
) -> ScoreBreakdown:
    """Compute the score along with its components."""
    resolved = parse_source(source)
    base = config.base_scores.get(resolved, config.base_scores[LeadSource.UNKNOWN])
    penalty = recency_penalty(recency, config)
    bonus = engagement_bonus(engagement_depth, config)

    score = max(config.min_score, min(config.max_score, base - penalty + bonus))

    return ScoreBreakdown(
        source=resolved,
        base=base,
        recency_penalty=penalty,
        engagement_bonus=bonus,
        score=score,
    )


def score_lead(
    source: LeadSource | str | None,
    recency: timedelta,
    engagement_depth: int,
    config: ScoringConfig = DEFAULT_CONFIG,
) -> int:
    """Score a lead in [0, 100]."""
    return explain_score(source, recency, engagement_depth, config).score


def run_score(inp: ScoreLeadInput, config: ScoringConfig | None = None) -> ScoreBreakdown:
    """Component entry point."""
    return explain_score(
        inp.source,
        inp.recency,
        inp.engagement_depth,
        config or DEFAULT_CONFIG,
    )
