"""
Scoring component - Pure lead scoring.
"""

from .component import (
    elapsed_days,
    engagement_bonus,
    explain_score,
    parse_source,
    recency_penalty,
    run_score,
    score_lead,
)
from .models import DEFAULT_CONFIG, ScoreBreakdown, ScoreLeadInput, ScoringConfig

__all__ = [
    # Entry points
    "run_score",
    "score_lead",
    "explain_score",
    # Helpers
    "elapsed_days",
    "engagement_bonus",
    "parse_source",
    "recency_penalty",
    # Models
    "DEFAULT_CONFIG",
    "ScoreBreakdown",
    "ScoreLeadInput",
    "ScoringConfig",
]
