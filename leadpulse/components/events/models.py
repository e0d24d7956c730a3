"""
Events component - Data models.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ClickStats:
    """Raw click totals for a page."""

    total_clicks: int
    unique_clicks: int  # distinct non-null IP addresses
