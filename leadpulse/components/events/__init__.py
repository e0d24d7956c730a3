"""
Events component - Append-only store of clicks and leads.
"""

from ._impl import InMemoryEventStore
from .models import ClickStats
from .ports import EventStorePort

__all__ = [
    "ClickStats",
    "EventStorePort",
    "InMemoryEventStore",
]
