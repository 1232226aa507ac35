"""Registry module — tag records, party indexes and counters."""

from bitflow.registry.index import PartyIndex, PartyIndexEntry
from bitflow.registry.state import EngineState
from bitflow.registry.stats import StatisticsCounters
from bitflow.registry.tags import TagRegistry

__all__ = [
    "EngineState",
    "PartyIndex",
    "PartyIndexEntry",
    "StatisticsCounters",
    "TagRegistry",
]
