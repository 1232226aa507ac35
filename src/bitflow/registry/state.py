"""Engine state — every piece of state shared between calls, in one place.

Operations receive the bundle explicitly; nothing lives in module
globals. Hosts guarantee that calls are serialized, so a single
EngineState is only ever touched by one operation at a time.
"""

from __future__ import annotations

from dataclasses import dataclass

from bitflow.governance.pause import GovernanceFlag
from bitflow.policy.resolver import PolicyResolver
from bitflow.registry.index import PartyIndex
from bitflow.registry.stats import StatisticsCounters
from bitflow.registry.tags import TagRegistry


@dataclass
class EngineState:
    """Registry, both party indexes, counters and the pause flag."""
    registry: TagRegistry
    creator_index: PartyIndex
    recipient_index: PartyIndex
    stats: StatisticsCounters
    governance: GovernanceFlag

    @classmethod
    def empty(cls, resolver: PolicyResolver) -> EngineState:
        capacity = resolver.max_tags_per_party()
        return cls(
            registry=TagRegistry(),
            creator_index=PartyIndex("creator", capacity),
            recipient_index=PartyIndex("recipient", capacity),
            stats=StatisticsCounters(),
            governance=GovernanceFlag(resolver.admin()),
        )
