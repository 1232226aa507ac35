"""Party index — bounded reverse lookup from a party to its tag ids.

Two instances exist per registry: one keyed by creator, one keyed by
recipient. Each party's entry is an ordered, append-only list of tag
ids capped at a fixed capacity, with a parallel running count.

Invariants enforced:
- Entries are created lazily on a party's first appearance.
- Ids are appended in insertion order and never removed on terminal
  transitions (the index is an audit path, not a pending-work queue).
- An append at capacity is refused; nothing is truncated or evicted.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PartyIndexEntry:
    """One party's indexed tag ids."""
    party: str
    tag_ids: list[int] = field(default_factory=list)
    count: int = 0


class PartyIndex:
    """Arena of per-party bounded tag-id lists.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self, name: str, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"Index capacity must be positive, got {capacity}")
        self.name = name
        self._capacity = capacity
        self._entries: dict[str, PartyIndexEntry] = {}

    @property
    def capacity(self) -> int:
        return self._capacity

    def has_capacity(self, party: str) -> bool:
        """True if one more id can be appended for this party."""
        entry = self._entries.get(party)
        return entry is None or entry.count < self._capacity

    def append(self, party: str, tag_id: int) -> bool:
        """Append a tag id to the party's entry.

        Returns False (and leaves the index untouched) if the entry is
        already at capacity.
        """
        entry = self._entries.get(party)
        if entry is None:
            entry = PartyIndexEntry(party=party)
        if entry.count >= self._capacity:
            return False
        entry.tag_ids.append(tag_id)
        entry.count += 1
        self._entries[party] = entry
        return True

    def discard_last(self, party: str, tag_id: int) -> None:
        """Undo the most recent append for a party.

        Only used to roll back an uncommitted create. Raises ValueError
        if tag_id is not the party's last appended id.
        """
        entry = self._entries.get(party)
        if entry is None or not entry.tag_ids or entry.tag_ids[-1] != tag_id:
            raise ValueError(
                f"{self.name} index: {tag_id} is not the last id for {party}"
            )
        entry.tag_ids.pop()
        entry.count -= 1
        if entry.count == 0:
            del self._entries[party]

    def list(self, party: str) -> list[int]:
        """Ordered tag ids for a party. Empty for an unknown party."""
        entry = self._entries.get(party)
        return list(entry.tag_ids) if entry is not None else []

    def count_for(self, party: str) -> int:
        entry = self._entries.get(party)
        return entry.count if entry is not None else 0

    def parties(self) -> list[str]:
        return list(self._entries)

    def entries(self) -> list[PartyIndexEntry]:
        return list(self._entries.values())

    def restore(self, entry: PartyIndexEntry) -> None:
        """Install a persisted entry as-is.

        Raises ValueError if the entry is inconsistent or over capacity.
        """
        if entry.count != len(entry.tag_ids):
            raise ValueError(
                f"{self.name} index: count {entry.count} for {entry.party} "
                f"does not match {len(entry.tag_ids)} ids"
            )
        if entry.count > self._capacity:
            raise ValueError(
                f"{self.name} index: {entry.party} holds {entry.count} ids, "
                f"capacity is {self._capacity}"
            )
        self._entries[entry.party] = entry
