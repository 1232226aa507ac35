"""Tag registry — the authoritative mapping from tag id to tag record.

Single source of truth for lifecycle state. Ids are assigned
sequentially from 1 and never reused; records are never deleted.
"""

from __future__ import annotations

from typing import Optional

from bitflow.models.tag import PaymentTag, TagState


class TagRegistry:
    """Append-only store of payment tags.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self) -> None:
        self._tags: dict[int, PaymentTag] = {}
        self._last_id = 0

    @property
    def last_id(self) -> int:
        return self._last_id

    @property
    def count(self) -> int:
        return len(self._tags)

    def next_id(self) -> int:
        """The id the next inserted tag must carry."""
        return self._last_id + 1

    def is_valid_id(self, tag_id: int) -> bool:
        """An id is valid if it falls within the assigned range."""
        return 1 <= tag_id <= self._last_id

    def insert(self, tag: PaymentTag) -> None:
        """Insert a freshly created tag and advance the id counter.

        Raises ValueError if the tag does not carry the next id or is
        not PENDING.
        """
        if tag.tag_id != self.next_id():
            raise ValueError(
                f"Tag id {tag.tag_id} out of sequence; expected {self.next_id()}"
            )
        if tag.state != TagState.PENDING:
            raise ValueError(
                f"New tags must be pending, got {tag.state.value}"
            )
        self._tags[tag.tag_id] = tag
        self._last_id = tag.tag_id

    def remove_last(self, tag_id: int) -> None:
        """Undo the most recent insert. Only used to roll back a create."""
        if tag_id != self._last_id or tag_id not in self._tags:
            raise ValueError(f"Tag {tag_id} is not the last inserted tag")
        del self._tags[tag_id]
        self._last_id -= 1

    def get(self, tag_id: int) -> Optional[PaymentTag]:
        return self._tags.get(tag_id)

    def all_tags(self) -> list[PaymentTag]:
        """All tags in id order."""
        return [self._tags[i] for i in sorted(self._tags)]

    def count_by_state(self) -> dict[str, int]:
        counts: dict[str, int] = {s.value: 0 for s in TagState}
        for tag in self._tags.values():
            counts[tag.state.value] += 1
        return counts

    def restore(self, tags: list[PaymentTag], last_id: int) -> None:
        """Install persisted tags. Raises ValueError on a broken sequence."""
        expected = list(range(1, last_id + 1))
        if sorted(t.tag_id for t in tags) != expected:
            raise ValueError(
                f"Persisted tags do not cover ids 1..{last_id} exactly once"
            )
        self._tags = {t.tag_id: t for t in tags}
        self._last_id = last_id
