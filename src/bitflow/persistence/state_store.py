"""State store — JSON-based persistence for the tag registry.

Stores and recovers:
- Every payment tag (all states, with settlements)
- The last assigned tag id
- Creator and recipient party indexes
- Statistics counters
- The governance pause flag

This is a simple file-based store suitable for single-node deployment.
Production deployments would replace this with a database backend
while keeping the same interface.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from bitflow.models.tag import PaymentTag
from bitflow.registry.index import PartyIndexEntry
from bitflow.registry.state import EngineState


class StateStore:
    """JSON file-based state persistence.

    Usage:
        store = StateStore(Path("data/bitflow_state.json"))
        store.save_engine_state(state)

        # On recovery:
        state = EngineState.empty(resolver)
        store.load_engine_state(state)
    """

    def __init__(self, storage_path: Path) -> None:
        self._path = storage_path
        self._state: dict[str, Any] = {}
        if storage_path.exists():
            self._load()

    def _load(self) -> None:
        with self._path.open("r", encoding="utf-8") as f:
            self._state = json.load(f)

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as f:
            json.dump(self._state, f, indent=2, sort_keys=True, ensure_ascii=False)

    @property
    def is_empty(self) -> bool:
        return "registry" not in self._state

    # ------------------------------------------------------------------
    # Whole-engine persistence
    # ------------------------------------------------------------------

    def save_engine_state(self, state: EngineState) -> None:
        """Serialize registry, indexes, counters and pause flag in one write."""
        self._state["registry"] = {
            "last_id": state.registry.last_id,
            "tags": [t.to_dict() for t in state.registry.all_tags()],
        }
        self._state["indexes"] = {
            "creator": _entries_to_data(state.creator_index.entries()),
            "recipient": _entries_to_data(state.recipient_index.entries()),
        }
        self._state["stats"] = state.stats.snapshot()
        self._state["governance"] = {"paused": state.governance.paused}
        self._state["saved_utc"] = datetime.now(timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )
        self._save()

    def load_engine_state(self, state: EngineState) -> None:
        """Install persisted state into a freshly built EngineState.

        Raises ValueError on unknown tag states, broken id sequences,
        over-capacity index entries, or indexes that do not list every tag
        exactly once under its creator and its recipient. Leaves state
        untouched if the store is empty.
        """
        if self.is_empty:
            return

        registry_data = self._state["registry"]
        tags = [PaymentTag.from_dict(d) for d in registry_data.get("tags", [])]
        state.registry.restore(tags, registry_data["last_id"])

        indexes = self._state.get("indexes", {})
        for entry in _entries_from_data(indexes.get("creator", {})):
            state.creator_index.restore(entry)
        for entry in _entries_from_data(indexes.get("recipient", {})):
            state.recipient_index.restore(entry)
        _check_indexes(state)

        state.stats.restore(self._state.get("stats", {}))

        if self._state.get("governance", {}).get("paused", False):
            state.governance.toggle()


def _entries_to_data(entries: list[PartyIndexEntry]) -> dict[str, Any]:
    return {
        e.party: {"tag_ids": list(e.tag_ids), "count": e.count}
        for e in entries
    }


def _entries_from_data(data: dict[str, Any]) -> list[PartyIndexEntry]:
    return [
        PartyIndexEntry(
            party=party,
            tag_ids=list(entry["tag_ids"]),
            count=entry["count"],
        )
        for party, entry in data.items()
    ]


def _check_indexes(state: EngineState) -> None:
    tags = state.registry.all_tags()
    for index, expected in (
        (state.creator_index, sorted((t.creator, t.tag_id) for t in tags)),
        (state.recipient_index, sorted((t.recipient, t.tag_id) for t in tags)),
    ):
        indexed = sorted(
            (e.party, tag_id) for e in index.entries() for tag_id in e.tag_ids
        )
        if indexed != expected:
            raise ValueError(
                f"Persisted {index.name} index does not list each tag "
                f"exactly once under its party"
            )
