"""Policy resolver — loads protocol_params.json and exposes every
protocol constant as a typed method call.

No magic. No defaults. If a value is missing from the config, it fails loud.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any


_REQUIRED_KEYS = (
    "min_amount",
    "max_duration",
    "max_tags_per_party",
    "admin",
    "max_memo_length",
    "max_batch_size",
)


@dataclass(frozen=True)
class TagLimits:
    """Resolved creation limits for a payment tag."""
    min_amount: int
    max_duration: int
    max_memo_length: int


class PolicyResolver:
    """Loads and resolves all protocol configuration.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        limits = resolver.tag_limits()
        admin = resolver.admin()
    """

    def __init__(self, params: dict[str, Any]) -> None:
        self._params = params
        self._validate()

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load from the canonical config directory."""
        return cls(_load_json(config_dir / "protocol_params.json"))

    def _validate(self) -> None:
        if "version" not in self._params:
            raise ValueError("protocol_params.json missing version")
        missing = [k for k in _REQUIRED_KEYS if k not in self._params]
        if missing:
            raise ValueError(
                f"protocol_params.json missing keys: {', '.join(missing)}"
            )
        for key in _REQUIRED_KEYS:
            if key == "admin":
                continue
            value = self._params[key]
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(
                    f"protocol_params.json {key} must be a positive integer, "
                    f"got {value!r}"
                )
        admin = self._params["admin"]
        if not isinstance(admin, str) or not admin.strip():
            raise ValueError("protocol_params.json admin must be a non-empty string")

    # ------------------------------------------------------------------
    # Tag creation limits
    # ------------------------------------------------------------------

    def min_amount(self) -> int:
        """Smallest amount (in base token units) a tag may request."""
        return self._params["min_amount"]

    def max_duration(self) -> int:
        """Longest lifetime, in heights, a tag may be created with."""
        return self._params["max_duration"]

    def max_memo_length(self) -> int:
        return self._params["max_memo_length"]

    def tag_limits(self) -> TagLimits:
        return TagLimits(
            min_amount=self.min_amount(),
            max_duration=self.max_duration(),
            max_memo_length=self.max_memo_length(),
        )

    # ------------------------------------------------------------------
    # Indexing and reads
    # ------------------------------------------------------------------

    def max_tags_per_party(self) -> int:
        """Capacity of each party's creator and recipient index entries."""
        return self._params["max_tags_per_party"]

    def max_batch_size(self) -> int:
        """Largest id batch accepted by a multi-tag read."""
        return self._params["max_batch_size"]

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def admin(self) -> str:
        """The only identity allowed to toggle the pause flag."""
        return self._params["admin"]

    def version(self) -> str:
        return str(self._params["version"])


def _load_json(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)
