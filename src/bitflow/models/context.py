"""Call context — the authenticated caller and current height for one call.

The hosting environment supplies both. The engine never caches the
height across calls; every operation receives a fresh context.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CallContext:
    """Identity and logical time for a single invocation."""
    caller: str
    height: int

    def __post_init__(self) -> None:
        if not self.caller or not self.caller.strip():
            raise ValueError("Call context requires a caller identity")
        if self.height < 0:
            raise ValueError(f"Height must be non-negative, got {self.height}")
