"""Governance flag — a single admin-controlled pause switch.

While paused, tag creation and fulfillment are blocked. Cancellation,
expiration and every read stay available so that parties can always
withdraw or clean up their requests.
"""

from __future__ import annotations


class GovernanceFlag:
    """Boolean gate toggled (not set) by one fixed admin identity."""

    def __init__(self, admin: str, paused: bool = False) -> None:
        self._admin = admin
        self._paused = paused

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def paused(self) -> bool:
        return self._paused

    def is_admin(self, caller: str) -> bool:
        return caller == self._admin

    def toggle(self) -> bool:
        """Flip the flag and return the new value.

        Authorization is checked by the lifecycle engine before this
        is called.
        """
        self._paused = not self._paused
        return self._paused
