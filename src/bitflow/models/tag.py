"""Payment tag data models — tags, settlements, lifecycle states, errors.

A tag is a time-bound payment request from a creator to a recipient.
It is created PENDING and ends in exactly one terminal state:
PAID (fulfilled before expiry), CANCELED (by its creator) or
EXPIRED (by anyone, once the expiry height is reached).

Tags are never deleted. Terminal tags stay in the registry as the
audit trail of every request ever made.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class TagState(str, enum.Enum):
    """Lifecycle states for a payment tag.

    PENDING → PAID | CANCELED | EXPIRED

    No state ever re-enters PENDING.
    """
    PENDING = "pending"
    PAID = "paid"
    CANCELED = "canceled"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not TagState.PENDING


class StatKey(str, enum.Enum):
    """Event names tracked by the statistics counters."""
    CREATED = "created"
    FULFILLED = "fulfilled"
    CANCELED = "canceled"
    EXPIRED = "expired"


class TagErrorKind(str, enum.Enum):
    """Typed failure taxonomy. Each kind maps to one validation predicate."""
    PAUSED = "paused"
    NOT_FOUND = "not_found"
    NOT_PENDING = "not_pending"
    EXPIRED = "expired"
    NOT_YET_EXPIRED = "not_yet_expired"
    UNAUTHORIZED = "unauthorized"
    INVALID_AMOUNT = "invalid_amount"
    DURATION_EXCEEDED = "duration_exceeded"
    SELF_PAYMENT = "self_payment"
    EMPTY_MEMO = "empty_memo"
    MEMO_TOO_LONG = "memo_too_long"
    INDEX_FULL = "index_full"
    TRANSFER_FAILED = "transfer_failed"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TagError:
    """A single validation failure: its kind and a human-readable reason."""
    kind: TagErrorKind
    message: str


@dataclass(frozen=True)
class Settlement:
    """Proof of payment recorded when a tag transitions to PAID."""
    transfer_ref: str
    settled_at: int


@dataclass
class PaymentTag:
    """A payment request record.

    expires_at is computed at creation time (created_at + duration).
    settlement and payer are populated only on transition to PAID;
    closed_at is set on any terminal transition.
    """
    tag_id: int
    creator: str
    recipient: str
    amount: int
    created_at: int
    expires_at: int
    memo: Optional[str] = None
    state: TagState = TagState.PENDING
    settlement: Optional[Settlement] = None
    payer: Optional[str] = None
    closed_at: Optional[int] = None

    def is_pending(self) -> bool:
        return self.state == TagState.PENDING

    def is_expired_at(self, height: int) -> bool:
        """Expiry is inclusive: a tag is expired from expires_at onwards."""
        return height >= self.expires_at

    def to_dict(self) -> dict:
        """JSON-friendly view, used by event payloads and persistence."""
        return {
            "tag_id": self.tag_id,
            "creator": self.creator,
            "recipient": self.recipient,
            "amount": self.amount,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "memo": self.memo,
            "state": self.state.value,
            "settlement": (
                {
                    "transfer_ref": self.settlement.transfer_ref,
                    "settled_at": self.settlement.settled_at,
                }
                if self.settlement is not None
                else None
            ),
            "payer": self.payer,
            "closed_at": self.closed_at,
        }

    @staticmethod
    def from_dict(data: dict) -> PaymentTag:
        """Rebuild a tag from its dict form.

        Raises ValueError for any state string outside TagState.
        """
        settlement = None
        if data.get("settlement"):
            settlement = Settlement(
                transfer_ref=data["settlement"]["transfer_ref"],
                settled_at=data["settlement"]["settled_at"],
            )
        return PaymentTag(
            tag_id=data["tag_id"],
            creator=data["creator"],
            recipient=data["recipient"],
            amount=data["amount"],
            created_at=data["created_at"],
            expires_at=data["expires_at"],
            memo=data.get("memo"),
            state=TagState(data["state"]),
            settlement=settlement,
            payer=data.get("payer"),
            closed_at=data.get("closed_at"),
        )
