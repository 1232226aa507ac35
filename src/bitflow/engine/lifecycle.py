"""Lifecycle engine — validates every tag operation in a fixed order.

Pure computation: no side effects. The service layer handles
mutation, transfer, event recording and persistence.

Check order per operation (the first failing check wins):
- create:  paused → amount → duration → self-payment → memo → index capacity
- fulfill: paused → id → pending → not expired
- cancel:  id → caller is creator → pending
- expire:  id → pending → expiry reached
- toggle:  caller is admin
"""

from __future__ import annotations

from typing import Optional

from bitflow.engine.state_machine import TagStateMachine
from bitflow.models.context import CallContext
from bitflow.models.tag import PaymentTag, TagError, TagErrorKind, TagState
from bitflow.policy.resolver import PolicyResolver
from bitflow.registry.state import EngineState


class LifecycleEngine:
    """Validates payment-tag operations against the current engine state.

    Receives state, returns the first failing check as a TagError
    (or None). Never mutates.
    """

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver

    def validate_create(
        self,
        state: EngineState,
        ctx: CallContext,
        recipient: str,
        amount: int,
        duration: int,
        memo: Optional[str],
    ) -> Optional[TagError]:
        limits = self._resolver.tag_limits()

        if state.governance.paused:
            return TagError(TagErrorKind.PAUSED, "Tag creation is paused")

        if amount < limits.min_amount:
            return TagError(
                TagErrorKind.INVALID_AMOUNT,
                f"Amount {amount} below minimum {limits.min_amount}",
            )

        if duration <= 0 or duration > limits.max_duration:
            return TagError(
                TagErrorKind.DURATION_EXCEEDED,
                f"Duration {duration} outside (0, {limits.max_duration}]",
            )

        if ctx.caller == recipient:
            return TagError(
                TagErrorKind.SELF_PAYMENT,
                "Creator and recipient must differ",
            )

        if memo is not None:
            if not memo:
                return TagError(TagErrorKind.EMPTY_MEMO, "Memo must not be empty")
            if len(memo) > limits.max_memo_length:
                return TagError(
                    TagErrorKind.MEMO_TOO_LONG,
                    f"Memo length {len(memo)} exceeds {limits.max_memo_length}",
                )

        for index, party in (
            (state.creator_index, ctx.caller),
            (state.recipient_index, recipient),
        ):
            if not index.has_capacity(party):
                return TagError(
                    TagErrorKind.INDEX_FULL,
                    f"{index.name} index for {party} is full "
                    f"({index.capacity} tags)",
                )

        return None

    def validate_fulfill(
        self,
        state: EngineState,
        ctx: CallContext,
        tag_id: int,
    ) -> Optional[TagError]:
        if state.governance.paused:
            return TagError(TagErrorKind.PAUSED, "Tag fulfillment is paused")

        tag, err = self._lookup(state, tag_id)
        if err is not None:
            return err

        err = TagStateMachine.check(tag, TagState.PAID)
        if err is not None:
            return err

        # Strict: a tag cannot be paid in the height it expires.
        if tag.is_expired_at(ctx.height):
            return TagError(
                TagErrorKind.EXPIRED,
                f"Tag {tag_id} expired at height {tag.expires_at}",
            )
        return None

    def validate_cancel(
        self,
        state: EngineState,
        ctx: CallContext,
        tag_id: int,
    ) -> Optional[TagError]:
        tag, err = self._lookup(state, tag_id)
        if err is not None:
            return err

        if ctx.caller != tag.creator:
            return TagError(
                TagErrorKind.UNAUTHORIZED,
                f"Only the creator can cancel tag {tag_id}",
            )

        return TagStateMachine.check(tag, TagState.CANCELED)

    def validate_expire(
        self,
        state: EngineState,
        ctx: CallContext,
        tag_id: int,
    ) -> Optional[TagError]:
        tag, err = self._lookup(state, tag_id)
        if err is not None:
            return err

        err = TagStateMachine.check(tag, TagState.EXPIRED)
        if err is not None:
            return err

        if not tag.is_expired_at(ctx.height):
            return TagError(
                TagErrorKind.NOT_YET_EXPIRED,
                f"Tag {tag_id} expires at height {tag.expires_at}, "
                f"current height is {ctx.height}",
            )
        return None

    def validate_toggle_pause(
        self,
        state: EngineState,
        ctx: CallContext,
    ) -> Optional[TagError]:
        if not state.governance.is_admin(ctx.caller):
            return TagError(
                TagErrorKind.UNAUTHORIZED,
                "Only the admin can toggle the pause flag",
            )
        return None

    def can_expire(self, tag: PaymentTag, height: int) -> bool:
        """True if expire() would succeed for this tag at this height."""
        return tag.is_pending() and tag.is_expired_at(height)

    @staticmethod
    def _lookup(
        state: EngineState, tag_id: int,
    ) -> tuple[Optional[PaymentTag], Optional[TagError]]:
        tag = state.registry.get(tag_id) if state.registry.is_valid_id(tag_id) else None
        if tag is None:
            return None, TagError(TagErrorKind.NOT_FOUND, f"Tag not found: {tag_id}")
        return tag, None
