"""Tag state machine — the legal lifecycle transitions.

PENDING is the only non-terminal state. Every transition leaves it,
so a tag makes at most one transition in its lifetime.
"""

from __future__ import annotations

from bitflow.models.tag import PaymentTag, TagError, TagErrorKind, TagState


TRANSITIONS: dict[TagState, frozenset[TagState]] = {
    TagState.PENDING: frozenset({TagState.PAID, TagState.CANCELED, TagState.EXPIRED}),
    TagState.PAID: frozenset(),
    TagState.CANCELED: frozenset(),
    TagState.EXPIRED: frozenset(),
}


class TagStateMachine:
    """Validates and applies tag state transitions."""

    @staticmethod
    def check(tag: PaymentTag, target: TagState) -> TagError | None:
        """Return the error that blocks tag → target, or None.

        Raises ValueError if target is not a terminal state.
        """
        if not target.is_terminal:
            raise ValueError(f"Illegal transition target: {target.value}")
        if target not in TRANSITIONS[tag.state]:
            return TagError(
                TagErrorKind.NOT_PENDING,
                f"Tag {tag.tag_id} is {tag.state.value}, not pending",
            )
        return None

    @staticmethod
    def apply(tag: PaymentTag, target: TagState, height: int) -> None:
        """Move a tag into a terminal state.

        Raises ValueError on an illegal transition. Callers validate
        first; reaching the raise means a validation step was skipped.
        """
        err = TagStateMachine.check(tag, target)
        if err is not None:
            raise ValueError(err.message)
        tag.state = target
        tag.closed_at = height
