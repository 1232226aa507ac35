"""Unit tests for the lifecycle engine.

Tests check ordering and the predicate behind every error kind.
Pure computation: no side effects.
"""

import pytest
from pathlib import Path

from bitflow.engine.lifecycle import LifecycleEngine
from bitflow.engine.state_machine import TagStateMachine
from bitflow.models.context import CallContext
from bitflow.models.tag import PaymentTag, TagErrorKind, TagState
from bitflow.policy.resolver import PolicyResolver
from bitflow.registry.state import EngineState

CONFIG_DIR = Path(__file__).parent.parent / "config"

ALICE = "SP-ALICE"
BOB = "SP-BOB"


def _make_resolver(**overrides) -> PolicyResolver:
    params = {
        "version": "test",
        "min_amount": 1000,
        "max_duration": 4320,
        "max_tags_per_party": 50,
        "max_memo_length": 16,
        "max_batch_size": 5,
        "admin": "SP-ADMIN",
    }
    params.update(overrides)
    return PolicyResolver(params)


def _state_with_tag(resolver: PolicyResolver, state: TagState = TagState.PENDING) -> EngineState:
    engine_state = EngineState.empty(resolver)
    engine_state.registry.insert(PaymentTag(
        tag_id=1, creator=ALICE, recipient=BOB, amount=1000,
        created_at=100, expires_at=110,
    ))
    engine_state.registry.get(1).state = state
    return engine_state


@pytest.fixture
def resolver() -> PolicyResolver:
    return _make_resolver()


@pytest.fixture
def engine(resolver: PolicyResolver) -> LifecycleEngine:
    return LifecycleEngine(resolver)


# ===================================================================
# create
# ===================================================================

class TestValidateCreate:
    def test_valid_create(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 100), BOB, 1000, 10, "invoice#1")
        assert err is None

    def test_memo_is_optional(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        assert engine.validate_create(state, CallContext(ALICE, 1), BOB, 1000, 10, None) is None

    @pytest.mark.parametrize("amount", [0, 500, 999])
    def test_amount_below_minimum(
        self, engine: LifecycleEngine, resolver: PolicyResolver, amount: int,
    ) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 1), BOB, amount, 10, None)
        assert err.kind == TagErrorKind.INVALID_AMOUNT

    @pytest.mark.parametrize("duration", [0, -5, 4321, 5000])
    def test_duration_out_of_range(
        self, engine: LifecycleEngine, resolver: PolicyResolver, duration: int,
    ) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 1), BOB, 1000, duration, None)
        assert err.kind == TagErrorKind.DURATION_EXCEEDED

    def test_max_duration_allowed(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        assert engine.validate_create(state, CallContext(ALICE, 1), BOB, 1000, 4320, None) is None

    def test_self_payment(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 1), ALICE, 1000, 10, None)
        assert err.kind == TagErrorKind.SELF_PAYMENT

    def test_empty_memo(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 1), BOB, 1000, 10, "")
        assert err.kind == TagErrorKind.EMPTY_MEMO

    def test_memo_too_long(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 1), BOB, 1000, 10, "x" * 17)
        assert err.kind == TagErrorKind.MEMO_TOO_LONG

    def test_paused_checked_first(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        state.governance.toggle()
        # Every other check would also fail; pause must win.
        err = engine.validate_create(state, CallContext(ALICE, 1), ALICE, 1, 0, "")
        assert err.kind == TagErrorKind.PAUSED

    def test_amount_checked_before_duration(
        self, engine: LifecycleEngine, resolver: PolicyResolver,
    ) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 1), ALICE, 1, 0, "")
        assert err.kind == TagErrorKind.INVALID_AMOUNT

    def test_duration_checked_before_self_payment(
        self, engine: LifecycleEngine, resolver: PolicyResolver,
    ) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 1), ALICE, 1000, 0, "")
        assert err.kind == TagErrorKind.DURATION_EXCEEDED

    def test_creator_index_full(self) -> None:
        resolver = _make_resolver(max_tags_per_party=1)
        engine = LifecycleEngine(resolver)
        state = EngineState.empty(resolver)
        state.creator_index.append(ALICE, 1)
        err = engine.validate_create(state, CallContext(ALICE, 1), BOB, 1000, 10, None)
        assert err.kind == TagErrorKind.INDEX_FULL
        assert "creator" in err.message

    def test_recipient_index_full(self) -> None:
        resolver = _make_resolver(max_tags_per_party=1)
        engine = LifecycleEngine(resolver)
        state = EngineState.empty(resolver)
        state.recipient_index.append(BOB, 1)
        err = engine.validate_create(state, CallContext(ALICE, 1), BOB, 1000, 10, None)
        assert err.kind == TagErrorKind.INDEX_FULL
        assert "recipient" in err.message


# ===================================================================
# fulfill / cancel / expire
# ===================================================================

class TestValidateFulfill:
    def test_valid_before_expiry(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver)
        assert engine.validate_fulfill(state, CallContext("SP-CAROL", 109), 1) is None

    def test_expired_at_expiry_height(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver)
        err = engine.validate_fulfill(state, CallContext("SP-CAROL", 110), 1)
        assert err.kind == TagErrorKind.EXPIRED

    @pytest.mark.parametrize("tag_id", [0, 2, -1])
    def test_not_found(
        self, engine: LifecycleEngine, resolver: PolicyResolver, tag_id: int,
    ) -> None:
        state = _state_with_tag(resolver)
        err = engine.validate_fulfill(state, CallContext("SP-CAROL", 100), tag_id)
        assert err.kind == TagErrorKind.NOT_FOUND

    def test_not_pending(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver, TagState.CANCELED)
        err = engine.validate_fulfill(state, CallContext("SP-CAROL", 100), 1)
        assert err.kind == TagErrorKind.NOT_PENDING

    def test_not_pending_wins_over_expired(
        self, engine: LifecycleEngine, resolver: PolicyResolver,
    ) -> None:
        state = _state_with_tag(resolver, TagState.PAID)
        err = engine.validate_fulfill(state, CallContext("SP-CAROL", 500), 1)
        assert err.kind == TagErrorKind.NOT_PENDING

    def test_paused(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver)
        state.governance.toggle()
        err = engine.validate_fulfill(state, CallContext("SP-CAROL", 100), 99)
        assert err.kind == TagErrorKind.PAUSED


class TestValidateCancel:
    def test_creator_can_cancel(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver)
        assert engine.validate_cancel(state, CallContext(ALICE, 10_000), 1) is None

    def test_recipient_cannot_cancel(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver)
        err = engine.validate_cancel(state, CallContext(BOB, 100), 1)
        assert err.kind == TagErrorKind.UNAUTHORIZED

    def test_unauthorized_before_not_pending(
        self, engine: LifecycleEngine, resolver: PolicyResolver,
    ) -> None:
        state = _state_with_tag(resolver, TagState.PAID)
        err = engine.validate_cancel(state, CallContext(BOB, 100), 1)
        assert err.kind == TagErrorKind.UNAUTHORIZED

    def test_cancel_allowed_while_paused(
        self, engine: LifecycleEngine, resolver: PolicyResolver,
    ) -> None:
        state = _state_with_tag(resolver)
        state.governance.toggle()
        assert engine.validate_cancel(state, CallContext(ALICE, 100), 1) is None


class TestValidateExpire:
    def test_not_yet_expired(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver)
        err = engine.validate_expire(state, CallContext("SP-ANYONE", 109), 1)
        assert err.kind == TagErrorKind.NOT_YET_EXPIRED

    def test_expire_at_expiry_height(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver)
        assert engine.validate_expire(state, CallContext("SP-ANYONE", 110), 1) is None

    def test_expire_terminal_rejected(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver, TagState.EXPIRED)
        err = engine.validate_expire(state, CallContext("SP-ANYONE", 200), 1)
        assert err.kind == TagErrorKind.NOT_PENDING

    def test_can_expire(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = _state_with_tag(resolver)
        tag = state.registry.get(1)
        assert not engine.can_expire(tag, 109)
        assert engine.can_expire(tag, 110)
        tag.state = TagState.PAID
        assert not engine.can_expire(tag, 110)


class TestValidateTogglePause:
    def test_admin_allowed(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        assert engine.validate_toggle_pause(state, CallContext("SP-ADMIN", 1)) is None

    def test_non_admin_rejected(self, engine: LifecycleEngine, resolver: PolicyResolver) -> None:
        state = EngineState.empty(resolver)
        err = engine.validate_toggle_pause(state, CallContext(ALICE, 1))
        assert err.kind == TagErrorKind.UNAUTHORIZED


# ===================================================================
# State machine
# ===================================================================

class TestTagStateMachine:
    @pytest.mark.parametrize("target", [TagState.PAID, TagState.CANCELED, TagState.EXPIRED])
    def test_pending_leaves_to_any_terminal(self, target: TagState) -> None:
        tag = PaymentTag(1, ALICE, BOB, 1000, 100, 110)
        TagStateMachine.apply(tag, target, 105)
        assert tag.state == target
        assert tag.closed_at == 105

    @pytest.mark.parametrize("terminal", [TagState.PAID, TagState.CANCELED, TagState.EXPIRED])
    def test_terminal_states_are_final(self, terminal: TagState) -> None:
        tag = PaymentTag(1, ALICE, BOB, 1000, 100, 110, state=terminal)
        for target in (TagState.PAID, TagState.CANCELED, TagState.EXPIRED):
            err = TagStateMachine.check(tag, target)
            assert err is not None
            assert err.kind == TagErrorKind.NOT_PENDING

    def test_apply_illegal_raises(self) -> None:
        tag = PaymentTag(1, ALICE, BOB, 1000, 100, 110, state=TagState.PAID)
        with pytest.raises(ValueError, match="not pending"):
            TagStateMachine.apply(tag, TagState.EXPIRED, 200)

    def test_pending_is_never_a_target(self) -> None:
        tag = PaymentTag(1, ALICE, BOB, 1000, 100, 110, state=TagState.CANCELED)
        with pytest.raises(ValueError, match="Illegal transition target"):
            TagStateMachine.check(tag, TagState.PENDING)


class TestRealConfig:
    def test_engine_builds_from_config_dir(self) -> None:
        resolver = PolicyResolver.from_config_dir(CONFIG_DIR)
        engine = LifecycleEngine(resolver)
        state = EngineState.empty(resolver)
        err = engine.validate_create(state, CallContext(ALICE, 1), BOB, 500, 10, None)
        assert err.kind == TagErrorKind.INVALID_AMOUNT
