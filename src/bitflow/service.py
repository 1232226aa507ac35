"""BitFlow service — unified facade for the payment-tag registry.

This is the primary interface for programmatic access to BitFlow.
It orchestrates all subsystems:
- Tag lifecycle (create, fulfill, cancel, expire)
- Party indexes (creator and recipient reverse lookups)
- Statistics counters
- Governance (admin pause switch)
- Value transfer (invoked only from fulfill)
- Persistence (event log, state store)

All operations produce typed results. Every mutation is validated by
the lifecycle engine first; on the first failing check the call
returns without touching any state. Mutation, counter update and event
recording are applied as one unit: if the event cannot be recorded
before commit, every in-memory change is rolled back.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from bitflow.engine.lifecycle import LifecycleEngine
from bitflow.engine.state_machine import TagStateMachine
from bitflow.models.context import CallContext
from bitflow.models.tag import (
    PaymentTag,
    Settlement,
    StatKey,
    TagError,
    TagErrorKind,
    TagState,
)
from bitflow.persistence.event_log import EventKind, EventLog, EventRecord
from bitflow.persistence.state_store import StateStore
from bitflow.policy.resolver import PolicyResolver
from bitflow.registry.state import EngineState
from bitflow.transfer.ledger import TransferError, TransferPrimitive


logger = logging.getLogger("bitflow.service")


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation.

    error_kind is set for every rule-based rejection; it is None for
    successes and for audit/persistence failures.
    """
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[TagErrorKind] = None


class BitflowService:
    """Payment-tag registry facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = BitflowService(resolver, transfer=ledger)

        ctx = CallContext(caller="SP-ALICE", height=100)
        result = service.create_tag(ctx, "SP-BOB", 1000, 10, memo="invoice#1")
        tag_id = result.data["tag_id"]

        result = service.fulfill_tag(CallContext("SP-CAROL", 105), tag_id)
        result = service.expire_tag(CallContext("anyone", 200), other_id)

    Persistence (optional):
        service = BitflowService(
            resolver, transfer=ledger, event_log=log, state_store=store,
        )
        # State is loaded on construction and persisted after each commit.

    Thread-safety: calls must be serialized by the host.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        transfer: TransferPrimitive,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._resolver = resolver
        self._engine = LifecycleEngine(resolver)
        self._transfer = transfer
        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store

        self._state = EngineState.empty(resolver)
        if state_store is not None:
            state_store.load_engine_state(self._state)

        _check_log_against_registry(self._event_log, self._state)

        # Resume after the highest logged id; failed appends leave gaps
        self._event_counter = _highest_event_seq(self._event_log)

        # Set when the audit trail and the StateStore may disagree
        # (a StateStore write failed, or a paid tag's event could not be logged).
        self._persistence_degraded: bool = False

    # ------------------------------------------------------------------
    # Tag lifecycle
    # ------------------------------------------------------------------

    def create_tag(
        self,
        ctx: CallContext,
        recipient: str,
        amount: int,
        duration: int,
        memo: Optional[str] = None,
    ) -> ServiceResult:
        """Create a PENDING payment tag from ctx.caller to recipient.

        The tag expires at ctx.height + duration. Its id is appended to
        the caller's creator index and the recipient's recipient index.
        """
        state = self._state
        err = self._engine.validate_create(
            state, ctx, recipient, amount, duration, memo,
        )
        if err:
            return self._reject("create", err)

        tag = PaymentTag(
            tag_id=state.registry.next_id(),
            creator=ctx.caller,
            recipient=recipient,
            amount=amount,
            created_at=ctx.height,
            expires_at=ctx.height + duration,
            memo=memo,
        )
        prior_created = state.stats.get(StatKey.CREATED.value)

        state.registry.insert(tag)
        state.creator_index.append(tag.creator, tag.tag_id)
        state.recipient_index.append(tag.recipient, tag.tag_id)
        state.stats.increment(StatKey.CREATED)

        def _rollback() -> None:
            state.stats.rollback(StatKey.CREATED, prior_created)
            state.recipient_index.discard_last(tag.recipient, tag.tag_id)
            state.creator_index.discard_last(tag.creator, tag.tag_id)
            state.registry.remove_last(tag.tag_id)

        audit_err = self._record_event(EventKind.TAG_CREATED, ctx, tag.to_dict())
        if audit_err:
            _rollback()
            return ServiceResult(success=False, errors=[audit_err])

        logger.info(
            f"Tag {tag.tag_id} created by {tag.creator} for {tag.recipient}: "
            f"{tag.amount} until height {tag.expires_at}"
        )
        return self._committed({
            "tag_id": tag.tag_id,
            "state": tag.state.value,
            "expires_at": tag.expires_at,
        })

    def fulfill_tag(self, ctx: CallContext, tag_id: int) -> ServiceResult:
        """Pay a PENDING tag: transfer amount from ctx.caller to the recipient.

        The transfer and the PAID transition succeed or fail together.
        Once the transfer has gone through, the tag is always marked
        PAID; an event-log failure after that point is reported as a
        warning and flags degraded persistence.
        """
        state = self._state
        err = self._engine.validate_fulfill(state, ctx, tag_id)
        if err:
            return self._reject("fulfill", err)

        tag = state.registry.get(tag_id)
        try:
            transfer_ref = self._transfer(ctx.caller, tag.recipient, tag.amount)
        except TransferError as e:
            return self._reject(
                "fulfill",
                TagError(
                    TagErrorKind.TRANSFER_FAILED,
                    f"Transfer for tag {tag_id} failed: {e}",
                ),
            )

        TagStateMachine.apply(tag, TagState.PAID, ctx.height)
        tag.settlement = Settlement(transfer_ref=transfer_ref, settled_at=ctx.height)
        tag.payer = ctx.caller
        state.stats.increment(StatKey.FULFILLED)

        data: dict[str, Any] = {
            "tag_id": tag_id,
            "state": tag.state.value,
            "transfer_ref": transfer_ref,
        }
        audit_err = self._record_event(EventKind.TAG_FULFILLED, ctx, tag.to_dict())
        if audit_err:
            self._persistence_degraded = True
            logger.error(
                f"Tag {tag_id} paid by {transfer_ref} but not logged: {audit_err}"
            )
            data["audit_warning"] = audit_err

        logger.info(f"Tag {tag_id} fulfilled by {ctx.caller} ({transfer_ref})")
        return self._committed(data)

    def cancel_tag(self, ctx: CallContext, tag_id: int) -> ServiceResult:
        """Cancel a PENDING tag. Only its creator may cancel; no time limit."""
        return self._close_tag(
            ctx, tag_id,
            target=TagState.CANCELED,
            validate=self._engine.validate_cancel,
            stat_key=StatKey.CANCELED,
            event_kind=EventKind.TAG_CANCELED,
        )

    def expire_tag(self, ctx: CallContext, tag_id: int) -> ServiceResult:
        """Expire a PENDING tag whose expiry height has been reached.

        Callable by anyone, so stale tags can be swept by any party.
        """
        return self._close_tag(
            ctx, tag_id,
            target=TagState.EXPIRED,
            validate=self._engine.validate_expire,
            stat_key=StatKey.EXPIRED,
            event_kind=EventKind.TAG_EXPIRED,
        )

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def toggle_pause(self, ctx: CallContext) -> ServiceResult:
        """Flip the pause flag. Admin only."""
        state = self._state
        err = self._engine.validate_toggle_pause(state, ctx)
        if err:
            return self._reject("toggle_pause", err)

        paused = state.governance.toggle()
        audit_err = self._record_event(
            EventKind.PAUSE_TOGGLED, ctx, {"paused": paused},
        )
        if audit_err:
            state.governance.toggle()  # Rollback
            return ServiceResult(success=False, errors=[audit_err])

        logger.info(f"Pause flag set to {paused} by {ctx.caller}")
        return self._committed({"paused": paused})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_tag(self, tag_id: int) -> Optional[PaymentTag]:
        """Look up a tag. Returns a detached copy of the record."""
        return _detached(self._state.registry.get(tag_id))

    def get_multiple(self, tag_ids: list[int]) -> list[Optional[PaymentTag]]:
        """Look up a batch of tags. Missing ids map to None.

        Raises ValueError if the batch exceeds max_batch_size.
        """
        limit = self._resolver.max_batch_size()
        if len(tag_ids) > limit:
            raise ValueError(
                f"Batch of {len(tag_ids)} ids exceeds limit of {limit}"
            )
        return [_detached(self._state.registry.get(i)) for i in tag_ids]

    def list_by_creator(self, party: str) -> list[int]:
        return self._state.creator_index.list(party)

    def list_by_recipient(self, party: str) -> list[int]:
        return self._state.recipient_index.list(party)

    def can_expire(self, tag_id: int, height: int) -> Optional[bool]:
        """True if expire_tag would succeed at this height; None if not found."""
        tag = self._state.registry.get(tag_id)
        if tag is None:
            return None
        return self._engine.can_expire(tag, height)

    def stat(self, key: str) -> int:
        """Counter for an event name. Unknown names read as zero."""
        return self._state.stats.get(key)

    def is_paused(self) -> bool:
        return self._state.governance.paused

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Emitted event records, for indexers."""
        return self._event_log.events(kind)

    def events_for_tag(self, tag_id: int) -> list[EventRecord]:
        """Every event naming this tag, oldest first."""
        return self._event_log.events_for_tag(tag_id)

    def info(self) -> dict[str, Any]:
        return {
            "total_tags": self._state.registry.last_id,
            "paused": self._state.governance.paused,
            "version": self._resolver.version(),
        }

    def status(self) -> dict[str, Any]:
        """Return system-wide status summary."""
        return {
            **self.info(),
            "tags": {
                "total": self._state.registry.count,
                "by_state": self._state.registry.count_by_state(),
            },
            "stats": self._state.stats.snapshot(),
            "parties": {
                "creators": len(self._state.creator_index.parties()),
                "recipients": len(self._state.recipient_index.parties()),
            },
            "events": self._event_log.count,
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _close_tag(
        self,
        ctx: CallContext,
        tag_id: int,
        target: TagState,
        validate: Callable[[EngineState, CallContext, int], Optional[TagError]],
        stat_key: StatKey,
        event_kind: EventKind,
    ) -> ServiceResult:
        """Validate and apply a non-paying terminal transition.

        Fail-closed: if audit recording fails, the transition and the
        counter update are fully rolled back.
        """
        state = self._state
        err = validate(state, ctx, tag_id)
        if err:
            return self._reject(event_kind.value, err)

        tag = state.registry.get(tag_id)
        prior_state = tag.state
        prior_count = state.stats.get(stat_key.value)

        TagStateMachine.apply(tag, target, ctx.height)
        state.stats.increment(stat_key)

        audit_err = self._record_event(event_kind, ctx, tag.to_dict())
        if audit_err:
            tag.state = prior_state
            tag.closed_at = None
            state.stats.rollback(stat_key, prior_count)
            return ServiceResult(success=False, errors=[audit_err])

        logger.info(f"Tag {tag_id} {target.value} by {ctx.caller} at {ctx.height}")
        return self._committed({"tag_id": tag_id, "state": tag.state.value})

    def _reject(self, operation: str, err: TagError) -> ServiceResult:
        logger.warning(f"{operation} rejected [{err.kind.value}]: {err.message}")
        return ServiceResult(
            success=False, errors=[err.message], error_kind=err.kind,
        )

    def _committed(self, data: dict[str, Any]) -> ServiceResult:
        """Persist after commit and wrap the result."""
        warning = self._safe_persist_post_audit()
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _record_event(
        self,
        kind: EventKind,
        ctx: CallContext,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Append one event record. Returns error string or None."""
        try:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=ctx.caller,
                payload={**payload, "height": ctx.height},
            )
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            return f"Event log failure: {e}"
        return None

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired).

        NOTE: This method can raise OSError.
        """
        if self._state_store is None:
            return
        self._state_store.save_engine_state(self._state)

    def _safe_persist_post_audit(self) -> Optional[str]:
        """Persist state after the audit event has been committed.

        MUST NOT rollback in-memory state: the audit trail is already
        durable. If persist fails, in-memory state remains correct
        (aligned with audit events), but StateStore is stale.

        Sets _persistence_degraded for operator awareness and returns a
        warning string (not a hard error).
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error(f"State store write failed: {e}")
            return f"Persistence degraded: {e}; state committed in audit trail but StateStore is stale"


def _detached(tag: Optional[PaymentTag]) -> Optional[PaymentTag]:
    # Settlement is frozen, so a shallow copy cannot reach registry state
    return dataclasses.replace(tag) if tag is not None else None


def _highest_event_seq(event_log: EventLog) -> int:
    highest = 0
    for event in event_log.events():
        prefix, _, seq = event.event_id.partition("-")
        if prefix == "EVT" and seq.isdigit():
            highest = max(highest, int(seq))
    return highest


def _check_log_against_registry(event_log: EventLog, state: EngineState) -> None:
    """Refuse to start if the log records tags the loaded state lacks.

    A stale StateStore snapshot would otherwise hand out tag ids that
    the event log already records as created.
    """
    logged_ids = [
        e.payload.get("tag_id", 0)
        for e in event_log.events(EventKind.TAG_CREATED)
    ]
    highest = max(logged_ids, default=0)
    if highest > state.registry.last_id:
        logger.error(
            f"Event log records tag {highest} but loaded state ends at "
            f"{state.registry.last_id}"
        )
        raise ValueError(
            f"Event log has tag_created for tag {highest} beyond last id "
            f"{state.registry.last_id}; state store is stale"
        )
