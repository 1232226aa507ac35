"""Persistence layer — event log and state storage."""

from bitflow.persistence.event_log import EventLog, EventRecord, EventKind
from bitflow.persistence.state_store import StateStore

__all__ = ["EventLog", "EventRecord", "EventKind", "StateStore"]
