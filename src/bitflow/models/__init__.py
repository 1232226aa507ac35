"""Data models — payment tags, lifecycle states and call context."""

from bitflow.models.context import CallContext
from bitflow.models.tag import (
    PaymentTag,
    Settlement,
    StatKey,
    TagError,
    TagErrorKind,
    TagState,
)

__all__ = [
    "CallContext",
    "PaymentTag",
    "Settlement",
    "StatKey",
    "TagError",
    "TagErrorKind",
    "TagState",
]
