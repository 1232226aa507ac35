"""Engine module — tag state machine and lifecycle validation."""

from bitflow.engine.lifecycle import LifecycleEngine
from bitflow.engine.state_machine import TagStateMachine

__all__ = ["LifecycleEngine", "TagStateMachine"]
