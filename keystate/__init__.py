"""
keystate - Observable State Keys for Python Objects

Attributes with lazy initialization, validation, normalization, write-once
semantics and change events batched once per scheduling turn.
"""

__version__ = "0.1.0"

from .config import (
    MISSING,
    BatchData,
    ChangeRecord,
    FactoryDefault,
    KeyInfo,
    KeyState,
    SharedDefault,
    StateKeyConfig,
)
from .descriptors import StateKeyDescriptor
from .events import EventEmitter
from .exceptions import (
    DisposedError,
    InvalidStateKeyError,
    StateConfigError,
    StateError,
    UnknownStateKeyError,
)
from .scheduling import next_tick, pending_count, run_pending
from .state import State

__all__ = [
    # Core
    "State",
    "StateKeyDescriptor",
    # Configuration
    "StateKeyConfig",
    "SharedDefault",
    "FactoryDefault",
    "KeyState",
    "KeyInfo",
    "MISSING",
    # Events
    "EventEmitter",
    "ChangeRecord",
    "BatchData",
    # Scheduling
    "next_tick",
    "run_pending",
    "pending_count",
    # Exceptions
    "StateError",
    "InvalidStateKeyError",
    "StateConfigError",
    "UnknownStateKeyError",
    "DisposedError",
]
