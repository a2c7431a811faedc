"""
keystate Config - State Key Configuration and Bookkeeping Types
===============================================================

This module holds the data types shared by the state machinery:

**StateKeyConfig**: Immutable per-key configuration (validator, setter, default,
write-once flag). Built directly or from the plain-dict form used in ``STATE``
class hints.

**SharedDefault / FactoryDefault**: Explicit default-value strategies. A shared
default hands the very same object to every instance, a factory default builds
a fresh value per instance.

**KeyState**: The lifecycle of a single key. Monotonic, never regresses.

**KeyInfo**: Per-instance, per-key bookkeeping owned by a State.

**ChangeRecord / BatchData**: Payloads of the change events.

Basic Usage
-----------

```python
from keystate import FactoryDefault, StateKeyConfig

config = StateKeyConfig(
    validator=lambda value, name: isinstance(value, list),
    default=FactoryDefault(list),
)

# Same thing, dict form
config = StateKeyConfig.from_mapping(
    {"validator": lambda value, name: isinstance(value, list), "value_fn": list}
)
```
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, Mapping, Optional, Union

from .exceptions import StateConfigError

# ============================================================================
# SENTINEL VALUES
# ============================================================================


class _Missing:
    """Sentinel for 'no value given', distinct from None."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "MISSING"

    def __bool__(self):
        return False


MISSING = _Missing()


# A hook is either a callable or the name of a method on the owning State.
Hook = Union[Callable[..., Any], str]


# ============================================================================
# DEFAULT VALUE STRATEGIES
# ============================================================================


@dataclass(frozen=True)
class SharedDefault:
    """Default value reused as-is by every instance (aliasing is deliberate)."""

    value: Any


@dataclass(frozen=True)
class FactoryDefault:
    """Default value produced by calling ``factory()`` once per instance."""

    factory: Hook


Default = Union[SharedDefault, FactoryDefault]


# ============================================================================
# KEY CONFIGURATION
# ============================================================================


@dataclass(frozen=True)
class StateKeyConfig:
    """
    Configuration for a single state key.

    Attributes:
        validator: Called as ``validator(value, name)``. A falsy result makes the
                   write be ignored. Skipped while the default value is written.
        setter: Called as ``setter(new_value, prev_value)``; its return value is
                what gets stored.
        default: SharedDefault or FactoryDefault, used when the key is first read
                 without an initial value.
        write_once: If True, only the first accepted write goes through.
    """

    validator: Optional[Hook] = None
    setter: Optional[Hook] = None
    default: Optional[Default] = None
    write_once: bool = False

    _MAPPING_OPTIONS = ("validator", "setter", "value", "value_fn", "write_once")

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "StateKeyConfig":
        """Build a config from the dict form: validator, setter, value, value_fn, write_once."""
        unknown = set(options) - set(cls._MAPPING_OPTIONS)
        if unknown:
            raise StateConfigError(
                f"Unknown state key option(s): {', '.join(sorted(unknown))}"
            )

        has_value = options.get("value", MISSING) is not MISSING
        has_value_fn = options.get("value_fn") is not None
        if has_value and has_value_fn:
            raise StateConfigError("Options 'value' and 'value_fn' are mutually exclusive")

        default: Optional[Default] = None
        if has_value:
            default = SharedDefault(options["value"])
        elif has_value_fn:
            default = FactoryDefault(options["value_fn"])

        return cls(
            validator=options.get("validator"),
            setter=options.get("setter"),
            default=default,
            write_once=bool(options.get("write_once", False)),
        )

    @classmethod
    def coerce(cls, config: Any) -> "StateKeyConfig":
        """Accept None, a StateKeyConfig or its dict form."""
        if config is None:
            return cls()
        if isinstance(config, StateKeyConfig):
            return config
        if isinstance(config, Mapping):
            return cls.from_mapping(config)
        raise StateConfigError(
            f"State key config must be a StateKeyConfig or a mapping, got {type(config).__name__}"
        )


# ============================================================================
# PER-INSTANCE BOOKKEEPING
# ============================================================================


class KeyState(IntEnum):
    """Lifecycle of a state key."""

    UNINITIALIZED = 0
    INITIALIZING = 1  # Consuming a caller-supplied initial value
    INITIALIZING_DEFAULT = 2  # Computing the fallback default
    INITIALIZED = 3


@dataclass
class KeyInfo:
    """Everything a State knows about one of its keys."""

    config: StateKeyConfig
    initial_value: Any = MISSING
    state: KeyState = KeyState.UNINITIALIZED
    value: Any = None
    written: bool = False


# ============================================================================
# CHANGE EVENTS
# ============================================================================


@dataclass
class ChangeRecord:
    """A state key going from ``prev_val`` to ``new_val``."""

    key: str
    new_val: Any
    prev_val: Any


@dataclass
class BatchData:
    """All the changes made during one scheduling turn, by key."""

    changes: Dict[str, ChangeRecord] = field(default_factory=dict)
