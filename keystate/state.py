"""
keystate State - Observable State Keys
======================================

State gives an object named *state keys*: attributes that read and write like
plain attributes but come with lazy initialization, validation, normalization,
write-once semantics and change events.

Declaring Keys
--------------

Keys are declared on the class through the ``STATE`` hint, which is merged across
the whole class hierarchy (descendants win), or added at runtime with
``add_to_state`` / ``add_key_to_state``:

```python
from keystate import State

class Counter(State):
    STATE = {
        "count": {"value": 0, "validator": lambda v, name: isinstance(v, int)},
        "label": {"setter": lambda v, prev: str(v).strip()},
        "tags": {"value_fn": list},
        "owner": {"write_once": True},
    }

counter = Counter({"label": "  clicks "})
counter.count        # 0, computed on first read
counter.label        # "clicks", the constructor value went through the setter
counter.count = "x"  # ignored, the validator rejects it
counter.count = 5    # accepted
```

Key Options
-----------

- ``validator(value, name)``: falsy result drops the write silently.
- ``setter(new_value, prev_value)``: its return value is what gets stored.
- ``value``: shared default, the same object for every instance.
- ``value_fn()``: default factory, called once per instance.
- ``write_once``: only the first accepted write goes through.

Validators, setters and factories may also be given as method names.

Events
------

- ``"<name>_changed"`` and ``"state_key_changed"``: emitted synchronously with a
  ChangeRecord whenever a key's value changes.
- ``"state_changed"``: emitted once per scheduling turn with a BatchData holding
  every change of that turn (see ``keystate.scheduling``).
- ``"config_changed"``: emitted when ``config`` is updated by the constructor or
  ``set_state``.

Changes made while a key is being initialized never emit. Writes of primitive
values only emit when the value differs; writes over an object always emit.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Type, Union

from .config import (
    MISSING,
    BatchData,
    ChangeRecord,
    FactoryDefault,
    Hook,
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
    UnknownStateKeyError,
)
from .merging import get_merged, merge_key_sets, merge_mappings, merge_super_classes_property, mixin
from .scheduling import next_tick

logger = logging.getLogger(__name__)

# Values compared by value when deciding whether a write is a change
_PRIMITIVE_TYPES = (type(None), bool, int, float, complex, str, bytes)

Target = Union[None, bool, Type["State"]]


class State(EventEmitter):
    """
    Event emitter whose state keys are watched for changes.

    Args:
        config: Initial values for the keys declared in ``STATE``. These take
                precedence over the declared defaults. The whole mapping is also
                recorded in ``self.config``.
    """

    # Names that can never become state keys. Merged across the hierarchy.
    INVALID_KEYS = ("config", "state", "state_key")

    # Key declarations, e.g. {"count": {"value": 0}}. Merged across the hierarchy.
    STATE: Mapping[str, Any] = {}

    # Instance attributes State and EventEmitter keep for themselves
    _INTERNAL_ATTRIBUTES = frozenset(
        {
            "_listeners",
            "_lock",
            "_disposed",
            "_state_info",
            "_scheduled_batch_data",
            "_instance_accessors",
        }
    )

    KeyStates = KeyState

    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__()

        # Pending batch of the current turn, or None if no flush is scheduled
        self._scheduled_batch_data: Optional[BatchData] = None
        self._state_info: Optional[Dict[str, KeyInfo]] = {}
        # Keys reachable through __getattr__/__setattr__ on this very instance
        self._instance_accessors: Set[str] = set()

        # Most recent values passed to the constructor or set_state
        self.config: Dict[str, Any] = {}

        self._update_config(config or {})
        self._add_to_state_from_static_hint(config)

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def add_key_to_state(
        self, name: str, config: Any = None, initial_value: Any = MISSING
    ) -> None:
        """Add a single key, reachable as an attribute of this instance."""
        initial_values = {} if initial_value is MISSING else {name: initial_value}
        self.add_to_state({name: config}, initial_values)

    def add_to_state(
        self,
        configs: Mapping[str, Any],
        initial_values: Optional[Mapping[str, Any]] = None,
        target: Target = None,
    ) -> None:
        """
        Add keys to the state.

        Args:
            configs: Maps key names to a StateKeyConfig or its dict form
            initial_values: Maps key names to initial values, which win over the
                            configured defaults. Names that aren't being added
                            are ignored.
            target: Where the attribute accessors go: None for this instance, a
                    State subclass to install descriptors on it, or False to
                    install none (keys stay reachable through get/set).

        Raises:
            InvalidStateKeyError: A name is not allowed as a state key. Nothing
                                  is registered in that case.
            StateConfigError: A config or the target is malformed.
        """
        self._assert_not_disposed()
        initial_values = initial_values or {}

        if not (
            target is None
            or target is False
            or (isinstance(target, type) and issubclass(target, State))
        ):
            raise StateConfigError(
                f"State key target must be None, False or a State subclass, got {target!r}"
            )

        coerced = {}
        for name, config in configs.items():
            self._assert_valid_state_key_name(name)
            if target is None:
                self._assert_instance_accessor_available(name)
            elif target is not False:
                _assert_class_accessor_available(target, name)
            coerced[name] = StateKeyConfig.coerce(config)

        for name, config in coerced.items():
            self._state_info[name] = KeyInfo(
                config=config, initial_value=initial_values.get(name, MISSING)
            )

        if target is None:
            self._instance_accessors.update(coerced)
        elif target is not False:
            _install_class_accessors(target, coerced)

        if coerced:
            logger.debug(f"Added state keys {list(coerced)} to {type(self).__name__}")

    def _add_to_state_from_static_hint(self, initial_values: Optional[Mapping[str, Any]]) -> None:
        """Register the keys of the class-level ``STATE`` hint."""
        self.add_to_state(type(self).get_merged_state(), initial_values, False)

    @classmethod
    def merge_state_static(cls) -> bool:
        """
        Merge ``STATE`` across the hierarchy and install a descriptor per key on
        this class. Runs once per class.

        Returns:
            True if the merge happened now, False if it had already happened.
        """
        if not merge_super_classes_property(cls, "STATE", cls._merge_state):
            return False

        _install_class_accessors(cls, get_merged(cls, "STATE", cls._merge_state))
        return True

    @classmethod
    def _merge_state(cls, values: List[Mapping[str, Any]]) -> Dict[str, StateKeyConfig]:
        merged = merge_mappings(values)
        for name in merged:
            cls._assert_valid_state_key_name(name)
            _assert_class_accessor_available(cls, name)
        return {name: StateKeyConfig.coerce(config) for name, config in merged.items()}

    @classmethod
    def get_merged_state(cls) -> Dict[str, StateKeyConfig]:
        """Key configs declared by this class and its ancestors."""
        cls.merge_state_static()
        return get_merged(cls, "STATE", cls._merge_state)

    @classmethod
    def get_invalid_keys(cls) -> frozenset:
        """Every name rejected by this class and its ancestors."""
        return get_merged(cls, "INVALID_KEYS", merge_key_sets)

    @classmethod
    def _assert_valid_state_key_name(cls, name: str) -> None:
        if not isinstance(name, str) or not name.isidentifier():
            raise InvalidStateKeyError(f"State key names must be identifiers, got {name!r}")
        if name in cls._INTERNAL_ATTRIBUTES:
            raise InvalidStateKeyError(f"'{name}' is used internally by {cls.__name__}")
        if name in cls.get_invalid_keys():
            raise InvalidStateKeyError(
                f"It's not allowed to create a state key with the name '{name}'."
            )

    def _assert_instance_accessor_available(self, name: str) -> None:
        existing = getattr(type(self), name, MISSING)
        if existing is not MISSING and not isinstance(existing, StateKeyDescriptor):
            raise InvalidStateKeyError(
                f"State key '{name}' would be shadowed by {type(self).__name__}.{name}"
            )
        if name in self.__dict__:
            raise InvalidStateKeyError(
                f"State key '{name}' would be shadowed by an instance attribute"
            )

    def remove_state_key(self, name: str) -> None:
        """Forget the key and its instance accessor. Its value is dropped."""
        self._assert_not_disposed()
        self._state_info.pop(name, None)
        self._instance_accessors.discard(name)
        logger.debug(f"Removed state key '{name}' from {type(self).__name__}")

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_state_keys(self) -> List[str]:
        self._assert_not_disposed()
        return list(self._state_info)

    def get_state_key_config(self, name: str) -> Optional[StateKeyConfig]:
        info = self._key_info(name)
        return info.config if info is not None else None

    def can_set_state(self, name: str) -> bool:
        """Whether a write to ``name`` would get past the write-once guard."""
        info = self._require_key_info(name)
        return not (info.config.write_once and info.written)

    def has_been_set(self, name: str) -> bool:
        """Whether the key holds (or will hold) a value given to it. Doesn't run the initializer."""
        info = self._require_key_info(name)
        return info.state == KeyState.INITIALIZED or info.initial_value is not MISSING

    def is_written(self, name: str) -> bool:
        """Whether an accepted write ever reached the key, defaults included."""
        return self._require_key_info(name).written

    def _key_info(self, name: str) -> Optional[KeyInfo]:
        self._assert_not_disposed()
        return self._state_info.get(name)

    def _require_key_info(self, name: str) -> KeyInfo:
        info = self._key_info(name)
        if info is None:
            raise UnknownStateKeyError(name)
        return info

    def _assert_not_disposed(self) -> None:
        if self._state_info is None:
            raise DisposedError(f"{type(self).__name__} has been disposed")

    # ========================================================================
    # GENERIC ACCESS
    # ========================================================================

    def get(self, name: str) -> Any:
        """Value of a state key, or of a plain attribute when ``name`` isn't one."""
        if self._key_info(name) is not None:
            return self.get_state_key_value(name)
        return getattr(self, name)

    def set(self, name: str, value: Any) -> None:
        """Write a state key, or a plain attribute when ``name`` isn't one."""
        if self._key_info(name) is not None:
            self.set_state_key_value(name, value)
        else:
            setattr(self, name, value)

    def get_state(self, names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Snapshot of the given keys (all of them by default)."""
        if names is None:
            names = self.get_state_keys()
        return {name: self.get(name) for name in names}

    def set_state(
        self, values: Mapping[str, Any], callback: Optional[Callable[[BatchData], Any]] = None
    ) -> None:
        """
        Write several keys at once, in mapping order.

        Args:
            values: Maps names to new values. Also merged into ``config``.
            callback: Called with the BatchData of the next ``state_changed``
                      event, if these writes scheduled one.
        """
        self._assert_not_disposed()
        self._update_config(values)
        for name, value in values.items():
            self.set(name, value)
        if callback is not None and self._scheduled_batch_data is not None:
            self.once("state_changed", callback)

    def _update_config(self, values: Mapping[str, Any]) -> None:
        prev_config = self.config
        self.config = mixin({}, self.config, values)
        self.emit("config_changed", ChangeRecord("config", self.config, prev_config))

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def get_state_key_value(self, name: str) -> Any:
        """Read a key, initializing it first if needed."""
        info = self._require_key_info(name)
        self._init_state_key(name, info)
        return info.value

    def _init_state_key(self, name: str, info: KeyInfo) -> None:
        if info.state != KeyState.UNINITIALIZED:
            return

        info.state = KeyState.INITIALIZING
        self._set_initial_value(name, info)
        if not info.written:
            info.state = KeyState.INITIALIZING_DEFAULT
            self._set_default_value(name, info)
        info.state = KeyState.INITIALIZED

    def _set_initial_value(self, name: str, info: KeyInfo) -> None:
        if info.initial_value is not MISSING:
            value = info.initial_value
            info.initial_value = MISSING
            self.set_state_key_value(name, value)

    def _set_default_value(self, name: str, info: KeyInfo) -> None:
        default = info.config.default
        if isinstance(default, SharedDefault):
            value = default.value
        elif isinstance(default, FactoryDefault):
            value = self._call_hook(default.factory)
        else:
            # No default: the key reads as None and stays unwritten
            return
        self.set_state_key_value(name, value)

    # ========================================================================
    # WRITE PIPELINE
    # ========================================================================

    def set_state_key_value(self, name: str, value: Any) -> None:
        """Write a key through the write-once guard, validator and setter."""
        info = self._require_key_info(name)
        if not self.can_set_state(name) or not self._validate_key_value(name, info, value):
            return

        if info.initial_value is MISSING and info.state == KeyState.UNINITIALIZED:
            info.state = KeyState.INITIALIZED

        # Reading consumes a pending initial value, which this write replaces
        prev_val = self.get_state_key_value(name)
        info.value = self._call_setter(info, value, prev_val)
        info.written = True
        self._inform_change(name, info, prev_val)

    def _validate_key_value(self, name: str, info: KeyInfo, value: Any) -> bool:
        # Defaults are trusted
        if info.state == KeyState.INITIALIZING_DEFAULT:
            return True
        validator = info.config.validator
        if validator is None:
            return True
        return bool(self._call_hook(validator, value, name))

    def _call_setter(self, info: KeyInfo, value: Any, prev_val: Any) -> Any:
        setter = info.config.setter
        if setter is None:
            return value
        return self._call_hook(setter, value, prev_val)

    def _call_hook(self, hook: Hook, *args: Any) -> Any:
        """Call a hook given as a callable or as the name of a method."""
        if isinstance(hook, str):
            try:
                method = getattr(self, hook)
            except AttributeError:
                raise StateConfigError(
                    f"{type(self).__name__} has no method '{hook}' to use as a state key hook"
                ) from None
            return method(*args)
        if callable(hook):
            return hook(*args)
        raise StateConfigError(f"State key hook must be callable or a method name, got {hook!r}")

    # ========================================================================
    # CHANGE NOTIFICATION
    # ========================================================================

    def _should_inform_change(self, info: KeyInfo, prev_val: Any) -> bool:
        """
        Changes during initialization are never informed. Primitive values are
        compared; objects (containers included) always count as changed since
        their contents may differ even when the reference doesn't.
        """
        if info.state != KeyState.INITIALIZED:
            return False
        if not isinstance(prev_val, _PRIMITIVE_TYPES):
            return True
        new_val = info.value
        return type(prev_val) is not type(new_val) or prev_val != new_val

    def _inform_change(self, name: str, info: KeyInfo, prev_val: Any) -> None:
        if not self._should_inform_change(info, prev_val):
            return

        data = ChangeRecord(key=name, new_val=info.value, prev_val=prev_val)
        self.emit(f"{name}_changed", data)
        self.emit("state_key_changed", data)
        self._schedule_batch_event(data)

    def _schedule_batch_event(self, data: ChangeRecord) -> None:
        if self._scheduled_batch_data is None:
            next_tick(self._emit_batch_event)
            self._scheduled_batch_data = BatchData()
            logger.debug(f"Scheduled state_changed batch for {type(self).__name__}")

        changes = self._scheduled_batch_data.changes
        if data.key in changes:
            changes[data.key].new_val = data.new_val
        else:
            changes[data.key] = ChangeRecord(data.key, data.new_val, data.prev_val)

    def _emit_batch_event(self) -> None:
        if self.is_disposed():
            logger.debug(f"Skipped state_changed batch for disposed {type(self).__name__}")
            return

        data = self._scheduled_batch_data
        self._scheduled_batch_data = None
        if data is not None:
            logger.debug(f"Emitting state_changed with keys {list(data.changes)}")
            self.emit("state_changed", data)

    # ========================================================================
    # DISPOSAL & ATTRIBUTE FACADE
    # ========================================================================

    def dispose_internal(self) -> None:
        super().dispose_internal()
        self._state_info = None
        self._scheduled_batch_data = None

    def __getattr__(self, name: str) -> Any:
        # Only reached when regular lookup fails
        if name in self.__dict__.get("_instance_accessors", ()):
            return self.get_state_key_value(name)
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self.__dict__.get("_instance_accessors", ()):
            self.set_state_key_value(name, value)
        else:
            super().__setattr__(name, value)

    def __delattr__(self, name: str) -> None:
        if name in self.__dict__.get("_instance_accessors", ()):
            self.remove_state_key(name)
        else:
            super().__delattr__(name)

    def __repr__(self) -> str:
        if self._state_info is None:
            return f"{type(self).__name__}(<disposed>)"
        fields = [
            f"{name}={info.value!r}" if info.state == KeyState.INITIALIZED else f"{name}=<lazy>"
            for name, info in self._state_info.items()
        ]
        return f"{type(self).__name__}({', '.join(fields)})"


# ============================================================================
# CLASS-LEVEL ACCESSORS
# ============================================================================


def _assert_class_accessor_available(cls: Type, name: str) -> None:
    existing = getattr(cls, name, MISSING)
    if existing is not MISSING and not isinstance(existing, StateKeyDescriptor):
        raise InvalidStateKeyError(
            f"State key '{name}' would overwrite {cls.__name__}.{name}"
        )


def _install_class_accessors(cls: Type, names: Iterable[str]) -> None:
    for name in names:
        if not isinstance(getattr(cls, name, None), StateKeyDescriptor):
            descriptor = StateKeyDescriptor(name)
            setattr(cls, name, descriptor)
            descriptor.__set_name__(cls, name)
