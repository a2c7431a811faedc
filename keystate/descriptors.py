"""
keystate Descriptors - Class-Level State Key Accessors
======================================================

StateKeyDescriptor is installed on a State subclass for every key declared in its
``STATE`` hint (or added with a class as the target). Reads and writes on an
instance are forwarded to that instance's key registry, so ``obj.count`` runs the
lazy initializer and ``obj.count = 5`` runs the validation pipeline.

When the instance has no such key (it was removed, or never registered on that
instance) the descriptor falls back to a plain instance attribute.
"""

from typing import TYPE_CHECKING, Any, Optional, Type

if TYPE_CHECKING:
    from .state import State


class StateKeyDescriptor:
    """Data descriptor forwarding attribute access to a State's key registry."""

    def __init__(self, name: Optional[str] = None) -> None:
        self.attr_name = name
        self._owner_class: Optional[Type] = None

    def __set_name__(self, owner: Type, name: str) -> None:
        self.attr_name = name
        self._owner_class = owner

    def __get__(self, instance: Optional["State"], owner: Optional[Type] = None) -> Any:
        if instance is None:
            return self

        name = self.attr_name
        if _is_state_key(instance, name):
            return instance.get_state_key_value(name)

        try:
            return instance.__dict__[name]
        except KeyError:
            raise AttributeError(
                f"'{type(instance).__name__}' object has no attribute '{name}'"
            ) from None

    def __set__(self, instance: "State", value: Any) -> None:
        name = self.attr_name
        if _is_state_key(instance, name):
            instance.set_state_key_value(name, value)
        else:
            instance.__dict__[name] = value

    def __delete__(self, instance: "State") -> None:
        name = self.attr_name
        if _is_state_key(instance, name):
            instance.remove_state_key(name)
        else:
            try:
                del instance.__dict__[name]
            except KeyError:
                raise AttributeError(name) from None

    def __repr__(self) -> str:
        return f"StateKeyDescriptor({self.attr_name!r})"


def _is_state_key(instance: "State", name: str) -> bool:
    # Before State.__init__ has run there is no registry yet
    if "_state_info" not in instance.__dict__:
        return False
    return instance._key_info(name) is not None
