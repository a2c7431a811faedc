"""Exceptions for keystate."""


class StateError(Exception):
    """Base exception for state-key related errors."""

    pass


class InvalidStateKeyError(StateError, ValueError):
    """Raised when a key name is not allowed to become a state key."""

    pass


class StateConfigError(StateError, TypeError):
    """Raised when a state key configuration is malformed."""

    pass


class UnknownStateKeyError(StateError, KeyError):
    """Raised when querying a state key that isn't registered."""

    pass


class DisposedError(StateError, RuntimeError):
    """Raised when mutating the state of a disposed instance."""

    pass
