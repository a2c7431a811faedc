"""
keystate Events - Minimal Publish/Subscribe Emitter
===================================================

EventEmitter keeps, per event name, an ordered list of listeners and calls them
synchronously on ``emit``. It is the notification channel State builds on.

```python
from keystate import EventEmitter

emitter = EventEmitter()
emitter.on("saved", lambda payload: print("saved", payload))
emitter.once("closed", lambda payload: print("closed once"))
emitter.emit("saved", {"id": 1})
```

Listener exceptions are not caught: they propagate to whoever called ``emit``.
"""

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Any]


class _OnceListener:
    """Wraps a listener so it detaches itself before its first call."""

    __slots__ = ("emitter", "event", "listener")

    def __init__(self, emitter: "EventEmitter", event: str, listener: Listener):
        self.emitter = emitter
        self.event = event
        self.listener = listener

    def __call__(self, payload: Any) -> Any:
        self.emitter.off(self.event, self)
        return self.listener(payload)

    def matches(self, listener: Listener) -> bool:
        return self is listener or self.listener is listener


class EventEmitter:
    """
    Synchronous event emitter with disposal support.

    Listeners run in registration order. A listener added while an event is being
    emitted is only called from the next emit on.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = threading.RLock()
        self._disposed = False

    def on(self, event: str, listener: Listener) -> Listener:
        """Subscribe ``listener`` to ``event``. Returns the listener for decorator use."""
        if not callable(listener):
            raise TypeError(f"Listener for '{event}' must be callable")
        with self._lock:
            self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """Subscribe ``listener`` to the next ``event`` only."""
        if not callable(listener):
            raise TypeError(f"Listener for '{event}' must be callable")
        self.on(event, _OnceListener(self, event, listener))
        return listener

    def off(self, event: str, listener: Listener) -> bool:
        """Remove the first registration of ``listener`` for ``event``."""
        with self._lock:
            listeners = self._listeners.get(event)
            if not listeners:
                return False
            for index, registered in enumerate(listeners):
                if registered is listener or (
                    isinstance(registered, _OnceListener) and registered.matches(listener)
                ):
                    del listeners[index]
                    if not listeners:
                        del self._listeners[event]
                    return True
            return False

    def remove_all_listeners(self, event: str = None) -> None:
        with self._lock:
            if event is None:
                self._listeners.clear()
            else:
                self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, ()))

    def emit(self, event: str, payload: Any = None) -> bool:
        """Call every listener of ``event`` with ``payload``. Returns True if any ran."""
        with self._lock:
            listeners = tuple(self._listeners.get(event, ()))

        for listener in listeners:
            listener(payload)
        return bool(listeners)

    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Detach all listeners and release internal state. Safe to call twice."""
        if self._disposed:
            return
        self.dispose_internal()
        self._disposed = True
        logger.debug(f"Disposed {type(self).__name__} at {id(self):#x}")

    def dispose_internal(self) -> None:
        """Subclass hook to release resources. Call super()."""
        self.remove_all_listeners()
