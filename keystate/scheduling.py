"""
keystate Scheduling - Run a Callback After the Current Synchronous Work
=======================================================================

``next_tick(callback, *args)`` defers ``callback(*args)`` until the code that is
running right now has finished:

- Inside a running asyncio event loop, the callback goes through
  ``loop.call_soon`` and runs on the loop's next iteration.
- Without a running loop, the callback is queued for the current thread and runs
  when the host calls ``run_pending()``, which is where a synchronous program
  marks the end of its turn.

```python
from keystate.scheduling import next_tick, run_pending

next_tick(print, "later")
print("now")
run_pending()  # prints "later"
```
"""

import asyncio
import logging
import threading
from collections import deque
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class _PendingQueue:
    """Per-thread FIFO of deferred callbacks for loop-less hosts."""

    _local = threading.local()

    @classmethod
    def _get_state(cls) -> dict:
        if not hasattr(cls._local, "state"):
            cls._local.state = {"is_running": False, "pending": deque()}
        return cls._local.state

    @classmethod
    def enqueue(cls, callback: Callable, args: tuple) -> None:
        cls._get_state()["pending"].append((callback, args))

    @classmethod
    def drain(cls) -> int:
        """Run queued callbacks, including ones queued while draining."""
        state = cls._get_state()
        if state["is_running"]:
            return 0

        state["is_running"] = True
        ran = 0
        first_error: Optional[BaseException] = None
        try:
            while state["pending"]:
                callback, args = state["pending"].popleft()
                ran += 1
                try:
                    callback(*args)
                except Exception as e:
                    # Keep draining; the first failure is re-raised at the end
                    logger.debug(f"Deferred callback {callback!r} raised: {e}")
                    if first_error is None:
                        first_error = e
        finally:
            state["is_running"] = False

        if first_error is not None:
            raise first_error
        return ran

    @classmethod
    def size(cls) -> int:
        return len(cls._get_state()["pending"])

    @classmethod
    def reset(cls) -> None:
        cls._local.__dict__.clear()


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def next_tick(callback: Callable, *args: Any) -> None:
    """Run ``callback(*args)`` once, after the current synchronous work."""
    loop = _running_loop()
    if loop is not None:
        loop.call_soon(callback, *args)
    else:
        _PendingQueue.enqueue(callback, args)


def run_pending() -> int:
    """Run callbacks deferred outside an event loop. Returns how many ran."""
    return _PendingQueue.drain()


def pending_count() -> int:
    return _PendingQueue.size()


def reset_pending() -> None:
    """Drop every queued callback for this thread without running it."""
    _PendingQueue.reset()
