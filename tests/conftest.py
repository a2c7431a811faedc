"""
Shared pytest fixtures and configuration for keystate tests.
"""

from typing import Any, Dict, List

import pytest

from keystate.merging import clear_merge_cache
from keystate.scheduling import reset_pending


@pytest.fixture(autouse=True)
def reset_module_state():
    """Drop queued ticks and merged class hints so tests don't leak into each other."""
    reset_pending()
    clear_merge_cache()
    yield
    reset_pending()


class EventRecorder:
    """Collects the payloads of the events it listens to, in emission order."""

    def __init__(self) -> None:
        self.records: List[tuple] = []

    def listen(self, emitter, *events: str) -> "EventRecorder":
        for event in events:
            emitter.on(event, lambda payload, event=event: self.records.append((event, payload)))
        return self

    def of(self, event: str) -> List[Any]:
        return [payload for name, payload in self.records if name == event]

    def counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for name, _ in self.records:
            counts[name] = counts.get(name, 0) + 1
        return counts


@pytest.fixture
def recorder():
    """Provide a fresh EventRecorder."""
    return EventRecorder()
