"""
keystate Merging - Class-Hierarchy Static Merging
=================================================

State subclasses declare class attributes such as ``STATE`` and ``INVALID_KEYS``
that have to be combined with the ones declared by their ancestors.
``merge_super_classes_property`` walks the MRO once per class, hands the values
it finds (most derived first) to a merge function, and caches the result by
class identity so later instantiations skip the walk.

```python
class Base:
    STATE = {"a": {"value": 1}}

class Child(Base):
    STATE = {"b": {"value": 2}}

merge_super_classes_property(Child, "STATE", merge_mappings)  # True, merged now
merge_super_classes_property(Child, "STATE", merge_mappings)  # False, cached
get_merged(Child, "STATE")  # {"a": {...}, "b": {...}}
```
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Tuple, Type

from cachetools import LRUCache

logger = logging.getLogger(__name__)

MergeFn = Callable[[List[Any]], Any]

_MISSING = object()

# (class, attribute name) -> merged value
_merge_cache: LRUCache = LRUCache(maxsize=4096)
_merge_lock = threading.RLock()


def collect_super_classes_property(cls: Type, name: str) -> List[Any]:
    """Values of ``name`` defined directly on ``cls`` and its ancestors, most derived first."""
    values = []
    for klass in cls.__mro__:
        value = vars(klass).get(name, _MISSING)
        if value is not _MISSING:
            values.append(value)
    return values


def merge_super_classes_property(cls: Type, name: str, merge_fn: MergeFn) -> bool:
    """
    Merge ``name`` across the hierarchy of ``cls`` and cache the result.

    Args:
        cls: Class whose hierarchy is walked
        name: Class attribute to merge
        merge_fn: Receives the collected values, most derived first

    Returns:
        True if the merge was performed by this call, False if it was cached
    """
    return _merge_cached(cls, name, merge_fn)[0]


def get_merged(cls: Type, name: str, merge_fn: MergeFn) -> Any:
    """Merged value of ``name`` for ``cls``, merging first if needed."""
    return _merge_cached(cls, name, merge_fn)[1]


def _merge_cached(cls: Type, name: str, merge_fn: MergeFn) -> Tuple[bool, Any]:
    key: Tuple[Type, str] = (cls, name)
    with _merge_lock:
        merged = _merge_cache.get(key, _MISSING)
        if merged is not _MISSING:
            return False, merged
        merged = merge_fn(collect_super_classes_property(cls, name))
        _merge_cache[key] = merged

    logger.debug(f"Merged '{name}' for {cls.__qualname__}")
    return True, merged


def clear_merge_cache() -> None:
    with _merge_lock:
        _merge_cache.clear()


# ============================================================================
# MERGE FUNCTIONS
# ============================================================================


def mixin(target: Dict, *sources: Mapping) -> Dict:
    """Copy every source into ``target`` in order, later sources winning."""
    for source in sources:
        if source:
            target.update(source)
    return target


def flatten(values: Iterable[Any]) -> List[Any]:
    """Flatten nested lists and tuples into a single list."""
    flat: List[Any] = []
    stack = [iter(values)]
    while stack:
        try:
            value = next(stack[-1])
        except StopIteration:
            stack.pop()
            continue
        if isinstance(value, (list, tuple)):
            stack.append(iter(value))
        else:
            flat.append(value)
    return flat


def merge_mappings(values: List[Mapping]) -> Dict:
    """Merge mappings collected most derived first, so descendants win."""
    return mixin({}, *reversed(values))


def merge_key_sets(values: List[Any]) -> frozenset:
    """Union of every (possibly nested) list of names, skipping falsy entries."""
    return frozenset(value for value in flatten(values) if value)
